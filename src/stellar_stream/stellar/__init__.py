"""Stellar/Soroban integration components."""

from stellar_stream.stellar.client import SorobanLedgerClient

__all__ = ["SorobanLedgerClient"]
