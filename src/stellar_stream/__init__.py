"""stellar_stream - stream lifecycle and Soroban ledger synchronization."""

__version__ = "0.1.0"
