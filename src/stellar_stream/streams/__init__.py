"""Stream cache, progress computation and ledger reconciliation."""

from stellar_stream.streams.cache import StreamCache
from stellar_stream.streams.clock import SystemClock
from stellar_stream.streams.synchronizer import StreamSynchronizer

__all__ = ["StreamCache", "SystemClock", "StreamSynchronizer"]
