"""Protocol interfaces for stellar_stream components."""

from stellar_stream.interfaces.ledger import LedgerClient
from stellar_stream.interfaces.event_log import EventLog, StreamSnapshotStore
from stellar_stream.interfaces.clock import Clock

__all__ = ["LedgerClient", "EventLog", "StreamSnapshotStore", "Clock"]
