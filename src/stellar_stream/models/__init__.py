"""Data models for the stellar_stream service."""

from stellar_stream.models.events import (
    LedgerEvent,
    RawEvent,
    StreamCanceled,
    StreamClaimed,
    StreamCreated,
    StreamEvent,
    StreamEventType,
    UnrecognizedEvent,
)
from stellar_stream.models.records import (
    CreateStreamParams,
    OnChainStream,
    StreamInput,
    StreamProgress,
    StreamRecord,
    StreamStatus,
    SubmitResult,
    SyncReport,
    TransactionStatus,
)
from stellar_stream.models.config import ConfirmationConfig, IndexerConfig, ServiceConfig

__all__ = [
    "LedgerEvent", "RawEvent", "StreamCanceled", "StreamClaimed", "StreamCreated",
    "StreamEvent", "StreamEventType", "UnrecognizedEvent",
    "CreateStreamParams", "OnChainStream", "StreamInput", "StreamProgress",
    "StreamRecord", "StreamStatus", "SubmitResult", "SyncReport", "TransactionStatus",
    "ConfirmationConfig", "IndexerConfig", "ServiceConfig",
]
