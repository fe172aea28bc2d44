"""SCVal decoding for stellar-stream contract structs and events."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any

from stellar_sdk import Address, scval, xdr

from stellar_stream.errors import DecodeError
from stellar_stream.models.events import (
    LedgerEvent,
    RawEvent,
    StreamCanceled,
    StreamClaimed,
    StreamCreated,
    UnrecognizedEvent,
)
from stellar_stream.models.records import OnChainStream

log = logging.getLogger(__name__)

# Token amounts are i128 base units with 7 decimals, like stroops per XLM
AMOUNT_SCALE = 10_000_000

# Topic patterns emitted by the contract:
#   ("Stream", "Created")
#   ("Stream", "Claimed")
#   ("Stream", "Canceled")
TOPIC_CATEGORY = "Stream"


def to_amount(base_units: int) -> Decimal:
    return Decimal(base_units) / AMOUNT_SCALE


def to_base_units(amount: Decimal) -> int:
    return int((amount * AMOUNT_SCALE).to_integral_value(rounding=ROUND_HALF_EVEN))


def _addr_to_str(addr: object) -> str:
    """Extract the string address from a stellar_sdk.Address or plain str."""
    if isinstance(addr, Address):
        return addr.address
    return str(addr)


def _native(value: str | xdr.SCVal) -> Any:
    if isinstance(value, str):
        value = xdr.SCVal.from_xdr(value)
    return scval.to_native(value)


def _field(data: dict, name: str) -> Any:
    try:
        return data[name]
    except KeyError:
        raise DecodeError(f"missing field {name!r}") from None


def decode_u64(value: str | xdr.SCVal) -> int:
    """Decode a contract return value that should be a u64 (e.g. a stream id)."""
    try:
        result = _native(value)
    except Exception as exc:
        raise DecodeError(f"undecodable return value: {exc}") from exc
    if isinstance(result, bool) or not isinstance(result, int):
        raise DecodeError(f"expected integer return value, got {type(result).__name__}")
    return result


def decode_stream(stream_id: int, value: str | xdr.SCVal) -> OnChainStream:
    """Decode the Stream struct returned by get_stream()."""
    try:
        data = _native(value)
    except Exception as exc:
        raise DecodeError(f"stream {stream_id}: undecodable struct: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"stream {stream_id}: expected struct, got {type(data).__name__}")

    try:
        return OnChainStream(
            stream_id=stream_id,
            sender=_addr_to_str(_field(data, "sender")),
            recipient=_addr_to_str(_field(data, "recipient")),
            token=_addr_to_str(_field(data, "token")),
            total_amount=int(_field(data, "total_amount")),
            claimed_amount=int(_field(data, "claimed_amount")),
            start_time=int(_field(data, "start_time")),
            end_time=int(_field(data, "end_time")),
            canceled=bool(_field(data, "canceled")),
        )
    except DecodeError as exc:
        raise DecodeError(f"stream {stream_id}: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"stream {stream_id}: bad field value: {exc}") from exc


def decode_event(event: RawEvent) -> LedgerEvent:
    """Decode a raw contract event into one of the tagged event variants.

    Events without a (category, sub-type) topic pair, or with a sub-type we
    do not index, come back as UnrecognizedEvent. Raises DecodeError when a
    recognized event's payload is malformed.
    """
    try:
        topics = [_native(t) for t in event.topic]
    except Exception as exc:
        raise DecodeError(f"event {event.id}: undecodable topic: {exc}") from exc

    if len(topics) < 2:
        category = str(topics[0]) if topics else ""
        return UnrecognizedEvent(category=category, sub_type="")

    category, sub_type = str(topics[0]), str(topics[1])
    if category != TOPIC_CATEGORY or sub_type not in ("Created", "Claimed", "Canceled"):
        return UnrecognizedEvent(category=category, sub_type=sub_type)

    try:
        data = _native(event.value)
    except Exception as exc:
        raise DecodeError(f"event {event.id}: undecodable value: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"event {event.id}: expected struct payload")

    try:
        if sub_type == "Created":
            return StreamCreated(
                stream_id=int(_field(data, "stream_id")),
                sender=_addr_to_str(_field(data, "sender")),
                recipient=_addr_to_str(_field(data, "recipient")),
                token=_addr_to_str(_field(data, "token")),
                total_amount=to_amount(int(_field(data, "total_amount"))),
                start_time=int(_field(data, "start_time")),
                end_time=int(_field(data, "end_time")),
            )
        if sub_type == "Claimed":
            return StreamClaimed(
                stream_id=int(_field(data, "stream_id")),
                recipient=_addr_to_str(_field(data, "recipient")),
                amount=to_amount(int(_field(data, "amount"))),
            )
        return StreamCanceled(
            stream_id=int(_field(data, "stream_id")),
            sender=_addr_to_str(_field(data, "sender")),
        )
    except DecodeError as exc:
        raise DecodeError(f"event {event.id} ({sub_type}): {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"event {event.id} ({sub_type}): bad field value: {exc}") from exc
