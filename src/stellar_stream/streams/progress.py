"""Progress calculator - maps a stream and a point in time to vesting figures.

Pure functions only. Monetary outputs are quantized to 6 fractional digits
with banker's rounding (ROUND_HALF_EVEN) so repeated calls never accumulate
float noise.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal

from stellar_stream.models.records import StreamProgress, StreamRecord, StreamStatus

_QUANTUM = Decimal("0.000001")
_ZERO = Decimal(0)
_ONE = Decimal(1)
_HUNDRED = Decimal(100)


def round_amount(value: Decimal) -> Decimal:
    return value.quantize(_QUANTUM, rounding=ROUND_HALF_EVEN)


def compute_status(stream: StreamRecord, at: int) -> StreamStatus:
    """Derive the lifecycle state. Cancellation wins over everything else."""
    if stream.canceled_at is not None:
        return StreamStatus.CANCELED
    if stream.completed_at is not None or at >= stream.end_at:
        return StreamStatus.COMPLETED
    if at < stream.start_at:
        return StreamStatus.SCHEDULED
    return StreamStatus.ACTIVE


def compute(stream: StreamRecord, at: int) -> StreamProgress:
    stream_end = stream.end_at
    effective_end = stream_end
    if stream.canceled_at is not None:
        effective_end = min(stream.canceled_at, stream_end)

    elapsed = max(0, min(at, effective_end) - stream.start_at)
    duration = Decimal(stream.duration_seconds)
    ratio = min(_ONE, max(_ZERO, Decimal(elapsed) / duration))

    total = Decimal(stream.total_amount)
    vested = total * ratio
    remaining = max(_ZERO, total - vested)

    return StreamProgress(
        status=compute_status(stream, at),
        rate_per_second=round_amount(total / duration),
        elapsed_seconds=elapsed,
        vested_amount=round_amount(vested),
        remaining_amount=round_amount(remaining),
        percent_complete=round_amount(ratio * _HUNDRED),
    )
