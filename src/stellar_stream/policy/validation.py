"""Input policy - validates stream creation payloads before they reach the ledger."""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from stellar_stream.errors import ValidationError
from stellar_stream.models.records import StreamInput

log = logging.getLogger(__name__)

STELLAR_ACCOUNT_RE = re.compile(r"^G[A-Z2-7]{55}$")
ASSET_CODE_RE = re.compile(r"^[A-Za-z0-9]{1,12}$")
STREAM_ID_RE = re.compile(r"^[1-9]\d*$")

MIN_DURATION_SECONDS = 60
MAX_AMOUNT_DECIMALS = 7  # token base unit is 10^-7


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str) and value.strip():
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def _to_int(value: Any) -> int | None:
    number = _to_decimal(value)
    if number is None or not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


def _account(payload: Mapping[str, Any], key: str, issues: list[tuple[str, str]]) -> str:
    raw = payload.get(key)
    value = raw.strip() if isinstance(raw, str) else ""
    if not value:
        issues.append((key, "Account ID is required."))
    elif not STELLAR_ACCOUNT_RE.match(value):
        issues.append((
            key,
            "Must be a valid Stellar account ID (starts with G and is exactly 56 characters).",
        ))
    return value


def is_valid_stream_id(stream_id: str) -> bool:
    return bool(STREAM_ID_RE.match(stream_id.strip()))


class StreamInputValidator:
    """Checks a create-stream payload against format rules and the asset allow-list.

    Rules:
    1. sender / recipient are Stellar account IDs and differ
    2. asset code is 1-12 alphanumerics and on the allow-list
    3. totalAmount is a finite positive number with at most 7 decimals
    4. durationSeconds is a whole number >= 60
    5. startAt, when given, is a positive whole unix timestamp
    """

    def __init__(self, allowed_assets: list[str]) -> None:
        self._allowed = [a.strip().upper() for a in allowed_assets if a.strip()]

    @property
    def allowed_assets(self) -> list[str]:
        return list(self._allowed)

    def validate(self, payload: Mapping[str, Any]) -> StreamInput:
        """Return a normalized StreamInput or raise ValidationError with every issue found."""
        issues: list[tuple[str, str]] = []

        sender = _account(payload, "sender", issues)
        recipient = _account(payload, "recipient", issues)
        if sender and sender == recipient:
            issues.append(("recipient", "Recipient must differ from the sender account."))

        raw_asset = payload.get("assetCode")
        asset_code = raw_asset.strip().upper() if isinstance(raw_asset, str) else ""
        if not asset_code:
            issues.append(("assetCode", "Asset code is required."))
        elif not ASSET_CODE_RE.match(asset_code):
            issues.append(("assetCode", "Asset code must be 1-12 alphanumeric characters (e.g. USDC, XLM)."))
        elif asset_code not in self._allowed:
            issues.append((
                "assetCode",
                f'Asset "{asset_code}" is not supported. '
                f"Allowed assets: {', '.join(self._allowed)}.",
            ))

        total_amount = _to_decimal(payload.get("totalAmount"))
        if total_amount is None or not total_amount.is_finite():
            issues.append(("totalAmount", "Total amount must be a valid number."))
        elif total_amount <= 0:
            issues.append(("totalAmount", "Amount must be greater than zero."))
        elif total_amount.normalize().as_tuple().exponent < -MAX_AMOUNT_DECIMALS:
            issues.append(("totalAmount", "Amount can have at most 7 decimal places."))

        duration = _to_int(payload.get("durationSeconds"))
        if duration is None:
            issues.append(("durationSeconds", "durationSeconds must be a whole number of seconds."))
        elif duration < MIN_DURATION_SECONDS:
            issues.append(("durationSeconds", "durationSeconds must be at least 60 seconds."))

        start_at: int | None = None
        if payload.get("startAt") is not None:
            start_at = _to_int(payload.get("startAt"))
            if start_at is None or start_at <= 0:
                issues.append(("startAt", "startAt must be a valid UNIX timestamp in seconds."))

        if issues:
            log.debug("Rejected stream input: %s", issues)
            raise ValidationError(issues)

        return StreamInput(
            sender=sender,
            recipient=recipient,
            asset_code=asset_code,
            total_amount=total_amount,  # type: ignore[arg-type]
            duration_seconds=duration,  # type: ignore[arg-type]
            start_at=start_at,
        )
