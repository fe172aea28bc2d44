"""Clock protocol - supplies the current time in whole unix seconds."""

from __future__ import annotations

from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        ...
