"""Wall-clock time source."""

from __future__ import annotations

import time


class SystemClock:
    """Implements the Clock protocol with the system wall clock."""

    def now(self) -> int:
        return int(time.time())
