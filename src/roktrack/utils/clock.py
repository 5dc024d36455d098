"""Wall-clock helpers. Motion deadlines and alert intervals are absolute epoch milliseconds."""

from __future__ import annotations

import time


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)
