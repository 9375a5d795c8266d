"""
Clock helpers.

Everything in the store is stamped in epoch milliseconds. Services take a
``clock`` callable so tests can drive time explicitly.
"""

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
