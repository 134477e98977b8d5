"""Default failure classification.

The resilience layer never inspects error types itself; it asks a
predicate. These defaults work with any client whose errors expose
``is_retryable``, ``status_code``/``status`` or ``retry_after``
attributes, and treat plain network timeouts as transient.
"""

from __future__ import annotations

import asyncio
import math
from typing import Optional

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

TRANSIENT_ERROR_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
)


def _status_of(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def default_is_retryable(error: BaseException) -> bool:
    """Return True when ``error`` looks transient.

    Precedence: an explicit boolean ``is_retryable`` attribute, then an
    HTTP-like status code, then the built-in network error types.
    """
    flag = getattr(error, "is_retryable", None)
    if isinstance(flag, bool):
        return flag

    status = _status_of(error)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES

    return isinstance(error, TRANSIENT_ERROR_TYPES)


def default_retry_after(error: BaseException) -> Optional[float]:
    """Return the error's ``retry_after`` hint in seconds, if any."""
    value = getattr(error, "retry_after", None)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return float(value)
