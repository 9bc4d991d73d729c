"""Human-readable, time-based identifiers for chains, batches and reports.

Identifiers embed the current epoch milliseconds in base 36. The stamp is
kept strictly increasing within the process so two chains created in the
same millisecond still get distinct ids.
"""
from __future__ import annotations

import threading
import time
import uuid

_BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

_stamp_lock = threading.Lock()
_last_stamp = 0


def to_base36(value: int) -> str:
    """Encode a non-negative integer in upper-case base 36."""
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def _next_stamp() -> int:
    global _last_stamp
    now_ms = int(time.time() * 1000)
    with _stamp_lock:
        if now_ms <= _last_stamp:
            now_ms = _last_stamp + 1
        _last_stamp = now_ms
    return now_ms


def _stamp36() -> str:
    return to_base36(_next_stamp())


def new_chain_id() -> str:
    return f"CHAIN-{_stamp36()}"


def new_split_chain_id() -> str:
    return f"SPLIT-{_stamp36()}-{uuid.uuid4().hex[:8]}"


def new_merge_chain_id() -> str:
    return f"MERGE-{_stamp36()}"


def new_transform_chain_id() -> str:
    return f"TRANS-{_stamp36()}"


def new_merged_batch_number() -> str:
    return f"MERGED-{_stamp36().lower()}"


def new_transform_batch_number() -> str:
    return f"TRANS-{_stamp36().lower()}"


def new_report_id() -> str:
    return f"LIN-{_stamp36()}"
