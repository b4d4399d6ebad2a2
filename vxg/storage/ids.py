"""Time-ordered recording identifiers (UUID version 7 layout)."""

import os
import threading
import time
import uuid
from typing import Optional

_lock = threading.Lock()
_last_ms = 0
_counter = 0

_COUNTER_BITS = 12
_COUNTER_MAX = (1 << _COUNTER_BITS) - 1


def _random_counter() -> int:
    # leave headroom so a burst within one millisecond rarely overflows
    return int.from_bytes(os.urandom(2), "big") & (_COUNTER_MAX >> 1)


def _next_sequence() -> tuple:
    global _last_ms, _counter

    with _lock:
        ms = int(time.time() * 1000)
        if ms > _last_ms:
            _last_ms = ms
            _counter = _random_counter()
        else:
            _counter += 1
            if _counter > _COUNTER_MAX:
                _last_ms += 1
                _counter = 0
        return _last_ms, _counter


def generate_recording_id(now_ms: Optional[int] = None) -> str:
    """Return a new UUIDv7 string.

    The top 48 bits hold the millisecond Unix timestamp. Ids generated by
    this process stay strictly ordered: within one millisecond a 12-bit
    counter is incremented, and on overflow the timestamp moves forward.

    Args:
        now_ms: Use this creation time instead of the clock. The id then
                carries exactly this timestamp and skips the sequencing.
    """
    if now_ms is None:
        ms, counter = _next_sequence()
    else:
        ms, counter = now_ms, _random_counter()

    rand_b = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)
    value = (ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= counter << 64
    value |= 0b10 << 62
    value |= rand_b
    return str(uuid.UUID(int=value))


def timestamp_from_id(recording_id: str) -> int:
    """Decode the millisecond creation timestamp embedded in a recording id.

    Raises:
        ValueError: If the id is not a UUID.
    """
    return uuid.UUID(recording_id).int >> 80
