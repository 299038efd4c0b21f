"""Time-sortable identifiers.

An id is 10 base-36 characters: 8 for the milliseconds elapsed since
2000-01-01T00:00:00Z, then a 2 character counter so ids generated within
the same millisecond stay unique.
"""

import random
import threading
import time
from datetime import datetime, timezone
from typing import Protocol

EPOCH_MS = 946684800000
ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
TIME_LENGTH = 8
COUNTER_LENGTH = 2
COUNTER_SPACE = 36 ** COUNTER_LENGTH


def to_base36(value: int, width: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(ALPHABET[rem])
    return "".join(reversed(digits)).rjust(width, "0")[-width:]


class IdGenerator(Protocol):
    def generate(self) -> str: ...


class AidGenerator:
    def __init__(self, clock=None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._counter = random.randrange(COUNTER_SPACE)
        self._lock = threading.Lock()

    def generate(self) -> str:
        with self._lock:
            self._counter = (self._counter + 1) % COUNTER_SPACE
            counter = self._counter
        elapsed = max(self._clock() - EPOCH_MS, 0)
        return to_base36(elapsed, TIME_LENGTH) + to_base36(counter, COUNTER_LENGTH)


def parse_time(aid: str) -> datetime:
    """Return the creation time encoded in ``aid``."""
    if len(aid) != TIME_LENGTH + COUNTER_LENGTH:
        raise ValueError(f"Invalid id: {aid!r}")
    elapsed = int(aid[:TIME_LENGTH], 36)
    return datetime.fromtimestamp((elapsed + EPOCH_MS) / 1000, tz=timezone.utc)
