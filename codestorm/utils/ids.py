"""Collision-resistant identifiers for tasks, files and proposals."""
from __future__ import annotations

import itertools
import random
import string
import threading
import time

_BASE36 = string.digits + string.ascii_lowercase

_counter = itertools.count(1)
_counter_lock = threading.Lock()
_rng = random.SystemRandom()


def _next_counter() -> int:
    with _counter_lock:
        return next(_counter)


def generate_unique_id(prefix: str = "") -> str:
    """Return ``{prefix}-{epoch_ms}-{counter}-{4 digits}-{7 base36 chars}``.

    The counter is process-wide, so two ids generated in the same
    millisecond still differ.
    """
    timestamp = int(time.time() * 1000)
    counter = _next_counter()
    digits = _rng.randint(0, 9999)
    suffix = "".join(_rng.choice(_BASE36) for _ in range(7))
    body = f"{timestamp}-{counter}-{digits:04d}-{suffix}"
    return f"{prefix}-{body}" if prefix else body


def generate_task_id() -> str:
    return generate_unique_id("task")


def generate_file_id() -> str:
    return generate_unique_id("file")


__all__ = ["generate_unique_id", "generate_task_id", "generate_file_id"]
