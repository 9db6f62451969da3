"""Trigger ids for orders that reach the engine without one.

Order intake normally supplies its own order id. When it does not, the
engine mints `ord_<n>` where n packs the issue time (ms since 2024-01-01),
the worker and a per-millisecond sequence, so ids from different workers
never collide and sort by issue time.
"""

import threading
import time
from datetime import datetime, timezone

_EPOCH_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z
_WORKER_BITS = 10
_SEQUENCE_BITS = 12
_MAX_WORKER = (1 << _WORKER_BITS) - 1
_MAX_SEQUENCE = (1 << _SEQUENCE_BITS) - 1


class TriggerIdGenerator:
    def __init__(self, prefix: str = "ord", worker_id: int = 0) -> None:
        if not 0 <= worker_id <= _MAX_WORKER:
            raise ValueError(f"worker_id must be 0-{_MAX_WORKER}, got {worker_id}")
        self._prefix = prefix
        self._worker_id = worker_id
        self._last_ms = -1
        self._sequence = 0
        self._lock = threading.Lock()

    def _tick(self) -> tuple[int, int]:
        """Next (timestamp_ms, sequence); never goes backwards with the wall clock."""
        with self._lock:
            now_ms = max(int(time.time() * 1000), self._last_ms)
            if now_ms == self._last_ms:
                self._sequence = (self._sequence + 1) & _MAX_SEQUENCE
                if self._sequence == 0:
                    while now_ms <= self._last_ms:
                        now_ms = int(time.time() * 1000)
            else:
                self._sequence = 0
            self._last_ms = now_ms
            return now_ms, self._sequence

    def next_id(self) -> str:
        ts, seq = self._tick()
        n = ((ts - _EPOCH_MS) << (_WORKER_BITS + _SEQUENCE_BITS)) | (
            self._worker_id << _SEQUENCE_BITS
        ) | seq
        return f"{self._prefix}_{n}"


def issued_at(trigger_id: str) -> datetime:
    """Issue time encoded in a generated trigger id."""
    _, _, number = trigger_id.rpartition("_")
    ms = (int(number) >> (_WORKER_BITS + _SEQUENCE_BITS)) + _EPOCH_MS
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


_order_ids = TriggerIdGenerator("ord")


def generate_order_id() -> str:
    return _order_ids.next_id()
