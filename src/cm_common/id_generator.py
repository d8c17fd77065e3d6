"""Time-ordered string ids for offers, settlements, orders and deposits.

Ids sort by creation time both numerically and as VARCHAR, which cursor
pagination depends on.
"""

import threading
import time

from config.settings import settings

_EPOCH_MS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
_WORKER_BITS = 10
_SEQ_BITS = 12
_SEQ_MASK = (1 << _SEQ_BITS) - 1
_ID_WIDTH = 20


class TimeOrderedIdGenerator:
    """ms timestamp | worker id | per-ms sequence, issued from a logical clock.

    The logical clock never moves backwards. When the wall clock lags or a
    millisecond's sequence runs out, ids are drawn from the next millisecond.
    """

    def __init__(self, worker_id: int = 0) -> None:
        if worker_id < 0 or worker_id >> _WORKER_BITS:
            raise ValueError(f"worker_id must be in [0, {(1 << _WORKER_BITS) - 1}]")
        self._worker_id = worker_id
        self._tick = (-1, _SEQ_MASK)  # (ms, sequence) of the last id issued
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            last_ms, last_seq = self._tick
            now_ms = self._clock_ms()
            if now_ms > last_ms:
                tick = (now_ms, 0)
            elif last_seq < _SEQ_MASK:
                tick = (last_ms, last_seq + 1)
            else:
                tick = (last_ms + 1, 0)
            self._tick = tick
        ms, seq = tick
        value = (
            ((ms - _EPOCH_MS) << (_WORKER_BITS + _SEQ_BITS))
            | (self._worker_id << _SEQ_BITS)
            | seq
        )
        return str(value).zfill(_ID_WIDTH)

    def _clock_ms(self) -> int:
        return time.time_ns() // 1_000_000


_ids = TimeOrderedIdGenerator(settings.ID_WORKER_ID)


def generate_id() -> str:
    return _ids.next_id()
