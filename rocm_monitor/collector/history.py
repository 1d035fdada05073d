from __future__ import annotations

import threading
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, Iterator, List, Optional, Union

from .errors import NoDataError
from .models import Sample

DEFAULT_CAPACITY = 1000

Duration = Union[timedelta, float, int]


def as_timedelta(duration: Duration) -> timedelta:
    if isinstance(duration, timedelta):
        return duration
    return timedelta(seconds=duration)


class ReadWriteLock:
    """Many readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            self._cond.wait_for(lambda: not self._writer and not self._writers_waiting)
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                self._cond.wait_for(lambda: not self._writer and not self._readers)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class HistoryStore:
    """Bounded timeline of Samples, oldest evicted first.

    Samples are immutable, so the lists handed out by the read methods
    are independent of the store.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            capacity = DEFAULT_CAPACITY
        self._capacity = capacity
        self._samples: Deque[Sample] = deque(maxlen=capacity)
        self._lock = ReadWriteLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._samples)

    def append(self, sample: Sample) -> None:
        with self._lock.write():
            self._samples.append(sample)

    def clear(self) -> None:
        with self._lock.write():
            self._samples.clear()

    def snapshot(self) -> List[Sample]:
        with self._lock.read():
            return list(self._samples)

    def latest(self) -> Sample:
        with self._lock.read():
            if not self._samples:
                raise NoDataError()
            return self._samples[-1]

    def window(self, duration: Duration, now: Optional[datetime] = None) -> List[Sample]:
        """Samples newer than `now - duration`, oldest first."""
        cutoff = (now or datetime.now(timezone.utc)) - as_timedelta(duration)
        recent: List[Sample] = []
        with self._lock.read():
            for sample in reversed(self._samples):
                if sample.timestamp <= cutoff:
                    break
                recent.append(sample)
        recent.reverse()
        return recent

    def stats(self) -> Dict[str, Any]:
        with self._lock.read():
            samples = list(self._samples)

        stats: Dict[str, Any] = {
            "history_size": len(samples),
            "max_history": self._capacity,
        }
        if not samples:
            return stats

        stats["oldest_timestamp"] = samples[0].timestamp
        stats["newest_timestamp"] = samples[-1].timestamp

        temp = power = gpu = vram = 0.0
        count = 0
        for sample in samples:
            for dev in sample.devices:
                temp += dev.temperature_c
                power += dev.power_w
                gpu += dev.gpu_usage_pct
                vram += dev.vram_used_gb
                count += 1
        if count:
            stats["avg_temperature"] = temp / count
            stats["avg_power"] = power / count
            stats["avg_gpu_usage"] = gpu / count
            stats["avg_vram_usage"] = vram / count
        return stats
