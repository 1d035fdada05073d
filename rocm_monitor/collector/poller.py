# collector/poller.py
from __future__ import annotations

import enum
import logging
import threading
import time
from datetime import timedelta
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from .errors import CollectionError
from .history import DEFAULT_CAPACITY, Duration, HistoryStore
from .models import Sample, StaticDeviceInfo
from .sampler import ErrorSink, Sampler
from .static_info import get_static_device_info

log = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0  # seconds


class State(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


def _seconds(duration: Duration) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


def log_error(exc: Exception) -> None:
    log.warning("Collector error: %s", exc)


class Collector:
    """Polls the Sampler on a fixed interval and owns the history.

    State machine: STOPPED -> RUNNING (start) -> STOPPING -> STOPPED (stop).
    An interval change while running bumps a generation counter, which
    wakes the loop and restarts its tick cycle on the same thread; only
    the round in flight at that moment is affected.
    """

    def __init__(
        self,
        sampler: Optional[Sampler] = None,
        history: Optional[HistoryStore] = None,
        interval: Duration = DEFAULT_INTERVAL,
        max_history: int = DEFAULT_CAPACITY,
        error_sink: Optional[ErrorSink] = None,
        static_info: Optional[Callable[[], List[StaticDeviceInfo]]] = None,
    ) -> None:
        seconds = _seconds(interval)
        self._interval = seconds if seconds > 0 else DEFAULT_INTERVAL
        self.error_sink: ErrorSink = error_sink or log_error
        self.sampler = sampler if sampler is not None else Sampler()
        if self.sampler.error_sink is None:
            self.sampler.error_sink = self._report
        self.history = history if history is not None else HistoryStore(max_history)
        self._static_info = static_info or partial(
            get_static_device_info,
            smi=self.sampler.smi,
            timeout=self.sampler.timeout,
            runner=self.sampler.runner,
        )

        self._cond = threading.Condition()
        self._state = State.STOPPED
        self._generation = 0
        self._thread: Optional[threading.Thread] = None

        self._started_at = time.monotonic()
        self._total = 0
        self._failed = 0
        self._collect_time = 0.0

    # ---------- lifecycle -------------------------------------------------
    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._state is State.RUNNING

    def start(self) -> None:
        """Start the loop; a start during a pending stop() runs once that stop is done."""
        with self._cond:
            if self._thread is threading.current_thread():
                return
            self._cond.wait_for(lambda: self._state is not State.STOPPING)
            if self._state is not State.STOPPED:
                return
            self._state = State.RUNNING
            self._thread = threading.Thread(target=self._run, name="rocm-collector", daemon=True)
            self._thread.start()
        log.info("Started ROCm monitoring with interval: %.1fs", self._interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop and wait for the in-flight round to finish."""
        with self._cond:
            if self._state is State.STOPPING and self._thread is not threading.current_thread():
                self._cond.wait_for(lambda: self._state is not State.STOPPING)
            if self._state is not State.RUNNING:
                return
            self._state = State.STOPPING
            self._cond.notify_all()
            thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        with self._cond:
            self._state = State.STOPPED
            self._thread = None
            self._cond.notify_all()

    def set_interval(self, interval: Duration) -> None:
        """Change the tick interval; non-positive values are ignored."""
        seconds = _seconds(interval)
        if seconds <= 0:
            return
        with self._cond:
            self._interval = seconds
            self._generation += 1
            self._cond.notify_all()
        log.info("Updated collection interval to: %.1fs", seconds)

    def _active(self) -> bool:
        # a thread abandoned by a timed-out stop() must not keep ticking
        return self._state is State.RUNNING and self._thread is threading.current_thread()

    def _run(self) -> None:
        while True:
            with self._cond:
                if not self._active():
                    return
                generation = self._generation
            started = time.monotonic()
            self.collect_once()

            with self._cond:
                deadline = started + self._interval
                self._cond.wait_for(
                    lambda: not self._active()
                    or self._generation != generation
                    or time.monotonic() >= deadline,
                    timeout=max(0.0, deadline - time.monotonic()),
                )

    # ---------- collection ------------------------------------------------
    def _report(self, exc: Exception) -> None:
        try:
            self.error_sink(exc)
        except Exception:
            log.exception("Error sink raised while reporting %r", exc)

    def collect_once(self) -> Optional[Sample]:
        """Run one round; the sample is appended on success, reported on failure."""
        t0 = time.monotonic()
        try:
            sample = self.sampler.collect()
        except CollectionError as exc:
            self._failed += 1
            self._report(exc)
            return None
        except Exception as exc:
            log.exception("Unexpected collector failure")
            self._failed += 1
            self._report(exc)
            return None
        finally:
            self._total += 1
            self._collect_time += time.monotonic() - t0

        self.history.append(sample)
        first = sample.devices[0]
        log.debug(
            "Collected data for %d GPUs at %s (SCLK: %.0f, MCLK: %.0f)",
            len(sample.devices), sample.timestamp.isoformat(), first.sclk_mhz, first.mclk_mhz,
        )
        return sample

    # ---------- query contract --------------------------------------------
    def get_history(self) -> List[Sample]:
        return self.history.snapshot()

    def get_latest(self) -> Sample:
        return self.history.latest()

    def get_window(self, duration: Duration) -> List[Sample]:
        return self.history.window(duration)

    def clear_history(self) -> None:
        self.history.clear()

    def get_static_device_info(self) -> List[StaticDeviceInfo]:
        return self._static_info()

    def get_stats(self) -> Dict[str, Any]:
        stats = self.history.stats()
        stats["interval_seconds"] = self._interval
        stats["running"] = self.running
        stats["total_collections"] = self._total
        stats["failed_collections"] = self._failed
        stats["uptime_seconds"] = time.monotonic() - self._started_at
        stats["avg_collection_time_ms"] = (self._collect_time / self._total * 1000) if self._total else 0.0
        return stats
