from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

import psutil

from .errors import ToolExecutionError
from .models import Sample
from .parsers import Parser

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0  # seconds, shared by every command of one round
SMI = "rocm-smi"
SUPPLEMENTARY_ARGS = (
    ("--showmeminfo", "vram"),
    ("-c",),
)

Runner = Callable[[Sequence[str], float], str]
ErrorSink = Callable[[Exception], None]


def run_command(argv: Sequence[str], timeout: float) -> str:
    """Run a command and return its stdout, raising ToolExecutionError on failure."""
    try:
        proc = subprocess.run(
            list(argv),
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise ToolExecutionError(argv, "command not found") from None
    except subprocess.TimeoutExpired:
        raise ToolExecutionError(argv, f"timed out after {timeout:.1f}s") from None
    except OSError as exc:
        raise ToolExecutionError(argv, str(exc)) from exc

    if proc.returncode != 0:
        err = (proc.stderr or "").strip().splitlines()
        detail = f": {err[-1]}" if err else ""
        raise ToolExecutionError(argv, f"exit status {proc.returncode}{detail}")
    return proc.stdout


@dataclass(frozen=True)
class CpuSnapshot:
    total: float
    idle: float


def read_cpu_snapshot() -> CpuSnapshot:
    """Aggregate CPU accounting counters since boot."""
    times = psutil.cpu_times()
    return CpuSnapshot(total=float(sum(times)), idle=float(times.idle))


def cpu_usage_between(prev: CpuSnapshot, cur: CpuSnapshot) -> float:
    total = cur.total - prev.total
    idle = cur.idle - prev.idle
    if total == 0:
        return 0.0
    return (total - idle) / total * 100


class Sampler:
    """Runs `rocm-smi`, parses the combined output and validates the result.

    The previous CPU snapshot is kept on the instance; only the collector
    loop calls `collect`, so it has a single writer.
    """

    def __init__(
        self,
        smi: str = SMI,
        timeout: float = DEFAULT_TIMEOUT,
        runner: Runner = run_command,
        parser: Optional[Parser] = None,
        cpu_reader: Callable[[], CpuSnapshot] = read_cpu_snapshot,
        error_sink: Optional[ErrorSink] = None,
    ) -> None:
        self.smi = smi
        self.timeout = timeout
        self.runner = runner
        self.parser = parser or Parser()
        self.cpu_reader = cpu_reader
        self.error_sink = error_sink
        self._last_cpu: Optional[CpuSnapshot] = None

    def _gather(self) -> str:
        deadline = time.monotonic() + self.timeout
        outputs: List[str] = [self.runner([self.smi], self.timeout)]

        for extra in SUPPLEMENTARY_ARGS:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                log.debug("Skipping %s %s: round deadline reached", self.smi, " ".join(extra))
                break
            try:
                outputs.append(self.runner([self.smi, *extra], remaining))
            except ToolExecutionError as exc:
                log.debug("Supplementary query skipped: %s", exc)
        return "\n".join(outputs)

    def host_cpu_usage(self) -> float:
        """CPU usage since the previous call; 0.0 on the first call."""
        try:
            current = self.cpu_reader()
        except (OSError, psutil.Error) as exc:
            if self.error_sink is not None:
                self.error_sink(exc)
            return 0.0
        prev, self._last_cpu = self._last_cpu, current
        if prev is None:
            return 0.0
        return cpu_usage_between(prev, current)

    def collect(self) -> Sample:
        ts = datetime.now(timezone.utc)
        raw = self._gather()
        sample = self.parser.parse(raw, timestamp=ts)
        sample = replace(sample, host_cpu_usage=self.host_cpu_usage())
        sample.validate()
        return sample
