from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field

# *** How to override at runtime:
# export ROCM_MON_INTERVAL=10s
# export ROCM_MON_HISTORY=5000
# export ROCM_MON_METRICS=1
# python -m rocm_monitor.cli

_UNITS = {"ns": 1e-9, "us": 1e-6, "µs": 1e-6, "μs": 1e-6, "ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|μs|ms|s|m|h)")


def parse_interval(text: str) -> float:
    """Seconds from '5', '500ms', '10s', '1m30s', '-5s' or '2h'. Raises ValueError.

    A leading sign is accepted; callers decide what a negative value means.
    """
    value = text.strip().lower()
    sign = 1.0
    if value[:1] in ("-", "+"):
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]
    if not value:
        raise ValueError(f"invalid interval: {text!r}")
    if value.isdigit():
        return sign * float(value)
    pos, total = 0, 0.0
    for m in _PART.finditer(value):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNITS[m.group(2)]
        pos = m.end()
    if pos != len(value):
        raise ValueError(f"invalid interval: {text!r}")
    return sign * total


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    port: int = field(default_factory=lambda: int(os.getenv("ROCM_MON_PORT", 8080)))
    interval: float = field(default_factory=lambda: parse_interval(os.getenv("ROCM_MON_INTERVAL", "5s")))
    max_history: int = field(default_factory=lambda: int(os.getenv("ROCM_MON_HISTORY", 1000)))
    allowed_origin: str = field(default_factory=lambda: os.getenv("ROCM_MON_CORS", "*"))
    enable_metrics: bool = field(default_factory=lambda: _env_bool("ROCM_MON_METRICS", False))
    smi: str = field(default_factory=lambda: os.getenv("ROCM_MON_SMI", "rocm-smi"))
    timeout: float = field(default_factory=lambda: parse_interval(os.getenv("ROCM_MON_TIMEOUT", "3s")))
    log_level: str = field(default_factory=lambda: os.getenv("ROCM_MON_LOG_LEVEL", "INFO").upper())


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)s %(message)s",
    )
