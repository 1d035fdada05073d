"""rocm_monitor.collector
GPU telemetry collection and retention.

Modules
-------
parsers    : turn `rocm-smi` text output into Samples
sampler    : run `rocm-smi` under a timeout, add host CPU usage, validate
history    : bounded, reader/writer-locked timeline of Samples
poller     : background loop that drives the sampler and owns the history
static_info: on-demand product / serial / firmware queries
"""
from .errors import (
    CollectionError,
    EmptyInputError,
    NoDataError,
    NoDeviceDataError,
    ParseError,
    RocmMonitorError,
    ToolExecutionError,
    ValidationError,
)
from .history import HistoryStore
from .models import DeviceRecord, Sample, StaticDeviceInfo
from .parsers import Parser, parse_rocm_smi
from .poller import Collector
from .sampler import Sampler

__all__ = [
    "Collector",
    "CollectionError",
    "DeviceRecord",
    "EmptyInputError",
    "HistoryStore",
    "NoDataError",
    "NoDeviceDataError",
    "ParseError",
    "Parser",
    "RocmMonitorError",
    "Sample",
    "Sampler",
    "StaticDeviceInfo",
    "ToolExecutionError",
    "ValidationError",
    "parse_rocm_smi",
]
