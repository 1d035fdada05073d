"""CSV / JSON / Prometheus renderings of the collected history."""
from __future__ import annotations

import platform
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from . import __version__
from .collector import Collector, NoDataError, Sample, StaticDeviceInfo
from .collector.errors import RocmMonitorError

CSV_COLUMNS = [
    "Timestamp",
    "GPU_ID",
    "Temperature_C",
    "Power_W",
    "VRAM_Usage_GB",
    "VRAM_Total_GB",
    "GPU_Usage_%",
    "SCLK_MHz",
    "MCLK_MHz",
    "CPU_Usage_%",
    "Fan_Speed_%",
]

TEMP_WARNING_C = 70
TEMP_CRITICAL_C = 80
VRAM_HIGH_PCT = 80


def history_frame(history: Sequence[Sample]) -> pd.DataFrame:
    """One row per (sample, device)."""
    rows = [
        {
            "Timestamp": s.timestamp.isoformat(),
            "GPU_ID": d.id,
            "Temperature_C": round(d.temperature_c, 2),
            "Power_W": round(d.power_w, 2),
            "VRAM_Usage_GB": round(d.vram_used_gb, 2),
            "VRAM_Total_GB": round(d.vram_total_gb, 2),
            "GPU_Usage_%": round(d.gpu_usage_pct, 2),
            "SCLK_MHz": round(d.sclk_mhz),
            "MCLK_MHz": round(d.mclk_mhz),
            "CPU_Usage_%": round(s.host_cpu_usage, 2),
            "Fan_Speed_%": round(d.fan_speed_pct, 2),
        }
        for s in history
        for d in s.devices
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def export_csv(history: Sequence[Sample]) -> str:
    if not history:
        raise NoDataError()
    return history_frame(history).to_csv(index=False)


def export_json(history: Sequence[Sample], stats: Dict[str, Any]) -> Dict[str, Any]:
    if not history:
        raise NoDataError()
    return {
        "export_time": datetime.now(timezone.utc).isoformat(),
        "data_points": len(history),
        "statistics": stats,
        "history": [s.to_dict() for s in history],
    }


# ---------- Prometheus -------------------------------------------------
GPU_LABELS = ["gpu_id", "product_name", "vendor", "serial_number", "vram_vendor"]

# metric name -> (help, DeviceRecord attribute or property)
GPU_GAUGES = {
    "rocm_gpu_temperature_celsius": ("GPU edge temperature in Celsius", "temperature_c"),
    "rocm_gpu_power_watts": ("GPU power consumption in watts", "power_w"),
    "rocm_gpu_usage_percent": ("GPU compute utilization percentage", "gpu_usage_pct"),
    "rocm_gpu_vram_usage_gb": ("VRAM usage in gigabytes", "vram_used_gb"),
    "rocm_gpu_vram_total_gb": ("Total VRAM in gigabytes", "vram_total_gb"),
    "rocm_gpu_vram_utilization_percent": ("VRAM utilization percentage", "vram_utilization_pct"),
    "rocm_gpu_sclk_mhz": ("GPU system clock frequency in MHz", "sclk_mhz"),
    "rocm_gpu_mclk_mhz": ("GPU memory clock frequency in MHz", "mclk_mhz"),
    "rocm_gpu_fan_speed_percent": ("GPU fan speed percentage", "fan_speed_pct"),
}


def _has_data(info: StaticDeviceInfo) -> bool:
    placeholders = {"", "Unknown", "Not Available"}
    fields = (info.product_name, info.serial_number, info.unique_id, info.vram_vendor, info.bus_info)
    return bool(info.firmware_info) or any(value not in placeholders for value in fields)


class MetricsCollector:
    """prometheus_client custom collector reading the latest Sample on scrape.

    Static device info only labels the series; it is cached once a query
    returns real values and retried on later scrapes until then.
    """

    def __init__(self, collector: Collector, with_static_info: bool = True) -> None:
        self.collector = collector
        self.with_static_info = with_static_info
        self._static: Optional[Dict[int, StaticDeviceInfo]] = None

    def _static_info(self) -> Dict[int, StaticDeviceInfo]:
        if self._static is None:
            infos: List[StaticDeviceInfo] = []
            if self.with_static_info:
                try:
                    infos = self.collector.get_static_device_info()
                except RocmMonitorError:
                    infos = []
            static = {info.id: info for info in infos}
            if not self.with_static_info or any(_has_data(info) for info in infos):
                self._static = static
            return static
        return self._static

    @staticmethod
    def _labels(static: Dict[int, StaticDeviceInfo], gpu_id: int) -> List[str]:
        info = static.get(gpu_id)
        if info is None:
            return [str(gpu_id), "", "", "", ""]
        return [str(gpu_id), info.product_name, info.vendor_name, info.serial_number, info.vram_vendor]

    def collect(self) -> Iterable:
        stats = self.collector.get_stats()
        try:
            latest = self.collector.get_latest()
        except NoDataError:
            latest = None

        if latest is not None:
            yield from self._gpu_metrics(latest)

            cpu = GaugeMetricFamily("rocm_system_cpu_usage_percent", "System CPU utilization percentage")
            cpu.add_metric([], latest.host_cpu_usage)
            yield cpu
            count = GaugeMetricFamily("rocm_system_gpu_count", "Number of detected GPUs")
            count.add_metric([], len(latest.devices))
            yield count

        yield GaugeMetricFamily(
            "rocm_monitor_history_size_points",
            "Number of historical data points stored",
            value=stats["history_size"],
        )
        yield GaugeMetricFamily(
            "rocm_monitor_collection_interval_seconds",
            "Configured collection interval in seconds",
            value=stats["interval_seconds"],
        )
        yield GaugeMetricFamily(
            "rocm_monitor_collection_duration_ms",
            "Average collection round duration in milliseconds",
            value=stats["avg_collection_time_ms"],
        )
        yield CounterMetricFamily(
            "rocm_monitor_data_points",
            "Total collection rounds attempted",
            value=stats["total_collections"],
        )
        yield CounterMetricFamily(
            "rocm_monitor_collection_errors",
            "Collection rounds that failed",
            value=stats["failed_collections"],
        )
        yield GaugeMetricFamily(
            "rocm_monitor_uptime_seconds",
            "Monitor uptime in seconds",
            value=stats["uptime_seconds"],
        )
        build = GaugeMetricFamily(
            "rocm_monitor_build_info",
            "ROCm Monitor build information",
            labels=["version", "python_version"],
        )
        build.add_metric([__version__, platform.python_version()], 1)
        yield build

    def _gpu_metrics(self, latest: Sample) -> Iterable:
        static = self._static_info()
        ts = latest.timestamp.timestamp()
        for name, (doc, attr) in GPU_GAUGES.items():
            family = GaugeMetricFamily(name, doc, labels=GPU_LABELS)
            for dev in latest.devices:
                family.add_metric(self._labels(static, dev.id), getattr(dev, attr), timestamp=ts)
            yield family

        warning = GaugeMetricFamily(
            "rocm_gpu_temperature_warning_threshold",
            "Temperature warning threshold exceeded",
            labels=["gpu_id"],
        )
        critical = GaugeMetricFamily(
            "rocm_gpu_temperature_critical_threshold",
            "Temperature critical threshold exceeded",
            labels=["gpu_id"],
        )
        vram_high = GaugeMetricFamily(
            "rocm_gpu_vram_high_utilization",
            "VRAM utilization above 80%",
            labels=["gpu_id"],
        )
        for dev in latest.devices:
            gpu_id = [str(dev.id)]
            is_critical = dev.temperature_c > TEMP_CRITICAL_C
            warning.add_metric(gpu_id, float(not is_critical and dev.temperature_c > TEMP_WARNING_C), timestamp=ts)
            critical.add_metric(gpu_id, float(is_critical), timestamp=ts)
            vram_high.add_metric(gpu_id, float(dev.vram_utilization_pct > VRAM_HIGH_PCT), timestamp=ts)
        yield warning
        yield critical
        yield vram_high


def build_registry(collector: Collector, with_static_info: bool = True) -> CollectorRegistry:
    registry = CollectorRegistry(auto_describe=False)
    registry.register(MetricsCollector(collector, with_static_info=with_static_info))
    return registry


def export_prometheus(registry: CollectorRegistry) -> bytes:
    return generate_latest(registry)
