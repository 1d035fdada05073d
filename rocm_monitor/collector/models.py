from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .errors import ValidationError

# (field, low, high) checked on every device of a Sample
DEVICE_LIMITS = (
    ("temperature_c", 0.0, 150.0),
    ("power_w", 0.0, 1000.0),
    ("gpu_usage_pct", 0.0, 100.0),
)
CPU_LIMITS = (0.0, 100.0)


@dataclass(frozen=True)
class DeviceRecord:
    id: int
    name: Optional[str] = None
    temperature_c: float = 0.0
    power_w: float = 0.0
    vram_used_gb: float = 0.0
    vram_total_gb: float = 0.0
    vram_usage_pct: float = 0.0
    gpu_usage_pct: float = 0.0
    fan_speed_pct: float = 0.0
    sclk_mhz: float = 0.0
    mclk_mhz: float = 0.0

    @property
    def vram_utilization_pct(self) -> float:
        """VRAM used as a share of total, 0 when the total is unknown."""
        if self.vram_total_gb <= 0:
            return 0.0
        return self.vram_used_gb / self.vram_total_gb * 100


@dataclass(frozen=True)
class Sample:
    """One full collection round."""

    timestamp: datetime
    devices: Tuple[DeviceRecord, ...]
    host_cpu_usage: float = 0.0
    partial: bool = False

    def validate(self) -> None:
        """Raise ValidationError unless every populated value is in range.

        Fields the parser could not read stay at 0.0 and pass trivially.
        """
        if not self.devices:
            raise ValidationError("device count", 0)
        for dev in self.devices:
            for name, low, high in DEVICE_LIMITS:
                value = getattr(dev, name)
                if not low <= value <= high:
                    raise ValidationError(name, value, dev.id)
        low, high = CPU_LIMITS
        if not low <= self.host_cpu_usage <= high:
            raise ValidationError("host_cpu_usage", self.host_cpu_usage)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["devices"] = list(data["devices"])
        return data


@dataclass(frozen=True)
class StaticDeviceInfo:
    id: int
    product_name: str = "Unknown"
    vendor_name: str = "AMD"
    serial_number: str = "Unknown"
    unique_id: str = "Unknown"
    vram_vendor: str = "Unknown"
    bus_info: str = "Unknown"
    firmware_info: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
