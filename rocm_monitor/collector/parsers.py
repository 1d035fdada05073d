from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .errors import EmptyInputError, NoDeviceDataError
from .models import DeviceRecord, Sample

BYTES_PER_GB = 1024 ** 3

# -----------------------------
# Helpers
# -----------------------------

def _to_float(text: Optional[str]) -> float:
    """Parse a numeric token, 0.0 if it is missing or malformed."""
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def _first(pattern: re.Pattern, text: str, group: int = 1) -> Optional[str]:
    m = pattern.search(text)
    return m.group(group) if m else None


# -----------------------------
# Public API
# -----------------------------

class Parser:
    """Turns concatenated `rocm-smi` text output into a Sample.

    The buffer usually holds the summary table followed by the output of
    `--showmeminfo vram` and `-c`; the latter two are keyed by `GPU[i]`
    and are scanned across the whole buffer.
    """

    _NUM = r"(\d+\.?\d*)"

    def __init__(self) -> None:
        self.device_line = re.compile(r"^(\d+)\s+")
        self.temperature = re.compile(r"(?<![\w.])" + self._NUM + r"\s*°?[cC]\b")
        self.power = re.compile(self._NUM + r"\s*W")
        self.usage_pair = re.compile(self._NUM + r"%\s+" + self._NUM + r"%\s*$")
        self.fan = re.compile(self._NUM + r"%\s+auto")
        self.vram_total = re.compile(r"GPU\[(\d+)\]\s*:\s*VRAM Total Memory \(B\):\s*(\d+)")
        self.vram_used = re.compile(r"GPU\[(\d+)\]\s*:\s*VRAM Total Used Memory \(B\):\s*(\d+)")
        self.sclk = re.compile(r"GPU\[(\d+)\]\s*:\s*sclk clock level:\s*\d+:\s*\((\d+)Mhz\)")
        self.mclk = re.compile(r"GPU\[(\d+)\]\s*:\s*mclk clock level:\s*\d+:\s*\((\d+)Mhz\)")

    def split_by_device(self, output: str) -> Tuple[Dict[int, str], bool]:
        """Return ({device id: summary line}, fell_back).

        Without any device line the whole output becomes device 0 so that
        older or truncated output still yields one record.
        """
        sections: Dict[int, str] = {}
        for line in output.split("\n"):
            m = self.device_line.match(line)
            if m:
                sections[int(m.group(1))] = line
        if not sections:
            return {0: output}, True
        return sections, False

    def _keyed_values(self, pattern: re.Pattern, output: str, first_wins: bool = False) -> Dict[int, float]:
        values: Dict[int, float] = {}
        for gpu_id, raw in pattern.findall(output):
            if first_wins and int(gpu_id) in values:
                continue
            values[int(gpu_id)] = _to_float(raw)
        return values

    def parse(self, output: str, timestamp: Optional[datetime] = None) -> Sample:
        if not output or not output.strip():
            raise EmptyInputError()
        ts = timestamp or datetime.now(timezone.utc)

        vram_total = {k: v / BYTES_PER_GB for k, v in self._keyed_values(self.vram_total, output).items()}
        vram_used = {k: v / BYTES_PER_GB for k, v in self._keyed_values(self.vram_used, output).items()}
        sclk = self._keyed_values(self.sclk, output, first_wins=True)
        mclk = self._keyed_values(self.mclk, output, first_wins=True)

        sections, partial = self.split_by_device(output)
        devices: List[DeviceRecord] = []
        for gpu_id, section in sections.items():
            temp = _first(self.temperature, section)
            power = _first(self.power, section)
            pair = self.usage_pair.search(section)
            if temp is None or power is None or pair is None:
                partial = True

            vram_pct = _to_float(pair.group(1)) if pair else 0.0
            devices.append(DeviceRecord(
                id=gpu_id,
                temperature_c=_to_float(temp),
                power_w=_to_float(power),
                # detailed byte counts win over the VRAM% column
                vram_used_gb=vram_used.get(gpu_id, vram_pct),
                vram_total_gb=vram_total.get(gpu_id, 0.0),
                vram_usage_pct=vram_pct,
                gpu_usage_pct=_to_float(pair.group(2)) if pair else 0.0,
                fan_speed_pct=_to_float(_first(self.fan, section)),
                sclk_mhz=sclk.get(gpu_id, 0.0),
                mclk_mhz=mclk.get(gpu_id, 0.0),
            ))

        if not devices:
            raise NoDeviceDataError()
        return Sample(timestamp=ts, devices=tuple(devices), partial=partial)


_DEFAULT = Parser()


def parse_rocm_smi(output: str, timestamp: Optional[datetime] = None) -> Sample:
    """Convenience wrapper around a module-level Parser."""
    return _DEFAULT.parse(output, timestamp)
