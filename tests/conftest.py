from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Sequence, Tuple, Union

import pytest

from rocm_monitor.collector import DeviceRecord, Sample, Sampler, ToolExecutionError
from rocm_monitor.collector.sampler import CpuSnapshot

CONCISE = """\
======================= ROCm System Management Interface =======================
================================= Concise Info =================================
GPU  Temp   AvgPwr  SCLK     MCLK     Fan     Perf  PwrCap  VRAM%  GPU%
0    45.0c  120.0W  1500Mhz  1000Mhz  30.0%   auto  250.0W   50%   80%
1    52.0c  180.0W  1600Mhz  1000Mhz  35.0%   auto  250.0W   60%   95%
2    38.0c  20.0W   800Mhz   500Mhz   20.0%   auto  250.0W    5%    0%
================================================================================
============================= End of ROCm SMI Log ==============================
"""

MEMINFO = """\
============================ ROCm System Management Interface ============================
================================== Memory Usage (Bytes) ==================================
GPU[0]\t\t: VRAM Total Memory (B): 17179869184
GPU[0]\t\t: VRAM Total Used Memory (B): 4294967296
GPU[1]\t\t: VRAM Total Memory (B): 17179869184
GPU[1]\t\t: VRAM Total Used Memory (B): 8589934592
==========================================================================================
"""

CLOCKS = """\
============================ ROCm System Management Interface ============================
================================= Current clock frequencies ==============================
GPU[0]\t\t: fclk clock level: 0: (1200Mhz)
GPU[0]\t\t: mclk clock level: 3: (1000Mhz)
GPU[0]\t\t: sclk clock level: 1: (1500Mhz)
GPU[1]\t\t: mclk clock level: 2: (900Mhz)
GPU[1]\t\t: sclk clock level: 2: (1650Mhz)
==========================================================================================
"""

HOT = "0    200.0c  120.0W  1500Mhz  1000Mhz  30.0%   auto  250.0W   50%   80%\n"


class FakeRunner:
    """Stands in for `run_command`: argv tail -> output text or exception."""

    def __init__(self, outputs: Dict[Tuple[str, ...], Union[str, Exception]]) -> None:
        self.outputs = outputs
        self.calls: List[Tuple[str, ...]] = []

    def __call__(self, argv: Sequence[str], timeout: float) -> str:
        key = tuple(argv[1:])
        self.calls.append(tuple(argv))
        result = self.outputs.get(key)
        if result is None:
            raise ToolExecutionError(argv, "exit status 2")
        if isinstance(result, Exception):
            raise result
        return result


class FakeCpu:
    def __init__(self, *snapshots: CpuSnapshot) -> None:
        self.snapshots = list(snapshots) or [CpuSnapshot(total=100.0, idle=50.0)]

    def __call__(self) -> CpuSnapshot:
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]


def make_sample(ts: datetime, temp: float = 50.0, power: float = 100.0, gpu: float = 10.0,
                vram: float = 2.0, devices: int = 1) -> Sample:
    return Sample(
        timestamp=ts,
        devices=tuple(
            DeviceRecord(id=i, temperature_c=temp, power_w=power, gpu_usage_pct=gpu, vram_used_gb=vram)
            for i in range(devices)
        ),
    )


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def samples(now):
    return [make_sample(now - timedelta(seconds=10 - i)) for i in range(5)]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner({
        (): CONCISE,
        ("--showmeminfo", "vram"): MEMINFO,
        ("-c",): CLOCKS,
    })


@pytest.fixture
def sampler(runner) -> Sampler:
    return Sampler(runner=runner, cpu_reader=FakeCpu())
