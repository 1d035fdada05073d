# tests/test_parse.py
from datetime import datetime, timezone

import pytest

from rocm_monitor.collector import EmptyInputError, Parser, parse_rocm_smi

from conftest import CLOCKS, CONCISE, MEMINFO


def test_three_device_lines():
    sample = parse_rocm_smi(CONCISE)
    assert [d.id for d in sample.devices] == [0, 1, 2]
    assert [d.temperature_c for d in sample.devices] == [45.0, 52.0, 38.0]
    assert [d.power_w for d in sample.devices] == [120.0, 180.0, 20.0]
    assert [d.vram_usage_pct for d in sample.devices] == [50.0, 60.0, 5.0]
    assert [d.gpu_usage_pct for d in sample.devices] == [80.0, 95.0, 0.0]
    assert [d.fan_speed_pct for d in sample.devices] == [30.0, 35.0, 20.0]
    assert not sample.partial


def test_single_line_example():
    sample = parse_rocm_smi("0  45.0c  120.0W  ...  50%  80%\n")
    assert len(sample.devices) == 1
    dev = sample.devices[0]
    assert dev.temperature_c == 45.0
    assert dev.power_w == 120.0
    assert dev.vram_used_gb == pytest.approx(50.0)  # no byte counts: VRAM% column
    assert dev.gpu_usage_pct == 80.0


@pytest.mark.parametrize("text", ["", "   \n\t"])
def test_empty_input(text):
    with pytest.raises(EmptyInputError):
        parse_rocm_smi(text)


def test_detailed_vram_overrides_percentage():
    sample = parse_rocm_smi("\n".join([CONCISE, MEMINFO]))
    gpu0, gpu1, gpu2 = sample.devices
    assert gpu0.vram_total_gb == pytest.approx(16.0)
    assert gpu0.vram_used_gb == pytest.approx(4.0)
    assert gpu0.vram_usage_pct == 50.0
    assert gpu1.vram_used_gb == pytest.approx(8.0)
    # GPU 2 has no byte counts
    assert gpu2.vram_used_gb == 5.0
    assert gpu2.vram_total_gb == 0.0


def test_clock_lines_are_matched_by_device_index():
    sample = parse_rocm_smi("\n".join([CONCISE, CLOCKS]))
    gpu0, gpu1, gpu2 = sample.devices
    assert (gpu0.sclk_mhz, gpu0.mclk_mhz) == (1500.0, 1000.0)
    assert (gpu1.sclk_mhz, gpu1.mclk_mhz) == (1650.0, 900.0)
    assert (gpu2.sclk_mhz, gpu2.mclk_mhz) == (0.0, 0.0)


def test_newer_table_layout_with_degree_sign():
    text = (
        "Device  Node  IDs              Temp    Power  Partitions          SCLK    MCLK    Fan  Perf  PwrCap  VRAM%  GPU%\n"
        "0       1     0x744c,   34795  39.0°C  6.0W   N/A, N/A, 0         0Mhz    96Mhz   0%   auto  203.0W  7%     3%\n"
    )
    dev = parse_rocm_smi(text).devices[0]
    assert dev.temperature_c == 39.0
    assert dev.power_w == 6.0
    assert dev.vram_usage_pct == 7.0
    assert dev.gpu_usage_pct == 3.0
    assert dev.fan_speed_pct == 0.0


def test_output_without_device_lines_becomes_device_zero():
    sample = parse_rocm_smi("Temperature (Sensor edge) 61.0°C\nAverage Graphics Package Power 95.0W\n")
    assert len(sample.devices) == 1
    dev = sample.devices[0]
    assert dev.id == 0
    assert dev.temperature_c == 61.0
    assert dev.power_w == 95.0
    assert sample.partial


def test_missing_fields_stay_zero_and_mark_partial():
    sample = parse_rocm_smi("3    N/A    N/A    unknown\n")
    dev = sample.devices[0]
    assert dev.id == 3
    assert (dev.temperature_c, dev.power_w, dev.gpu_usage_pct) == (0.0, 0.0, 0.0)
    assert sample.partial


def test_repeated_device_index_keeps_last_line():
    text = "0  40.0c  100.0W  10%  20%\n0  41.0c  101.0W  11%  21%\n"
    sample = parse_rocm_smi(text)
    assert len(sample.devices) == 1
    assert sample.devices[0].temperature_c == 41.0


def test_timestamp_is_taken_from_caller():
    ts = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert Parser().parse(CONCISE, timestamp=ts).timestamp == ts
