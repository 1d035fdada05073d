"""Static GPU information (product, serial, firmware...).

Queried on demand, never stored in the history. Every sub-query is
best-effort: a failing command yields "Not Available" for that field.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from .errors import ToolExecutionError
from .models import StaticDeviceInfo
from .sampler import DEFAULT_TIMEOUT, SMI, Runner, run_command

log = logging.getLogger(__name__)

NOT_AVAILABLE = "Not Available"
UNKNOWN = "Unknown"

# `GPU[0]		: Card series: 		Navi 31`
_FIELD_LINE = re.compile(r"^GPU\[(\d+)\]\s*:\s*(.+?)\s*:\s*(.*?)\s*$", re.MULTILINE)

# field -> (rocm-smi flag, candidate keys in order of preference)
QUERIES = {
    "product_name": ("--showproductname", ("Card series", "Card model")),
    "serial_number": ("--showserial", ("Serial Number",)),
    "unique_id": ("--showuniqueid", ("Unique ID",)),
    "vram_vendor": ("--showmemvendor", ("GPU memory vendor",)),
    "bus_info": ("--showbus", ("PCI Bus",)),
}


def parse_device_fields(output: str) -> Dict[int, Dict[str, str]]:
    """Collect `GPU[i] : key: value` lines into {i: {key: value}}."""
    fields: Dict[int, Dict[str, str]] = {}
    for gpu_id, key, value in _FIELD_LINE.findall(output):
        fields.setdefault(int(gpu_id), {}).setdefault(key, value)
    return fields


def _clean(value: Optional[str]) -> str:
    if value is None or value == "":
        return UNKNOWN
    if "Not supported" in value or "get_" in value:
        return NOT_AVAILABLE
    return value


def parse_firmware(output: str) -> Dict[int, Dict[str, str]]:
    """{gpu id: {"ASD": "0x21000095", ...}} from `--showfwinfo` output."""
    firmware: Dict[int, Dict[str, str]] = {}
    for gpu_id, fields in parse_device_fields(output).items():
        for key, value in fields.items():
            if "firmware version" not in key:
                continue
            name = key.replace("firmware version", "").strip() or key
            firmware.setdefault(gpu_id, {})[name] = value
    return firmware


def get_static_device_info(
    smi: str = SMI,
    timeout: float = DEFAULT_TIMEOUT,
    runner: Runner = run_command,
) -> List[StaticDeviceInfo]:
    outputs: Dict[str, Optional[Dict[int, Dict[str, str]]]] = {}
    for name, (flag, _) in QUERIES.items():
        try:
            outputs[name] = parse_device_fields(runner([smi, flag], timeout))
        except ToolExecutionError as exc:
            log.debug("Static info query %s failed: %s", flag, exc)
            outputs[name] = None

    try:
        firmware = parse_firmware(runner([smi, "--showfwinfo"], timeout))
    except ToolExecutionError as exc:
        log.debug("Firmware query failed: %s", exc)
        firmware = {}

    ids = set(firmware)
    for parsed in outputs.values():
        ids.update(parsed or {})
    if not ids:
        ids = {0}

    infos: List[StaticDeviceInfo] = []
    for gpu_id in sorted(ids):
        values: Dict[str, str] = {}
        for name, (_, keys) in QUERIES.items():
            parsed = outputs[name]
            if parsed is None:
                values[name] = NOT_AVAILABLE
                continue
            fields = parsed.get(gpu_id, {})
            values[name] = _clean(next((fields[k] for k in keys if k in fields), None))

        vendor = (outputs["product_name"] or {}).get(gpu_id, {}).get("Card vendor")
        infos.append(StaticDeviceInfo(
            id=gpu_id,
            vendor_name=_clean(vendor) if vendor else "AMD",
            firmware_info=firmware.get(gpu_id, {}),
            **values,
        ))
    return infos
