from __future__ import annotations


class RocmMonitorError(Exception):
    """Base class for everything raised by rocm_monitor."""


class CollectionError(RocmMonitorError):
    """A collection round failed; the round produces no Sample."""


class ToolExecutionError(CollectionError):
    """`rocm-smi` is missing, exited non-zero or timed out."""

    def __init__(self, argv, reason: str) -> None:
        self.argv = list(argv)
        self.reason = reason
        super().__init__(f"{' '.join(self.argv)} failed: {reason}")


class ParseError(CollectionError):
    pass


class EmptyInputError(ParseError):
    def __init__(self) -> None:
        super().__init__("empty rocm-smi output")


class NoDeviceDataError(ParseError):
    def __init__(self) -> None:
        super().__init__("no GPU data found in output")


class ValidationError(CollectionError):
    """A parsed value is outside its sane range."""

    def __init__(self, field: str, value: float, device_id: int | None = None) -> None:
        self.field = field
        self.value = value
        self.device_id = device_id
        where = f" for GPU {device_id}" if device_id is not None else ""
        super().__init__(f"invalid {field}{where}: {value:.2f}")


class NoDataError(RocmMonitorError, LookupError):
    def __init__(self) -> None:
        super().__init__("no data available")
