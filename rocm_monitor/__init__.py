"""ROCm GPU monitor: rocm-smi polling, bounded history, HTTP/metrics export."""

__version__ = "1.0.0"
