#!/usr/bin/env python
"""
rocm-monitor [--port 8080] [--interval 5s] [--history 1000] [--metrics]

Example:
    rocm-monitor --interval 2s --metrics
    rocm-monitor --once            # one snapshot as JSON, then exit
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List

from .collector import Collector, Sampler
from .config import Settings, configure_logging, parse_interval

log = logging.getLogger(__name__)


def _interval(text: str) -> float:
    try:
        return parse_interval(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rocm-monitor", description="ROCm GPU telemetry monitor")
    parser.add_argument("--port", type=int, default=settings.port, help="HTTP server port")
    parser.add_argument("--interval", type=_interval, default=settings.interval, help="collection interval (e.g. 5s, 1m)")
    parser.add_argument("--history", type=int, default=settings.max_history, help="maximum history size")
    parser.add_argument("--cors", default=settings.allowed_origin, help="CORS allowed origin")
    parser.add_argument("--metrics", action="store_true", default=settings.enable_metrics, help="enable /metrics")
    parser.add_argument("--once", action="store_true", help="take one snapshot, print it and exit")
    return parser


def main(argv: List[str] | None = None) -> int:
    settings = Settings()
    args = build_parser(settings).parse_args(argv)
    settings.port = args.port
    settings.interval = args.interval
    settings.max_history = args.history
    settings.allowed_origin = args.cors
    settings.enable_metrics = args.metrics
    configure_logging(settings.log_level)

    collector = Collector(
        sampler=Sampler(smi=settings.smi, timeout=settings.timeout),
        interval=settings.interval,
        max_history=settings.max_history,
    )

    if args.once:
        sample = collector.collect_once()
        if sample is None:
            return 1
        print(json.dumps(sample.to_dict(), indent=2))
        return 0

    import uvicorn

    from .api import create_app

    app = create_app(collector, settings)
    log.info("Server running on http://localhost:%d", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
