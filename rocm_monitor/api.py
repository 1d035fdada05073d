# rocm_monitor/api.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from .collector import Collector, NoDataError
from .config import Settings, parse_interval
from .exporter import build_registry, export_csv, export_json, export_prometheus

log = logging.getLogger(__name__)


# ---------- I/O schema -------------------------------------------------
class ConfigUpdate(BaseModel):
    interval: str | None = None


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    gpu_count: int = 0
    error: str | None = None


def _interval_or_400(text: str) -> float:
    try:
        return parse_interval(text)
    except ValueError:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid interval format")


# ---------- FastAPI ----------------------------------------------------
def create_app(collector: Collector, settings: Settings | None = None, manage_collector: bool = True) -> FastAPI:
    """Build the HTTP layer around a collector.

    With `manage_collector` the collector is started on startup and
    stopped on shutdown.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_collector:
            await run_in_threadpool(collector.start)
        try:
            yield
        finally:
            if manage_collector:
                log.info("Shutting down gracefully...")
                # joins the loop thread, bounded by the rocm-smi timeout
                await run_in_threadpool(collector.stop)

    app = FastAPI(title="ROCm Monitor API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.state.collector = collector

    @app.get("/api/stats")
    def stats(window: str | None = None) -> List[Dict[str, Any]]:
        if window:
            duration = _interval_or_400(window)
            if not len(collector.history):
                raise HTTPException(status.HTTP_404_NOT_FOUND, "No data available")
            history = collector.get_window(duration)
        else:
            history = collector.get_history()
        return [s.to_dict() for s in history]

    @app.get("/api/latest")
    def latest() -> Dict[str, Any]:
        try:
            return collector.get_latest().to_dict()
        except NoDataError as exc:
            raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc))

    @app.get("/api/gpuinfo")
    def gpu_info() -> List[Dict[str, Any]]:
        return [info.to_dict() for info in collector.get_static_device_info()]

    @app.get("/api/export.csv")
    def export_csv_route() -> Response:
        try:
            body = export_csv(collector.get_history())
        except NoDataError:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "no data to export")
        return Response(
            body,
            media_type="text/csv",
            headers={"Content-Disposition": "attachment;filename=rocm_stats.csv"},
        )

    @app.get("/api/export.json")
    def export_json_route(response: Response) -> Dict[str, Any]:
        try:
            body = export_json(collector.get_history(), collector.get_stats())
        except NoDataError:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "no data to export")
        response.headers["Content-Disposition"] = "attachment;filename=rocm_stats.json"
        return body

    @app.get("/api/config")
    def get_config() -> Dict[str, Any]:
        return collector.get_stats()

    @app.post("/api/config")
    def update_config(update: ConfigUpdate) -> Dict[str, Any]:
        if update.interval:
            collector.set_interval(_interval_or_400(update.interval))
        return {"interval_seconds": collector.interval}

    @app.delete("/api/history", status_code=status.HTTP_204_NO_CONTENT)
    def clear_history() -> Response:
        collector.clear_history()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/api/health", response_model=HealthResponse)
    def health(response: Response) -> HealthResponse:
        now = datetime.now(timezone.utc)
        try:
            sample = collector.get_latest()
        except NoDataError as exc:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return HealthResponse(status="unhealthy", timestamp=now, error=str(exc))
        return HealthResponse(status="healthy", timestamp=now, gpu_count=len(sample.devices))

    if settings.enable_metrics:
        registry = build_registry(collector)

        @app.get("/metrics")
        def metrics() -> Response:
            return Response(export_prometheus(registry), media_type="text/plain; version=0.0.4")

        log.info("Prometheus metrics enabled at /metrics")

    return app
