from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from .config import ExporterConfig, get_exporter_config
from .registry import GaugeRegistry
from .runtime_metrics import render_exporter_metrics_prometheus, snapshot_status
from .worker import Sampler

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class HealthSchema(BaseModel):
    status: str
    samplerRunning: bool
    jobName: str
    latestBuildId: Optional[str] = None
    lastSuccessTimestamp: Optional[float] = None
    cycles: int
    cycleErrors: int
    lastError: Optional[str] = None


def create_app(
    config: Optional[ExporterConfig] = None,
    registry: Optional[GaugeRegistry] = None,
    *,
    start_sampler: bool = True,
) -> FastAPI:
    """
    Build the metrics app.

    With start_sampler the sampling threads are started on application
    startup and stopped on shutdown.
    """
    cfg = config or get_exporter_config()
    gauges = registry or GaugeRegistry()
    sampler = Sampler(cfg, gauges)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if start_sampler:
            sampler.start()
        try:
            yield
        finally:
            sampler.stop()

    app = FastAPI(title="CAPZ Scalability Exporter", version="0.1.0", lifespan=lifespan)
    app.state.config = cfg
    app.state.registry = gauges
    app.state.sampler = sampler

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics(request: Request) -> PlainTextResponse:
        """
        Prometheus text exposition of every published gauge plus exporter self-metrics.
        """
        lines = request.app.state.registry.render()
        lines.extend(render_exporter_metrics_prometheus())
        body = "\n".join(lines) + "\n"
        return PlainTextResponse(content=body, media_type=PROMETHEUS_CONTENT_TYPE)

    @app.get("/healthz", response_model=HealthSchema)
    async def healthz(request: Request) -> HealthSchema:
        status = snapshot_status()
        return HealthSchema(
            status="ok" if not status["lastError"] else "degraded",
            samplerRunning=request.app.state.sampler.running,
            jobName=request.app.state.config.job_name,
            latestBuildId=status["latestBuildId"],
            lastSuccessTimestamp=status["lastSuccessTimestamp"],
            cycles=status["cycles"],
            cycleErrors=status["cycleErrors"],
            lastError=status["lastError"],
        )

    return app


__all__ = ["create_app", "PROMETHEUS_CONTENT_TYPE"]
