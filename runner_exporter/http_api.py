"""HTTP surface for scrapes, liveness and job event control, using FastAPI."""
from typing import Optional
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse, Response
import logging
import socket

from runner_exporter.config import RUNNER_VERSION, RunnerConfig
from runner_exporter.events import CacheLookup, JobFinished, QueueEventFeed
from runner_exporter.exceptions import ListenError
from runner_exporter.prom_exporter import PrometheusExporter
from runner_exporter.updater import MetricsUpdater

logger = logging.getLogger(__name__)


class MetricsAPI:
    """FastAPI application serving /metrics and /health."""

    def __init__(
        self,
        exporter: PrometheusExporter,
        runner: Optional[RunnerConfig] = None,
        updater: Optional[MetricsUpdater] = None,
        feed: Optional[QueueEventFeed] = None,
        control_enabled: bool = False
    ):
        """
        Initialize the HTTP API.

        Args:
            exporter: Renders the registry on each scrape
            runner: Runner identity reported on /status
            updater: Background updater, for /status
            feed: Event feed the control endpoints publish to
            control_enabled: Register the /control endpoints
        """
        self.exporter = exporter
        self.runner = runner or RunnerConfig()
        self.updater = updater
        self.feed = feed
        self.app = FastAPI(title="CI Runner Metrics Exporter")

        self._setup_routes()
        if control_enabled:
            if feed is None:
                raise ValueError("Control endpoints need an event feed")
            self._setup_control_routes()
            logger.info("Control endpoints enabled")

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/metrics")
        def metrics():
            """Prometheus scrape endpoint."""
            return Response(
                content=self.exporter.render(),
                media_type=self.exporter.content_type
            )

        @self.app.get("/health", response_class=PlainTextResponse)
        async def health():
            """Liveness check. Never touches the registry."""
            return "OK"

        @self.app.get("/status")
        async def status():
            """Get current exporter status."""
            status_info = {
                "runner_name": self.runner.name,
                "runner_type": self.runner.type,
                "version": RUNNER_VERSION,
                "uptime_seconds": self.updater.uptime() if self.updater else 0,
                "updater_state": self.updater.state.value if self.updater else None,
                "tick_count": self.updater.tick_count if self.updater else 0,
                "feed_depth": self.feed.depth() if self.feed else 0,
            }
            return status_info

    def _setup_control_routes(self):
        """Setup routes that inject synthetic job events."""

        def publish(event):
            if not self.feed.publish(event):
                raise HTTPException(status_code=503, detail="Event feed is full")
            logger.info(f"Queued {event.kind} event: {event.model_dump()}")
            return {"status": "queued", "event": event.model_dump()}

        @self.app.post("/control/jobs", status_code=202)
        async def job_finished(event: JobFinished):
            """Queue a job completion."""
            return publish(event)

        @self.app.post("/control/cache", status_code=202)
        async def cache_lookup(event: CacheLookup):
            """Queue a cache lookup outcome."""
            return publish(event)

    def bind(self, host: str, port: int) -> socket.socket:
        """Bind the listening socket, raising ListenError on failure."""
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise ListenError(host, port, str(e)) from e
        return sock

    def run(self, host: str = "0.0.0.0", port: int = 9091):
        """Run the API server. Blocks until the server shuts down."""
        import uvicorn

        sock = self.bind(host, port)
        logger.info(f"Metrics endpoint listening on {host}:{port}")

        config = uvicorn.Config(self.app, log_level="info")
        server = uvicorn.Server(config)
        try:
            server.run(sockets=[sock])
        finally:
            sock.close()
