from __future__ import annotations

import logging
import signal
from socketserver import ThreadingMixIn
from threading import Thread
from typing import Any, Sequence
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.platform_collector import PlatformCollector
from prometheus_client.process_collector import ProcessCollector

from .collector import TasmotaCollector
from .config import Settings

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True
    allow_reuse_address = True


class QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        return


def build_registry(collector: TasmotaCollector) -> CollectorRegistry:
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    registry.register(collector)
    return registry


def make_app(registry: CollectorRegistry, telemetry_path: str):
    def app(environ, start_response):
        path = environ.get("PATH_INFO", "")
        if path == telemetry_path or path == "/":
            output = generate_latest(registry)
            start_response("200 OK", [("Content-Type", CONTENT_TYPE_LATEST)])
            return [output]
        if path in ("/-/healthy", "/healthz"):
            start_response("200 OK", [("Content-Type", "text/plain")])
            return [b"ok"]
        start_response("404 Not Found", [("Content-Type", "text/plain")])
        return [b"not found"]

    return app


def serve(settings: Settings, registry: CollectorRegistry, signals: Sequence[int] = (signal.SIGTERM, signal.SIGINT)) -> None:
    host, port = settings.host_port
    app = make_app(registry, settings.telemetry_path)

    httpd = make_server(
        host,
        port,
        app,
        server_class=ThreadingWSGIServer,
        handler_class=QuietHandler,
    )

    def _sig(*_):
        logger.info("server closed")
        Thread(target=httpd.shutdown, daemon=True).start()

    for s in signals:
        signal.signal(s, _sig)

    logger.info(
        "starting tasmota exporter listen_addr=%s:%s telemetry_path=%s outlets=%s timeout=%.1fs",
        host if host else "0.0.0.0",
        port,
        settings.telemetry_path,
        len(settings.outlets),
        settings.timeout_seconds,
    )

    try:
        httpd.serve_forever()
    finally:
        httpd.server_close()
