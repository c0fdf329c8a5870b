from __future__ import annotations

import logging
import os
from typing import Optional

import click

from . import EXPORTER_VERSION
from .collector import TasmotaCollector
from .config import ENV_LOG_LEVEL, ConfigError, Settings, resolve_settings
from .logs import setup_logging
from .web import build_registry, serve

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "--outlets",
    default=None,
    help="comma-separated list of outlet configurations in format 'name:ip' "
    "(e.g., 'livingroom:192.168.1.100,bedroom:192.168.1.101')",
)
@click.option("--listen-addr", "listen_addr", default=None, help="address to listen on (default :8092)")
@click.option("--telemetry-path", default=None, help="path under which to expose metrics (default /metrics)")
@click.option("--timeout", "timeout", type=float, default=None, help="per-outlet probe deadline in seconds (default 5)")
@click.option("--log-level", default=None, help="log level (debug, info, warn, error)")
@click.option("--config-file", default=None, type=click.Path(dir_okay=False), help="YAML or JSON config file")
@click.version_option(EXPORTER_VERSION, prog_name="tasmota-exporter")
def main(
    outlets: Optional[str],
    listen_addr: Optional[str],
    telemetry_path: Optional[str],
    timeout: Optional[float],
    log_level: Optional[str],
    config_file: Optional[str],
) -> None:
    try:
        setup_logging(log_level or os.environ.get(ENV_LOG_LEVEL, "").strip() or "info")
        settings = resolve_settings(
            outlets=outlets,
            listen_address=listen_addr,
            telemetry_path=telemetry_path,
            timeout_seconds=timeout,
            log_level=log_level,
            config_file=config_file,
        )
        # the config file may carry its own level
        setup_logging(settings.log_level)
    except ConfigError as e:
        logger.error("%s", e)
        raise SystemExit(1)

    run(settings)


def run(settings: Settings) -> None:
    logger.info("configured outlets outlets=%s", ", ".join(f"{o.name}:{o.address}" for o in settings.outlets))
    collector = TasmotaCollector(settings.outlets, timeout_seconds=settings.timeout_seconds)
    registry = build_registry(collector)
    try:
        serve(settings, registry)
    except OSError as e:
        logger.error("error starting server error=%s", e)
        raise SystemExit(1)
