"""CLI entry point for FeedBrotr services.

Services can run a single session (``--once``) or continuously with a
Prometheus metrics server.

Examples:
    ```bash
    python -m feedbrotr timeline --once
    python -m feedbrotr timeline --log-level DEBUG
    python -m feedbrotr timeline --relay wss://nos.lol --config config/timeline.yaml
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, NamedTuple

from pydantic import ValidationError

from feedbrotr.core import start_metrics_server
from feedbrotr.core.base_service import BaseService
from feedbrotr.core.logger import Logger, StructuredFormatter
from feedbrotr.core.yaml import load_yaml
from feedbrotr.exceptions import FeedBrotrError
from feedbrotr.models.constants import ServiceName
from feedbrotr.services.timeline import Timeline


CONFIG_BASE = Path("config")


class ServiceEntry(NamedTuple):
    """Registry entry mapping a service to its class and default config path."""

    cls: type[BaseService[Any]]
    config_path: Path


SERVICE_REGISTRY: dict[str, ServiceEntry] = {
    ServiceName.TIMELINE: ServiceEntry(Timeline, CONFIG_BASE / "timeline.yaml"),
}

logger = Logger("cli")


async def run_service(
    service_name: str,
    service_class: type[BaseService[Any]],
    service_dict: dict[str, Any],
    *,
    once: bool,
) -> int:
    """Run a service for one session or continuously.

    Args:
        service_name: Service identifier used for logging.
        service_class: The BaseService subclass to instantiate.
        service_dict: Parsed service configuration.
        once: If True, run a single session and exit.

    Returns:
        Exit code: 0 for success, 1 for failure.
    """
    service = service_class.from_dict(service_dict) if service_dict else service_class()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        service.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    # One-shot mode: single session, no metrics server
    if once:
        try:
            async with service:
                await service.run()
            logger.info(f"{service_name}_completed")
            return 0
        except Exception as e:  # Intentionally broad: CLI error boundary for one-shot mode
            logger.error(f"{service_name}_failed", error=str(e))
            return 1

    metrics_config = service.config.metrics
    metrics_server = await start_metrics_server(metrics_config)

    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    try:
        async with service:
            await service.run_forever()
        return 0
    except Exception as e:  # Intentionally broad: CLI error boundary for continuous mode
        logger.error(f"{service_name}_failed", error=str(e))
        return 1
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the service runner."""
    parser = argparse.ArgumentParser(
        prog="feedbrotr",
        description="FeedBrotr Service Runner",
    )

    parser.add_argument(
        "service",
        choices=list(SERVICE_REGISTRY.keys()),
        help="Service to run",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Service config path (default: config/<service>.yaml)",
    )

    parser.add_argument(
        "--relay",
        help="Relay URL, overrides relay.url from the config file",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one session and exit (default: run continuously)",
    )

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Configure the root logger with structured formatting.

    Installs a ``StructuredFormatter`` on the root handler so that output
    from both ``Logger`` and the plain ``logging.getLogger()`` calls in
    nips/utils is unified as ``level name message key=value ...``.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dict, returning ``{}`` if the file does not exist."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return {}
    return load_yaml(str(path))


def _apply_overrides(service_dict: dict[str, Any], args: argparse.Namespace) -> None:
    """Merge command-line overrides into the service configuration.

    Also sets ``store.pool.application_name`` to the service name when a
    pool is configured and no name was given.
    """
    if args.relay:
        service_dict.setdefault("relay", {})["url"] = args.relay

    pool = service_dict.get("store", {}).get("pool")
    if isinstance(pool, dict):
        pool.setdefault("application_name", args.service)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args and run the service."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    entry = SERVICE_REGISTRY[args.service]
    config_path = args.config or entry.config_path

    service_dict = _load_yaml_dict(config_path)
    _apply_overrides(service_dict, args)

    try:
        return await run_service(
            service_name=args.service,
            service_class=entry.cls,
            service_dict=service_dict,
            once=args.once,
        )
    except (ConnectionError, FeedBrotrError, ValidationError) as e:
        logger.error("startup_failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
