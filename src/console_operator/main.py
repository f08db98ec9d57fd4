"""Main entry point for the console operator.

Wires configuration, the resource stores, the reconciler and the resync
loop together, then runs until SIGTERM/SIGINT.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime

from .config import Config, ConfigurationError
from .reconciler import ConsoleReconciler
from .spec_loader import SpecLoadError, load_or_create_console
from .store import build_clients
from .trigger import ResyncTrigger

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED_RECORD_KEYS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    )
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure root logging, JSON to stdout by default."""
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    # Reduce noise from the azure-core pipeline
    logging.getLogger("azure").setLevel(logging.WARNING)


async def run_operator(config: Config, logger: logging.Logger) -> int:
    """Run the resync loop until a shutdown signal arrives."""
    try:
        # Fail at startup, not on the first pass, when there is nothing to reconcile
        load_or_create_console(config.console_file, config.create_default_console)
    except SpecLoadError as e:
        logger.error(
            "Failed to load console",
            extra={"error": str(e), "console_file": str(config.console_file)},
        )
        return 1

    clients = build_clients(config.store_dir, config.router_domain)
    reconciler = ConsoleReconciler.from_config(config, clients)
    trigger = ResyncTrigger.from_config(config, reconciler)

    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        trigger.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await trigger.run()
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1

    logger.info("Operator stopped")
    return 0


async def main() -> int:
    """Run the operator.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Configuration error", extra={"error": str(e)})
        return 1

    setup_logging(config.log_level, config.enable_json_logging)
    logger = logging.getLogger(__name__)

    logger.info(
        "Starting console operator",
        extra={
            "target_namespace": config.target_namespace,
            "console_image": config.console_image,
            "store_dir": str(config.store_dir),
        },
    )
    return await run_operator(config, logger)


def run() -> None:
    """Entry point for the operator process."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
