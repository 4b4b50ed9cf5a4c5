"""
Draft versioning server - Main entry point.

Starts the HTTP API over the configured version store.

Usage:
    python -m draftvc.main

Configuration is entirely via environment variables.
See config.py (store, engine, logging) and api/config.py (bind address, CORS).

Invariants:
    - Configuration errors abort startup before anything binds
    - The store is opened before the first request and closed on shutdown
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn

from .api import Settings, create_app
from .config import ServiceConfig
from .service import DraftVersioningService

logger = logging.getLogger(__name__)


def setup_logging(config: ServiceConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Service configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ServiceConfig.from_env()
        settings = Settings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)
    config.log_config()

    service = DraftVersioningService.from_config(config)
    app = create_app(service)

    logger.info("Starting draft versioning API", extra={"host": settings.host, "port": settings.port})
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
