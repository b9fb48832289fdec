"""
Edge Gateway - process entry point.

Loads settings from the environment, then serves the HTTP API with uvicorn.
"""

import sys

import uvicorn

from edge_gateway.api.main import create_app
from edge_gateway.config.settings import load_settings
from edge_gateway.exceptions import ConfigError
from edge_gateway.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    """Run the gateway until interrupted."""
    try:
        settings = load_settings()
    except ConfigError as exc:
        setup_logging()
        logger.error("invalid_configuration", error=exc.message)
        sys.exit(1)

    setup_logging(settings.log_level, settings.log_format)
    app = create_app(settings, configure_logging=False)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
