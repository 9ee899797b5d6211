"""Entry point for the search API server."""

import contextlib
import sys

import structlog
import uvicorn

from searcher.app import create_app
from searcher.config import Settings
from searcher.logging import configure_logging

logger = structlog.get_logger()


def main() -> None:
    """Entry point for python -m searcher."""
    settings = Settings()
    configure_logging(debug=settings.debug)
    logger.info("searcher_serving", host=settings.host, port=settings.port)

    config = uvicorn.Config(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="warning",
        access_log=False,
    )
    with contextlib.suppress(KeyboardInterrupt):
        uvicorn.Server(config).run()

    sys.exit(0)


if __name__ == "__main__":
    main()
