"""Process entry point for the annotation service."""

from __future__ import annotations

import logging
import sys

import uvicorn

from .api import create_app
from .config import get_settings
from .persistence import StoreError

logger = logging.getLogger("mapnotes")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def main() -> None:
    """Open the store and serve the API with uvicorn.

    A store that cannot be created, read or written stops the process with
    exit status 1 before the server starts listening.
    """

    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        app = create_app(settings)
    except StoreError:
        logger.critical("Database initialization failed", exc_info=True)
        sys.exit(1)

    logger.info("Database file: %s", settings.data_file.resolve())
    logger.info("Server running on http://%s:%s", settings.host, settings.port)
    if settings.reload:
        uvicorn.run("mapnotes.api:create_app", factory=True, host=settings.host, port=settings.port, reload=True)
    else:
        uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
