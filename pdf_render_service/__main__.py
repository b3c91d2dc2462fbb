"""
Run the PDF render service with uvicorn.

    python -m pdf_render_service

uvicorn turns SIGINT/SIGTERM into a lifespan shutdown, which closes the
shared browser once before the process exits.
"""

import logging

import uvicorn

from .config import get_settings

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    logger.info(f"Server listening on http://{settings.host}:{settings.port}")
    uvicorn.run(
        "pdf_render_service.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
