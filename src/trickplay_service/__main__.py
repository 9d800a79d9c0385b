"""Entry point for running the trickplay service."""

import logging

import uvicorn

from .config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def main():
    """Run the trickplay service."""
    settings = get_settings()

    logger.info(f"Starting trickplay service on {settings.app_host}:{settings.app_port}")

    uvicorn.run(
        "trickplay_service.api.app:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
