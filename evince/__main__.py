import uvicorn
import structlog

from config.logging import configure_logging

from .api import create_app
from .config import Settings

logger = structlog.get_logger()


def main():
    """Run the Evince gateway."""
    settings = Settings()
    configure_logging(settings.LOG_LEVEL)

    app = create_app(settings)
    logger.info("starting_server", host=settings.API_HOST, port=settings.API_PORT)
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_config=None)


if __name__ == "__main__":
    main()
