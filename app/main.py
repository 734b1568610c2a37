import logging

from fastapi import FastAPI

from app.api import get_api_router
from core.config import get_settings
from core.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(title="Schedule Insights", version="0.1.0")
    application.include_router(get_api_router())

    @application.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    logger.info("Schedule Insights API ready (timezone=%s)", settings.timezone)
    return application


app = create_app()
