from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from txagg import __version__
from txagg.core.config import get_settings
from txagg.core.logging import configure_logging, request_id_middleware
from txagg.transactions.router import router as transactions_router
from txagg.transactions.service import get_transaction_service, set_transaction_service

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.ENV)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info("Starting %s (env: %s)", settings.SERVICE_NAME, settings.ENV)

    service = get_transaction_service()
    logger.info(
        "Aggregating from %d sources: %s",
        len(service.aggregator.sources),
        ", ".join(service.aggregator.source_names),
    )
    if not settings.API_KEY:
        logger.warning("API_KEY not configured, authentication disabled")

    yield

    logger.info("Shutting down %s", settings.SERVICE_NAME)
    await service.close()
    set_transaction_service(None)


app = FastAPI(title=settings.SERVICE_NAME, version=__version__, lifespan=lifespan)
app.middleware("http")(request_id_middleware)
app.include_router(transactions_router)


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
    }
