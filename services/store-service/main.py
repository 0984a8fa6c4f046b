"""Store service application."""
import logging
from contextlib import asynccontextmanager

import httpx
import redis
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

from config import (
    API_VERSION,
    NOTIFICATION_TIMEOUT_SECONDS,
    RATE_LIMIT_ENABLED,
    REDIS_URL,
    SERVICE_NAME,
    TELEMETRY_ENABLED,
)
from database import engine, init_db
from error_handlers import register_exception_handlers
from logging_config import setup_logging
from redis_rate_limiter import RedisRateLimiter
from routers import admin_catalog, admin_orders, customers, orders, products, auth as auth_router

setup_logging()
logger = logging.getLogger(__name__)

# Shared by the rate limiter middleware and the category cache
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema and the shared clients; close the clients on shutdown."""
    init_db()

    http_client = httpx.AsyncClient(timeout=NOTIFICATION_TIMEOUT_SECONDS)
    if TELEMETRY_ENABLED:
        RedisInstrumentor().instrument()
        HTTPXClientInstrumentor().instrument_client(http_client)

    app.state.redis_client = redis_client
    app.state.http_client = http_client
    logger.info("Store service started", extra={"version": API_VERSION})

    try:
        yield
    finally:
        await http_client.aclose()
        redis_client.close()
        logger.info("Store service stopped")


def create_app() -> FastAPI:
    application = FastAPI(title="WebStore Store Service", version=API_VERSION, lifespan=lifespan)

    register_exception_handlers(application)

    if RATE_LIMIT_ENABLED:
        application.add_middleware(RedisRateLimiter, redis_client=redis_client)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router_module in (auth_router, customers, products, orders, admin_catalog, admin_orders):
        application.include_router(router_module.router)

    @application.get("/health")
    async def health():
        return {"status": "healthy", "service": SERVICE_NAME}

    if TELEMETRY_ENABLED:
        FastAPIInstrumentor.instrument_app(application)
        SQLAlchemyInstrumentor().instrument(engine=engine)

    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
