"""
Order API entry point: ``uvicorn hotel_delivery.main:app``.
"""

import logging
from contextlib import asynccontextmanager

from aiokafka import AIOKafkaProducer
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import hotel_delivery.models  # noqa: F401  (registers tables on Base.metadata)
from hotel_delivery.config import settings
from hotel_delivery.database import Base, engine
from hotel_delivery.errors import register_exception_handlers
from hotel_delivery.middleware.metrics import MetricsMiddleware
from hotel_delivery.middleware.request_id import RequestIDMiddleware
from hotel_delivery.routers import hotels, orders
from hotel_delivery.services.notifier import drain_notifications
from hotel_delivery.services.order_service import seed_demo_data
from shared.logging import setup_logging
from shared.tracing import setup_tracing

SERVICE_NAME = "hotel-delivery-api"

setup_logging(settings.log_level, service=SERVICE_NAME)
logger = logging.getLogger(__name__)

setup_tracing(SERVICE_NAME, settings.otlp_endpoint)


async def _prepare_database() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    if settings.seed_demo_data:
        await seed_demo_data()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Preparing schema", extra={"seed_demo_data": settings.seed_demo_data})
    await _prepare_database()

    producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        enable_idempotence=True,
    )
    await producer.start()
    app.state.kafka_producer = producer
    logger.info("Order API ready", extra={"kafka": settings.kafka_bootstrap_servers})

    try:
        yield
    finally:
        await drain_notifications()
        await producer.stop()
        await engine.dispose()
        logger.info("Order API stopped")


async def health() -> JSONResponse:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check failed", extra={"error": str(exc)})
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "unreachable"})
    return JSONResponse(content={"status": "ok", "database": "ok"})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Hotel Food Delivery",
        description="Proximity search and order placement for office food delivery",
        version="1.0.0",
        lifespan=lifespan,
    )
    FastAPIInstrumentor.instrument_app(app)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_exception_handlers(app)

    app.include_router(hotels.router, prefix="/hotels", tags=["hotels"])
    app.include_router(orders.router, prefix="/orders", tags=["orders"])
    app.add_api_route("/health", health, methods=["GET"], tags=["health"])
    app.mount("/metrics", make_asgi_app())
    return app


app = create_app()
