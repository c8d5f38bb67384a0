"""
Notification service entry point: ``python -m notification_service.main``.
"""

import asyncio
import logging

import prometheus_client
from aiokafka import AIOKafkaConsumer

from notification_service.config import settings
from notification_service.consumer import TOPICS, run_consumer
from shared.logging import setup_logging
from shared.tracing import setup_tracing

SERVICE_NAME = "notification-service"

setup_logging(settings.log_level, service=SERVICE_NAME)
logger = logging.getLogger(__name__)


def build_consumer() -> AIOKafkaConsumer:
    return AIOKafkaConsumer(
        *TOPICS,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        enable_auto_commit=True,
        auto_offset_reset="earliest",
    )


async def main() -> None:
    setup_tracing(SERVICE_NAME, settings.otlp_endpoint)
    prometheus_client.start_http_server(settings.metrics_port)

    consumer = build_consumer()
    await consumer.start()
    logger.info(
        "Listening for order events",
        extra={"topics": list(TOPICS), "group": settings.kafka_consumer_group},
    )
    try:
        await run_consumer(consumer)
    finally:
        await consumer.stop()
        logger.info("Consumer stopped")


if __name__ == "__main__":
    asyncio.run(main())
