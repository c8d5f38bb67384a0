from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Read from ``NOTIFY_*`` environment variables (or ``.env``)."""

    log_level: str = "INFO"

    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumer_group: str = "hotel-delivery-notifications"

    # Send hotels a new-order alert next to the customer confirmation
    hotel_alerts_enabled: bool = True

    otlp_endpoint: str = "http://jaeger:4318/v1/traces"
    metrics_port: int = 8002

    model_config = {"env_file": ".env", "env_prefix": "NOTIFY_"}


settings = Settings()
