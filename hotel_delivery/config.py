from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/delivery"
    log_level: str = "INFO"
    seed_demo_data: bool = True

    # Proximity search
    default_search_radius: int = 3000
    min_search_radius: int = 500
    max_search_radius: int = 10000
    max_search_results: int = 20

    # Outbound notifications (best-effort, after commit)
    notification_timeout: float = 5.0

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"

    model_config = {"env_file": ".env"}


settings = Settings()
