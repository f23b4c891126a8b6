from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env into os.environ
load_dotenv()


class Settings(BaseSettings):
    """Query processor configuration settings backed by environment variables."""

    database_config_path: str = Field(
        default="configs/databases.yaml",
        validation_alias="DATABASE_CONFIG",
        description="Path to the YAML file listing database bindings."
    )

    query_timeout_sec: float = Field(
        default=60,
        validation_alias="QUERY_TIMEOUT_SEC",
        description="Default deadline in seconds for a single query execution."
    )

    execution_workers: int = Field(
        default=4,
        validation_alias="EXECUTION_WORKERS",
        description="Max workers of the shared execution pool."
    )

    poll_interval_sec: float = Field(
        default=0.05,
        validation_alias="POLL_INTERVAL_SEC",
        description="Interval at which the processor polls a running execution for cancellation."
    )

    connection_retries: int = Field(
        default=2,
        validation_alias="CONNECTION_RETRIES",
        description="Retries after a transient connection failure (0 disables retry)."
    )

    retry_backoff_sec: float = Field(
        default=0.5,
        validation_alias="RETRY_BACKOFF_SEC",
        description="Base delay for exponential backoff between connection retries."
    )

    breaker_fail_max: int = Field(
        default=5,
        validation_alias="BREAKER_FAIL_MAX",
        description="Consecutive connection failures before a database breaker opens."
    )

    breaker_reset_timeout_sec: int = Field(
        default=30,
        validation_alias="BREAKER_RESET_TIMEOUT_SEC",
        description="Seconds an open breaker waits before allowing a trial call."
    )

    catalog_sample_size: int = Field(
        default=100,
        validation_alias="CATALOG_SAMPLE_SIZE",
        description="Documents sampled per collection when inferring a document store schema."
    )

    category_cardinality_threshold: int = Field(
        default=40,
        validation_alias="CATEGORY_CARDINALITY_THRESHOLD",
        description="Max distinct values for a field to be classified as a category."
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level."
    )

    log_json: bool = Field(
        default=False,
        validation_alias="LOG_JSON",
        description="Emit JSON formatted log lines."
    )

    observability_exporter: str = Field(
        default="none",
        validation_alias="OBSERVABILITY_EXPORTER",
        description="Exporter for metrics: 'none', 'console', 'otlp'."
    )

    otlp_endpoint: Optional[str] = Field(
        default=None,
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="Endpoint for OTLP exporter (e.g. http://localhost:4317)."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()

# Configure logging during import
from queryproc.common.logger import configure_logging
configure_logging(
    level=settings.log_level,
    json_format=settings.log_json or settings.observability_exporter == "otlp"
)
