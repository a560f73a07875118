from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FABQUOTE_",
        env_file=".env",
        extra="ignore",
    )

    # Runtime
    ENVIRONMENT: str = Field(default="dev", description="Environment name")
    HOST: str = Field(default="0.0.0.0", description="Bind host")
    PORT: int = Field(default=7920, description="Bind port")
    LOG_LEVEL: str = Field(default="INFO", description="Root log level for CLI/server")

    # Database
    DATABASE_URL: str = Field(default="sqlite:///fabquote_dev.db")
    SCHEMA_MODE: str = Field(
        default="create_all",
        description="create_all: auto-create tables (dev), migrations: use Alembic only (prod)",
    )

    # Object storage
    STORAGE_TYPE: str = Field(default="local", description="local|s3")
    LOCAL_STORAGE_PATH: str = Field(default="./data/storage")
    LOCAL_STORAGE_PUBLIC_URL_PREFIX: str = Field(default="")

    S3_BUCKET_NAME: str = Field(default="fabquote")
    S3_ENDPOINT_URL: str = Field(default="http://localhost:9000")
    S3_PUBLIC_ENDPOINT_URL: str = Field(
        default="",
        description="Public S3 endpoint used in presigned URLs; defaults to S3_ENDPOINT_URL",
    )
    S3_ACCESS_KEY_ID: str = Field(default="minioadmin")
    S3_SECRET_ACCESS_KEY: str = Field(default="minioadmin")
    S3_REGION_NAME: str = Field(default="us-east-1")
    S3_CONNECT_TIMEOUT_SECONDS: int = Field(default=10)
    S3_READ_TIMEOUT_SECONDS: int = Field(default=60)
    OBJECT_STORE_TIMEOUT_SECONDS: float = Field(
        default=60.0, description="Upper bound for a single object-store call"
    )

    # Mesh conversion service
    CONVERSION_ENABLED: bool = Field(
        default=True,
        description="Default toggle when no runtime override row exists",
    )
    CONVERSION_API_URL: str = Field(
        default="", description="Conversion service base URL; empty disables conversion"
    )
    CONVERSION_API_TOKEN: str = Field(default="", description="Optional bearer token")
    CONVERSION_API_TIMEOUT_SECONDS: float = Field(default=60.0)
    CONVERSION_STATUS_TIMEOUT_SECONDS: float = Field(default=5.0)
    CONVERSION_POLL_INTERVAL_SECONDS: float = Field(default=2.0)
    CONVERSION_POLL_MAX_ATTEMPTS: int = Field(default=30)
    CONVERSION_POLL_BUDGET_SECONDS: float = Field(
        default=120.0, description="Wall-clock budget for polling one job"
    )
    CONVERSION_OUTPUT_FORMAT: str = Field(default="glb", description="glb|gltf|obj|stl")
    CONVERSION_MAX_FILE_SIZE_BYTES: int = Field(default=100 * 1024 * 1024)
    CONVERSION_BATCH_SIZE: int = Field(default=3)
    CONVERSION_CHORDAL_DEFLECTION: float = Field(default=0.1)
    CONVERSION_ANGULAR_DEFLECTION: float = Field(default=0.5)

    # Quote -> order
    ORDER_NUMBER_MAX_RETRIES: int = Field(default=5)
    VENDOR_PAY_RATIO: float = Field(
        default=0.7, description="Share of the order total paid out to the vendor"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
