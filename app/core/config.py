# app/core/config.py - TenantDesk configuration
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr
from typing import List, Optional


class Settings(BaseSettings):
    """
    Settings for the TenantDesk API, read from the environment and .env
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database Settings
    DATABASE_URL: str = Field(..., description="SQLAlchemy async database URL (postgresql+asyncpg://...)")
    DB_POOL_SIZE: int = Field(20, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(0, description="Database max overflow connections")

    # Identity provider tokens (HS256 shared secret)
    JWT_SECRET_KEY: SecretStr = Field(..., description="Secret used to verify identity provider JWTs")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Application Settings
    SERVICE_NAME: str = Field("tenantdesk-api", description="Service name used in logs and traces")
    ENVIRONMENT: str = Field("development", description="Environment name")
    LOG_LEVEL: str = Field("INFO", description="Log level")
    APP_URL: str = Field("http://localhost:3000", description="Public URL of the web application")

    # Logging Configuration
    ENABLE_JSON_LOGGING: bool = Field(True, description="Enable JSON structured logging")

    # OpenTelemetry Tracing Settings
    ENABLE_OTEL_EXPORTER: bool = Field(False, description="Enable OpenTelemetry tracing")
    ENABLE_OTEL_CONSOLE_EXPORT: bool = Field(False, description="Print spans to the console")

    # CORS Settings
    CORS_ORIGINS: str = Field(
        "http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Rate Limiting Settings
    RATE_LIMIT_ENABLED: bool = Field(True, description="Enable rate limiting")
    RATE_LIMIT_STORAGE_URI: str = Field("memory://", description="limits storage backend")
    READ_RATE_LIMIT: str = Field("30/minute", description="Limit for read operations")
    WRITE_RATE_LIMIT: str = Field("30/minute", description="Limit for write operations")
    DELETE_RATE_LIMIT: str = Field("10/minute", description="Limit for delete operations")
    ADMIN_RATE_LIMIT: str = Field("20/minute", description="Limit for admin console operations")
    PUBLIC_RATE_LIMIT: str = Field("30/minute", description="Limit for unauthenticated operations")

    # Tenant directory / invitations
    INVITATION_EXPIRE_DAYS: int = Field(7, description="Days before an invitation expires")
    SLUG_MAX_ATTEMPTS: int = Field(5, description="Attempts at generating a free organization slug")

    # Notifications (Resend)
    RESEND_API_KEY: Optional[SecretStr] = Field(None, description="Resend API key; log-only delivery when unset")
    RESEND_API_URL: str = Field("https://api.resend.com/emails", description="Resend send endpoint")
    EMAIL_FROM_ADDRESS: str = Field("TenantDesk <no-reply@tenantdesk.dev>", description="Sender address")
    EMAIL_TIMEOUT_SECONDS: float = Field(10.0, description="Timeout for a single delivery call")

    # Background jobs
    JOB_WORKERS: int = Field(2, description="Number of job queue workers")
    JOB_RETRY_BASE_DELAY: float = Field(2.0, description="Base delay in seconds for job retries")
    JOB_HISTORY_SIZE: int = Field(1000, description="Finished jobs kept for status lookups")
    DEFAULT_ORG_RETRIES: int = Field(3, description="Retries for the default organization job")
    WORKFLOW_SECRET: Optional[SecretStr] = Field(None, description="Shared secret for workflow callbacks")

    # Uploads
    UPLOAD_DIR: str = Field("uploads", description="Directory used by the local upload sink")
    UPLOAD_BASE_URL: str = Field("http://localhost:8000/uploads", description="Public base URL for stored files")
    MAX_UPLOAD_BYTES: int = Field(4 * 1024 * 1024, description="Maximum accepted upload size")
    ALLOWED_UPLOAD_TYPES: str = Field(
        "image/png,image/jpeg,image/gif,image/webp,application/pdf,text/plain",
        description="Comma-separated list of accepted content types"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert CORS_ORIGINS string to list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def allowed_upload_types_list(self) -> List[str]:
        return [t.strip() for t in self.ALLOWED_UPLOAD_TYPES.split(",") if t.strip()]

    @property
    def should_use_json_logging(self) -> bool:
        """Use JSON logging in production or when explicitly enabled"""
        return self.ENVIRONMENT == "production" or self.ENABLE_JSON_LOGGING

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


# Create settings instance
settings = Settings()
