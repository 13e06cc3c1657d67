"""
Statement Import Service - Configuration Management

Centralized configuration for environment variables, CORS, and deployment settings.
This module ensures:
- No hardcoded secrets
- No missing required variables
- Environment-specific settings (dev/staging/prod)
"""

from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== DATABASE ====================
    DATABASE_URL: str = Field(
        default="",
        description="PostgreSQL connection URL, postgresql+asyncpg://... (required)"
    )
    DATABASE_POOL_SIZE: int = Field(default=5)
    DATABASE_MAX_OVERFLOW: int = Field(default=10)

    # ==================== AUTHENTICATION ====================
    JWT_SECRET_KEY: str = Field(
        default="",
        description="Secret key used to verify session tokens (required)"
    )
    JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )

    # ==================== CORS ====================
    CORS_ORIGINS: str = Field(
        default="",
        description="Comma-separated list of allowed origins"
    )

    # ==================== QUEUE ====================
    APP_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Public base URL the queue delivers jobs to"
    )
    QUEUE_API_URL: str = Field(
        default="https://qstash.upstash.io",
        description="Queue publish API base URL"
    )
    QUEUE_TOKEN: str = Field(
        default="",
        description="Bearer token for the queue publish API"
    )
    QUEUE_CURRENT_SIGNING_KEY: str = Field(
        default="",
        description="Current key used to verify queue delivery signatures"
    )
    QUEUE_NEXT_SIGNING_KEY: str = Field(
        default="",
        description="Next key used to verify queue delivery signatures (key rotation)"
    )
    QUEUE_RETRIES: int = Field(
        default=2,
        description="Redelivery budget handed to the queue per job"
    )
    QUEUE_TIMEOUT_SECONDS: float = Field(default=10.0)

    # ==================== AI ====================
    AI_API_BASE: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible API base URL"
    )
    AI_API_KEY: str = Field(
        default="",
        description="API key for the AI provider"
    )
    AI_MODEL: str = Field(
        default="gpt-4o",
        description="Model used for property matching"
    )
    AI_EXTRACTION_MODEL: str = Field(
        default="gpt-4o",
        description="Model used to extract expenses from vendor documents"
    )
    AI_TIMEOUT_SECONDS: float = Field(default=60.0)

    # ==================== JOBS ====================
    JOB_RESULT_TTL_SECONDS: int = Field(
        default=3600,
        description="How long finished job results stay readable via the status endpoint"
    )
    JOB_STALE_SECONDS: int = Field(
        default=21600,
        description="How long an unfinished job record is kept without any progress"
    )

    # ==================== OBSERVABILITY ====================
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )

    # ==================== API ====================
    API_TITLE: str = Field(
        default="Owner Statement Import API",
        description="API title for OpenAPI docs"
    )
    API_VERSION: str = Field(
        default="1.0.0",
        description="API version"
    )

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS_ORIGINS into a list with environment-aware defaults.

        Production: Only specified origins
        Development/Staging: Include localhost origins
        """
        if self.CORS_ORIGINS and self.CORS_ORIGINS != "*":
            origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        else:
            origins = []

        dev_origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

        all_origins = set(origins)
        if not self.is_production:
            all_origins.update(dev_origins)

        return sorted(all_origins)

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    @property
    def process_url(self) -> str:
        """URL the queue delivers vendor import jobs to."""
        return f"{self.APP_BASE_URL.rstrip('/')}/api/vendor-import/process"

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production deployment.
        Returns list of validation errors.
        """
        errors = []

        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required")

        if not self.JWT_SECRET_KEY:
            errors.append("JWT_SECRET_KEY is required")
        elif len(self.JWT_SECRET_KEY) < 32:
            errors.append("JWT_SECRET_KEY should be at least 32 characters")

        if self.is_production:
            if self.CORS_ORIGINS == "*":
                errors.append("CORS_ORIGINS cannot be '*' in production")

            if not self.QUEUE_CURRENT_SIGNING_KEY:
                errors.append("QUEUE_CURRENT_SIGNING_KEY is required in production")

            if "localhost" in self.APP_BASE_URL.lower():
                errors.append("APP_BASE_URL cannot point to localhost in production")

            if self.DEBUG:
                errors.append("DEBUG should be False in production")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once and cached for the application lifetime.
    """
    settings = Settings()

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.debug_enabled}")

    if settings.is_production:
        errors = settings.validate_production_config()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError(f"Production configuration invalid: {', '.join(errors)}")

    return settings


# ==================== CORS CONFIGURATION ====================

def get_cors_config() -> dict:
    """
    Get CORS middleware configuration.

    Returns configuration dict for CORSMiddleware.
    """
    settings = get_settings()

    return {
        "allow_origins": settings.cors_origins_list,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": [
            "Authorization",
            "Content-Type",
            "Accept",
            "Origin",
            "X-Requested-With",
            "X-Request-ID",
        ],
        "expose_headers": ["X-Request-ID"],
        "max_age": 600,  # Cache preflight for 10 minutes
    }


# ==================== ENVIRONMENT VALIDATION ====================

def validate_environment() -> dict:
    """
    Validate all required environment variables.

    Returns a status dict with validation results.
    """
    settings = get_settings()

    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
        "variables": {}
    }

    required_vars = [
        ("DATABASE_URL", settings.DATABASE_URL),
        ("JWT_SECRET_KEY", settings.JWT_SECRET_KEY),
    ]

    for name, value in required_vars:
        if not value:
            status["errors"].append(f"{name} is not set")
            status["valid"] = False
        else:
            status["variables"][name] = "✓ Set"

    optional_vars = [
        ("SENTRY_DSN", settings.SENTRY_DSN, "Error tracking disabled"),
        ("QUEUE_TOKEN", settings.QUEUE_TOKEN, "Queue publishing will be rejected by the queue"),
        ("QUEUE_CURRENT_SIGNING_KEY", settings.QUEUE_CURRENT_SIGNING_KEY, "Queue delivery signatures cannot be verified"),
        ("AI_API_KEY", settings.AI_API_KEY, "AI matching and extraction unavailable"),
    ]

    for name, value, warning in optional_vars:
        if not value:
            status["warnings"].append(warning)
            status["variables"][name] = "⚠ Not set"
        else:
            status["variables"][name] = "✓ Set"

    errors = settings.validate_production_config()
    if errors:
        status["errors"].extend(e for e in errors if e not in status["errors"])
        status["valid"] = False

    return status
