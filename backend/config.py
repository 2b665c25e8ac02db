"""
Cash Reconciliation - Configuration Management

Centralized configuration for environment variables, reconciliation
thresholds, history storage and CORS.
This module ensures:
- No hardcoded secrets
- Threshold defaults that can be overridden per deployment
- Environment-specific settings (dev/staging/prod)
"""

from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== RECONCILIATION RULES ====================
    CASH_DISCREPANCY_THRESHOLD: float = Field(
        default=5.00,
        description="Absolute cash difference above which an entry is flagged"
    )
    LARGE_DISCREPANCY_THRESHOLD: float = Field(
        default=50.00,
        description="Cash difference that escalates severity to high"
    )
    MAX_RETURNS_PERCENTAGE: float = Field(
        default=10.0,
        description="Maximum returns as a percentage of total sales"
    )
    MIN_OPENING_CASH: float = Field(
        default=100.00,
        description="Recommended minimum opening float"
    )
    REGISTER_NUMBERS: str = Field(
        default="REG001,REG002,REG003,REG004,REG005",
        description="Comma-separated list of valid register numbers (empty = any)"
    )

    # ==================== HISTORY ====================
    HISTORY_FILE: str = Field(
        default="data/reconciliation_history.json",
        description="JSON file holding the rolling reconciliation history"
    )
    HISTORY_RETENTION_DAYS: int = Field(
        default=90,
        description="Days of run history kept after each append"
    )

    # ==================== CORS ====================
    CORS_ORIGINS: str = Field(
        default="",
        description="Comma-separated list of allowed origins"
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
        default="Sales & Cash Reconciliation API",
        description="API title for OpenAPI docs"
    )
    API_VERSION: str = Field(
        default="1.0.0",
        description="API version"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def register_numbers_list(self) -> List[str]:
        """Parse REGISTER_NUMBERS into a list; empty means any register is accepted."""
        return [r.strip() for r in self.REGISTER_NUMBERS.split(",") if r.strip()]

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
            "http://localhost:5173",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]

        all_origins = set(origins)
        if not self.is_production:
            all_origins.update(dev_origins)

        return sorted(all_origins)

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration consistency.
        Returns list of validation errors.
        """
        errors = []

        thresholds = [
            ("CASH_DISCREPANCY_THRESHOLD", self.CASH_DISCREPANCY_THRESHOLD),
            ("LARGE_DISCREPANCY_THRESHOLD", self.LARGE_DISCREPANCY_THRESHOLD),
            ("MAX_RETURNS_PERCENTAGE", self.MAX_RETURNS_PERCENTAGE),
            ("MIN_OPENING_CASH", self.MIN_OPENING_CASH),
        ]
        for name, value in thresholds:
            if value < 0:
                errors.append(f"{name} cannot be negative")

        if self.LARGE_DISCREPANCY_THRESHOLD < self.CASH_DISCREPANCY_THRESHOLD:
            errors.append("LARGE_DISCREPANCY_THRESHOLD must not be below CASH_DISCREPANCY_THRESHOLD")

        if self.HISTORY_RETENTION_DAYS < 1:
            errors.append("HISTORY_RETENTION_DAYS must be at least 1")

        if self.is_production:
            if self.CORS_ORIGINS == "*":
                errors.append("CORS_ORIGINS cannot be '*' in production")

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

    # Log configuration status
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.debug_enabled}")
    logger.info(f"Registers: {len(settings.register_numbers_list)} configured")

    # Validate in production
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
            "Content-Type",
            "Accept",
            "Origin",
            "X-Requested-With",
            "X-Request-ID",
        ],
        "expose_headers": [
            "X-Request-ID",
        ],
        "max_age": 600,  # Cache preflight for 10 minutes
    }


# ==================== ENVIRONMENT VALIDATION ====================

def validate_environment() -> dict:
    """
    Validate configuration at startup.

    Returns a status dict with validation results.
    """
    settings = get_settings()

    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
    }

    if not settings.SENTRY_DSN:
        status["warnings"].append("Error tracking disabled")

    if not settings.register_numbers_list:
        status["warnings"].append("REGISTER_NUMBERS is empty; any register number will be accepted")

    errors = settings.validate_production_config()
    if errors:
        status["errors"].extend(errors)
        status["valid"] = False

    return status
