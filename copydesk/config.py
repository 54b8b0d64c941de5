"""
Copydesk Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# Load environment variables
load_dotenv()

# Items-per-page choices offered by every table
PAGE_SIZE_CHOICES = (5, 10, 20, 50, 100)


class Settings(BaseSettings):
    """
    Dashboard configuration with validation.

    All settings can be overridden via environment variables
    (API_BASE_URL, FLASK_SECRET_KEY, REQUEST_TIMEOUT, ...).
    """

    # === Backend ===
    api_base_url: str = Field(
        default="http://localhost:8000/api",
        description="Base URL of the backend REST API"
    )
    request_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout in seconds for list/CRUD calls (1-300)"
    )
    report_timeout: int = Field(
        default=120,
        ge=10,
        le=600,
        description="Timeout in seconds for report downloads (10-600)"
    )

    # === Flask ===
    flask_secret_key: Optional[str] = Field(
        default=None,
        description="Secret used to sign the session cookie"
    )
    environment: str = Field(
        default="development",
        description="Environment: development, testing, production"
    )
    session_lifetime_days: int = Field(
        default=31,
        ge=1,
        le=365,
        description="Lifetime of the login session cookie in days"
    )

    # === Tables ===
    default_page_size: int = Field(
        default=10,
        description="Initial items-per-page for every table"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "testing", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("api_base_url")
    @classmethod
    def validate_url_format(cls, v: str) -> str:
        """Basic URL format validation; trailing slash is dropped."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL format: {v}")
        return v.rstrip("/")

    @field_validator("default_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v not in PAGE_SIZE_CHOICES:
            raise ValueError(f"default_page_size must be one of {PAGE_SIZE_CHOICES}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def validate_production_config(self) -> List[str]:
        """
        Return configuration problems that must be fixed before serving
        production traffic. Empty list means the config is usable.
        """
        problems = []
        if not self.flask_secret_key:
            problems.append("FLASK_SECRET_KEY is not set; sessions will not survive restarts")
        if self.api_base_url.startswith("http://") and "localhost" not in self.api_base_url:
            problems.append("API_BASE_URL uses plain HTTP; bearer tokens would travel unencrypted")
        return problems


@lru_cache()
def get_settings() -> Settings:
    """Get the cached settings instance."""
    return Settings()
