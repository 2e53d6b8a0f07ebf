"""Application configuration management using Pydantic Settings.

This module loads and validates environment variables using Pydantic Settings.
All configuration is loaded from environment variables or a .env file.
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        api_base_url: Base URL of the assessment REST API (trailing slash kept)
        request_timeout_seconds: Timeout applied to every API request
        csrf_cookie_name: Cookie holding the anti-forgery token
        csrf_header_name: Header carrying the anti-forgery token
        database_url: Connection string for the local session store
        environment: Application environment (development, staging, production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        autosave_debounce_ms: Quiet period before in-progress answers are saved
        questions_per_step: Maximum number of questions shown per form step
        partial_response_policy: What to do when a saved snapshot is found
        session_idle_timeout_seconds: Open sessions untouched this long are closed
        login_path: Where unauthenticated navigation is redirected
        default_path: Where unprivileged navigation is redirected
        allowed_origins: List of allowed CORS origins
    """

    # Remote API Configuration
    api_base_url: str = Field(
        default="http://localhost:8000/api/",
        description="Base URL of the assessment REST API"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for API requests in seconds"
    )
    csrf_cookie_name: str = Field(
        default="csrftoken",
        description="Cookie name holding the CSRF token"
    )
    csrf_header_name: str = Field(
        default="X-CSRFToken",
        description="Header name used to send the CSRF token"
    )

    # Session Store Configuration
    database_url: str = Field(
        default="sqlite:///./assessment_portal.db",
        description="Connection string for the local session store"
    )

    # Application Configuration
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    # Assessment Form Configuration
    autosave_debounce_ms: int = Field(
        default=1000,
        ge=0,
        description="Autosave quiet period in milliseconds"
    )
    questions_per_step: int = Field(
        default=3,
        ge=1,
        description="Maximum number of questions per form step"
    )
    partial_response_policy: str = Field(
        default="notify",
        description="Resume policy for saved snapshots (notify or hydrate)"
    )
    session_idle_timeout_seconds: int = Field(
        default=3600,
        ge=0,
        description="Close assessment sessions idle this many seconds (0 disables)"
    )

    # Navigation Configuration
    login_path: str = Field(
        default="/login",
        description="Redirect target for unauthenticated access"
    )
    default_path: str = Field(
        default="/",
        description="Redirect target for unprivileged access"
    )
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Comma-separated list of allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("partial_response_policy")
    @classmethod
    def validate_partial_response_policy(cls, v: str) -> str:
        """Validate resume policy is one of the allowed values."""
        allowed = {"notify", "hydrate"}
        if v.lower() not in allowed:
            raise ValueError(f"Partial response policy must be one of {allowed}")
        return v.lower()

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        """Ensure the base URL is absolute and ends with a slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("API base URL must start with http:// or https://")
        return v if v.endswith("/") else v + "/"

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed_origins string into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def autosave_debounce_seconds(self) -> float:
        """Autosave quiet period expressed in seconds."""
        return self.autosave_debounce_ms / 1000

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings singleton

    Note:
        Uses lru_cache to ensure settings are only loaded once
        and shared across the application.
    """
    return Settings()
