"""Configuration management using pydantic-settings."""

import logging
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment. Env var: ENVIRONMENT",
    )
    log_level: str = Field(default="INFO", description="Logging level. Env var: LOG_LEVEL")
    port: int = Field(default=8000, description="HTTP server port. Env var: PORT")

    # Site
    allowed_origins: str = Field(
        default="",
        description="Comma-separated CORS origins; empty or '*' allows any. Env var: ALLOWED_ORIGINS",
    )
    assets_dir: str = Field(
        default="public", description="Directory served as static assets. Env var: ASSETS_DIR"
    )

    # Turnstile challenge verification
    turnstile_site_key: str = Field(
        default="", description="Site key substituted into HTML. Env var: TURNSTILE_SITE_KEY"
    )
    turnstile_secret: Optional[str] = Field(
        default=None,
        description="Secret key; enables mandatory verification when set. Env var: TURNSTILE_SECRET",
    )

    # ERPNext system of record
    erpnext_base_url: Optional[str] = Field(
        default=None, description="ERPNext base URL. Env var: ERPNEXT_BASE_URL"
    )
    erpnext_api_token: Optional[str] = Field(
        default=None,
        description="Pre-composed 'key:secret' API token. Env var: ERPNEXT_API_TOKEN",
    )
    erpnext_api_key: Optional[str] = Field(
        default=None, description="API key. Env var: ERPNEXT_API_KEY"
    )
    erpnext_api_secret: Optional[str] = Field(
        default=None, description="API secret. Env var: ERPNEXT_API_SECRET"
    )
    erpnext_lead_doctype: str = Field(
        default="Lead", description="Doctype for inquiries. Env var: ERPNEXT_LEAD_DOCTYPE"
    )
    erpnext_applicant_doctype: str = Field(
        default="Job Applicant",
        description="Doctype for applications. Env var: ERPNEXT_APPLICANT_DOCTYPE",
    )
    erpnext_lead_source: Optional[str] = Field(
        default=None,
        description="Existing Lead Source record to set on new leads. Env var: ERPNEXT_LEAD_SOURCE",
    )

    # Cloudflare Access in front of ERPNext
    cf_access_client_id: Optional[str] = Field(
        default=None, description="Env var: CF_ACCESS_CLIENT_ID"
    )
    cf_access_client_secret: Optional[str] = Field(
        default=None, description="Env var: CF_ACCESS_CLIENT_SECRET"
    )

    # Relay behaviour
    fallback_form_urls: Dict[str, str] = Field(
        default_factory=dict,
        description="JSON object mapping form kind to fallback URL; unlisted kinds skip the "
        "fallback. Env var: FALLBACK_FORM_URLS",
    )
    defer_system_of_record: bool = Field(
        default=True,
        description="Run the ERPNext submission after the response when the fallback succeeded. "
        "Env var: DEFER_SYSTEM_OF_RECORD",
    )
    http_timeout: float = Field(
        default=15.0, description="Outbound request timeout in seconds. Env var: HTTP_TIMEOUT"
    )

    @field_validator("environment", mode="before")
    @classmethod
    def parse_environment(cls, v):
        """Parse environment from string."""
        if isinstance(v, str):
            try:
                return Environment(v.lower())
            except ValueError:
                return Environment.DEVELOPMENT
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @property
    def allowed_origin_list(self) -> List[str]:
        """Get allowed origins as a list."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def allow_any_origin(self) -> bool:
        origins = self.allowed_origin_list
        return not origins or "*" in origins

    @property
    def verification_enabled(self) -> bool:
        """Challenge verification runs only when a secret is configured."""
        return bool(self.turnstile_secret)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
        if not _settings.erpnext_base_url:
            logging.getLogger("site_relay").warning(
                "ERPNEXT_BASE_URL is not set; system-of-record submissions will fail"
            )
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
