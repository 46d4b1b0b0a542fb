"""
Configuration management for the Veo relay.

Centralizes all configuration including:
- The generative-video API credential and endpoint
- Polling cadence and attempt cap
- HTTP server settings (port, public URL, CORS origins)
"""

import os
from dataclasses import dataclass, field
from typing import Optional


# Accepted credential variables, in lookup order
API_KEY_ENV_VARS = ("GOOGLE_AI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY")

DEFAULT_ALLOWED_ORIGINS = "https://atmospheres.digicomm.online,http://localhost:3000"


def _first_env(*names: str) -> str:
    """Return the first non-empty environment value among names."""
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return ""


def _split_origins(raw: str) -> list[str]:
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@dataclass
class APIConfig:
    """Remote generative-video API configuration."""

    api_key: str = field(default_factory=lambda: _first_env(*API_KEY_ENV_VARS))
    api_base: str = field(
        default_factory=lambda: os.getenv(
            "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")
    )
    model: str = field(default_factory=lambda: os.getenv("VEO_MODEL", "veo-3.1-generate-preview"))

    # Per-call network timeout (seconds)
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("REMOTE_TIMEOUT_SECONDS", "60"))
    )


@dataclass
class PollingConfig:
    """Background polling policy for tracked operations."""
    interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("POLL_INTERVAL_SECONDS", "1.0"))
    )
    max_attempts: int = field(
        default_factory=lambda: int(os.getenv("POLL_MAX_ATTEMPTS", "120"))
    )


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3000")))
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))

    # Used to build client-facing artifact links when bytes are proxied
    public_base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("PUBLIC_BASE_URL", "").rstrip("/") or None
    )

    allowed_origins: list[str] = field(
        default_factory=lambda: _split_origins(
            os.getenv("CORS_ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)
        )
    )


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def is_configured(self) -> bool:
        """Whether generation requests can be accepted."""
        return bool(self.api.api_key)

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api.api_key:
            issues.append(
                "No Gemini API key found in env ("
                + " / ".join(API_KEY_ENV_VARS)
                + ")"
            )

        if self.polling.interval_seconds < 0:
            issues.append("POLL_INTERVAL_SECONDS must not be negative")

        if self.polling.max_attempts < 1:
            issues.append("POLL_MAX_ATTEMPTS must be at least 1")

        if self.api.request_timeout <= 0:
            issues.append("REMOTE_TIMEOUT_SECONDS must be positive")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config() -> Config:
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
    return _config
