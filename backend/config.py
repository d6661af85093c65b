"""
Student Progress Engine - Configuration Management
Supports .env files and runtime configuration for the progress service and identity lookup.
"""

from typing import Dict, Any, Literal
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


# ============================================
# PROGRESS ENGINE CONFIGURATION
# ============================================

class ProgressConfig(BaseSettings):
    """Progress service, store and streak configuration."""

    store_backend: Literal["memory", "postgres"] = Field(
        default="memory",
        description="Where progress records live: process memory or PostgreSQL"
    )
    store_timeout_seconds: float = Field(
        default=5.0,
        ge=0.1,
        le=60.0,
        description="Upper bound for a single store load or save call"
    )
    max_save_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Read-modify-write attempts before a version conflict is reported as transient"
    )

    # Streak settings
    streak_mode: Literal["rolling_window", "calendar_day"] = Field(
        default="rolling_window",
        description="rolling_window: any event within 48h extends the streak; calendar_day: one step per day"
    )
    streak_utc_offset_minutes: int = Field(
        default=0,
        ge=-14 * 60,
        le=14 * 60,
        description="Day boundary offset used by calendar_day streaks"
    )

    # Presentation helpers
    recent_results_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Quiz results returned by the progress summary"
    )

    reset_token: str = Field(
        default="",
        description="Token required by the HTTP reset endpoint (empty disables it)"
    )

    model_config = {
        "env_prefix": "PROGRESS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# IDENTITY CONFIGURATION
# ============================================

class IdentityConfig(BaseSettings):
    """How the authenticated user id reaches the engine."""

    provider: Literal["header", "remote"] = Field(
        default="header",
        description="header: trust a gateway-supplied header; remote: resolve bearer tokens via verify_url"
    )
    header_name: str = Field(
        default="X-User-Id",
        description="Header carrying the user id when provider=header"
    )
    verify_url: str = Field(
        default="http://localhost:9000/v1/userinfo",
        description="Endpoint returning {\"user_id\": ...} for a bearer token"
    )
    timeout_seconds: float = Field(
        default=5.0,
        ge=0.1,
        le=30.0,
        description="Timeout for the identity lookup"
    )

    model_config = {
        "env_prefix": "IDENTITY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# CACHED CONFIGURATION INSTANCES
# ============================================

@lru_cache()
def get_progress_config() -> ProgressConfig:
    """Get cached progress configuration instance."""
    return ProgressConfig()


@lru_cache()
def get_identity_config() -> IdentityConfig:
    """Get cached identity configuration instance."""
    return IdentityConfig()


def reload_config():
    """Clear configuration cache and reload from environment."""
    get_progress_config.cache_clear()
    get_identity_config.cache_clear()


# ============================================
# CONFIGURATION SUMMARY
# ============================================

def get_config_summary() -> Dict[str, Any]:
    """
    Get a summary of all configuration values.
    Secrets are reported as present/absent only.
    """
    progress = get_progress_config()
    identity = get_identity_config()

    return {
        "progress": {
            "store_backend": progress.store_backend,
            "store_timeout_seconds": progress.store_timeout_seconds,
            "max_save_attempts": progress.max_save_attempts,
            "streak_mode": progress.streak_mode,
            "streak_utc_offset_minutes": progress.streak_utc_offset_minutes,
            "recent_results_limit": progress.recent_results_limit,
            "reset_enabled": bool(progress.reset_token),
        },
        "identity": {
            "provider": identity.provider,
            "header_name": identity.header_name,
            "verify_url": identity.verify_url if identity.provider == "remote" else None,
            "timeout_seconds": identity.timeout_seconds,
        },
    }
