"""
Tracing Settings

Configuration for the tracing layer: collector credentials, sampling and
flush behaviour. Settings are validated once at construction and are
read-only afterwards.

Usage:
    from ikpa_backend.config import TracingSettings, get_tracing_settings

    # Load from the process environment
    settings = TracingSettings.from_env()

    # Or start from a named profile
    settings = get_tracing_settings(profile="production", api_key="...", workspace_name="ikpa")
"""

import os
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PROJECT_NAME = "ikpa-financial-coach"
DEFAULT_API_URL = "https://www.comet.com/opik/api"

# Environment variable -> settings field
ENV_VARS: Dict[str, str] = {
    "TRACING_API_KEY": "api_key",
    "TRACING_WORKSPACE_NAME": "workspace_name",
    "TRACING_PROJECT_NAME": "project_name",
    "TRACING_API_URL": "api_url",
    "TRACING_SAMPLING_RATE": "sampling_rate",
    "TRACING_FLUSH_TIMEOUT_MS": "flush_timeout_ms",
    "TRACING_FLUSH_RETRY_ATTEMPTS": "flush_retry_attempts",
    "TRACING_FLUSH_RETRY_DELAY_MS": "flush_retry_delay_ms",
    "APP_ENV": "environment",
}


class TracingSettings(BaseModel):
    """
    Tracing settings.

    Tracing is only enabled when both ``api_key`` and ``workspace_name`` are
    present. Every other field has a default.
    """

    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = Field(default=None, description="Collector API key")
    workspace_name: Optional[str] = Field(default=None, description="Collector workspace")
    project_name: str = Field(default=DEFAULT_PROJECT_NAME)
    api_url: str = Field(default=DEFAULT_API_URL)
    environment: str = Field(default="development", description="Stamped into every trace")

    sampling_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Default probability that a trace is recorded",
    )

    flush_timeout_ms: int = Field(default=5000, gt=0, description="Timeout per flush attempt")
    flush_retry_attempts: int = Field(default=3, ge=1)
    flush_retry_delay_ms: int = Field(default=1000, ge=0, description="Base delay between flush attempts")

    # Used for the estimated cost stamped on LLM spans (USD per million tokens)
    llm_input_cost_per_million: float = Field(default=3.0, ge=0.0)
    llm_output_cost_per_million: float = Field(default=15.0, ge=0.0)

    @property
    def is_configured(self) -> bool:
        """True when the required collector credentials are present."""
        return not self.missing_credentials()

    def missing_credentials(self) -> List[str]:
        missing = []
        if not self.api_key:
            missing.append("api_key")
        if not self.workspace_name:
            missing.append("workspace_name")
        return missing

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "TracingSettings":
        """
        Build settings from environment variables.

        Empty variables are treated as unset. Values are coerced and
        validated by pydantic; invalid values raise ``ValidationError``.

        Args:
            environ: Mapping to read from (default: ``os.environ``)
            **overrides: Explicit field values that win over the environment
        """
        environ = os.environ if environ is None else environ

        values: Dict[str, Any] = {}
        for var, field_name in ENV_VARS.items():
            raw = environ.get(var)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()

        values.update(overrides)
        return cls(**values)


# Pre-configured profiles
TRACING_PROFILES: Dict[str, TracingSettings] = {
    # Default: record everything, moderate flush budget
    "default": TracingSettings(),
    # Production: sample a tenth of traces, longer flush budget
    "production": TracingSettings(
        environment="production",
        sampling_rate=0.1,
        flush_timeout_ms=10000,
        flush_retry_attempts=5,
    ),
    # Debug: record everything, fail fast on flush
    "debug": TracingSettings(
        environment="development",
        sampling_rate=1.0,
        flush_timeout_ms=2000,
        flush_retry_attempts=1,
        flush_retry_delay_ms=100,
    ),
}


def get_tracing_settings(profile: Optional[str] = None, **overrides: Any) -> TracingSettings:
    """
    Get tracing settings from a named profile.

    Args:
        profile: Profile name (default, production, debug). Unknown names fall
            back to ``default``.
        **overrides: Field overrides applied on top of the profile

    Returns:
        A validated TracingSettings instance

    Examples:
        settings = get_tracing_settings("production", api_key=key, workspace_name="ikpa")
    """
    base = TRACING_PROFILES.get(profile or "default", TRACING_PROFILES["default"])
    if not overrides:
        return base
    # Re-validate so overrides obey the same constraints
    return TracingSettings(**{**base.model_dump(), **overrides})
