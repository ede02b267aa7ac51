"""
Backend Configuration Module

Provides settings for the tracing layer (collector credentials, sampling, flush).
"""

from .tracing_settings import (
    DEFAULT_API_URL,
    DEFAULT_PROJECT_NAME,
    TRACING_PROFILES,
    TracingSettings,
    get_tracing_settings,
)

__all__ = [
    "TracingSettings",
    "TRACING_PROFILES",
    "get_tracing_settings",
    "DEFAULT_API_URL",
    "DEFAULT_PROJECT_NAME",
]
