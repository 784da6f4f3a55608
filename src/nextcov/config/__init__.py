"""Config module exports."""

from nextcov.config.loader import load_config
from nextcov.config.models import (
    LoggingConfig,
    LogOutputConfig,
    MergerConfig,
    NextcovConfig,
    Watermarks,
)

__all__ = [
    "load_config",
    "LoggingConfig",
    "LogOutputConfig",
    "MergerConfig",
    "NextcovConfig",
    "Watermarks",
]
