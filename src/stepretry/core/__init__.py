"""Core primitives shared by every stepretry module: errors, logging, settings."""

from stepretry.core.errors import (
    ConfigurationError,
    ErrorClass,
    ErrorClassifier,
    ExecutionCancelled,
    PolicyNotFoundError,
    StepError,
    StepRetryError,
)
from stepretry.core.logging import LogContext, configure_logging, get_logger
from stepretry.core.settings import StepRetrySettings, load_settings

__all__ = [
    "ConfigurationError",
    "ErrorClass",
    "ErrorClassifier",
    "ExecutionCancelled",
    "LogContext",
    "PolicyNotFoundError",
    "StepError",
    "StepRetryError",
    "StepRetrySettings",
    "configure_logging",
    "get_logger",
    "load_settings",
]
