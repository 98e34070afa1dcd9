"""
Application-level exception hierarchy for the opportunity scanner.

Scans never raise for ordinary rejections (they return filtered results);
these exceptions cover configuration problems that must surface at setup
or ``update_config`` time.
"""

from typing import Any


class ApplicationException(Exception):
    """Base exception for all application-level errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationException(ApplicationException):
    """Base exception for configuration errors."""

    pass


class ScannerConfigurationError(ConfigurationException):
    """
    Raised when a scanner configuration fails validation.

    The offending field path (``default_thresholds.min_base_score``,
    ``opportunity_type_thresholds.breakout_bullish.cooldown_minutes`` ...)
    and value are carried in ``details``.
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        message = f"Invalid scanner configuration for {field}: {reason}"
        super().__init__(message, {"field": field, "value": repr(value), "reason": reason})
        self.field = field
        self.value = value
        self.reason = reason


class ConfigurationLoadError(ConfigurationException):
    """Raised when a configuration source cannot be parsed."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(
            f"Failed to load configuration from {source}: {reason}",
            {"source": source, "reason": reason},
        )
        self.source = source
        self.reason = reason
