"""
Application Layer - Scanner Orchestration and Configuration

This layer contains:
- Services: The composite scanner that drives detectors, thresholds and dedup
- Config: Scanner thresholds, universal filters and runtime settings
- Exceptions: Configuration errors surfaced at setup or update time

Depends on domain layer, orchestrates opportunity detection.
"""

from .config import (
    ApplicationConfig,
    LoggingConfig,
    RateLimitScope,
    ScannerConfig,
    SignalThresholds,
    UniversalFilters,
    get_config,
    reset_config,
    set_config,
)
from .exceptions_application import (
    ApplicationException,
    ConfigurationException,
    ConfigurationLoadError,
    ScannerConfigurationError,
)
from .services import CompositeScanner

__all__ = [
    # Services
    "CompositeScanner",
    # Configuration
    "ApplicationConfig",
    "LoggingConfig",
    "RateLimitScope",
    "ScannerConfig",
    "SignalThresholds",
    "UniversalFilters",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "ApplicationException",
    "ConfigurationException",
    "ConfigurationLoadError",
    "ScannerConfigurationError",
]
