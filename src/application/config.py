"""
Application Configuration - Scanner thresholds, filters and runtime settings.

This module provides configuration management for the scanner, including
environment variables, the optimized preset, and threshold resolution by
asset class and detector type.
"""

import math
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..domain.value_objects.market_context import AssetClass
from .exceptions_application import ScannerConfigurationError


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class RateLimitScope(Enum):
    """What the per-hour emission cap counts."""

    DETECTOR = "detector"  # per (symbol, detector_type)
    SYMBOL = "symbol"  # per symbol across all detectors


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str) -> frozenset[str]:
    raw = os.getenv(name, "")
    return frozenset(item.strip().upper() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class UniversalFilters:
    """
    Filters applied to a symbol before any detector runs.

    ``max_spread`` is a fraction of price (0.005 = 0.5%). A filter whose
    input is missing from the snapshot passes.
    """

    market_hours_only: bool = True
    min_rvol: float = 0.5
    max_spread: float = 0.005
    blacklist: frozenset[str] = frozenset()
    require_minimum_liquidity: bool = False
    min_avg_volume: float = 500_000

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "blacklist", frozenset(symbol.upper() for symbol in self.blacklist)
        )

    @classmethod
    def from_env(cls) -> "UniversalFilters":
        """Create filters from environment variables."""
        return cls(
            market_hours_only=_env_bool("SCANNER_MARKET_HOURS_ONLY", "true"),
            min_rvol=float(os.getenv("SCANNER_MIN_RVOL", "0.5")),
            max_spread=float(os.getenv("SCANNER_MAX_SPREAD", "0.005")),
            blacklist=_env_list("SCANNER_BLACKLIST"),
            require_minimum_liquidity=_env_bool("SCANNER_REQUIRE_MIN_LIQUIDITY", "false"),
            min_avg_volume=float(os.getenv("SCANNER_MIN_AVG_VOLUME", "500000")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_hours_only": self.market_hours_only,
            "min_rvol": self.min_rvol,
            "max_spread": self.max_spread,
            "blacklist": sorted(self.blacklist),
            "require_minimum_liquidity": self.require_minimum_liquidity,
            "min_avg_volume": self.min_avg_volume,
        }


@dataclass(frozen=True)
class SignalThresholds:
    """Minimum scores, caps and cooldown applied to each detection."""

    min_base_score: float = 70.0
    min_style_score: float = 75.0
    min_risk_reward: float = 1.5
    max_signals_per_symbol_per_hour: int = 2
    cooldown_minutes: float = 15.0
    weekend_min_base_score: float | None = None
    weekend_min_style_score: float | None = None

    @classmethod
    def from_env(cls) -> "SignalThresholds":
        """Create thresholds from environment variables."""
        weekend_base = os.getenv("SCANNER_WEEKEND_MIN_BASE_SCORE")
        weekend_style = os.getenv("SCANNER_WEEKEND_MIN_STYLE_SCORE")
        return cls(
            min_base_score=float(os.getenv("SCANNER_MIN_BASE_SCORE", "70")),
            min_style_score=float(os.getenv("SCANNER_MIN_STYLE_SCORE", "75")),
            min_risk_reward=float(os.getenv("SCANNER_MIN_RISK_REWARD", "1.5")),
            max_signals_per_symbol_per_hour=int(os.getenv("SCANNER_MAX_SIGNALS_PER_HOUR", "2")),
            cooldown_minutes=float(os.getenv("SCANNER_COOLDOWN_MINUTES", "15")),
            weekend_min_base_score=float(weekend_base) if weekend_base else None,
            weekend_min_style_score=float(weekend_style) if weekend_style else None,
        )

    def merged(self, overrides: Mapping[str, Any] | None) -> "SignalThresholds":
        """Copy with a partial override applied."""
        if not overrides:
            return self
        return replace(self, **dict(overrides))

    def validate(self, path: str = "thresholds") -> None:
        """
        Validate threshold values.

        Raises:
            ScannerConfigurationError: On the first invalid value
        """
        for name in ("min_base_score", "min_style_score"):
            _check_score(f"{path}.{name}", getattr(self, name))
        for name in ("weekend_min_base_score", "weekend_min_style_score"):
            value = getattr(self, name)
            if value is not None:
                _check_score(f"{path}.{name}", value)

        _check_number(f"{path}.min_risk_reward", self.min_risk_reward)
        if self.min_risk_reward < 0:
            raise ScannerConfigurationError(
                f"{path}.min_risk_reward", self.min_risk_reward, "cannot be negative"
            )

        cap = self.max_signals_per_symbol_per_hour
        if isinstance(cap, bool) or not isinstance(cap, int) or cap <= 0:
            raise ScannerConfigurationError(
                f"{path}.max_signals_per_symbol_per_hour", cap, "must be a positive integer"
            )

        _check_number(f"{path}.cooldown_minutes", self.cooldown_minutes)
        if self.cooldown_minutes < 0:
            raise ScannerConfigurationError(
                f"{path}.cooldown_minutes", self.cooldown_minutes, "cannot be negative"
            )

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


THRESHOLD_FIELDS = frozenset(f.name for f in fields(SignalThresholds))


def _check_number(path: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int | float) or not math.isfinite(value):
        raise ScannerConfigurationError(path, value, "must be a finite number")


def _check_score(path: str, value: Any) -> None:
    _check_number(path, value)
    if not 0 <= value <= 100:
        raise ScannerConfigurationError(path, value, "must be between 0 and 100")


# Asset-class entries are partial overrides merged over default_thresholds.
# Index symbols use stricter thresholds than single equities.
DEFAULT_INDEX_OVERRIDES: dict[str, Any] = {
    "min_base_score": 75.0,
    "min_style_score": 80.0,
    "min_risk_reward": 1.8,
    "weekend_min_base_score": 65.0,
    "weekend_min_style_score": 70.0,
}

DEFAULT_EQUITY_OVERRIDES: dict[str, Any] = {
    "weekend_min_base_score": 60.0,
    "weekend_min_style_score": 65.0,
}


def _default_asset_class_thresholds() -> dict[AssetClass, dict[str, Any]]:
    return {
        AssetClass.INDEX: dict(DEFAULT_INDEX_OVERRIDES),
        AssetClass.EQUITY_ETF: dict(DEFAULT_EQUITY_OVERRIDES),
        AssetClass.STOCK: dict(DEFAULT_EQUITY_OVERRIDES),
    }


def _override_values(value: Any) -> dict[str, Any]:
    if isinstance(value, SignalThresholds):
        return value.to_dict()
    return dict(value)


@dataclass(frozen=True)
class ScannerConfig:
    """
    Complete scanner configuration.

    Thresholds resolve default -> asset-class partial override -> per-detector
    partial override, so a field neither override names always comes from
    ``default_thresholds``. An asset-class entry given as a full
    ``SignalThresholds`` is taken as an override of every field. Instances
    are immutable; ``CompositeScanner.update_config`` builds a new one with
    ``merged`` and swaps it in after validation.
    """

    default_thresholds: SignalThresholds = field(default_factory=SignalThresholds)
    asset_class_thresholds: Mapping[AssetClass, Mapping[str, Any]] = field(
        default_factory=_default_asset_class_thresholds
    )
    opportunity_type_thresholds: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    filters: UniversalFilters = field(default_factory=UniversalFilters)
    rate_limit_scope: RateLimitScope = RateLimitScope.DETECTOR
    bar_interval_minutes: int = 5
    signal_ttl_minutes: int = 5
    detector_version: str = "1.0.0"
    use_adaptive_thresholds: bool = False
    max_concurrent_scans: int = 10

    def __post_init__(self) -> None:
        if isinstance(self.rate_limit_scope, str):
            object.__setattr__(self, "rate_limit_scope", RateLimitScope(self.rate_limit_scope))
        object.__setattr__(
            self,
            "asset_class_thresholds",
            MappingProxyType(
                {
                    AssetClass(key): MappingProxyType(_override_values(value))
                    for key, value in self.asset_class_thresholds.items()
                }
            ),
        )
        object.__setattr__(
            self,
            "opportunity_type_thresholds",
            MappingProxyType(
                {
                    str(key): MappingProxyType(dict(value))
                    for key, value in self.opportunity_type_thresholds.items()
                }
            ),
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_thresholds(
        self, asset_class: AssetClass, detector_type: str | None = None
    ) -> SignalThresholds:
        """
        Effective thresholds for a detection.

        Args:
            asset_class: Symbol's asset class
            detector_type: Detector type for the per-detector partial override

        Returns:
            SignalThresholds after applying overrides in order
        """
        thresholds = self.default_thresholds.merged(self.asset_class_thresholds.get(asset_class))
        if detector_type is not None:
            thresholds = thresholds.merged(self.opportunity_type_thresholds.get(detector_type))
        return thresholds

    @property
    def longest_cooldown_minutes(self) -> float:
        """Largest cooldown any detection can be subject to (drives dedup pruning)."""
        cooldowns = [self.default_thresholds.cooldown_minutes]
        for overrides in (
            *self.asset_class_thresholds.values(),
            *self.opportunity_type_thresholds.values(),
        ):
            if "cooldown_minutes" in overrides:
                cooldowns.append(float(overrides["cooldown_minutes"]))
        return max(cooldowns)

    # ------------------------------------------------------------------
    # Validation and updates
    # ------------------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate the configuration.

        Returns:
            True if valid

        Raises:
            ScannerConfigurationError: On the first invalid value
        """
        self.default_thresholds.validate("default_thresholds")
        for asset_class, overrides in self.asset_class_thresholds.items():
            self._validate_overrides(f"asset_class_thresholds.{asset_class.value}", overrides)

        # Unknown detector types are allowed so configs can name detectors
        # ahead of their registration; the values must still be valid.
        for detector_type, overrides in self.opportunity_type_thresholds.items():
            self._validate_overrides(f"opportunity_type_thresholds.{detector_type}", overrides)

        filters = self.filters
        for name in ("min_rvol", "max_spread", "min_avg_volume"):
            value = getattr(filters, name)
            _check_number(f"filters.{name}", value)
            if value < 0:
                raise ScannerConfigurationError(f"filters.{name}", value, "cannot be negative")

        for name in ("bar_interval_minutes", "signal_ttl_minutes", "max_concurrent_scans"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ScannerConfigurationError(name, value, "must be a positive integer")

        if not self.detector_version:
            raise ScannerConfigurationError("detector_version", self.detector_version, "required")

        return True

    def _validate_overrides(self, path: str, overrides: Mapping[str, Any]) -> None:
        unknown = set(overrides) - THRESHOLD_FIELDS
        if unknown:
            raise ScannerConfigurationError(path, sorted(unknown), "unknown threshold fields")
        try:
            merged = self.default_thresholds.merged(overrides)
        except TypeError as e:
            raise ScannerConfigurationError(path, dict(overrides), str(e)) from e
        merged.validate(path)

    def merged(self, **changes: Any) -> "ScannerConfig":
        """
        Copy with top-level fields replaced.

        Raises:
            ScannerConfigurationError: If a field name is unknown
        """
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ScannerConfigurationError(
                "ScannerConfig", sorted(unknown), "unknown configuration fields"
            )
        try:
            return replace(self, **changes)
        except ValueError as e:
            raise ScannerConfigurationError("ScannerConfig", changes, str(e)) from e

    # ------------------------------------------------------------------
    # Presets and serialization
    # ------------------------------------------------------------------

    @classmethod
    def optimized(cls) -> "ScannerConfig":
        """High-accuracy preset: stricter thresholds with tiered per-detector overrides."""
        return cls(
            default_thresholds=OPTIMIZED_DEFAULT_THRESHOLDS,
            asset_class_thresholds={
                AssetClass.INDEX: OPTIMIZED_INDEX_OVERRIDES,
                AssetClass.EQUITY_ETF: OPTIMIZED_EQUITY_OVERRIDES,
                AssetClass.STOCK: OPTIMIZED_EQUITY_OVERRIDES,
            },
            opportunity_type_thresholds=OPTIMIZED_STRATEGY_THRESHOLDS,
            filters=OPTIMIZED_FILTERS,
            detector_version="1.1.0-optimized",
            max_concurrent_scans=10,
        )

    @classmethod
    def from_env(cls) -> "ScannerConfig":
        """Create configuration from environment variables."""
        base = cls.optimized() if os.getenv("SCANNER_PROFILE") == "optimized" else cls()
        changes: dict[str, Any] = {
            "filters": UniversalFilters.from_env(),
            "rate_limit_scope": RateLimitScope(os.getenv("SCANNER_RATE_LIMIT_SCOPE", "detector")),
            "bar_interval_minutes": int(os.getenv("SCANNER_BAR_INTERVAL_MINUTES", "5")),
            "signal_ttl_minutes": int(os.getenv("SCANNER_SIGNAL_TTL_MINUTES", "5")),
            "use_adaptive_thresholds": _env_bool("SCANNER_USE_ADAPTIVE_THRESHOLDS", "false"),
            "max_concurrent_scans": int(os.getenv("SCANNER_MAX_CONCURRENT_SCANS", "10")),
        }
        if os.getenv("SCANNER_MIN_BASE_SCORE"):
            changes["default_thresholds"] = SignalThresholds.from_env()
        if os.getenv("SCANNER_DETECTOR_VERSION"):
            changes["detector_version"] = os.environ["SCANNER_DETECTOR_VERSION"]
        return base.merged(**changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "default_thresholds": self.default_thresholds.to_dict(),
            "asset_class_thresholds": {
                asset_class.value: dict(overrides)
                for asset_class, overrides in self.asset_class_thresholds.items()
            },
            "opportunity_type_thresholds": {
                detector_type: dict(overrides)
                for detector_type, overrides in self.opportunity_type_thresholds.items()
            },
            "filters": self.filters.to_dict(),
            "rate_limit_scope": self.rate_limit_scope.value,
            "bar_interval_minutes": self.bar_interval_minutes,
            "signal_ttl_minutes": self.signal_ttl_minutes,
            "detector_version": self.detector_version,
            "use_adaptive_thresholds": self.use_adaptive_thresholds,
            "max_concurrent_scans": self.max_concurrent_scans,
        }


# ============================================================================
# Optimized preset
# ============================================================================

OPTIMIZED_DEFAULT_THRESHOLDS = SignalThresholds(
    min_base_score=80.0,
    min_style_score=85.0,
    min_risk_reward=2.0,
    max_signals_per_symbol_per_hour=1,
    cooldown_minutes=30.0,
)

OPTIMIZED_INDEX_OVERRIDES: dict[str, Any] = {
    "min_base_score": 85.0,
    "min_style_score": 88.0,
    "min_risk_reward": 2.5,
    "max_signals_per_symbol_per_hour": 2,
    "cooldown_minutes": 20.0,
}

OPTIMIZED_EQUITY_OVERRIDES: dict[str, Any] = {
    "min_base_score": 78.0,
    "min_style_score": 83.0,
}

# Daily-volume based filters are off: intraday snapshots carry no daily averages
OPTIMIZED_FILTERS = UniversalFilters(
    market_hours_only=True,
    min_rvol=0.0,
    max_spread=0.003,
    require_minimum_liquidity=False,
    min_avg_volume=0,
)


def _paired(names: Iterable[str], overrides: dict[str, Any]) -> dict[str, dict[str, Any]]:
    return {name: dict(overrides) for name in names}


OPTIMIZED_STRATEGY_THRESHOLDS: dict[str, dict[str, Any]] = {
    # Tier 1
    **_paired(
        ("breakout_bullish", "breakout_bearish"),
        {"min_base_score": 78, "min_style_score": 82, "min_risk_reward": 2.0},
    ),
    **_paired(
        ("mean_reversion_long", "mean_reversion_short"),
        {"min_base_score": 80, "min_style_score": 85, "min_risk_reward": 2.2},
    ),
    **_paired(
        ("trend_continuation_long", "trend_continuation_short"),
        {"min_base_score": 75, "min_style_score": 80, "min_risk_reward": 2.5},
    ),
    # Tier 2
    **_paired(
        ("gamma_squeeze_bullish", "gamma_squeeze_bearish"),
        {
            "min_base_score": 85,
            "min_style_score": 88,
            "min_risk_reward": 2.5,
            "cooldown_minutes": 45,
        },
    ),
    **_paired(
        ("index_mean_reversion_long", "index_mean_reversion_short"),
        {"min_base_score": 82, "min_style_score": 86, "min_risk_reward": 2.3},
    ),
    **_paired(
        ("power_hour_reversal_bullish", "power_hour_reversal_bearish"),
        {
            "min_base_score": 85,
            "min_style_score": 88,
            "min_risk_reward": 2.0,
            "max_signals_per_symbol_per_hour": 1,
        },
    ),
    # Tier 3
    **_paired(
        ("gamma_flip_bullish", "gamma_flip_bearish"),
        {
            "min_base_score": 90,
            "min_style_score": 92,
            "min_risk_reward": 3.0,
            "max_signals_per_symbol_per_hour": 1,
            "cooldown_minutes": 60,
        },
    ),
    "eod_pin_setup": {
        "min_base_score": 88,
        "min_style_score": 90,
        "min_risk_reward": 2.8,
        "max_signals_per_symbol_per_hour": 1,
        "cooldown_minutes": 120,
    },
    **_paired(
        ("opening_drive_bullish", "opening_drive_bearish"),
        {
            "min_base_score": 85,
            "min_style_score": 88,
            "min_risk_reward": 2.5,
            "max_signals_per_symbol_per_hour": 1,
        },
    ),
}


# ============================================================================
# Application-wide settings
# ============================================================================


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    json_format: bool = True
    file: str | None = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create configuration from environment variables."""
        file_path = os.getenv("LOG_FILE")
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json_format=os.getenv("LOG_FORMAT", "json").lower() == "json",
            file=file_path if file_path else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "json_format": self.json_format,
            "file": self.file,
        }


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    environment: Environment = Environment.DEVELOPMENT
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "environment": self.environment.value,
            "scanner": self.scanner.to_dict(),
            "logging": self.logging.to_dict(),
        }

    def validate(self) -> bool:
        """
        Validate the configuration.

        Returns:
            True if valid, raises exception otherwise
        """
        self.scanner.validate()
        production = self.environment == Environment.PRODUCTION
        if production and not self.scanner.filters.market_hours_only:
            raise ScannerConfigurationError(
                "filters.market_hours_only", False, "must be enabled in production"
            )
        return True


# Global configuration for the external scheduler; the scanner itself is
# always handed its config explicitly.
_config: ApplicationConfig | None = None


def get_config() -> ApplicationConfig:
    """
    Get the application configuration singleton.

    Returns:
        ApplicationConfig: The application configuration
    """
    global _config
    if _config is None:
        from .config_loader import ConfigLoader

        _config = ConfigLoader.from_env()
    return _config


def set_config(config: ApplicationConfig) -> None:
    """
    Set the application configuration.

    Args:
        config: The new configuration
    """
    global _config
    _config = config


def reset_config() -> None:
    """Reset the configuration singleton."""
    global _config
    _config = None
