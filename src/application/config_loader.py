"""
Configuration Loader - Handles IO operations for configuration management.

This module is responsible for loading and saving configuration from/to
various sources (YAML files, environment variables) while keeping the
ScannerConfig and ApplicationConfig classes focused on data representation
and validation.
"""

import os
from typing import Any

import yaml

from ..domain.value_objects.market_context import AssetClass
from .config import (
    ApplicationConfig,
    Environment,
    LoggingConfig,
    RateLimitScope,
    ScannerConfig,
    UniversalFilters,
)
from .exceptions_application import (
    ConfigurationLoadError,
    ScannerConfigurationError,
)


class ConfigLoader:
    """Handles loading and saving of configuration from various sources."""

    @classmethod
    def from_env(cls) -> ApplicationConfig:
        """
        Create configuration from environment variables.

        Returns:
            ApplicationConfig: Configuration loaded from environment
        """
        env_str = os.getenv("ENVIRONMENT", "development")
        try:
            environment = Environment(env_str)
        except ValueError:
            raise ScannerConfigurationError("environment", env_str, "unknown environment")

        return ApplicationConfig(
            environment=environment,
            scanner=ScannerConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def from_yaml(cls, path: str) -> ApplicationConfig:
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            ApplicationConfig: Validated configuration loaded from YAML file

        Raises:
            ConfigurationLoadError: If the file cannot be read or parsed
            ScannerConfigurationError: If a value is invalid
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationLoadError(path, str(e)) from e
        except yaml.YAMLError as e:
            raise ConfigurationLoadError(path, f"invalid YAML: {e}") from e

        config = ApplicationConfig()

        # Handle empty or null YAML files
        if not data:
            return config
        if not isinstance(data, dict):
            raise ConfigurationLoadError(path, "top level must be a mapping")

        if "environment" in data:
            try:
                config.environment = Environment(data["environment"])
            except ValueError:
                raise ScannerConfigurationError(
                    "environment", data["environment"], "unknown environment"
                )

        if "scanner" in data:
            config.scanner = cls.scanner_from_dict(data["scanner"] or {})

        if "logging" in data:
            log_data = data["logging"] or {}
            config.logging = LoggingConfig(
                level=log_data.get("level", config.logging.level),
                json_format=log_data.get("json_format", config.logging.json_format),
                file=log_data.get("file", config.logging.file),
            )

        config.validate()
        return config

    @classmethod
    def scanner_from_dict(cls, data: dict[str, Any]) -> ScannerConfig:
        """
        Build a ScannerConfig from its ``to_dict`` form.

        ``profile: optimized`` starts from the optimized preset; every other
        key overrides the starting point.
        """
        base = ScannerConfig.optimized() if data.get("profile") == "optimized" else ScannerConfig()

        try:
            default_thresholds = base.default_thresholds
            if "default_thresholds" in data:
                default_thresholds = default_thresholds.merged(data["default_thresholds"])

            asset_class_thresholds = {
                asset_class: dict(overrides)
                for asset_class, overrides in base.asset_class_thresholds.items()
            }
            for key, values in (data.get("asset_class_thresholds") or {}).items():
                asset_class = AssetClass(str(key).upper())
                asset_class_thresholds.setdefault(asset_class, {}).update(values or {})

            opportunity_type_thresholds = {
                **{k: dict(v) for k, v in base.opportunity_type_thresholds.items()},
                **{k: dict(v) for k, v in (data.get("opportunity_type_thresholds") or {}).items()},
            }

            filter_data = data.get("filters") or {}
            filters = UniversalFilters(
                market_hours_only=filter_data.get(
                    "market_hours_only", base.filters.market_hours_only
                ),
                min_rvol=filter_data.get("min_rvol", base.filters.min_rvol),
                max_spread=filter_data.get("max_spread", base.filters.max_spread),
                blacklist=frozenset(filter_data.get("blacklist", base.filters.blacklist)),
                require_minimum_liquidity=filter_data.get(
                    "require_minimum_liquidity", base.filters.require_minimum_liquidity
                ),
                min_avg_volume=filter_data.get("min_avg_volume", base.filters.min_avg_volume),
            )

            config = ScannerConfig(
                default_thresholds=default_thresholds,
                asset_class_thresholds=asset_class_thresholds,
                opportunity_type_thresholds=opportunity_type_thresholds,
                filters=filters,
                rate_limit_scope=RateLimitScope(
                    data.get("rate_limit_scope", base.rate_limit_scope.value)
                ),
                bar_interval_minutes=data.get("bar_interval_minutes", base.bar_interval_minutes),
                signal_ttl_minutes=data.get("signal_ttl_minutes", base.signal_ttl_minutes),
                detector_version=data.get("detector_version", base.detector_version),
                use_adaptive_thresholds=data.get(
                    "use_adaptive_thresholds", base.use_adaptive_thresholds
                ),
                max_concurrent_scans=data.get("max_concurrent_scans", base.max_concurrent_scans),
            )
        except (TypeError, ValueError) as e:
            raise ScannerConfigurationError("scanner", data, str(e)) from e

        config.validate()
        return config

    @classmethod
    def to_yaml(cls, config: ApplicationConfig) -> str:
        """
        Convert configuration to YAML string.

        Args:
            config: Configuration to convert

        Returns:
            str: YAML representation of configuration
        """
        return yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def save_to_yaml(cls, config: ApplicationConfig, path: str) -> None:
        """
        Save configuration to YAML file.

        Args:
            config: Configuration to save
            path: Path to save YAML file
        """
        with open(path, "w") as f:
            f.write(cls.to_yaml(config))

