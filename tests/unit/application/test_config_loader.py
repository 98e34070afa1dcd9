"""
Comprehensive unit tests for Configuration Loader.

Tests all configuration loading functionality including:
- Loading from environment variables
- Loading scanner settings from YAML files
- Saving to YAML files
- Reporting malformed sources
"""

import os
from unittest.mock import patch

import pytest
import yaml

from src.application.config import (
    ApplicationConfig,
    Environment,
    RateLimitScope,
    ScannerConfig,
)
from src.application.config_loader import ConfigLoader
from src.application.exceptions_application import (
    ConfigurationLoadError,
    ScannerConfigurationError,
)
from src.domain.value_objects.market_context import AssetClass


def _write(tmp_path, content, name="scanner.yaml"):
    path = tmp_path / name
    path.write_text(content)
    return str(path)


class TestConfigLoaderFromEnv:
    """Test loading configuration from environment variables."""

    @patch.dict(os.environ, clear=True)
    def test_from_env_default_values(self):
        """Test loading with default values when no env vars set."""
        config = ConfigLoader.from_env()

        assert config.environment == Environment.DEVELOPMENT
        assert config.scanner == ScannerConfig()
        assert config.logging.level == "INFO"

    @patch.dict(
        os.environ,
        {
            "ENVIRONMENT": "production",
            "SCANNER_MIN_BASE_SCORE": "78",
            "SCANNER_BLACKLIST": "GME",
            "LOG_LEVEL": "ERROR",
        },
        clear=True,
    )
    def test_from_env_custom_values(self):
        """Test loading with custom environment variables."""
        config = ConfigLoader.from_env()

        assert config.environment == Environment.PRODUCTION
        assert config.scanner.default_thresholds.min_base_score == 78
        assert config.scanner.filters.blacklist == {"GME"}
        assert config.logging.level == "ERROR"

    @patch.dict(os.environ, {"ENVIRONMENT": "qa"}, clear=True)
    def test_from_env_unknown_environment(self):
        """Test an unknown environment name is rejected."""
        with pytest.raises(ScannerConfigurationError) as exc_info:
            ConfigLoader.from_env()
        assert exc_info.value.field == "environment"


class TestConfigLoaderFromYaml:
    """Test loading configuration from YAML files."""

    def test_full_file(self, tmp_path):
        """Test loading every section."""
        path = _write(
            tmp_path,
            """
environment: staging
scanner:
  default_thresholds:
    min_base_score: 72
  asset_class_thresholds:
    index:
      min_style_score: 85
  opportunity_type_thresholds:
    breakout_bullish:
      cooldown_minutes: 30
  filters:
    blacklist: [gme, amc]
    max_spread: 0.004
  rate_limit_scope: symbol
  use_adaptive_thresholds: true
logging:
  level: DEBUG
  json_format: false
""",
        )

        config = ConfigLoader.from_yaml(path)
        scanner = config.scanner

        assert config.environment == Environment.STAGING
        assert scanner.default_thresholds.min_base_score == 72
        assert scanner.resolve_thresholds(AssetClass.INDEX).min_style_score == 85
        assert scanner.resolve_thresholds(AssetClass.INDEX).min_base_score == 75
        assert scanner.resolve_thresholds(AssetClass.STOCK).min_base_score == 72
        breakout = scanner.resolve_thresholds(AssetClass.STOCK, "breakout_bullish")
        assert breakout.cooldown_minutes == 30
        assert scanner.filters.blacklist == {"GME", "AMC"}
        assert scanner.filters.max_spread == 0.004
        assert scanner.filters.min_rvol == 0.5
        assert scanner.rate_limit_scope is RateLimitScope.SYMBOL
        assert scanner.use_adaptive_thresholds is True
        assert config.logging.level == "DEBUG"
        assert config.logging.json_format is False

    def test_optimized_profile(self, tmp_path):
        """Test a file can start from the optimized preset."""
        path = _write(
            tmp_path,
            """
scanner:
  profile: optimized
  opportunity_type_thresholds:
    eod_pin_setup:
      cooldown_minutes: 90
""",
        )

        scanner = ConfigLoader.from_yaml(path).scanner

        assert scanner.default_thresholds.min_base_score == 80
        assert scanner.opportunity_type_thresholds["eod_pin_setup"] == {"cooldown_minutes": 90}
        assert "gamma_flip_bullish" in scanner.opportunity_type_thresholds

    def test_empty_file(self, tmp_path):
        """Test an empty file yields defaults."""
        config = ConfigLoader.from_yaml(_write(tmp_path, ""))

        assert config.scanner == ScannerConfig()

    def test_missing_file(self, tmp_path):
        """Test a missing file raises a load error."""
        with pytest.raises(ConfigurationLoadError) as exc_info:
            ConfigLoader.from_yaml(str(tmp_path / "missing.yaml"))
        assert exc_info.value.source.endswith("missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML raises a load error."""
        with pytest.raises(ConfigurationLoadError, match="invalid YAML"):
            ConfigLoader.from_yaml(_write(tmp_path, "scanner: [unclosed"))

    def test_non_mapping_top_level(self, tmp_path):
        """Test a list at the top level is rejected."""
        with pytest.raises(ConfigurationLoadError, match="must be a mapping"):
            ConfigLoader.from_yaml(_write(tmp_path, "- a\n- b\n"))

    def test_invalid_threshold_value(self, tmp_path):
        """Test out-of-range values fail validation with their field path."""
        path = _write(tmp_path, "scanner:\n  default_thresholds:\n    min_base_score: 140\n")

        with pytest.raises(ScannerConfigurationError) as exc_info:
            ConfigLoader.from_yaml(path)
        assert exc_info.value.field == "default_thresholds.min_base_score"

    def test_unknown_threshold_field(self, tmp_path):
        """Test unknown threshold keys are reported."""
        path = _write(tmp_path, "scanner:\n  default_thresholds:\n    min_score: 70\n")

        with pytest.raises(ScannerConfigurationError):
            ConfigLoader.from_yaml(path)

    def test_unknown_asset_class(self, tmp_path):
        """Test unknown asset classes are reported."""
        path = _write(
            tmp_path, "scanner:\n  asset_class_thresholds:\n    crypto:\n      min_base_score: 70\n"
        )

        with pytest.raises(ScannerConfigurationError):
            ConfigLoader.from_yaml(path)

    def test_unknown_environment(self, tmp_path):
        """Test unknown environments are reported."""
        with pytest.raises(ScannerConfigurationError):
            ConfigLoader.from_yaml(_write(tmp_path, "environment: qa\n"))


class TestConfigLoaderSave:
    """Test saving configuration."""

    def test_to_yaml(self):
        """Test YAML rendering of the default configuration."""
        data = yaml.safe_load(ConfigLoader.to_yaml(ApplicationConfig()))

        assert data["environment"] == "development"
        assert data["scanner"]["default_thresholds"]["min_base_score"] == 70.0
        assert data["scanner"]["asset_class_thresholds"]["INDEX"]["min_base_score"] == 75.0
        assert "min_base_score" not in data["scanner"]["asset_class_thresholds"]["STOCK"]

    def test_save_and_reload(self, tmp_path):
        """Test a saved configuration loads back unchanged."""
        original = ApplicationConfig(
            environment=Environment.TESTING,
            scanner=ScannerConfig.optimized().merged(rate_limit_scope=RateLimitScope.SYMBOL),
        )
        path = str(tmp_path / "saved.yaml")

        ConfigLoader.save_to_yaml(original, path)
        loaded = ConfigLoader.from_yaml(path)

        assert loaded.environment == Environment.TESTING
        assert loaded.scanner == original.scanner
        assert loaded.logging == original.logging
