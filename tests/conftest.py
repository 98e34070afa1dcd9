"""Global pytest configuration and fixtures."""

# Standard library imports
import random
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Load test environment variables
from dotenv import load_dotenv

test_env_path = Path(__file__).parent.parent / ".env.test"
if test_env_path.exists():
    load_dotenv(test_env_path, override=True)

# Third-party imports
import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Local imports
from src.application.config import ScannerConfig, SignalThresholds, UniversalFilters
from src.application.services.composite_scanner import CompositeScanner
from src.domain.entities.feature_snapshot import FeatureSnapshot
from src.domain.services.opportunity import (
    DetectorRegistry,
    OpportunityDetector,
    ScoreFactor,
    should_run_detector,
)
from src.domain.services.signal_deduplication import DeduplicationStore
from src.domain.value_objects.market_context import ALL_ASSET_CLASSES, Direction

# Tuesday 2024-03-12 10:30 America/New_York (mid-morning window)
REGULAR_HOURS_TIME = datetime(2024, 3, 12, 14, 30, tzinfo=UTC)
# Saturday 2024-03-16 12:00 America/New_York
WEEKEND_TIME = datetime(2024, 3, 16, 16, 0, tzinfo=UTC)

TEST_SETUP_FLAG = "test_setup"


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def base_payload(symbol: str = "AAPL", timestamp: datetime = REGULAR_HOURS_TIME) -> dict[str, Any]:
    """Clean regular-hours payload that passes the default universal filters."""
    return {
        "symbol": symbol,
        "timestamp": timestamp.isoformat(),
        "price": {"current": 100.5, "open": 99.8, "high": 100.9, "low": 99.5, "prevClose": 99.0},
        "volume": {"current": 1_200_000, "avg": 1_000_000, "relativeToAvg": 1.2},
        "vwap": {"value": 100.0},
        "rsi": {"14": 55.0},
        "ema": {"8": 100.3, "21": 100.0, "50": 99.0},
        "atr": {"14": 1.0},
        "session": {"minutesSinceOpen": 60, "isRegularHours": True},
        "pattern": {},
        "spreadPct": 0.05,
    }


@pytest.fixture
def make_snapshot() -> Callable[..., FeatureSnapshot]:
    """Factory for snapshots built from the clean payload plus nested overrides."""

    def factory(
        symbol: str = "AAPL",
        timestamp: datetime = REGULAR_HOURS_TIME,
        **overrides: Any,
    ) -> FeatureSnapshot:
        return FeatureSnapshot.from_dict(_merge(base_payload(symbol, timestamp), overrides))

    return factory


def random_payload(rng: random.Random, symbol: str) -> dict[str, Any]:
    """Random, sometimes sparse, snapshot payload for property tests."""

    def maybe(value: Any, probability: float = 0.85) -> Any:
        return value if rng.random() < probability else None

    price = rng.uniform(5, 5000)
    vwap = price * (1 + rng.uniform(-0.03, 0.03))
    flags = (
        "breakout_bullish",
        "breakout_bearish",
        "near_orb_high",
        "near_orb_low",
        "near_swing_high",
        "near_swing_low",
        "patience_candle",
    )
    pattern: dict[str, Any] = {flag: rng.random() < 0.3 for flag in flags}
    pattern["market_regime"] = rng.choice(["trending", "ranging", "choppy", "volatile", None])
    pattern["vix_level"] = rng.choice(["low", "medium", "high", "extreme", None])
    pattern["orb_high"] = maybe(price * (1 + rng.uniform(0, 0.01)))
    pattern["orb_low"] = maybe(price * (1 - rng.uniform(0, 0.01)))

    return {
        "symbol": symbol,
        "timestamp": (REGULAR_HOURS_TIME.timestamp() + rng.randint(-3, 3) * 3600),
        "price": {
            "current": maybe(price, 0.95),
            "prevClose": maybe(price * rng.uniform(0.95, 1.05)),
        },
        "volume": {
            "current": maybe(rng.uniform(1e4, 5e6)),
            "avg": maybe(rng.uniform(1e4, 5e6)),
            "relativeToAvg": maybe(rng.uniform(0, 5)),
        },
        "vwap": {"value": maybe(vwap)},
        "rsi": {"14": maybe(rng.uniform(0, 100))},
        "ema": {
            "8": maybe(price * (1 + rng.uniform(-0.01, 0.01))),
            "21": maybe(price * (1 + rng.uniform(-0.02, 0.02))),
        },
        "atr": {"14": maybe(price * rng.uniform(0.001, 0.04))},
        "session": {
            "minutesSinceOpen": maybe(rng.uniform(-60, 420)),
            "isRegularHours": rng.choice([True, False, None]),
        },
        "pattern": pattern,
        "flow": maybe(
            {
                "flowScore": rng.uniform(0, 100),
                "flowBias": rng.choice(["bullish", "bearish", "neutral"]),
                "sweepCount": rng.randint(0, 20),
                "blockCount": rng.randint(0, 10),
                "buyPressure": rng.uniform(0, 100),
            },
            0.5,
        ),
        "spreadPct": maybe(rng.uniform(0, 1)),
    }


@pytest.fixture
def random_snapshots() -> Callable[[int, int, str], list[FeatureSnapshot]]:
    """Seeded random snapshot generator."""

    def generate(seed: int, count: int, symbol: str = "AAPL") -> list[FeatureSnapshot]:
        rng = random.Random(seed)
        return [FeatureSnapshot.from_dict(random_payload(rng, symbol)) for _ in range(count)]

    return generate


def make_test_detector(
    detector_type: str = "test_breakout",
    score: float = 90.0,
    direction: Direction = Direction.LONG,
    flag: str = TEST_SETUP_FLAG,
) -> OpportunityDetector:
    """Detector that fires on a pattern flag and scores a constant."""
    return OpportunityDetector(
        type=detector_type,
        direction=direction,
        asset_classes=ALL_ASSET_CLASSES,
        gate=lambda features, options_data, mode: (
            should_run_detector(features, mode) and features.pattern_flag(flag)
        ),
        score_factors=(
            ScoreFactor("setup_quality", 0.6, lambda features, options_data: score),
            ScoreFactor("confirmation", 0.4, lambda features, options_data: score),
        ),
    )


@pytest.fixture
def detector_factory() -> Callable[..., OpportunityDetector]:
    return make_test_detector


@pytest.fixture
def test_detector() -> OpportunityDetector:
    return make_test_detector()


@pytest.fixture
def regular_hours_time() -> datetime:
    return REGULAR_HOURS_TIME


@pytest.fixture
def weekend_time() -> datetime:
    return WEEKEND_TIME


@pytest.fixture
def lenient_config() -> ScannerConfig:
    """Default thresholds everywhere, no asset-class tightening."""
    thresholds = SignalThresholds(
        min_base_score=70,
        min_style_score=75,
        min_risk_reward=1.5,
        max_signals_per_symbol_per_hour=2,
        cooldown_minutes=15,
    )
    return ScannerConfig(
        default_thresholds=thresholds,
        asset_class_thresholds={},
        filters=UniversalFilters(),
    )


@pytest.fixture
def dedup_store() -> DeduplicationStore:
    return DeduplicationStore()


@pytest.fixture
def scanner(lenient_config, test_detector, dedup_store) -> CompositeScanner:
    """Scanner running only the constant-score test detector."""
    return CompositeScanner(
        config=lenient_config,
        registry=DetectorRegistry([test_detector]),
        dedup_store=dedup_store,
    )
