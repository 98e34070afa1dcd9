"""
Adaptive Thresholds Service - Context-sensitive minimum score thresholds.

Combines three context layers into one set of minimum thresholds:

- Time of day: momentum windows (opening drive, power hour) lower the bar,
  lunch chop and extended hours raise it
- VIX level: calm markets relax thresholds, stressed markets tighten them
  and shrink position size
- Market regime x strategy category: each strategy family has a regime
  floor and may be disabled outright (breakouts in a range, for example)

The scanner applies the stricter of these thresholds and the static
per-asset-class thresholds from its config.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from .market_hours_service import MarketHoursService, TradingWindow
from .opportunity.detector import StrategyCategory, categorize_strategy

logger = logging.getLogger(__name__)


class VixLevel(Enum):
    """VIX classification supplied by the feature builder."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"

    @classmethod
    def parse(cls, value: str | None) -> "VixLevel":
        """Parse a builder label; unknown or missing labels are MEDIUM."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


class MarketRegime(Enum):
    """Broad market regime supplied by the feature builder."""

    TRENDING = "trending"
    RANGING = "ranging"
    CHOPPY = "choppy"
    VOLATILE = "volatile"

    @classmethod
    def parse(cls, value: str | None) -> "MarketRegime":
        """Parse a builder label; unknown or missing labels are TRENDING."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.TRENDING


@dataclass(frozen=True)
class WindowThresholds:
    """Thresholds for one intraday trading window."""

    label: str
    min_base: float
    min_style: float
    min_rr: float
    size_multiplier: float


@dataclass(frozen=True)
class VixAdjustment:
    """Additive threshold adjustments and size multiplier for a VIX level."""

    min_base: float
    min_style: float
    min_rr: float
    size_multiplier: float


@dataclass(frozen=True)
class RegimeThreshold:
    """Regime floor for one strategy category."""

    min_base: float
    min_rr: float
    enabled: bool
    notes: str


TIME_WINDOW_THRESHOLDS: dict[TradingWindow, WindowThresholds] = {
    TradingWindow.PRE_MARKET: WindowThresholds("Pre-Market", 80, 82, 2.0, 0.5),
    TradingWindow.OPENING_DRIVE: WindowThresholds("Opening Drive", 65, 70, 1.2, 1.0),
    TradingWindow.MID_MORNING: WindowThresholds("Mid-Morning", 72, 75, 1.5, 1.0),
    TradingWindow.LATE_MORNING: WindowThresholds("Late Morning", 75, 78, 1.6, 0.9),
    TradingWindow.LUNCH_CHOP: WindowThresholds("Lunch Chop", 85, 88, 2.2, 0.6),
    TradingWindow.EARLY_AFTERNOON: WindowThresholds("Early Afternoon", 72, 75, 1.5, 0.9),
    TradingWindow.AFTERNOON: WindowThresholds("Afternoon", 70, 73, 1.4, 1.0),
    TradingWindow.POWER_HOUR: WindowThresholds("Power Hour", 68, 72, 1.3, 1.1),
    TradingWindow.AFTER_HOURS: WindowThresholds("After Hours", 85, 88, 2.5, 0.3),
}

# Used on weekends, holidays and overnight
OUTSIDE_HOURS_THRESHOLDS = WindowThresholds("After Hours", 75, 78, 1.5, 0.5)

VIX_ADJUSTMENTS: dict[VixLevel, VixAdjustment] = {
    VixLevel.LOW: VixAdjustment(-5, -3, -0.2, 1.2),
    VixLevel.MEDIUM: VixAdjustment(0, 0, 0, 1.0),
    VixLevel.HIGH: VixAdjustment(5, 5, 0.3, 0.7),
    VixLevel.EXTREME: VixAdjustment(15, 12, 0.7, 0.4),
}

_T = RegimeThreshold

REGIME_THRESHOLDS: dict[MarketRegime, dict[StrategyCategory, RegimeThreshold]] = {
    MarketRegime.TRENDING: {
        StrategyCategory.BREAKOUT: _T(65, 1.3, True, "Breakouts work well in trends"),
        StrategyCategory.MEAN_REVERSION: _T(
            85, 2.0, False, "Fighting the trend - require an extreme setup"
        ),
        StrategyCategory.TREND_CONTINUATION: _T(
            60, 1.2, True, "Best strategy for trending markets"
        ),
        StrategyCategory.GAMMA: _T(70, 1.5, True, "Gamma plays can work with the trend"),
        StrategyCategory.REVERSAL: _T(88, 2.2, False, "Reversals in trends are counter-trend"),
        StrategyCategory.ALL: _T(70, 1.5, True, "Generic trending-market floor"),
    },
    MarketRegime.RANGING: {
        StrategyCategory.BREAKOUT: _T(85, 2.0, False, "Most breakouts fail inside a range"),
        StrategyCategory.MEAN_REVERSION: _T(65, 1.3, True, "Mean reversion is the range play"),
        StrategyCategory.TREND_CONTINUATION: _T(80, 1.8, False, "No trend to continue"),
        StrategyCategory.GAMMA: _T(72, 1.5, True, "Gamma pinning works well in ranges"),
        StrategyCategory.REVERSAL: _T(70, 1.4, True, "Range reversals at extremes work well"),
        StrategyCategory.ALL: _T(72, 1.5, True, "Generic ranging-market floor"),
    },
    MarketRegime.CHOPPY: {
        StrategyCategory.BREAKOUT: _T(92, 2.5, False, "Choppy markets produce false breakouts"),
        StrategyCategory.MEAN_REVERSION: _T(78, 1.5, True, "Works with extra confirmation"),
        StrategyCategory.TREND_CONTINUATION: _T(88, 2.2, False, "No trend in chop"),
        StrategyCategory.GAMMA: _T(82, 1.8, True, "Gamma plays need wider stops in chop"),
        StrategyCategory.REVERSAL: _T(75, 1.5, True, "Reversals at chop extremes can work"),
        StrategyCategory.ALL: _T(82, 1.8, True, "Generic choppy-market floor"),
    },
    MarketRegime.VOLATILE: {
        StrategyCategory.BREAKOUT: _T(85, 2.0, True, "Breakouts need wider stops"),
        StrategyCategory.MEAN_REVERSION: _T(80, 1.8, True, "Extreme moves often revert"),
        StrategyCategory.TREND_CONTINUATION: _T(82, 2.0, True, "Ride volatility but size down"),
        StrategyCategory.GAMMA: _T(78, 1.6, True, "Gamma squeezes thrive on volatility"),
        StrategyCategory.REVERSAL: _T(72, 1.4, True, "Volatility creates reversal setups"),
        StrategyCategory.ALL: _T(78, 1.6, True, "Generic volatile-market floor"),
    },
}

DISABLED_STRATEGY_PENALTY = 10
VERY_HIGH_BASE_THRESHOLD = 85
LOW_SIZE_MULTIPLIER = 0.5


@dataclass(frozen=True)
class AdaptiveThresholdResult:
    """Adaptive thresholds for one detector at one instant, with their provenance."""

    min_base: float
    min_style: float
    min_rr: float
    size_multiplier: float
    time_window: TradingWindow
    time_window_label: str
    vix_level: VixLevel
    regime: MarketRegime
    strategy_category: StrategyCategory
    strategy_enabled: bool
    strategy_notes: str
    warnings: tuple[str, ...] = ()
    breakdown: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(self, "breakdown", MappingProxyType(dict(self.breakdown)))

    def describe(self) -> str:
        return (
            f"{self.time_window_label}, VIX: {self.vix_level.value}, "
            f"Regime: {self.regime.value}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_base": self.min_base,
            "min_style": self.min_style,
            "min_rr": self.min_rr,
            "size_multiplier": self.size_multiplier,
            "time_window": self.time_window.value,
            "vix_level": self.vix_level.value,
            "regime": self.regime.value,
            "strategy_category": self.strategy_category.value,
            "strategy_enabled": self.strategy_enabled,
            "warnings": list(self.warnings),
        }


class AdaptiveThresholdService:
    """
    Resolves adaptive thresholds from time of day, VIX level and regime.

    Stateless apart from the market clock; safe to share between threads.
    """

    def __init__(self, market_hours: MarketHoursService | None = None) -> None:
        self.market_hours = market_hours if market_hours is not None else MarketHoursService()

    def get_time_window(self, instant: datetime) -> tuple[TradingWindow, WindowThresholds | None]:
        """Trading window for an instant and its thresholds (None outside all windows)."""
        window = self.market_hours.get_trading_window(instant)
        return window, TIME_WINDOW_THRESHOLDS.get(window)

    def get_adaptive_thresholds(
        self,
        instant: datetime,
        vix_level: VixLevel | str | None,
        regime: MarketRegime | str | None,
        detector_type: str,
        category: StrategyCategory | None = None,
    ) -> AdaptiveThresholdResult:
        """
        Combine time-of-day, VIX and regime context into final thresholds.

        Args:
            instant: Time the signal is evaluated at
            vix_level: VIX classification (label or enum)
            regime: Market regime (label or enum)
            detector_type: Detector type; used to infer the strategy category
            category: Explicit strategy category, overriding inference

        Returns:
            AdaptiveThresholdResult with rounded thresholds and warnings
        """
        vix = vix_level if isinstance(vix_level, VixLevel) else VixLevel.parse(vix_level)
        market_regime = regime if isinstance(regime, MarketRegime) else MarketRegime.parse(regime)
        strategy_category = category or categorize_strategy(detector_type)
        warnings: list[str] = []

        window, window_thresholds = self.get_time_window(instant)
        if window_thresholds is None:
            window_thresholds = OUTSIDE_HOURS_THRESHOLDS
            window = TradingWindow.AFTER_HOURS
            warnings.append("Outside regular trading hours - using conservative defaults")

        vix_adjustment = VIX_ADJUSTMENTS[vix]
        regime_threshold = REGIME_THRESHOLDS[market_regime].get(strategy_category)
        enabled = regime_threshold.enabled if regime_threshold else True
        notes = regime_threshold.notes if regime_threshold else ""

        if not enabled:
            logger.debug(
                "%s disabled in %s regime for %s",
                strategy_category.value,
                market_regime.value,
                detector_type,
            )
            warnings.append(
                f"{strategy_category.value} strategy not recommended in "
                f"{market_regime.value} regime: {notes}"
            )

        if regime_threshold is not None:
            base_from_regime = regime_threshold.min_base
            rr_from_regime = regime_threshold.min_rr
        else:
            base_from_regime = window_thresholds.min_base
            rr_from_regime = window_thresholds.min_rr

        time_vix_base = window_thresholds.min_base + vix_adjustment.min_base
        regime_floor = base_from_regime if enabled else base_from_regime + DISABLED_STRATEGY_PENALTY
        min_base = max(time_vix_base, regime_floor)
        min_style = window_thresholds.min_style + vix_adjustment.min_style
        min_rr = max(window_thresholds.min_rr + vix_adjustment.min_rr, rr_from_regime)
        size_multiplier = window_thresholds.size_multiplier * vix_adjustment.size_multiplier

        if min_base > VERY_HIGH_BASE_THRESHOLD:
            warnings.append("Very high threshold - only best-in-class setups will qualify")
        if size_multiplier < LOW_SIZE_MULTIPLIER:
            warnings.append("Low position size recommended - high volatility environment")

        return AdaptiveThresholdResult(
            min_base=round(min_base),
            min_style=round(min_style),
            min_rr=round(min_rr, 1),
            size_multiplier=round(size_multiplier, 2),
            time_window=window,
            time_window_label=window_thresholds.label,
            vix_level=vix,
            regime=market_regime,
            strategy_category=strategy_category,
            strategy_enabled=enabled,
            strategy_notes=notes,
            warnings=tuple(warnings),
            breakdown={
                "base_from_time": window_thresholds.min_base,
                "base_from_vix": vix_adjustment.min_base,
                "base_from_regime": base_from_regime,
                "style_from_time": window_thresholds.min_style,
                "style_from_vix": vix_adjustment.min_style,
                "rr_from_time": window_thresholds.min_rr,
                "rr_from_vix": vix_adjustment.min_rr,
                "rr_from_regime": rr_from_regime,
                "size_from_time": window_thresholds.size_multiplier,
                "size_from_vix": vix_adjustment.size_multiplier,
            },
        )


def passes_adaptive_thresholds(
    base_score: float,
    style_score: float,
    risk_reward: float,
    thresholds: AdaptiveThresholdResult,
) -> tuple[bool, str | None]:
    """
    Check a scored detection against adaptive thresholds.

    Returns:
        ``(True, None)`` on pass, otherwise ``(False, reason)``
    """
    if not thresholds.strategy_enabled:
        return False, (
            f"Strategy disabled in {thresholds.regime.value} regime: {thresholds.strategy_notes}"
        )
    if base_score < thresholds.min_base:
        return False, (
            f"Base score {base_score:.1f} < adaptive threshold {thresholds.min_base} "
            f"({thresholds.describe()})"
        )
    if style_score < thresholds.min_style:
        return False, f"Style score {style_score:.1f} < adaptive threshold {thresholds.min_style}"
    if risk_reward < thresholds.min_rr:
        return False, f"Risk/reward {risk_reward:.1f} < adaptive threshold {thresholds.min_rr}"
    return True, None
