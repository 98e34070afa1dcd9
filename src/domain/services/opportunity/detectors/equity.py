"""
Universal equity detectors (single stocks and equity ETFs).

Breakout, mean-reversion and trend-continuation setups in both directions.
"""

from ....entities.feature_snapshot import FeatureSnapshot
from ....entities.options_chain import OptionsChainContext
from ....value_objects.market_context import (
    EQUITY_ASSET_CLASSES,
    AnalysisMode,
    Direction,
)
from ..detector import GateFunction, OpportunityDetector, ScoreFactor, StrategyCategory
from ..factors import (
    breakout_strength,
    divergence_support,
    ema_alignment,
    flow_alignment,
    key_level_proximity,
    mtf_alignment,
    pullback_volume,
    regime_fit,
    relative_volume,
    rsi_extreme,
    rsi_momentum,
    signed_vwap_distance,
    vwap_alignment,
    vwap_stretch,
    within_pct,
)
from ..session_gate import should_run_detector

# Gate cutoffs
BREAKOUT_MIN_RVOL = 1.5
BREAKOUT_RSI_BAND = (50.0, 80.0)
REVERSION_MIN_STRETCH_PCT = 1.0
REVERSION_RSI_EXTREME = 35.0
CONTINUATION_PULLBACK_PCT = 0.5
CONTINUATION_RSI_BAND = (40.0, 65.0)


def _oriented_rsi(features: FeatureSnapshot, direction: Direction) -> float | None:
    """RSI(14) mirrored for shorts so that bullish thresholds apply to both sides."""
    rsi = features.rsi_value("14")
    if rsi is None:
        return None
    return rsi if direction is Direction.LONG else 100 - rsi


# ---------------------------------------------------------------------------
# Breakout
# ---------------------------------------------------------------------------


def _breakout_gate(direction: Direction) -> GateFunction:
    flag = "breakout_bullish" if direction is Direction.LONG else "breakout_bearish"

    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if not should_run_detector(features, mode):
            return False
        if features.current_price is None or not features.pattern_flag(flag):
            return False

        rvol = features.relative_volume
        if rvol is None or rvol < BREAKOUT_MIN_RVOL:
            return False

        distance = signed_vwap_distance(features, direction)
        if distance is None or distance <= 0:
            return False

        rsi = _oriented_rsi(features, direction)
        low, high = BREAKOUT_RSI_BAND
        return rsi is not None and low <= rsi <= high

    return gate


def _breakout_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("breakout_strength", 0.25, breakout_strength(direction)),
        ScoreFactor("volume_surge", 0.25, relative_volume()),
        ScoreFactor("rsi_momentum", 0.15, rsi_momentum(direction)),
        ScoreFactor("vwap_alignment", 0.15, vwap_alignment(direction)),
        ScoreFactor("mtf_alignment", 0.1, mtf_alignment(direction)),
        ScoreFactor(
            "regime",
            0.1,
            regime_fit({"trending": 100, "volatile": 70, "ranging": 35, "choppy": 15}),
        ),
    )


# ---------------------------------------------------------------------------
# Mean reversion
# ---------------------------------------------------------------------------


def _mean_reversion_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if not should_run_detector(features, mode):
            return False
        if features.current_price is None:
            return False

        # Price must be stretched against the trade side of VWAP
        distance = signed_vwap_distance(features, direction)
        if distance is None or -distance < REVERSION_MIN_STRETCH_PCT:
            return False

        rsi = _oriented_rsi(features, direction)
        if rsi is None or rsi > REVERSION_RSI_EXTREME:
            return False

        # Fading a strong trend is left to the reversal detectors
        return features.market_regime != "trending"

    return gate


def _mean_reversion_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("rsi_extreme", 0.3, rsi_extreme(direction)),
        ScoreFactor("vwap_stretch", 0.25, vwap_stretch(direction)),
        ScoreFactor("divergence", 0.15, divergence_support(direction)),
        ScoreFactor("volume", 0.1, relative_volume(((2.0, 90), (1.2, 75), (0.8, 60)), 40)),
        ScoreFactor(
            "regime",
            0.1,
            regime_fit({"ranging": 100, "choppy": 75, "volatile": 60, "trending": 20}),
        ),
        ScoreFactor("key_level", 0.1, key_level_proximity()),
    )


# ---------------------------------------------------------------------------
# Trend continuation
# ---------------------------------------------------------------------------


def _trend_continuation_gate(direction: Direction) -> GateFunction:
    sign = direction.sign

    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if not should_run_detector(features, mode):
            return False
        price = features.current_price
        ema8 = features.ema_value("8")
        ema21 = features.ema_value("21")
        if price is None or ema8 is None or ema21 is None:
            return False

        # EMAs stacked in the trade direction and price still on the right side of the 21
        if (ema8 - ema21) * sign <= 0 or (price - ema21) * sign <= 0:
            return False

        # Pulled back into the 8/21 EMA zone
        if not (
            within_pct(price, ema8, CONTINUATION_PULLBACK_PCT)
            or within_pct(price, ema21, CONTINUATION_PULLBACK_PCT)
        ):
            return False

        distance = signed_vwap_distance(features, direction)
        if distance is not None and distance < 0:
            return False

        rsi = _oriented_rsi(features, direction)
        low, high = CONTINUATION_RSI_BAND
        return rsi is not None and low <= rsi <= high

    return gate


def _trend_continuation_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("ema_alignment", 0.3, ema_alignment(direction)),
        ScoreFactor("pullback_quality", 0.2, key_level_proximity(0.5)),
        ScoreFactor("mtf_alignment", 0.2, mtf_alignment(direction)),
        ScoreFactor("volume", 0.1, pullback_volume()),
        ScoreFactor(
            "regime",
            0.1,
            regime_fit({"trending": 100, "volatile": 60, "ranging": 30, "choppy": 10}),
        ),
        ScoreFactor("flow_alignment", 0.1, flow_alignment(direction)),
    )


def _equity(
    detector_type: str,
    direction: Direction,
    gate: GateFunction,
    factors: tuple[ScoreFactor, ...],
    category: StrategyCategory,
    frequency: str,
    description: str,
) -> OpportunityDetector:
    return OpportunityDetector(
        type=detector_type,
        direction=direction,
        asset_classes=EQUITY_ASSET_CLASSES,
        gate=gate,
        score_factors=factors,
        category=category,
        expected_frequency=frequency,
        tier=1,
        description=description,
    )


EQUITY_DETECTORS: tuple[OpportunityDetector, ...] = (
    _equity(
        "breakout_bullish",
        Direction.LONG,
        _breakout_gate(Direction.LONG),
        _breakout_factors(Direction.LONG),
        StrategyCategory.BREAKOUT,
        "2-4 signals/day",
        "Range/level breakout above VWAP on expanding volume",
    ),
    _equity(
        "breakout_bearish",
        Direction.SHORT,
        _breakout_gate(Direction.SHORT),
        _breakout_factors(Direction.SHORT),
        StrategyCategory.BREAKOUT,
        "2-4 signals/day",
        "Range/level breakdown below VWAP on expanding volume",
    ),
    _equity(
        "mean_reversion_long",
        Direction.LONG,
        _mean_reversion_gate(Direction.LONG),
        _mean_reversion_factors(Direction.LONG),
        StrategyCategory.MEAN_REVERSION,
        "3-5 signals/day",
        "Oversold stretch below VWAP",
    ),
    _equity(
        "mean_reversion_short",
        Direction.SHORT,
        _mean_reversion_gate(Direction.SHORT),
        _mean_reversion_factors(Direction.SHORT),
        StrategyCategory.MEAN_REVERSION,
        "3-5 signals/day",
        "Overbought stretch above VWAP",
    ),
    _equity(
        "trend_continuation_long",
        Direction.LONG,
        _trend_continuation_gate(Direction.LONG),
        _trend_continuation_factors(Direction.LONG),
        StrategyCategory.TREND_CONTINUATION,
        "1-3 signals/day",
        "Pullback to the 8/21 EMA zone in an uptrend",
    ),
    _equity(
        "trend_continuation_short",
        Direction.SHORT,
        _trend_continuation_gate(Direction.SHORT),
        _trend_continuation_factors(Direction.SHORT),
        StrategyCategory.TREND_CONTINUATION,
        "1-3 signals/day",
        "Rally into the 8/21 EMA zone in a downtrend",
    ),
)
