"""
KCU L-T-P detectors (Levels, Trend, Patience).

Setups built around the 8/21 EMA, VWAP ("the King"), the opening range and
the 34/50 EMA cloud. Each scores level confluence, trend strength and the
patience candle first, then volume and session timing.
"""

from ....entities.feature_snapshot import FeatureSnapshot
from ....entities.options_chain import OptionsChainContext
from ....value_objects.market_context import (
    ALL_ASSET_CLASSES,
    AnalysisMode,
    Direction,
)
from ..detector import (
    FactorFunction,
    GateFunction,
    OpportunityDetector,
    ScoreFactor,
    StrategyCategory,
)
from ..factors import (
    TrendDirection,
    atr_or_estimate,
    detect_trend,
    ema_alignment,
    level_confluence,
    mtf_alignment,
    patience_candle,
    pct_distance,
    pullback_volume,
    relative_volume,
    session_timing,
    trend_strength,
    within_pct,
)
from ..session_gate import is_off_hours_analysis, should_run_detector

EMA_BOUNCE_PROXIMITY_PCT = 0.5
VWAP_ZONE_PCT = 0.7
KING_QUEEN_PROXIMITY_PCT = 0.5
ORB_BREAK_BUFFER = 0.001
ORB_RANGE_ATR_BAND = (0.5, 2.5)
ORB_MIN_RVOL = 0.8
CLOUD_PROXIMITY_PCT = 0.3


def _minutes_at_least(features: FeatureSnapshot, mode: AnalysisMode, minimum: float) -> bool:
    """Session has run at least ``minimum`` minutes (skipped for off-hours analysis)."""
    if is_off_hours_analysis(features, mode):
        return True
    minutes = features.minutes_since_open
    return minutes is not None and minutes >= minimum


def _pulled_back_to(features: FeatureSnapshot, level: float, direction: Direction) -> bool:
    """Bar traded away from the level and price has come back to touch it."""
    price, high, low = features.current_price, features.price.high, features.price.low
    if price is None:
        return False
    if direction is Direction.LONG:
        return high is not None and high > level and price <= level * 1.003
    return low is not None and low < level and price >= level * 0.997


# ---------------------------------------------------------------------------
# EMA bounce
# ---------------------------------------------------------------------------


def _ema_bounce_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        price = features.current_price
        ema8 = features.ema_value("8")
        if not price or not ema8:
            return False
        if not should_run_detector(features, mode):
            return False

        trend = detect_trend(features)
        if not trend.is_tradeable or not trend.aligned_with(direction):
            return False

        distance = pct_distance(price, ema8)
        if distance is None or distance > EMA_BOUNCE_PROXIMITY_PCT:
            return False

        return _pulled_back_to(features, ema8, direction) or features.pattern_flag(
            "patient_candle"
        )

    return gate


def _ema_bounce_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("level_confluence", 0.25, level_confluence()),
        ScoreFactor("trend_strength", 0.25, trend_strength(direction)),
        ScoreFactor("patience_candle", 0.25, patience_candle()),
        ScoreFactor("volume_confirmation", 0.1, pullback_volume()),
        ScoreFactor(
            "session_timing",
            0.05,
            session_timing(((0, 30, 50), (30, 90, 100), (90, 210, 80), (210, 330, 70))),
        ),
        ScoreFactor("mtf_alignment", 0.1, ema_alignment(direction)),
    )


# ---------------------------------------------------------------------------
# VWAP standard
# ---------------------------------------------------------------------------


def _vwap_standard_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        price = features.current_price
        vwap = features.vwap.value
        if not price or not vwap:
            return False
        if not should_run_detector(features, mode):
            return False
        if not _minutes_at_least(features, mode, 30):
            return False

        trend = detect_trend(features)
        if direction is Direction.LONG:
            if trend.opposes(direction) and not trend.is_micro_trend:
                return False
        elif not (trend.aligned_with(direction) and trend.is_tradeable):
            return False

        zone = VWAP_ZONE_PCT if direction is Direction.LONG else 0.5
        distance = pct_distance(price, vwap)
        if distance is None or distance > zone:
            return False

        approaching = _pulled_back_to(features, vwap, direction)
        patient = features.pattern_flag("patient_candle")
        if direction is Direction.LONG:
            return approaching or patient or price >= vwap * 0.998
        return approaching or patient

    return gate


def _vwap_standard_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("level_confluence", 0.3, level_confluence()),
        ScoreFactor("trend_strength", 0.25, trend_strength(direction)),
        ScoreFactor("patience_candle", 0.25, patience_candle()),
        ScoreFactor(
            "volume_confirmation", 0.1, relative_volume(((2.0, 75), (0.8, 90)), 50)
        ),
        ScoreFactor(
            "session_timing",
            0.1,
            session_timing(((0, 30, 40), (30, 180, 100), (180, 300, 75))),
        ),
    )


# ---------------------------------------------------------------------------
# King & Queen (VWAP plus one more level)
# ---------------------------------------------------------------------------


def _queens_nearby(features: FeatureSnapshot, proximity: float) -> int:
    price = features.current_price
    levels = (
        features.ema_value("8"),
        features.ema_value("21"),
        features.pattern_number("orb_high"),
        features.pattern_number("orb_low"),
    )
    return sum(
        1
        for level in levels
        if (distance := pct_distance(price, level)) is not None and distance <= proximity
    )


def _king_queen_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        price = features.current_price
        vwap = features.vwap.value
        if not price or not vwap:
            return False
        if not should_run_detector(features, mode):
            return False
        if not _minutes_at_least(features, mode, 10):
            return False

        distance = pct_distance(price, vwap)
        if distance is None or distance > KING_QUEEN_PROXIMITY_PCT:
            return False
        if _queens_nearby(features, KING_QUEEN_PROXIMITY_PCT) < 1:
            return False

        trend = detect_trend(features)
        if trend.opposes(direction) and not trend.is_micro_trend:
            return False

        # Extended away from VWAP on the trade side needs a confirmed trend
        if (price - vwap) * direction.sign > vwap * 0.005:
            return trend.aligned_with(direction)
        return True

    return gate


def _king_queen_confluence(
    features: FeatureSnapshot, options_data: OptionsChainContext | None
) -> float:
    queens = _queens_nearby(features, KING_QUEEN_PROXIMITY_PCT)
    distance = pct_distance(features.current_price, features.vwap.value)
    if distance is None or distance > KING_QUEEN_PROXIMITY_PCT or queens == 0:
        return 30
    return min(100.0, 55 + queens * 15)


def _king_queen_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("level_confluence", 0.35, _king_queen_confluence),
        ScoreFactor("trend_strength", 0.25, trend_strength(direction)),
        ScoreFactor("patience_candle", 0.2, patience_candle()),
        ScoreFactor(
            "volume_confirmation", 0.1, relative_volume(((2.5, 75), (1.0, 90)), 60)
        ),
        ScoreFactor(
            "session_timing",
            0.1,
            session_timing(((0, 10, 30), (10, 90, 100), (90, 270, 80), (270, 330, 60))),
        ),
    )


# ---------------------------------------------------------------------------
# ORB breakout
# ---------------------------------------------------------------------------


def _orb_range_valid(features: FeatureSnapshot) -> bool:
    orb_high = features.pattern_number("orb_high")
    orb_low = features.pattern_number("orb_low")
    atr = atr_or_estimate(features)
    if not orb_high or not orb_low or not atr:
        return False
    low, high = ORB_RANGE_ATR_BAND
    return low <= (orb_high - orb_low) / atr <= high


def _orb_breakout_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        price = features.current_price
        if not price:
            return False
        if not should_run_detector(features, mode):
            return False
        if not _minutes_at_least(features, mode, 15):
            return False

        if direction is Direction.LONG:
            level = features.pattern_number("orb_high")
            broken = bool(level) and price > level * (1 + ORB_BREAK_BUFFER)
        else:
            level = features.pattern_number("orb_low")
            broken = bool(level) and price < level * (1 - ORB_BREAK_BUFFER)
        if not broken or not _orb_range_valid(features):
            return False

        rvol = features.relative_volume
        return rvol is None or rvol >= ORB_MIN_RVOL

    return gate


def _orb_trend(direction: Direction) -> FactorFunction:
    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        price = features.current_price
        if not price:
            return 0
        level = features.pattern_number("orb_high" if direction is Direction.LONG else "orb_low")
        score = 30.0
        if level and (price - level * (1 + 0.002 * direction.sign)) * direction.sign > 0:
            score += 40
        high, low = features.price.high, features.price.low
        if high is not None and low is not None and high > low:
            close_position = (price - low) / (high - low)
            if direction is Direction.SHORT:
                close_position = 1 - close_position
            if close_position > 0.7:
                score += 30
        return score

    return evaluate


def _orb_breakout_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("level_confluence", 0.25, level_confluence()),
        ScoreFactor("trend_strength", 0.25, _orb_trend(direction)),
        ScoreFactor("patience_candle", 0.2, patience_candle()),
        ScoreFactor(
            "volume_confirmation",
            0.2,
            relative_volume(((2.0, 100), (1.5, 85), (1.2, 70), (1.0, 55)), 30),
        ),
        ScoreFactor(
            "session_timing",
            0.1,
            session_timing(((0, 15, 30), (15, 30, 100), (30, 60, 85), (60, 90, 65)), outside=40),
        ),
    )


# ---------------------------------------------------------------------------
# EMA cloud bounce (afternoon)
# ---------------------------------------------------------------------------


def _cloud_bounce_gate(
    features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
) -> bool:
    price = features.current_price
    ema34 = features.ema_value("34")
    ema50 = features.ema_value("50")
    if not price or not ema34 or not ema50:
        return False
    if not should_run_detector(features, mode):
        return False
    if not _minutes_at_least(features, mode, 210):
        return False

    # Bullish cloud (34 over 50) and price testing it from above
    if ema34 <= ema50:
        return False
    cloud_top = max(ema34, ema50)
    cloud_bottom = min(ema34, ema50)
    in_cloud = cloud_bottom <= price <= cloud_top
    near_top = within_pct(price, cloud_top, CLOUD_PROXIMITY_PCT)
    if not (in_cloud or near_top) or price < cloud_bottom:
        return False

    return detect_trend(features).direction is not TrendDirection.DOWNTREND


KCU_CLOUD_FACTORS = (
    ScoreFactor("level_confluence", 0.3, level_confluence()),
    ScoreFactor("trend_strength", 0.25, trend_strength(Direction.LONG)),
    ScoreFactor("patience_candle", 0.25, patience_candle()),
    ScoreFactor("volume_confirmation", 0.1, pullback_volume()),
    ScoreFactor("mtf_alignment", 0.1, mtf_alignment(Direction.LONG)),
)


def _kcu(
    detector_type: str,
    direction: Direction,
    gate: GateFunction,
    factors: tuple[ScoreFactor, ...],
    category: StrategyCategory,
    frequency: str,
    ideal_timeframe: str = "5m",
) -> OpportunityDetector:
    return OpportunityDetector(
        type=detector_type,
        direction=direction,
        asset_classes=ALL_ASSET_CLASSES,
        gate=gate,
        score_factors=factors,
        category=category,
        ideal_timeframe=ideal_timeframe,
        expected_frequency=frequency,
        tier=2,
    )


KCU_DETECTORS: tuple[OpportunityDetector, ...] = (
    _kcu(
        "kcu_ema_bounce_long",
        Direction.LONG,
        _ema_bounce_gate(Direction.LONG),
        _ema_bounce_factors(Direction.LONG),
        StrategyCategory.TREND_CONTINUATION,
        "3-5 signals/day",
    ),
    _kcu(
        "kcu_ema_bounce_short",
        Direction.SHORT,
        _ema_bounce_gate(Direction.SHORT),
        _ema_bounce_factors(Direction.SHORT),
        StrategyCategory.TREND_CONTINUATION,
        "3-5 signals/day",
    ),
    _kcu(
        "kcu_vwap_standard_long",
        Direction.LONG,
        _vwap_standard_gate(Direction.LONG),
        _vwap_standard_factors(Direction.LONG),
        StrategyCategory.TREND_CONTINUATION,
        "2-4 signals/day",
    ),
    _kcu(
        "kcu_vwap_standard_short",
        Direction.SHORT,
        _vwap_standard_gate(Direction.SHORT),
        _vwap_standard_factors(Direction.SHORT),
        StrategyCategory.TREND_CONTINUATION,
        "2-4 signals/day",
    ),
    _kcu(
        "kcu_king_queen_long",
        Direction.LONG,
        _king_queen_gate(Direction.LONG),
        _king_queen_factors(Direction.LONG),
        StrategyCategory.TREND_CONTINUATION,
        "2-3 signals/day",
    ),
    _kcu(
        "kcu_king_queen_short",
        Direction.SHORT,
        _king_queen_gate(Direction.SHORT),
        _king_queen_factors(Direction.SHORT),
        StrategyCategory.TREND_CONTINUATION,
        "2-3 signals/day",
    ),
    _kcu(
        "kcu_orb_breakout_long",
        Direction.LONG,
        _orb_breakout_gate(Direction.LONG),
        _orb_breakout_factors(Direction.LONG),
        StrategyCategory.BREAKOUT,
        "1-2 signals/day",
        ideal_timeframe="2m",
    ),
    _kcu(
        "kcu_orb_breakout_short",
        Direction.SHORT,
        _orb_breakout_gate(Direction.SHORT),
        _orb_breakout_factors(Direction.SHORT),
        StrategyCategory.BREAKOUT,
        "1-2 signals/day",
        ideal_timeframe="2m",
    ),
    _kcu(
        "kcu_cloud_bounce",
        Direction.LONG,
        _cloud_bounce_gate,
        KCU_CLOUD_FACTORS,
        StrategyCategory.TREND_CONTINUATION,
        "1-3 signals/day (afternoon)",
        ideal_timeframe="10m",
    ),
)
