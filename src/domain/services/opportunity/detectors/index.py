"""
Cash-index detectors (SPX/NDX).

Gamma squeeze, gamma flip and end-of-day pin setups need an options chain
context; the power-hour, mean-reversion and opening-drive setups run on the
snapshot alone.
"""

from ....entities.feature_snapshot import FeatureSnapshot
from ....entities.options_chain import OptionsChainContext
from ....value_objects.market_context import (
    INDEX_ASSET_CLASSES,
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
    dealer_gamma_positioning,
    divergence_support,
    expiry_urgency,
    flip_proximity,
    flow_alignment,
    gamma_wall_distance,
    mtf_alignment,
    pct_distance,
    pin_proximity,
    regime_fit,
    relative_volume,
    rsi_extreme,
    rsi_momentum,
    session_timing,
    signed_vwap_distance,
    tiered,
    vwap_alignment,
    vwap_stretch,
)
from ..session_gate import in_session_window, should_run_detector

# Session windows in minutes since the 9:30 ET open
OPENING_DRIVE_WINDOW = (0.0, 60.0)
POWER_HOUR_WINDOW = (330.0, 390.0)
EOD_PIN_WINDOW = (360.0, 390.0)

SQUEEZE_MIN_RVOL = 1.2
FLIP_MAX_DISTANCE_PCT = 0.3
PIN_MAX_DISTANCE_PCT = 0.3
PIN_MAX_MINUTES_TO_EXPIRY = 120.0
INDEX_REVERSION_MIN_STRETCH_PCT = 0.4
INDEX_REVERSION_RSI_EXTREME = 30.0
POWER_HOUR_MIN_STRETCH_PCT = 0.3
POWER_HOUR_RSI_EXTREME = 35.0
OPENING_DRIVE_MIN_VWAP_PCT = 0.15
OPENING_DRIVE_MIN_RVOL = 1.2


def _oriented_rsi(features: FeatureSnapshot, direction: Direction) -> float | None:
    rsi = features.rsi_value("14")
    if rsi is None:
        return None
    return rsi if direction is Direction.LONG else 100 - rsi


def _ticking_with(features: FeatureSnapshot, direction: Direction) -> bool:
    """Current print moved in the trade direction versus the prior print."""
    current, previous = features.price.current, features.price.prev
    if current is None or previous is None:
        return False
    return (current - previous) * direction.sign > 0


def _drive_from_open(direction: Direction) -> FactorFunction:
    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        current, opened = features.price.current, features.price.open
        if current is None or not opened:
            return 50.0
        move = (current - opened) / opened * 100 * direction.sign
        return tiered(move, ((0.6, 100), (0.4, 85), (0.25, 70), (0.1, 50)), 20)

    return evaluate


# ---------------------------------------------------------------------------
# Gamma squeeze / flip / pin (options dependent)
# ---------------------------------------------------------------------------


def _gamma_squeeze_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if options_data is None or not should_run_detector(features, mode):
            return False
        price = features.current_price
        if price is None or not options_data.is_short_gamma:
            return False

        # Above the flip for squeezes up, below it for squeezes down
        flip = options_data.gamma_flip_level
        if flip is not None and (price - flip) * direction.sign < 0:
            return False

        distance = signed_vwap_distance(features, direction)
        if distance is None or distance <= 0:
            return False

        rvol = features.relative_volume
        return rvol is not None and rvol >= SQUEEZE_MIN_RVOL

    return gate


def _gamma_squeeze_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("dealer_gamma", 0.3, dealer_gamma_positioning(short_gamma_favoured=True)),
        ScoreFactor("gamma_wall_room", 0.25, gamma_wall_distance(direction)),
        ScoreFactor("momentum", 0.2, vwap_alignment(direction)),
        ScoreFactor("volume", 0.15, relative_volume()),
        ScoreFactor("expiry_urgency", 0.1, expiry_urgency()),
    )


def _gamma_flip_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if options_data is None or not should_run_detector(features, mode):
            return False
        price = features.current_price
        flip = options_data.gamma_flip_level
        if price is None or flip is None:
            return False

        # Must have just crossed the flip in the trade direction
        if (price - flip) * direction.sign <= 0:
            return False
        previous = features.price.prev
        if previous is not None:
            return (previous - flip) * direction.sign <= 0
        distance = pct_distance(price, flip)
        return distance is not None and distance <= FLIP_MAX_DISTANCE_PCT

    return gate


def _gamma_flip_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("flip_proximity", 0.35, flip_proximity()),
        ScoreFactor("dealer_gamma", 0.2, dealer_gamma_positioning(short_gamma_favoured=True)),
        ScoreFactor("vwap_alignment", 0.2, vwap_alignment(direction)),
        ScoreFactor("volume", 0.15, relative_volume()),
        ScoreFactor(
            "session_timing",
            0.1,
            session_timing(((30, 120, 90), (120, 300, 70), (300, 390, 80)), outside=40),
        ),
    )


def _eod_pin_gate(
    features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
) -> bool:
    if options_data is None:
        return False
    if not in_session_window(features, mode, *EOD_PIN_WINDOW):
        return False
    if not options_data.is_long_gamma:
        return False

    expiring = options_data.is_0dte or (
        options_data.minutes_to_expiry is not None
        and options_data.minutes_to_expiry <= PIN_MAX_MINUTES_TO_EXPIRY
    )
    if not expiring:
        return False

    price = features.current_price
    pin = options_data.max_pain_strike or options_data.max_gamma_strike
    if price is None or pin is None:
        return False

    # Long drift up into a pin strike just above price
    distance = pct_distance(price, pin)
    return price <= pin and distance is not None and distance <= PIN_MAX_DISTANCE_PCT


EOD_PIN_FACTORS = (
    ScoreFactor("pin_proximity", 0.35, pin_proximity()),
    ScoreFactor("dealer_gamma", 0.25, dealer_gamma_positioning(short_gamma_favoured=False)),
    ScoreFactor("expiry_urgency", 0.2, expiry_urgency()),
    ScoreFactor(
        "regime",
        0.1,
        regime_fit({"ranging": 100, "choppy": 70, "trending": 40, "volatile": 25}),
    ),
    ScoreFactor("volume", 0.1, relative_volume(((0.8, 80), (0.5, 60)), 40)),
)


# ---------------------------------------------------------------------------
# Power hour reversal
# ---------------------------------------------------------------------------


def _power_hour_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if not in_session_window(features, mode, *POWER_HOUR_WINDOW):
            return False

        # Stretched against the trade into the last hour
        distance = signed_vwap_distance(features, direction)
        if distance is None or -distance < POWER_HOUR_MIN_STRETCH_PCT:
            return False

        rsi = _oriented_rsi(features, direction)
        if rsi is None or rsi > POWER_HOUR_RSI_EXTREME:
            return False

        divergence = features.divergence
        wanted = "bullish" if direction is Direction.LONG else "bearish"
        confirmed = divergence is not None and divergence.type == wanted
        return confirmed or _ticking_with(features, direction)

    return gate


def _power_hour_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("rsi_extreme", 0.25, rsi_extreme(direction)),
        ScoreFactor("vwap_stretch", 0.2, vwap_stretch(direction)),
        ScoreFactor("divergence", 0.2, divergence_support(direction)),
        ScoreFactor("volume", 0.15, relative_volume()),
        ScoreFactor(
            "session_timing", 0.1, session_timing(((330, 360, 100), (360, 380, 80)), outside=40)
        ),
        ScoreFactor("flow_alignment", 0.1, flow_alignment(direction)),
    )


# ---------------------------------------------------------------------------
# Index mean reversion
# ---------------------------------------------------------------------------


def _index_reversion_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if not should_run_detector(features, mode):
            return False
        distance = signed_vwap_distance(features, direction)
        if distance is None or -distance < INDEX_REVERSION_MIN_STRETCH_PCT:
            return False
        rsi = _oriented_rsi(features, direction)
        if rsi is None or rsi > INDEX_REVERSION_RSI_EXTREME:
            return False
        return features.market_regime != "trending"

    return gate


def _index_reversion_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("rsi_extreme", 0.3, rsi_extreme(direction)),
        ScoreFactor("vwap_stretch", 0.3, vwap_stretch(direction)),
        ScoreFactor(
            "regime",
            0.15,
            regime_fit({"ranging": 100, "choppy": 70, "volatile": 55, "trending": 15}),
        ),
        ScoreFactor("divergence", 0.15, divergence_support(direction)),
        ScoreFactor(
            "session_timing",
            0.1,
            session_timing(((60, 120, 90), (120, 270, 100), (270, 330, 70)), outside=40),
        ),
    )


# ---------------------------------------------------------------------------
# Opening drive
# ---------------------------------------------------------------------------


def _opening_drive_gate(direction: Direction) -> GateFunction:
    level = "orb_high" if direction is Direction.LONG else "orb_low"

    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if not in_session_window(features, mode, *OPENING_DRIVE_WINDOW):
            return False
        price = features.current_price
        if price is None:
            return False

        distance = signed_vwap_distance(features, direction)
        if distance is None or distance < OPENING_DRIVE_MIN_VWAP_PCT:
            return False

        # Beyond the opening range when known, otherwise beyond the open
        reference = features.pattern_number(level) or features.price.open
        if reference is None or (price - reference) * direction.sign <= 0:
            return False

        rvol = features.relative_volume
        if rvol is None or rvol < OPENING_DRIVE_MIN_RVOL:
            return False

        rsi = _oriented_rsi(features, direction)
        return rsi is not None and 55 <= rsi <= 80

    return gate


def _opening_drive_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor("drive_strength", 0.3, _drive_from_open(direction)),
        ScoreFactor("volume", 0.25, relative_volume()),
        ScoreFactor("vwap_alignment", 0.2, vwap_alignment(direction)),
        ScoreFactor("mtf_alignment", 0.15, mtf_alignment(direction)),
        ScoreFactor("rsi_momentum", 0.1, rsi_momentum(direction)),
    )


def _index(
    detector_type: str,
    direction: Direction,
    gate: GateFunction,
    factors: tuple[ScoreFactor, ...],
    category: StrategyCategory,
    tier: int,
    frequency: str,
    requires_options_data: bool = False,
    ideal_timeframe: str = "1m",
) -> OpportunityDetector:
    return OpportunityDetector(
        type=detector_type,
        direction=direction,
        asset_classes=INDEX_ASSET_CLASSES,
        gate=gate,
        score_factors=factors,
        requires_options_data=requires_options_data,
        category=category,
        ideal_timeframe=ideal_timeframe,
        expected_frequency=frequency,
        tier=tier,
    )


INDEX_DETECTORS: tuple[OpportunityDetector, ...] = (
    _index(
        "gamma_squeeze_bullish",
        Direction.LONG,
        _gamma_squeeze_gate(Direction.LONG),
        _gamma_squeeze_factors(Direction.LONG),
        StrategyCategory.GAMMA,
        2,
        "2-4 signals/day on 0DTE",
        requires_options_data=True,
    ),
    _index(
        "gamma_squeeze_bearish",
        Direction.SHORT,
        _gamma_squeeze_gate(Direction.SHORT),
        _gamma_squeeze_factors(Direction.SHORT),
        StrategyCategory.GAMMA,
        2,
        "2-4 signals/day on 0DTE",
        requires_options_data=True,
    ),
    _index(
        "gamma_flip_bullish",
        Direction.LONG,
        _gamma_flip_gate(Direction.LONG),
        _gamma_flip_factors(Direction.LONG),
        StrategyCategory.GAMMA,
        3,
        "0-1 signals/day",
        requires_options_data=True,
    ),
    _index(
        "gamma_flip_bearish",
        Direction.SHORT,
        _gamma_flip_gate(Direction.SHORT),
        _gamma_flip_factors(Direction.SHORT),
        StrategyCategory.GAMMA,
        3,
        "0-1 signals/day",
        requires_options_data=True,
    ),
    _index(
        "eod_pin_setup",
        Direction.LONG,
        _eod_pin_gate,
        EOD_PIN_FACTORS,
        StrategyCategory.GAMMA,
        3,
        "0-1 signals/day on 0DTE",
        requires_options_data=True,
    ),
    _index(
        "power_hour_reversal_bullish",
        Direction.LONG,
        _power_hour_gate(Direction.LONG),
        _power_hour_factors(Direction.LONG),
        StrategyCategory.REVERSAL,
        2,
        "1-2 signals/day",
    ),
    _index(
        "power_hour_reversal_bearish",
        Direction.SHORT,
        _power_hour_gate(Direction.SHORT),
        _power_hour_factors(Direction.SHORT),
        StrategyCategory.REVERSAL,
        2,
        "1-2 signals/day",
    ),
    _index(
        "index_mean_reversion_long",
        Direction.LONG,
        _index_reversion_gate(Direction.LONG),
        _index_reversion_factors(Direction.LONG),
        StrategyCategory.MEAN_REVERSION,
        2,
        "3-5 signals/day",
        ideal_timeframe="5m",
    ),
    _index(
        "index_mean_reversion_short",
        Direction.SHORT,
        _index_reversion_gate(Direction.SHORT),
        _index_reversion_factors(Direction.SHORT),
        StrategyCategory.MEAN_REVERSION,
        2,
        "3-5 signals/day",
        ideal_timeframe="5m",
    ),
    _index(
        "opening_drive_bullish",
        Direction.LONG,
        _opening_drive_gate(Direction.LONG),
        _opening_drive_factors(Direction.LONG),
        StrategyCategory.BREAKOUT,
        3,
        "1-2 signals/day",
    ),
    _index(
        "opening_drive_bearish",
        Direction.SHORT,
        _opening_drive_gate(Direction.SHORT),
        _opening_drive_factors(Direction.SHORT),
        StrategyCategory.BREAKOUT,
        3,
        "1-2 signals/day",
    ),
)
