"""
Flow-primary detectors.

Driven by aggregated options order flow (sweeps, blocks, buy pressure) rather
than price structure; they apply to every asset class but only fire when the
snapshot carries flow data.
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
    flow_aggressiveness,
    flow_score_tiers,
    relative_volume,
    signed_vwap_distance,
    tiered,
    vwap_alignment,
)
from ..session_gate import should_run_detector

# Institutional gate
INSTITUTIONAL_MIN_FLOW_SCORE = 80.0
INSTITUTIONAL_MIN_SWEEPS = 5
INSTITUTIONAL_BUY_PRESSURE = 70.0
INSTITUTIONAL_MIN_LARGE_TRADE_PCT = 40.0

# Sweep momentum gate
SWEEP_MIN_COUNT = 3
SWEEP_MIN_FLOW_SCORE = 60.0
SWEEP_MIN_RVOL = 1.0


def _bias(direction: Direction) -> str:
    return "bullish" if direction is Direction.LONG else "bearish"


def _oriented_buy_pressure(value: float | None, direction: Direction) -> float | None:
    """Buy pressure for longs, sell pressure (100 - buy) for shorts."""
    if value is None:
        return None
    return value if direction is Direction.LONG else 100 - value


# ---------------------------------------------------------------------------
# Institutional flow
# ---------------------------------------------------------------------------


def _institutional_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if not should_run_detector(features, mode):
            return False
        flow = features.flow
        if flow is None:
            return False
        if flow.flow_score is None or flow.flow_score < INSTITUTIONAL_MIN_FLOW_SCORE:
            return False
        if flow.sweep_count is None or flow.sweep_count < INSTITUTIONAL_MIN_SWEEPS:
            return False

        pressure = _oriented_buy_pressure(flow.buy_pressure, direction)
        if pressure is None or pressure < INSTITUTIONAL_BUY_PRESSURE:
            return False

        large = flow.large_trade_percentage
        if large is None or large < INSTITUTIONAL_MIN_LARGE_TRADE_PCT:
            return False

        return flow.is_aggressive and flow.flow_bias == _bias(direction)

    return gate


def _pressure_factor(direction: Direction) -> FactorFunction:
    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        flow = features.flow
        if flow is None:
            return 0
        pressure = _oriented_buy_pressure(flow.buy_pressure, direction)
        if pressure is None:
            return 0
        return tiered(pressure, ((85, 100), (80, 95), (75, 90), (70, 85)), 50)

    return evaluate


def _institutional_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor(
            "institutional_score",
            0.35,
            flow_score_tiers("flow_score", ((95, 100), (90, 95), (85, 90), (80, 85)), 50),
        ),
        ScoreFactor(
            "sweep_intensity",
            0.25,
            flow_score_tiers("sweep_count", ((10, 100), (8, 95), (6, 90), (5, 85)), 50),
        ),
        ScoreFactor("buy_sell_pressure", 0.2, _pressure_factor(direction)),
        ScoreFactor(
            "large_trade_pct",
            0.15,
            flow_score_tiers("large_trade_percentage", ((60, 100), (50, 90), (40, 80)), 50),
        ),
        ScoreFactor("aggressiveness", 0.05, flow_aggressiveness()),
    )


# ---------------------------------------------------------------------------
# Sweep momentum
# ---------------------------------------------------------------------------


def _sweep_momentum_gate(direction: Direction) -> GateFunction:
    def gate(
        features: FeatureSnapshot, options_data: OptionsChainContext | None, mode: AnalysisMode
    ) -> bool:
        if not should_run_detector(features, mode):
            return False
        flow = features.flow
        if flow is None or flow.flow_bias != _bias(direction):
            return False
        if flow.sweep_count is None or flow.sweep_count < SWEEP_MIN_COUNT:
            return False
        if flow.flow_score is None or flow.flow_score < SWEEP_MIN_FLOW_SCORE:
            return False

        # Price must already be moving with the flow
        distance = signed_vwap_distance(features, direction)
        if distance is None or distance <= 0:
            return False

        rvol = features.relative_volume
        return rvol is None or rvol >= SWEEP_MIN_RVOL

    return gate


def _flow_trend(
    features: FeatureSnapshot, options_data: OptionsChainContext | None
) -> float:
    """Accelerating flow scores highest regardless of direction."""
    flow = features.flow
    if flow is None or flow.flow_trend is None:
        return 50
    if flow.flow_trend == "INCREASING":
        return 100
    if flow.flow_trend == "STABLE":
        return 60
    return 25


def _sweep_factors(direction: Direction) -> tuple[ScoreFactor, ...]:
    return (
        ScoreFactor(
            "sweep_intensity",
            0.3,
            flow_score_tiers("sweep_count", ((8, 100), (6, 90), (4, 75), (3, 65)), 40),
        ),
        ScoreFactor(
            "flow_score",
            0.25,
            flow_score_tiers("flow_score", ((90, 100), (80, 90), (70, 75), (60, 60)), 30),
        ),
        ScoreFactor("price_momentum", 0.2, vwap_alignment(direction)),
        ScoreFactor("volume", 0.15, relative_volume()),
        ScoreFactor("flow_trend", 0.1, _flow_trend),
    )


def _flow(
    detector_type: str,
    direction: Direction,
    gate: GateFunction,
    factors: tuple[ScoreFactor, ...],
    frequency: str,
    tier: int,
) -> OpportunityDetector:
    return OpportunityDetector(
        type=detector_type,
        direction=direction,
        asset_classes=ALL_ASSET_CLASSES,
        gate=gate,
        score_factors=factors,
        requires_flow_data=True,
        category=StrategyCategory.TREND_CONTINUATION,
        ideal_timeframe="1m",
        expected_frequency=frequency,
        tier=tier,
    )


FLOW_DETECTORS: tuple[OpportunityDetector, ...] = (
    _flow(
        "sweep_momentum_long",
        Direction.LONG,
        _sweep_momentum_gate(Direction.LONG),
        _sweep_factors(Direction.LONG),
        "2-5 signals/day (when flow active)",
        3,
    ),
    _flow(
        "sweep_momentum_short",
        Direction.SHORT,
        _sweep_momentum_gate(Direction.SHORT),
        _sweep_factors(Direction.SHORT),
        "2-5 signals/day (when flow active)",
        3,
    ),
    _flow(
        "institutional_flow_bullish",
        Direction.LONG,
        _institutional_gate(Direction.LONG),
        _institutional_factors(Direction.LONG),
        "0-2 signals/day",
        2,
    ),
    _flow(
        "institutional_flow_bearish",
        Direction.SHORT,
        _institutional_gate(Direction.SHORT),
        _institutional_factors(Direction.SHORT),
        "0-2 signals/day",
        2,
    ),
)
