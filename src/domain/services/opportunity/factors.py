"""
Reusable score-factor evaluators and gate helpers shared by the detector catalogue.

Every evaluator is total: it returns a finite score for any snapshot and
falls back to a neutral 50 (or 0 where the feature is essential) when data
is missing. Builders such as ``rsi_momentum(Direction.LONG)`` return the
``(features, options_data) -> float`` callable stored on a ScoreFactor.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from ...entities.feature_snapshot import FeatureSnapshot
from ...entities.options_chain import OptionsChainContext
from ...value_objects.market_context import Direction
from .detector import FactorFunction

NEUTRAL = 50.0

# Multi-timeframe alignment weights (sum to 1.0)
MTF_WEIGHTS: dict[str, float] = {"5m": 0.2, "15m": 0.3, "60m": 0.3, "240m": 0.2}


def tiered(value: float | None, tiers: Sequence[tuple[float, float]], floor: float) -> float:
    """Return the score of the first ``(threshold, score)`` tier that ``value`` meets.

    Tiers are checked in order with ``value >= threshold``; ``floor`` is used
    when none match. A missing value scores neutral.
    """
    if value is None:
        return NEUTRAL
    for threshold, score in tiers:
        if value >= threshold:
            return score
    return floor


def pct_distance(price: float | None, level: float | None) -> float | None:
    """Absolute percent distance between price and a level."""
    if not price or not level:
        return None
    return abs(price - level) / price * 100


def within_pct(price: float | None, level: float | None, pct: float) -> bool:
    """True when the level is known and price sits within ``pct`` percent of it."""
    distance = pct_distance(price, level)
    return distance is not None and distance <= pct


def signed_vwap_distance(features: FeatureSnapshot, direction: Direction) -> float | None:
    """VWAP distance in the trade direction (positive = price on the trade side)."""
    distance = features.vwap_distance_pct
    if distance is None:
        return None
    return distance * direction.sign


def key_levels(features: FeatureSnapshot) -> dict[str, float]:
    """Named intraday reference levels available on the snapshot."""
    levels = {}
    for name in (
        "orb_high",
        "orb_low",
        "premarket_high",
        "premarket_low",
        "prior_day_high",
        "prior_day_low",
        "prior_day_close",
        "swing_high",
        "swing_low",
    ):
        value = features.pattern_number(name)
        if value:
            levels[name] = value
    if features.vwap.value:
        levels["vwap"] = features.vwap.value
    return levels


def nearest_level_distance(features: FeatureSnapshot) -> float | None:
    price = features.current_price
    distances = [pct_distance(price, level) for level in key_levels(features).values()]
    distances = [distance for distance in distances if distance is not None]
    return min(distances) if distances else None


def atr_or_estimate(features: FeatureSnapshot) -> float | None:
    """ATR from the snapshot, or 1.5% of price when no ATR was supplied."""
    atr = features.atr_value()
    if atr:
        return atr
    if features.current_price:
        return features.current_price * 0.015
    return None


# ---------------------------------------------------------------------------
# Trend structure
# ---------------------------------------------------------------------------


class TrendDirection(Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    CHOP = "CHOP"


@dataclass(frozen=True)
class TrendState:
    """Intraday trend read from EMA stacking, VWAP side and level breaks."""

    direction: TrendDirection
    strength: float
    bullish_points: int
    bearish_points: int

    @property
    def is_tradeable(self) -> bool:
        return self.direction is not TrendDirection.CHOP and self.strength >= 50

    @property
    def is_micro_trend(self) -> bool:
        """Weak counter-structure inside a larger move."""
        return self.direction is TrendDirection.CHOP and max(
            self.bullish_points, self.bearish_points
        ) >= 2

    def aligned_with(self, direction: Direction) -> bool:
        if direction is Direction.LONG:
            return self.direction is TrendDirection.UPTREND
        return self.direction is TrendDirection.DOWNTREND

    def opposes(self, direction: Direction) -> bool:
        if direction is Direction.LONG:
            return self.direction is TrendDirection.DOWNTREND
        return self.direction is TrendDirection.UPTREND


def detect_trend(features: FeatureSnapshot) -> TrendState:
    """
    Classify the intraday trend.

    Six structure checks vote bullish or bearish: price vs 8 EMA, 8 vs 21 EMA,
    21 vs 50 EMA, price vs VWAP, ORB break and premarket break. A clear trend
    needs at least three votes and twice the opposing count.
    """
    price = features.current_price
    ema8 = features.ema_value("8")
    ema21 = features.ema_value("21")
    ema50 = features.ema_value("50")
    bullish = bearish = 0

    def vote(upper: float | None, lower: float | None) -> None:
        nonlocal bullish, bearish
        if upper is None or lower is None:
            return
        if upper > lower:
            bullish += 1
        elif upper < lower:
            bearish += 1

    vote(price, ema8)
    vote(ema8, ema21)
    vote(ema21, ema50)
    vote(price, features.vwap.value)

    if price is not None:
        orb_high = features.pattern_number("orb_high")
        orb_low = features.pattern_number("orb_low")
        if orb_high and price > orb_high:
            bullish += 1
        elif orb_low and price < orb_low:
            bearish += 1

        pm_high = features.pattern_number("premarket_high")
        pm_low = features.pattern_number("premarket_low")
        if pm_high and price > pm_high:
            bullish += 1
        elif pm_low and price < pm_low:
            bearish += 1

    if bullish >= 3 and bullish >= bearish * 2:
        strength = min(100.0, bullish / 6 * 100 + 10)
        return TrendState(TrendDirection.UPTREND, strength, bullish, bearish)
    if bearish >= 3 and bearish >= bullish * 2:
        strength = min(100.0, bearish / 6 * 100 + 10)
        return TrendState(TrendDirection.DOWNTREND, strength, bullish, bearish)
    return TrendState(TrendDirection.CHOP, abs(bullish - bearish) / 6 * 100, bullish, bearish)


def mtf_alignment_score(features: FeatureSnapshot, direction: Direction) -> float | None:
    """
    Weighted share of higher timeframes agreeing with ``direction`` (0-100).

    A timeframe agrees when its close sits on the trade side of its 21 EMA
    (falling back to its VWAP). Returns None when no timeframe is usable.
    """
    aligned = 0.0
    available = 0.0
    for name, weight in MTF_WEIGHTS.items():
        frame = features.timeframe(name)
        if frame is None or frame.close is None:
            continue
        reference = frame.ema.get("21") or frame.ema.get("20") or frame.vwap.value
        if not reference:
            continue
        available += weight
        if (frame.close - reference) * direction.sign > 0:
            aligned += weight
    if available == 0:
        return None
    return aligned / available * 100


# ---------------------------------------------------------------------------
# Factor builders
# ---------------------------------------------------------------------------


def relative_volume(
    tiers: Sequence[tuple[float, float]] = ((3.0, 100), (2.0, 90), (1.5, 75), (1.0, 55)),
    floor: float = 30,
) -> FactorFunction:
    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        return tiered(features.relative_volume, tiers, floor)

    return evaluate


def pullback_volume() -> FactorFunction:
    """Moderate volume on a pullback scores best; climactic volume is discounted."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        rvol = features.relative_volume
        if rvol is None:
            return NEUTRAL
        if 0.8 <= rvol <= 1.5:
            return 80
        if 1.5 < rvol < 2.5:
            return 90
        if rvol >= 2.5:
            return 70
        return 50

    return evaluate


def rsi_momentum(direction: Direction) -> FactorFunction:
    """RSI(14) in the healthy momentum band for the direction."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        rsi = features.rsi_value("14")
        if rsi is None:
            return NEUTRAL
        oriented = rsi if direction is Direction.LONG else 100 - rsi
        if 55 <= oriented <= 70:
            return 100
        if 50 <= oriented < 55:
            return 75
        if 70 < oriented <= 80:
            return 70
        if oriented > 80:
            return 40
        return 20

    return evaluate


def rsi_extreme(direction: Direction) -> FactorFunction:
    """Oversold (long) or overbought (short) RSI(14) for reversion setups."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        rsi = features.rsi_value("14")
        if rsi is None:
            return NEUTRAL
        oriented = 100 - rsi if direction is Direction.LONG else rsi
        return tiered(oriented, ((80, 100), (75, 90), (70, 80), (65, 60)), 20)

    return evaluate


def vwap_alignment(direction: Direction) -> FactorFunction:
    """Price on the trade side of VWAP without being over-extended."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        distance = signed_vwap_distance(features, direction)
        if distance is None:
            return NEUTRAL
        if distance < 0:
            return 10
        if 0.3 <= distance <= 1.5:
            return 100
        if distance > 1.5:
            return 70
        return 60

    return evaluate


def vwap_stretch(direction: Direction) -> FactorFunction:
    """Distance stretched away from VWAP against the trade (reversion fuel)."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        distance = signed_vwap_distance(features, direction)
        if distance is None:
            return NEUTRAL
        return tiered(-distance, ((2.0, 100), (1.5, 85), (1.0, 70), (0.5, 50)), 20)

    return evaluate


def ema_alignment(direction: Direction) -> FactorFunction:
    """Price > 8 EMA > 21 EMA > 50 EMA stacking (mirrored for shorts)."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        price = features.current_price
        ema8 = features.ema_value("8")
        ema21 = features.ema_value("21")
        if price is None or ema8 is None or ema21 is None:
            return NEUTRAL
        sign = direction.sign
        score = 20.0
        if (price - ema8) * sign > 0:
            score += 25
        if (ema8 - ema21) * sign > 0:
            score += 30
        ema50 = features.ema_value("50")
        if ema50 is not None and (ema21 - ema50) * sign > 0:
            score += 25
        return score

    return evaluate


def trend_strength(direction: Direction | None = None) -> FactorFunction:
    """Trend strength; when a direction is given, opposing trends score 0."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        trend = detect_trend(features)
        if direction is not None and trend.opposes(direction):
            return 0
        if not trend.is_tradeable:
            return 25 if trend.is_micro_trend else 0
        return trend.strength

    return evaluate


def mtf_alignment(direction: Direction) -> FactorFunction:
    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        score = mtf_alignment_score(features, direction)
        return NEUTRAL if score is None else score

    return evaluate


def regime_fit(scores: dict[str, float], default: float = NEUTRAL) -> FactorFunction:
    """Score the snapshot's market regime from a ``regime -> score`` table."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        regime = features.market_regime
        if regime is None:
            return default
        return scores.get(regime, default)

    return evaluate


def session_timing(
    bands: Sequence[tuple[float, float, float]], outside: float = 30
) -> FactorFunction:
    """Score ``minutes_since_open`` against ``(start, end, score)`` bands."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        minutes = features.minutes_since_open
        if minutes is None:
            return NEUTRAL
        for start, end, score in bands:
            if start <= minutes < end:
                return score
        return outside

    return evaluate


def flow_alignment(direction: Direction) -> FactorFunction:
    """Options-flow bias agreeing with the trade, scaled by flow score."""
    wanted = "bullish" if direction is Direction.LONG else "bearish"

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        flow = features.flow
        if flow is None or flow.flow_bias is None:
            return NEUTRAL
        if flow.flow_bias == wanted:
            return min(100.0, 60 + (flow.flow_score or 0) * 0.4)
        if flow.flow_bias == "neutral":
            return 45
        return 15

    return evaluate


def divergence_support(direction: Direction) -> FactorFunction:
    wanted = "bullish" if direction is Direction.LONG else "bearish"

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        divergence = features.divergence
        if divergence is None or divergence.type == "none":
            return 40
        if divergence.type == wanted:
            return max(60.0, divergence.confidence)
        return 10

    return evaluate


def key_level_proximity(max_pct: float = 0.5) -> FactorFunction:
    """Closeness to the nearest intraday reference level."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        distance = nearest_level_distance(features)
        if distance is None:
            return NEUTRAL
        if distance > max_pct:
            return 20
        return 100 - distance / max_pct * 60

    return evaluate


def breakout_strength(direction: Direction) -> FactorFunction:
    """How far price cleared the broken level, in ATR units."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        price = features.current_price
        atr = atr_or_estimate(features)
        if price is None or not atr:
            return 0
        if direction is Direction.LONG:
            candidates = ("orb_high", "premarket_high", "prior_day_high", "swing_high")
        else:
            candidates = ("orb_low", "premarket_low", "prior_day_low", "swing_low")
        cleared = [
            (price - level) * direction.sign
            for level in (features.pattern_number(name) for name in candidates)
            if level
        ]
        cleared = [distance for distance in cleared if distance > 0]
        if not cleared:
            # No level reported: fall back to VWAP distance as the breakout proxy
            distance = signed_vwap_distance(features, direction)
            return tiered(distance, ((1.0, 80), (0.5, 65), (0.2, 50)), 25)
        extension = min(cleared) / atr
        if extension <= 0.25:
            return 80
        if extension <= 0.75:
            return 100
        if extension <= 1.5:
            return 70
        return 45

    return evaluate


def patience_candle() -> FactorFunction:
    """Tight consolidation bar (range vs ATR), partial credit for the builder flag."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        high, low = features.price.high, features.price.low
        atr = features.atr_value()
        score = 0.0
        if high is not None and low is not None and atr:
            ratio = (high - low) / atr
            score = tiered(-ratio, ((-0.3, 100), (-0.5, 85), (-0.75, 60)), 0)
        if features.pattern_flag("patient_candle"):
            score = max(score, 50)
        return score

    return evaluate


def level_confluence() -> FactorFunction:
    """Stacking of 8/21 EMA, VWAP and ORB levels at the current price."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        price = features.current_price
        if not price:
            return 0
        score = 0
        ema8 = features.ema_value("8")
        ema21 = features.ema_value("21")
        if within_pct(price, ema8, 0.5):
            score += 40
        if ema8 and ema21 and abs(ema8 - ema21) / price < 0.005:
            score += 20
        if within_pct(price, features.vwap.value, 0.5):
            score += 30
        for name in ("orb_high", "orb_low"):
            if within_pct(price, features.pattern_number(name), 0.3):
                score += 15
                break
        return min(100, score)

    return evaluate


def flow_score_tiers(
    attribute: str, tiers: Sequence[tuple[float, float]], floor: float = 0
) -> FactorFunction:
    """Tiered score over a numeric FlowData attribute; 0 without flow."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        flow = features.flow
        if flow is None:
            return 0
        value = getattr(flow, attribute)
        if value is None:
            return 0
        return tiered(value, tiers, floor)

    return evaluate


def flow_aggressiveness() -> FactorFunction:
    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        flow = features.flow
        if flow is None:
            return 0
        if flow.aggressiveness == "VERY_AGGRESSIVE":
            return 100
        if flow.aggressiveness == "AGGRESSIVE":
            return 90
        if flow.aggressiveness == "MODERATE":
            return 60
        return 30

    return evaluate


# ---------------------------------------------------------------------------
# Options-chain factors
# ---------------------------------------------------------------------------


def dealer_gamma_positioning(short_gamma_favoured: bool = True) -> FactorFunction:
    """Dealer gamma sign; 0DTE adds conviction."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        if options_data is None or options_data.dealer_net_gamma is None:
            return NEUTRAL
        if short_gamma_favoured:
            favourable = options_data.is_short_gamma
        else:
            favourable = options_data.is_long_gamma
        score = 80.0 if favourable else 20.0
        if favourable and options_data.is_0dte:
            score += 20
        return score

    return evaluate


def gamma_wall_distance(direction: Direction) -> FactorFunction:
    """Room between price and the max-gamma strike in the trade direction."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        price = features.current_price
        if options_data is None or not price or not options_data.max_gamma_strike:
            return NEUTRAL
        room = (options_data.max_gamma_strike - price) * direction.sign / price * 100
        if room <= 0:
            return 30
        return tiered(-room, ((-0.15, 70), (-0.5, 100), (-1.0, 80)), 50)

    return evaluate


def pin_proximity() -> FactorFunction:
    """Closeness to the max-pain (or max-gamma) strike."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        if options_data is None:
            return NEUTRAL
        pin = options_data.max_pain_strike or options_data.max_gamma_strike
        distance = pct_distance(features.current_price, pin)
        if distance is None:
            return NEUTRAL
        return tiered(-distance, ((-0.1, 100), (-0.2, 85), (-0.3, 70)), 30)

    return evaluate


def flip_proximity() -> FactorFunction:
    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        if options_data is None:
            return NEUTRAL
        distance = pct_distance(features.current_price, options_data.gamma_flip_level)
        if distance is None:
            return NEUTRAL
        return tiered(-distance, ((-0.05, 100), (-0.15, 85), (-0.3, 65)), 30)

    return evaluate


def expiry_urgency() -> FactorFunction:
    """0DTE and short time-to-expiry amplify dealer hedging."""

    def evaluate(features: FeatureSnapshot, options_data: OptionsChainContext | None) -> float:
        if options_data is None:
            return NEUTRAL
        minutes = options_data.minutes_to_expiry
        if minutes is None:
            return 80 if options_data.is_0dte else NEUTRAL
        return tiered(-minutes, ((-60, 100), (-180, 85), (-390, 70)), 40)

    return evaluate
