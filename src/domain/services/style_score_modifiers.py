"""
Style Score Modifiers - Re-weight a base score for scalp, day-trade and swing styles.

A detection's composite score says how clean the setup is; the style scores
say which holding period suits the current context. Context factors (time
window, volatility, volume, key levels, RSI extremes, higher-timeframe
alignment, regime, session) multiply a per-style modifier that is clamped to
[0.5, 1.5]. The recommended style is the one with the highest score, and it
selects the ATR profile used for stop and targets.
"""

from dataclasses import dataclass, field

from ..entities.composite_signal import RiskReward, StyleScores, TradingStyle
from ..entities.feature_snapshot import FeatureSnapshot
from ..value_objects.market_context import Direction
from .market_hours_service import MarketHoursService, TradingWindow
from .opportunity.factors import mtf_alignment_score

MIN_MODIFIER = 0.5
MAX_MODIFIER = 1.5
REGULAR_SESSION_MINUTES = 390
DEFAULT_ATR = 2.0


@dataclass(frozen=True)
class StyleModifiers:
    """Per-style multipliers applied to a base score."""

    scalp: float = 1.0
    day_trade: float = 1.0
    swing: float = 1.0

    def scaled(self, scalp: float, day_trade: float, swing: float) -> "StyleModifiers":
        return StyleModifiers(self.scalp * scalp, self.day_trade * day_trade, self.swing * swing)

    def clamped(self) -> "StyleModifiers":
        return StyleModifiers(
            _clamp(self.scalp, MIN_MODIFIER, MAX_MODIFIER),
            _clamp(self.day_trade, MIN_MODIFIER, MAX_MODIFIER),
            _clamp(self.swing, MIN_MODIFIER, MAX_MODIFIER),
        )


_M = StyleModifiers

TIME_OF_DAY_MODIFIERS: dict[TradingWindow, StyleModifiers] = {
    TradingWindow.PRE_MARKET: _M(0.6, 0.7, 0.9),
    TradingWindow.OPENING_DRIVE: _M(1.35, 1.15, 0.75),
    TradingWindow.MID_MORNING: _M(1.1, 1.15, 1.0),
    TradingWindow.LATE_MORNING: _M(1.0, 1.1, 1.05),
    TradingWindow.LUNCH_CHOP: _M(0.55, 0.75, 1.0),
    TradingWindow.EARLY_AFTERNOON: _M(0.85, 1.0, 1.05),
    TradingWindow.AFTERNOON: _M(0.95, 1.1, 1.0),
    TradingWindow.POWER_HOUR: _M(1.25, 1.2, 0.85),
    TradingWindow.AFTER_HOURS: _M(0.5, 0.6, 0.9),
    TradingWindow.CLOSED: _M(0.5, 0.6, 0.9),
    TradingWindow.WEEKEND: _M(0.4, 0.5, 1.2),
}

REGIME_MODIFIERS: dict[str, StyleModifiers] = {
    "trending": _M(1.0, 1.15, 1.25),
    "ranging": _M(1.1, 1.0, 0.85),
    "choppy": _M(0.65, 0.75, 0.55),
    "volatile": _M(0.85, 1.1, 1.2),
}


@dataclass(frozen=True)
class StyleProfile:
    """Stop and target ATR multiples for one trading style."""

    style: TradingStyle
    stop_atr_multiple: float
    target_atr_multiples: tuple[float, float, float]


STYLE_PROFILES: dict[TradingStyle, StyleProfile] = {
    TradingStyle.SCALP: StyleProfile(TradingStyle.SCALP, 0.75, (1.0, 1.5, 2.0)),
    TradingStyle.DAY_TRADE: StyleProfile(TradingStyle.DAY_TRADE, 1.0, (1.5, 2.5, 3.5)),
    TradingStyle.SWING: StyleProfile(TradingStyle.SWING, 1.5, (2.0, 3.0, 4.0)),
}


@dataclass(frozen=True)
class StyleScoreFactors:
    """Context extracted from a snapshot that drives the style modifiers."""

    time_window: TradingWindow
    minutes_since_open: float
    minutes_to_close: float
    atr_percent: float
    volume_ratio: float
    near_key_level: bool
    key_level_type: str | None
    rsi_value: float
    mtf_alignment: float
    regime: str
    is_pre_market: bool = False
    is_after_hours: bool = False
    is_weekend: bool = False

    @property
    def volume_spike(self) -> bool:
        return self.volume_ratio > 1.5

    @property
    def rsi_extreme(self) -> bool:
        return self.rsi_value < 30 or self.rsi_value > 70


@dataclass(frozen=True)
class StyleModifierResult:
    modifiers: StyleModifiers
    factors: StyleScoreFactors
    warnings: tuple[str, ...] = field(default_factory=tuple)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _session_window(
    features: FeatureSnapshot, market_hours: MarketHoursService
) -> TradingWindow:
    window = market_hours.get_trading_window(features.timestamp)
    if features.is_regular_hours is not False or window in (
        TradingWindow.WEEKEND,
        TradingWindow.PRE_MARKET,
        TradingWindow.AFTER_HOURS,
    ):
        return window
    # Builder says off-hours while the clock says regular session
    if market_hours.minutes_since_open(features.timestamp) < 0:
        return TradingWindow.PRE_MARKET
    return TradingWindow.AFTER_HOURS


def _key_level(features: FeatureSnapshot) -> str | None:
    distance = features.vwap_distance_pct
    if distance is not None and abs(distance) < 0.25:
        return "vwap"
    if features.pattern_flag("near_orb_high", "near_orb_low"):
        return "orb"
    if features.pattern_flag("near_swing_high"):
        return "resistance"
    if features.pattern_flag("near_swing_low"):
        return "support"
    return None


def extract_style_factors(
    features: FeatureSnapshot,
    direction: Direction,
    market_hours: MarketHoursService | None = None,
) -> StyleScoreFactors:
    """Pull style-relevant context out of a snapshot."""
    if market_hours is None:
        market_hours = MarketHoursService()
    window = _session_window(features, market_hours)

    minutes_since_open = features.minutes_since_open or 0.0
    price = features.current_price or 0.0
    atr = features.atr_value() or 0.0

    five_minute = features.timeframe("5m")
    rsi = None
    if five_minute is not None:
        rsi = five_minute.rsi.get("14")
    if rsi is None:
        rsi = features.rsi_value("14")

    alignment = mtf_alignment_score(features, direction)
    session = features.pattern_text("session")
    key_level = _key_level(features)

    return StyleScoreFactors(
        time_window=window,
        minutes_since_open=minutes_since_open,
        minutes_to_close=max(0.0, REGULAR_SESSION_MINUTES - minutes_since_open),
        atr_percent=atr / price * 100 if price > 0 else 0.0,
        volume_ratio=features.relative_volume if features.relative_volume is not None else 1.0,
        near_key_level=key_level is not None,
        key_level_type=key_level,
        rsi_value=rsi if rsi is not None else 50.0,
        mtf_alignment=alignment if alignment is not None else 50.0,
        regime=features.market_regime or "trending",
        is_pre_market=session == "pre_market" or window is TradingWindow.PRE_MARKET,
        is_after_hours=session == "after_hours" or window is TradingWindow.AFTER_HOURS,
        is_weekend=window is TradingWindow.WEEKEND and features.is_regular_hours is not True,
    )


def calculate_style_modifiers(factors: StyleScoreFactors) -> StyleModifierResult:
    """
    Multiply the per-style context modifiers together.

    Returns:
        StyleModifierResult with each modifier clamped to [0.5, 1.5]
    """
    warnings: list[str] = []
    modifiers = TIME_OF_DAY_MODIFIERS[factors.time_window]

    # Volatility
    if factors.atr_percent > 2.5:
        modifiers = modifiers.scaled(0.7, 1.05, 1.25)
    elif factors.atr_percent > 1.5:
        modifiers = modifiers.scaled(0.9, 1.1, 1.15)
    elif 0 < factors.atr_percent < 0.5:
        modifiers = modifiers.scaled(1.15, 0.85, 0.65)
    elif 0 < factors.atr_percent < 1.0:
        modifiers = modifiers.scaled(1.1, 0.95, 0.8)

    # Volume
    if factors.volume_spike:
        modifiers = modifiers.scaled(1.3, 1.15, 1.0)
    elif factors.volume_ratio < 0.5:
        modifiers = modifiers.scaled(0.6, 0.75, 0.95)
        warnings.append("Low volume - wide spreads likely")
    elif factors.volume_ratio < 0.75:
        modifiers = modifiers.scaled(0.8, 0.9, 0.98)

    if factors.near_key_level:
        modifiers = modifiers.scaled(1.25, 1.15, 1.1)

    if factors.rsi_extreme:
        modifiers = modifiers.scaled(0.85, 1.1, 1.25)

    # Higher-timeframe alignment
    if factors.mtf_alignment > 80:
        modifiers = modifiers.scaled(1.05, 1.15, 1.3)
    elif factors.mtf_alignment > 60:
        modifiers = modifiers.scaled(1.0, 1.05, 1.1)
    elif factors.mtf_alignment < 40:
        modifiers = modifiers.scaled(1.0, 0.8, 0.6)
        warnings.append("Poor MTF alignment - avoid swing trades")

    regime = REGIME_MODIFIERS.get(factors.regime)
    if regime is not None:
        modifiers = modifiers.scaled(regime.scalp, regime.day_trade, regime.swing)
    if factors.regime == "choppy":
        warnings.append("Choppy regime - reduce position sizes")

    if factors.is_pre_market:
        modifiers = modifiers.scaled(0.5, 0.6, 0.85)
        warnings.append("Pre-market - liquidity may be thin")
    if factors.is_after_hours:
        modifiers = modifiers.scaled(0.4, 0.5, 0.8)
        warnings.append("After-hours - limited liquidity")
    if factors.is_weekend:
        modifiers = modifiers.scaled(0.3, 0.4, 1.15)
        warnings.append("Weekend - signals for planning only")

    # Runway left in the session
    if factors.minutes_to_close < 30 and not (factors.is_after_hours or factors.is_weekend):
        modifiers = modifiers.scaled(1.1, 0.6, 1.0)
    elif factors.minutes_to_close < 60:
        modifiers = modifiers.scaled(1.0, 0.85, 1.0)

    return StyleModifierResult(modifiers.clamped(), factors, tuple(warnings))


def apply_style_modifiers(base_score: float, modifiers: StyleModifiers) -> StyleScores:
    """Scale a base score by each style modifier, clamped to [0, 100]."""
    return StyleScores(
        scalp=_clamp(base_score * modifiers.scalp, 0.0, 100.0),
        day_trade=_clamp(base_score * modifiers.day_trade, 0.0, 100.0),
        swing=_clamp(base_score * modifiers.swing, 0.0, 100.0),
    )


def calculate_style_scores(
    base_score: float,
    features: FeatureSnapshot,
    direction: Direction,
    market_hours: MarketHoursService | None = None,
) -> tuple[StyleScores, StyleModifierResult]:
    """Style scores for a detection plus the modifiers that produced them."""
    factors = extract_style_factors(features, direction, market_hours)
    result = calculate_style_modifiers(factors)
    return apply_style_modifiers(base_score, result.modifiers), result


def calculate_risk_reward(
    features: FeatureSnapshot, direction: Direction, style: TradingStyle
) -> RiskReward:
    """
    ATR-based entry, stop and targets for a style.

    The ratio uses the second target: ``|T2 - entry| / |entry - stop|``.
    ATR falls back to 2.0 when the snapshot carries none.
    """
    profile = STYLE_PROFILES[style]
    entry = features.current_price or 0.0
    atr = features.atr_value() or DEFAULT_ATR
    sign = direction.sign

    stop = entry - sign * atr * profile.stop_atr_multiple
    first, second, third = (entry + sign * atr * m for m in profile.target_atr_multiples)

    risk = abs(entry - stop)
    ratio = abs(second - entry) / risk if risk > 0 else 0.0
    return RiskReward(
        entry=entry,
        stop=stop,
        targets=(first, second, third),
        ratio=ratio,
        style=style,
        atr=atr,
    )
