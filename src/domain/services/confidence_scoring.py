"""
Confidence Scoring Service - Advisory confidence for emitted signals.

Confidence starts from data completeness (weighted availability of the
snapshot fields a detection leans on, with critical fields capping the
result) and is then nudged by context: institutional flow agreement, the
market regime and multi-timeframe alignment. It never gates emission.
"""

from dataclasses import dataclass, field
from typing import Any

from ..entities.feature_snapshot import FeatureSnapshot
from ..value_objects.market_context import Direction
from .opportunity.factors import mtf_alignment_score


@dataclass(frozen=True)
class DataWeight:
    """Contribution of one data item to completeness."""

    weight: float
    critical: bool
    category: str


DEFAULT_DATA_WEIGHTS: dict[str, DataWeight] = {
    "price": DataWeight(20, True, "price"),
    "price_change": DataWeight(5, False, "price"),
    "volume": DataWeight(12, True, "volume"),
    "volume_avg": DataWeight(5, False, "volume"),
    "relative_volume": DataWeight(8, False, "volume"),
    "vwap": DataWeight(10, False, "technical"),
    "vwap_distance": DataWeight(5, False, "technical"),
    "rsi": DataWeight(8, False, "technical"),
    "ema": DataWeight(6, False, "technical"),
    "atr": DataWeight(10, True, "technical"),
    "mtf_1m": DataWeight(2, False, "mtf"),
    "mtf_5m": DataWeight(4, False, "mtf"),
    "mtf_15m": DataWeight(3, False, "mtf"),
    "mtf_60m": DataWeight(2, False, "mtf"),
    "flow": DataWeight(5, False, "flow"),
    "flow_score": DataWeight(4, False, "flow"),
    "flow_bias": DataWeight(3, False, "flow"),
    "orb": DataWeight(3, False, "pattern"),
    "prior_day_levels": DataWeight(4, False, "pattern"),
    "swing_levels": DataWeight(2, False, "pattern"),
    "vix_level": DataWeight(5, False, "context"),
    "market_regime": DataWeight(5, False, "context"),
    "session": DataWeight(3, False, "context"),
}

# Off-hours review leans on levels rather than live volume and flow
WEEKEND_DATA_WEIGHTS: dict[str, DataWeight] = {
    **DEFAULT_DATA_WEIGHTS,
    "volume": DataWeight(5, False, "volume"),
    "relative_volume": DataWeight(2, False, "volume"),
    "vwap": DataWeight(3, False, "technical"),
    "vwap_distance": DataWeight(2, False, "technical"),
    "flow": DataWeight(2, False, "flow"),
    "flow_score": DataWeight(1, False, "flow"),
    "flow_bias": DataWeight(1, False, "flow"),
    "prior_day_levels": DataWeight(10, False, "pattern"),
    "swing_levels": DataWeight(8, False, "pattern"),
}

CRITICAL_PENALTY = 15
IMPORTANT_WEIGHT = 5

# Context adjustments (confidence points)
FLOW_ALIGNED_BONUS = 5.0
FLOW_OPPOSED_PENALTY = -10.0
FLOW_ABSENT_PENALTY = -3.0
REGIME_PENALTIES = {"volatile": -5.0, "choppy": -8.0}
MTF_STRONG_THRESHOLD = 80.0
MTF_WEAK_THRESHOLD = 40.0
MTF_STRONG_BONUS = 5.0
MTF_WEAK_PENALTY = -5.0


def _has(value: Any) -> bool:
    return value is not None


def _positive(value: float | None) -> bool:
    return value is not None and value > 0


def _timeframe_has_price(features: FeatureSnapshot, name: str) -> bool:
    frame = features.timeframe(name)
    return frame is not None and frame.close is not None


def extract_data_availability(features: FeatureSnapshot) -> dict[str, bool]:
    """Flag which weighted data items are present on a snapshot."""
    pattern = features.pattern_number
    flow = features.flow
    return {
        "price": _positive(features.price.current),
        "price_change": _has(features.price.prev) or _has(features.price.prev_close),
        "volume": _positive(features.volume.current),
        "volume_avg": _positive(features.volume.avg),
        "relative_volume": _has(features.volume.relative_to_avg),
        "vwap": _positive(features.vwap.value),
        "vwap_distance": _has(features.vwap_distance_pct),
        "rsi": _has(features.rsi_value("14")),
        "ema": _has(features.ema_value("21")),
        "atr": _positive(features.atr_value()),
        "mtf_1m": _timeframe_has_price(features, "1m"),
        "mtf_5m": _timeframe_has_price(features, "5m"),
        "mtf_15m": _timeframe_has_price(features, "15m"),
        "mtf_60m": _timeframe_has_price(features, "60m"),
        "flow": flow is not None,
        "flow_score": flow is not None and flow.flow_score is not None,
        "flow_bias": flow is not None and flow.flow_bias is not None,
        "orb": _has(pattern("orb_high")) and _has(pattern("orb_low")),
        "prior_day_levels": _has(features.price.prev_close),
        "swing_levels": _has(pattern("swing_high")) and _has(pattern("swing_low")),
        "vix_level": features.vix_level is not None,
        "market_regime": features.market_regime is not None,
        "session": features.is_regular_hours is not None,
    }


@dataclass(frozen=True)
class ConfidenceResult:
    """Data-completeness confidence with its breakdown."""

    data_completeness: float
    base_confidence: float
    adjusted_confidence: float
    missing_critical: tuple[str, ...] = ()
    missing_important: tuple[str, ...] = ()
    missing_minor: tuple[str, ...] = ()
    category_scores: dict[str, float] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    @property
    def multiplier(self) -> float:
        return self.adjusted_confidence / 100

    @property
    def level(self) -> str:
        return get_confidence_level(self.adjusted_confidence)

    @property
    def summary(self) -> str:
        text = f"Data: {self.data_completeness:.0f}% complete"
        if self.missing_critical:
            text += f" ({len(self.missing_critical)} critical missing)"
        return f"{text} -> {self.adjusted_confidence:.0f}% confidence"


def calculate_data_confidence(
    availability: dict[str, bool], weights: dict[str, DataWeight] | None = None
) -> ConfidenceResult:
    """
    Turn availability flags into a completeness-based confidence.

    Each missing critical item caps confidence 15 points lower; completeness
    below 70% / 50% costs 10 / 20 points and 90%+ earns 5.

    Args:
        availability: Output of ``extract_data_availability``
        weights: Data weights, defaults to DEFAULT_DATA_WEIGHTS

    Returns:
        ConfidenceResult clamped to [0, 100]
    """
    weights = weights or DEFAULT_DATA_WEIGHTS
    total = 0.0
    available = 0.0
    missing_critical: list[str] = []
    missing_important: list[str] = []
    missing_minor: list[str] = []
    categories: dict[str, list[float]] = {}
    warnings: list[str] = []

    for name, config in weights.items():
        total += config.weight
        bucket = categories.setdefault(config.category, [0.0, 0.0])
        bucket[1] += config.weight
        if availability.get(name, False):
            available += config.weight
            bucket[0] += config.weight
        elif config.critical:
            missing_critical.append(name)
        elif config.weight >= IMPORTANT_WEIGHT:
            missing_important.append(name)
        else:
            missing_minor.append(name)

    completeness = round(available / total * 100) if total else 0

    base = 100.0
    if missing_critical:
        base = min(base, 100.0 - len(missing_critical) * CRITICAL_PENALTY)
        warnings.append(f"Missing critical data: {', '.join(missing_critical)}")

    if completeness < 50:
        completeness_adjustment = -20
        warnings.append("Data completeness below 50% - signal reliability significantly reduced")
    elif completeness < 70:
        completeness_adjustment = -10
        warnings.append("Data completeness below 70% - signal may be unreliable")
    elif completeness >= 90:
        completeness_adjustment = 5
    else:
        completeness_adjustment = 0

    adjusted = max(0.0, min(100.0, base * completeness / 100 + completeness_adjustment))

    return ConfidenceResult(
        data_completeness=completeness,
        base_confidence=base,
        adjusted_confidence=adjusted,
        missing_critical=tuple(missing_critical),
        missing_important=tuple(missing_important),
        missing_minor=tuple(missing_minor),
        category_scores={
            category: round(have / total_weight * 100) if total_weight else 0
            for category, (have, total_weight) in categories.items()
        },
        warnings=tuple(warnings),
    )


def get_confidence_level(confidence: float) -> str:
    if confidence >= 80:
        return "high"
    if confidence >= 60:
        return "medium"
    if confidence >= 40:
        return "low"
    return "very_low"


def _flow_adjustment(features: FeatureSnapshot, direction: Direction) -> float:
    flow = features.flow
    if flow is None or flow.flow_bias is None:
        return FLOW_ABSENT_PENALTY
    wanted = "bullish" if direction is Direction.LONG else "bearish"
    if flow.flow_bias == wanted:
        return FLOW_ALIGNED_BONUS
    if flow.flow_bias == "neutral":
        return 0.0
    return FLOW_OPPOSED_PENALTY


def _mtf_adjustment(features: FeatureSnapshot, direction: Direction) -> float:
    alignment = mtf_alignment_score(features, direction)
    if alignment is None:
        return 0.0
    if alignment >= MTF_STRONG_THRESHOLD:
        return MTF_STRONG_BONUS
    if alignment < MTF_WEAK_THRESHOLD:
        return MTF_WEAK_PENALTY
    return 0.0


def calculate_signal_confidence(
    features: FeatureSnapshot, direction: Direction, off_hours: bool = False
) -> float:
    """
    Advisory confidence (0-100) for a detection in ``direction``.

    Args:
        features: Snapshot the detection was made on
        direction: Trade direction of the detection
        off_hours: Use off-hours data weights (levels over live volume/flow)

    Returns:
        Confidence rounded to one decimal
    """
    weights = WEEKEND_DATA_WEIGHTS if off_hours else DEFAULT_DATA_WEIGHTS
    result = calculate_data_confidence(extract_data_availability(features), weights)

    confidence = result.adjusted_confidence
    confidence += _flow_adjustment(features, direction)
    confidence += REGIME_PENALTIES.get(features.market_regime or "", 0.0)
    confidence += _mtf_adjustment(features, direction)
    return round(max(0.0, min(100.0, confidence)), 1)
