"""
Opportunity detector framework.

A detector is a plain value: a fail-closed gate predicate plus an ordered list
of weighted score factors. Detectors are built declaratively by the catalogue
modules and registered once; they hold no state and may be evaluated
concurrently across symbols.
"""

import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from ...entities.feature_snapshot import FeatureSnapshot
from ...entities.options_chain import OptionsChainContext
from ...exceptions import DetectorRegistrationError
from ...value_objects.market_context import AnalysisMode, AssetClass, Direction

FactorFunction = Callable[[FeatureSnapshot, OptionsChainContext | None], float]
GateFunction = Callable[[FeatureSnapshot, OptionsChainContext | None, AnalysisMode], bool]

WEIGHT_SUM_TOLERANCE = 0.02
MIN_SCORE = 0.0
MAX_SCORE = 100.0


class StrategyCategory(Enum):
    """Strategy family used to look up regime-specific thresholds."""

    BREAKOUT = "breakout"
    MEAN_REVERSION = "mean_reversion"
    TREND_CONTINUATION = "trend_continuation"
    GAMMA = "gamma"
    REVERSAL = "reversal"
    ALL = "all"


def categorize_strategy(detector_type: str) -> StrategyCategory:
    """Infer a strategy category from a detector type name (breakout if unknown)."""
    lowered = detector_type.lower()
    if "breakout" in lowered:
        return StrategyCategory.BREAKOUT
    if "reversion" in lowered:
        return StrategyCategory.MEAN_REVERSION
    if "continuation" in lowered:
        return StrategyCategory.TREND_CONTINUATION
    if "gamma" in lowered:
        return StrategyCategory.GAMMA
    if "reversal" in lowered or "power_hour" in lowered:
        return StrategyCategory.REVERSAL
    return StrategyCategory.BREAKOUT


def clamp_score(value: float | None) -> float:
    """Clamp a raw factor value to [0, 100]; None and non-finite values score 0."""
    if value is None or isinstance(value, bool):
        return MIN_SCORE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return MIN_SCORE
    if not math.isfinite(number):
        return MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, number))


@dataclass(frozen=True)
class ScoreFactor:
    """A named, weighted scoring function returning a value in [0, 100]."""

    name: str
    weight: float
    evaluate: FactorFunction

    def score(
        self, features: FeatureSnapshot, options_data: OptionsChainContext | None = None
    ) -> float:
        return clamp_score(self.evaluate(features, options_data))


@dataclass(frozen=True)
class DetectionResult:
    """Gate outcome plus the composite score and per-factor breakdown."""

    detected: bool
    base_score: float = 0.0
    factor_scores: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "factor_scores", MappingProxyType(dict(self.factor_scores)))


@dataclass(frozen=True)
class OpportunityDetector:
    """
    Declarative trade-opportunity detector.

    Attributes:
        type: Unique detector id, e.g. ``breakout_bullish``
        direction: LONG or SHORT
        asset_classes: Asset classes the scanner may run this detector on
        gate: Fail-closed predicate; must return False rather than raise
            when fields it needs are missing
        score_factors: Weighted factors, weights summing to 1.0 +/- 0.02
        requires_options_data: Gate never passes without an options context
        requires_flow_data: Detector is driven by options-flow aggregates
        category: Strategy family for regime thresholds; inferred from the
            type name when omitted
        ideal_timeframe: Bar interval the setup is tuned for
        expected_frequency: Human-readable expected signal rate
        tier: 1 (highest conviction) to 3 (experimental)
    """

    type: str
    direction: Direction
    asset_classes: frozenset[AssetClass]
    gate: GateFunction
    score_factors: tuple[ScoreFactor, ...]
    requires_options_data: bool = False
    requires_flow_data: bool = False
    category: StrategyCategory | None = None
    ideal_timeframe: str = "5m"
    expected_frequency: str = ""
    tier: int = 2
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "asset_classes", frozenset(self.asset_classes))
        object.__setattr__(self, "score_factors", tuple(self.score_factors))
        if self.category is None:
            object.__setattr__(self, "category", categorize_strategy(self.type))

    @property
    def weight_sum(self) -> float:
        return sum(factor.weight for factor in self.score_factors)

    @property
    def factor_names(self) -> tuple[str, ...]:
        return tuple(factor.name for factor in self.score_factors)

    @property
    def is_backtestable(self) -> bool:
        """Runs on historical bars alone (no options chain, no flow feed)."""
        return not (self.requires_options_data or self.requires_flow_data)

    def validate(self) -> None:
        """
        Check authoring invariants.

        Raises:
            DetectorRegistrationError: Empty type, no factors, a weight outside
                (0, 1], duplicate factor names or a weight sum outside tolerance
        """
        if not self.type:
            raise DetectorRegistrationError("<unnamed>", "detector type cannot be empty")
        if not self.score_factors:
            raise DetectorRegistrationError(self.type, "detector has no score factors")
        if not self.asset_classes:
            raise DetectorRegistrationError(self.type, "detector applies to no asset class")

        names = self.factor_names
        if len(set(names)) != len(names):
            raise DetectorRegistrationError(self.type, "duplicate score factor names")

        for factor in self.score_factors:
            if not 0 < factor.weight <= 1:
                raise DetectorRegistrationError(
                    self.type, f"factor '{factor.name}' weight {factor.weight} outside (0, 1]"
                )

        total = self.weight_sum
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise DetectorRegistrationError(
                self.type,
                f"factor weights sum to {total:.4f}, expected 1.0 +/- {WEIGHT_SUM_TOLERANCE}",
                weight_sum=total,
            )

    def applies_to(self, asset_class: AssetClass) -> bool:
        return asset_class in self.asset_classes

    def detect(
        self,
        features: FeatureSnapshot,
        options_data: OptionsChainContext | None = None,
        mode: AnalysisMode = AnalysisMode.LIVE,
    ) -> bool:
        """Evaluate the gate. Always False when required options data is absent."""
        if self.requires_options_data and options_data is None:
            return False
        return bool(self.gate(features, options_data, mode))

    def factor_breakdown(
        self, features: FeatureSnapshot, options_data: OptionsChainContext | None = None
    ) -> dict[str, float]:
        return {factor.name: factor.score(features, options_data) for factor in self.score_factors}

    def composite_score(
        self, features: FeatureSnapshot, options_data: OptionsChainContext | None = None
    ) -> float:
        """Weighted sum of clamped factor scores, clamped to [0, 100]."""
        return calculate_composite_score(
            self.score_factors, self.factor_breakdown(features, options_data)
        )

    def detect_with_score(
        self,
        features: FeatureSnapshot,
        options_data: OptionsChainContext | None = None,
        mode: AnalysisMode = AnalysisMode.LIVE,
    ) -> DetectionResult:
        if not self.detect(features, options_data, mode):
            return DetectionResult(detected=False)
        breakdown = self.factor_breakdown(features, options_data)
        return DetectionResult(
            detected=True,
            base_score=calculate_composite_score(self.score_factors, breakdown),
            factor_scores=breakdown,
        )


def calculate_composite_score(
    factors: Iterable[ScoreFactor], factor_scores: Mapping[str, float]
) -> float:
    """
    Combine factor scores with their weights.

    Weights are applied as authored (no renormalisation); the result is
    clamped to [0, 100].
    """
    total = 0.0
    for factor in factors:
        total += factor.weight * clamp_score(factor_scores.get(factor.name))
    return clamp_score(total)
