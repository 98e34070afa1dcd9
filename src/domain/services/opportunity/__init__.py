"""Opportunity detector framework, catalogue and registry."""

from .detector import (
    WEIGHT_SUM_TOLERANCE,
    DetectionResult,
    OpportunityDetector,
    ScoreFactor,
    StrategyCategory,
    calculate_composite_score,
    categorize_strategy,
    clamp_score,
)
from .registry import DetectorRegistry, build_default_registry
from .session_gate import is_off_hours_analysis, is_regular_hours, should_run_detector

__all__ = [
    "DetectionResult",
    "DetectorRegistry",
    "OpportunityDetector",
    "ScoreFactor",
    "StrategyCategory",
    "WEIGHT_SUM_TOLERANCE",
    "build_default_registry",
    "calculate_composite_score",
    "categorize_strategy",
    "clamp_score",
    "is_off_hours_analysis",
    "is_regular_hours",
    "should_run_detector",
]
