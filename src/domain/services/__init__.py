"""Domain services for detection, scoring, thresholds and deduplication."""

from .adaptive_thresholds import (
    AdaptiveThresholdResult,
    AdaptiveThresholdService,
    MarketRegime,
    VixLevel,
    passes_adaptive_thresholds,
)
from .confidence_scoring import (
    ConfidenceResult,
    calculate_data_confidence,
    calculate_signal_confidence,
    extract_data_availability,
    get_confidence_level,
)
from .market_hours_service import MarketHoursService, MarketStatus, TradingWindow
from .signal_deduplication import DeduplicationStore, generate_bar_time_key
from .style_score_modifiers import (
    StyleModifiers,
    calculate_risk_reward,
    calculate_style_modifiers,
    calculate_style_scores,
    extract_style_factors,
)

__all__ = [
    "AdaptiveThresholdResult",
    "AdaptiveThresholdService",
    "ConfidenceResult",
    "DeduplicationStore",
    "MarketHoursService",
    "MarketRegime",
    "MarketStatus",
    "StyleModifiers",
    "TradingWindow",
    "VixLevel",
    "calculate_data_confidence",
    "calculate_risk_reward",
    "calculate_signal_confidence",
    "calculate_style_modifiers",
    "calculate_style_scores",
    "extract_data_availability",
    "extract_style_factors",
    "get_confidence_level",
    "passes_adaptive_thresholds",
]
