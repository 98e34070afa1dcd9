"""Domain entities: snapshots in, signals out."""

from .composite_signal import (
    CompositeSignal,
    DeduplicationRecord,
    RiskReward,
    ScanResult,
    StyleScores,
    TradingStyle,
)
from .feature_snapshot import (
    Divergence,
    FeatureSnapshot,
    FlowData,
    PriceData,
    SessionInfo,
    TimeframeSnapshot,
    VolumeData,
    VwapData,
)
from .options_chain import OptionsChainContext

__all__ = [
    "FeatureSnapshot",
    "PriceData",
    "VolumeData",
    "VwapData",
    "SessionInfo",
    "FlowData",
    "Divergence",
    "TimeframeSnapshot",
    "OptionsChainContext",
    "CompositeSignal",
    "ScanResult",
    "DeduplicationRecord",
    "StyleScores",
    "RiskReward",
    "TradingStyle",
]
