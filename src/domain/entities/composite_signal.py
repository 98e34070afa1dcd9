"""
Composite Signal Entity - Emitted detections, scan results and dedup records
"""

# Standard library imports
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID, uuid4

from ..value_objects.market_context import AssetClass, Direction


class TradingStyle(Enum):
    """Holding-period style a signal is scored for"""

    SCALP = "scalp"
    DAY_TRADE = "day_trade"
    SWING = "swing"


@dataclass(frozen=True)
class StyleScores:
    """Composite score re-weighted for each trading style (0-100 each)."""

    scalp: float
    day_trade: float
    swing: float

    @property
    def recommended_style(self) -> TradingStyle:
        best = max(self.scalp, self.day_trade, self.swing)
        if best == self.scalp:
            return TradingStyle.SCALP
        if best == self.day_trade:
            return TradingStyle.DAY_TRADE
        return TradingStyle.SWING

    @property
    def best_score(self) -> float:
        return max(self.scalp, self.day_trade, self.swing)

    def for_style(self, style: TradingStyle) -> float:
        return getattr(self, style.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scalp": round(self.scalp, 2),
            "day_trade": round(self.day_trade, 2),
            "swing": round(self.swing, 2),
            "recommended_style": self.recommended_style.value,
        }


@dataclass(frozen=True)
class RiskReward:
    """Entry, stop and three ATR-multiple targets for the recommended style."""

    entry: float
    stop: float
    targets: tuple[float, float, float]
    ratio: float
    style: TradingStyle
    atr: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": round(self.entry, 4),
            "stop": round(self.stop, 4),
            "targets": [round(target, 4) for target in self.targets],
            "ratio": round(self.ratio, 2),
            "style": self.style.value,
            "atr": round(self.atr, 4),
        }


@dataclass(frozen=True)
class CompositeSignal:
    """
    A detection that passed every threshold and dedup check.

    Ownership passes to the caller on emission; the scanner keeps only a
    DeduplicationRecord.
    """

    symbol: str
    detector_type: str
    direction: Direction
    asset_class: AssetClass
    composite_score: float
    confidence: float
    factor_scores: Mapping[str, float]
    style_scores: StyleScores
    risk_reward: RiskReward
    bar_time_key: str
    detected_at: datetime
    expires_at: datetime
    detector_version: str
    id: UUID = field(default_factory=uuid4)
    filtered: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0 <= self.composite_score <= 100:
            raise ValueError(f"Composite score {self.composite_score} outside [0, 100]")
        object.__setattr__(self, "factor_scores", MappingProxyType(dict(self.factor_scores)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the persistence/alerting collaborator."""
        return {
            "id": str(self.id),
            "symbol": self.symbol,
            "detector_type": self.detector_type,
            "direction": self.direction.value,
            "asset_class": self.asset_class.value,
            "composite_score": round(self.composite_score, 2),
            "confidence": round(self.confidence, 2),
            "factor_scores": {name: round(score, 2) for name, score in self.factor_scores.items()},
            "style_scores": self.style_scores.to_dict(),
            "risk_reward": self.risk_reward.to_dict(),
            "bar_time_key": self.bar_time_key,
            "detected_at": self.detected_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "detector_version": self.detector_version,
            "filtered": self.filtered,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class ScanResult:
    """
    Outcome of one ``scan_symbol`` call.

    ``detection_count`` counts every detector whose gate passed, emitted or
    not. ``rejections`` maps detector type to the reason it did not emit.
    """

    symbol: str
    filtered: bool
    detection_count: int = 0
    signals: tuple[CompositeSignal, ...] = ()
    filter_reason: str | None = None
    rejections: Mapping[str, str] = field(default_factory=dict)
    scan_time_ms: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "signals", tuple(self.signals))
        object.__setattr__(self, "rejections", MappingProxyType(dict(self.rejections)))

    @property
    def signal(self) -> CompositeSignal | None:
        """Strongest emitted signal, if any."""
        if not self.signals:
            return None
        return max(self.signals, key=lambda signal: signal.composite_score)

    @classmethod
    def rejected(
        cls,
        symbol: str,
        reason: str,
        detection_count: int = 0,
        rejections: Mapping[str, str] | None = None,
    ) -> "ScanResult":
        return cls(
            symbol=symbol,
            filtered=True,
            detection_count=detection_count,
            filter_reason=reason,
            rejections=rejections or {},
        )


@dataclass(frozen=True)
class DeduplicationRecord:
    """Lightweight trace of an emission kept for cooldown, caps and duplicate bars."""

    symbol: str
    detector_type: str
    bar_time_key: str
    emitted_at: datetime
    composite_score: float = 0.0

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.symbol, self.detector_type, self.bar_time_key)
