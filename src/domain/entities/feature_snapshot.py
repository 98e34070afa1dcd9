"""
Feature Snapshot Entity - point-in-time bundle of computed indicators for one symbol.

Snapshots are produced externally once per tick per symbol and are immutable
once built. Every field except ``symbol`` and ``timestamp`` is optional:
absent upstream data is a modeling decision that detectors and score factors
handle themselves, not an error.
"""

# Standard library imports
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _snake(key: str) -> str:
    """Convert camelCase keys from the feature builder to snake_case."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _to_float(value: Any) -> float | None:
    """Coerce a payload value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        return None
    return bool(value)


def _get(payload: Mapping[str, Any] | None, *keys: str) -> Any:
    """Read the first present key (camelCase or snake_case aliases)."""
    if not payload:
        return None
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _number_map(payload: Mapping[str, Any] | None) -> dict[str, float]:
    if not isinstance(payload, Mapping):
        return {}
    result = {}
    for key, value in payload.items():
        number = _to_float(value)
        if number is not None:
            result[str(key)] = number
    return result


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if isinstance(mapping, MappingProxyType):
        return mapping
    return MappingProxyType(dict(mapping or {}))


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e12 else value
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise ValueError(f"Feature snapshot requires a timestamp, got {value!r}")


@dataclass(frozen=True)
class PriceData:
    """Price fields for the current bar."""

    current: float | None = None
    open: float | None = None
    high: float | None = None
    low: float | None = None
    prev_close: float | None = None
    prev: float | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "PriceData":
        return cls(
            current=_to_float(_get(payload, "current", "close")),
            open=_to_float(_get(payload, "open")),
            high=_to_float(_get(payload, "high")),
            low=_to_float(_get(payload, "low")),
            prev_close=_to_float(_get(payload, "prevClose", "prev_close")),
            prev=_to_float(_get(payload, "prev")),
        )

    @property
    def change_pct(self) -> float | None:
        """Percent change from the prior close."""
        if self.current is None or not self.prev_close:
            return None
        return (self.current - self.prev_close) / self.prev_close * 100


@dataclass(frozen=True)
class VolumeData:
    """Volume fields; ``relative_to_avg`` is RVOL."""

    current: float | None = None
    avg: float | None = None
    relative_to_avg: float | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "VolumeData":
        current = _to_float(_get(payload, "current"))
        avg = _to_float(_get(payload, "avg", "average"))
        rvol = _to_float(_get(payload, "relativeToAvg", "relative_to_avg"))
        if rvol is None and current is not None and avg:
            rvol = current / avg
        return cls(current=current, avg=avg, relative_to_avg=rvol)


@dataclass(frozen=True)
class VwapData:
    """VWAP value and percent deviation of price from it."""

    value: float | None = None
    distance_pct: float | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "VwapData":
        return cls(
            value=_to_float(_get(payload, "value")),
            distance_pct=_to_float(_get(payload, "distancePct", "distance_pct")),
        )


@dataclass(frozen=True)
class SessionInfo:
    """
    Session timing.

    ``is_regular_hours`` is tri-state: None means the builder did not say,
    which callers must treat as regular hours.
    """

    minutes_since_open: float | None = None
    is_regular_hours: bool | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "SessionInfo":
        return cls(
            minutes_since_open=_to_float(_get(payload, "minutesSinceOpen", "minutes_since_open")),
            is_regular_hours=_to_bool(_get(payload, "isRegularHours", "is_regular_hours")),
        )


@dataclass(frozen=True)
class FlowData:
    """Aggregated options-flow context."""

    flow_score: float | None = None
    flow_bias: str | None = None
    sweep_count: int | None = None
    block_count: int | None = None
    buy_pressure: float | None = None
    large_trade_percentage: float | None = None
    aggressiveness: str | None = None
    flow_trend: str | None = None
    unusual_activity: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "FlowData":
        sweeps = _to_float(_get(payload, "sweepCount", "sweep_count"))
        blocks = _to_float(_get(payload, "blockCount", "block_count"))
        bias = _get(payload, "flowBias", "flow_bias")
        aggressiveness = _get(payload, "aggressiveness")
        trend = _get(payload, "flowTrend", "flow_trend")
        return cls(
            flow_score=_to_float(_get(payload, "flowScore", "flow_score")),
            flow_bias=str(bias).lower() if bias is not None else None,
            sweep_count=int(sweeps) if sweeps is not None else None,
            block_count=int(blocks) if blocks is not None else None,
            buy_pressure=_to_float(_get(payload, "buyPressure", "buy_pressure")),
            large_trade_percentage=_to_float(
                _get(payload, "largeTradePercentage", "large_trade_percentage")
            ),
            aggressiveness=str(aggressiveness).upper() if aggressiveness is not None else None,
            flow_trend=str(trend).upper() if trend is not None else None,
            unusual_activity=bool(_to_bool(_get(payload, "unusualActivity", "unusual_activity"))),
        )

    @property
    def is_aggressive(self) -> bool:
        return self.aggressiveness in ("AGGRESSIVE", "VERY_AGGRESSIVE")


@dataclass(frozen=True)
class Divergence:
    """RSI divergence flag with builder-supplied confidence (0-100)."""

    type: str = "none"
    confidence: float = 0.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "Divergence | None":
        if not payload:
            return None
        return cls(
            type=str(_get(payload, "type") or "none").lower(),
            confidence=_to_float(_get(payload, "confidence")) or 0.0,
        )


@dataclass(frozen=True)
class TimeframeSnapshot:
    """Nested indicator bundle for one higher/lower timeframe."""

    price: PriceData = field(default_factory=PriceData)
    vwap: VwapData = field(default_factory=VwapData)
    ema: Mapping[str, float] = field(default_factory=dict)
    rsi: Mapping[str, float] = field(default_factory=dict)
    atr: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "ema", _freeze(self.ema))
        object.__setattr__(self, "rsi", _freeze(self.rsi))

    @property
    def close(self) -> float | None:
        return self.price.current

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "TimeframeSnapshot":
        payload = payload or {}
        price_payload = _get(payload, "price") or {}
        if not price_payload and _get(payload, "close") is not None:
            price_payload = {"current": _get(payload, "close")}
        return cls(
            price=PriceData.from_dict(price_payload),
            vwap=VwapData.from_dict(_get(payload, "vwap")),
            ema=_number_map(_get(payload, "ema")),
            rsi=_number_map(_get(payload, "rsi")),
            atr=_to_float(_get(payload, "atr")),
        )


@dataclass(frozen=True)
class FeatureSnapshot:
    """
    Immutable feature bundle for one symbol at one tick.

    Indicator maps (``rsi``, ``ema``, ``atr``) are keyed by period as a
    string, e.g. ``snapshot.rsi["14"]``. ``pattern`` holds builder flags and
    levels with snake_case keys (``market_regime``, ``breakout_bullish``,
    ``orb_high`` ...).
    """

    symbol: str
    timestamp: datetime
    price: PriceData = field(default_factory=PriceData)
    volume: VolumeData = field(default_factory=VolumeData)
    vwap: VwapData = field(default_factory=VwapData)
    rsi: Mapping[str, float] = field(default_factory=dict)
    ema: Mapping[str, float] = field(default_factory=dict)
    atr: Mapping[str, float] = field(default_factory=dict)
    session: SessionInfo = field(default_factory=SessionInfo)
    pattern: Mapping[str, Any] = field(default_factory=dict)
    flow: FlowData | None = None
    divergence: Divergence | None = None
    mtf: Mapping[str, TimeframeSnapshot] = field(default_factory=dict)
    spread_pct: float | None = None

    def __post_init__(self) -> None:
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Feature snapshot symbol cannot be empty")
        object.__setattr__(self, "symbol", self.symbol.upper().strip())
        object.__setattr__(self, "timestamp", _parse_timestamp(self.timestamp))
        for name in ("rsi", "ema", "atr", "pattern", "mtf"):
            object.__setattr__(self, name, _freeze(getattr(self, name)))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FeatureSnapshot":
        """Build a snapshot from the feature builder's JSON-like payload.

        Accepts camelCase (builder native) or snake_case keys.

        Args:
            payload: Raw snapshot dictionary

        Returns:
            FeatureSnapshot

        Raises:
            ValueError: If symbol or timestamp is missing
        """
        symbol = _get(payload, "symbol")
        if not symbol:
            raise ValueError("Feature snapshot payload requires a symbol")

        pattern_payload = _get(payload, "pattern") or {}
        pattern = {_snake(str(key)): value for key, value in pattern_payload.items()}

        mtf_payload = _get(payload, "mtf") or {}
        mtf = {
            str(tf): TimeframeSnapshot.from_dict(data)
            for tf, data in mtf_payload.items()
            if isinstance(data, Mapping)
        }

        atr_raw = _get(payload, "atr")
        atr = _number_map(atr_raw) if isinstance(atr_raw, Mapping) else {}
        if not atr and _to_float(atr_raw) is not None:
            atr = {"14": _to_float(atr_raw)}

        flow_payload = _get(payload, "flow")

        return cls(
            symbol=str(symbol),
            timestamp=_parse_timestamp(_get(payload, "timestamp", "time")),
            price=PriceData.from_dict(_get(payload, "price")),
            volume=VolumeData.from_dict(_get(payload, "volume")),
            vwap=VwapData.from_dict(_get(payload, "vwap")),
            rsi=_number_map(_get(payload, "rsi")),
            ema=_number_map(_get(payload, "ema")),
            atr=atr,
            session=SessionInfo.from_dict(_get(payload, "session")),
            pattern=pattern,
            flow=FlowData.from_dict(flow_payload) if flow_payload else None,
            divergence=Divergence.from_dict(_get(payload, "divergence")),
            mtf=mtf,
            spread_pct=_to_float(_get(payload, "spreadPct", "spread_pct")),
        )

    # ------------------------------------------------------------------
    # Accessors used by detectors and factors
    # ------------------------------------------------------------------

    @property
    def current_price(self) -> float | None:
        return self.price.current

    @property
    def relative_volume(self) -> float | None:
        return self.volume.relative_to_avg

    @property
    def is_regular_hours(self) -> bool | None:
        return self.session.is_regular_hours

    @property
    def minutes_since_open(self) -> float | None:
        return self.session.minutes_since_open

    @property
    def vwap_distance_pct(self) -> float | None:
        """Percent deviation from VWAP, derived from price when not supplied."""
        if self.vwap.distance_pct is not None:
            return self.vwap.distance_pct
        if self.price.current is None or not self.vwap.value:
            return None
        return (self.price.current - self.vwap.value) / self.vwap.value * 100

    @property
    def market_regime(self) -> str | None:
        return self.pattern_text("market_regime")

    @property
    def vix_level(self) -> str | None:
        return self.pattern_text("vix_level")

    def rsi_value(self, period: str = "14") -> float | None:
        return self.rsi.get(period)

    def ema_value(self, period: str) -> float | None:
        return self.ema.get(period)

    def atr_value(self) -> float | None:
        """Best available ATR: ``atr["14"]``, the 5m timeframe, then pattern."""
        if self.atr.get("14"):
            return self.atr["14"]
        if self.atr:
            return next(iter(self.atr.values()))
        five_minute = self.mtf.get("5m")
        if five_minute is not None and five_minute.atr:
            return five_minute.atr
        return self.pattern_number("atr")

    def timeframe(self, name: str) -> TimeframeSnapshot | None:
        return self.mtf.get(name)

    def pattern_flag(self, *names: str) -> bool:
        """True when any of the named pattern flags is literally True."""
        return any(self.pattern.get(name) is True for name in names)

    def pattern_number(self, name: str) -> float | None:
        return _to_float(self.pattern.get(name))

    def pattern_text(self, name: str) -> str | None:
        value = self.pattern.get(name)
        if value is None or isinstance(value, bool):
            return None
        return str(value).lower()

    def with_changes(self, **changes: Any) -> "FeatureSnapshot":
        """Return a copy with the given top-level fields replaced."""
        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        values.update(changes)
        return FeatureSnapshot(**values)
