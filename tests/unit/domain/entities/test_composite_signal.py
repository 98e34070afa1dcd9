"""
Unit tests for emitted signals, scan results and style scores.
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.domain.entities.composite_signal import (
    CompositeSignal,
    DeduplicationRecord,
    RiskReward,
    ScanResult,
    StyleScores,
    TradingStyle,
)
from src.domain.value_objects.market_context import AssetClass, Direction

DETECTED_AT = datetime(2024, 3, 12, 14, 30, tzinfo=UTC)


@pytest.fixture
def make_signal():
    def factory(score=85.0, **overrides):
        values = {
            "symbol": "AAPL",
            "detector_type": "breakout_bullish",
            "direction": Direction.LONG,
            "asset_class": AssetClass.STOCK,
            "composite_score": score,
            "confidence": 72.0,
            "factor_scores": {"volume_surge": 90.0, "rsi_momentum": 80.0},
            "style_scores": StyleScores(scalp=80.0, day_trade=90.0, swing=70.0),
            "risk_reward": RiskReward(
                entry=100.5,
                stop=99.5,
                targets=(102.0, 103.0, 104.0),
                ratio=2.5,
                style=TradingStyle.DAY_TRADE,
                atr=1.0,
            ),
            "bar_time_key": "AAPL:breakout_bullish:2024-03-12T14:30:00+00:00",
            "detected_at": DETECTED_AT,
            "expires_at": DETECTED_AT + timedelta(minutes=30),
            "detector_version": "2.0.0",
        }
        values.update(overrides)
        return CompositeSignal(**values)

    return factory


class TestStyleScores:
    """Test recommended style selection."""

    @pytest.mark.parametrize(
        "scores, expected",
        [
            ((90, 80, 70), TradingStyle.SCALP),
            ((70, 90, 80), TradingStyle.DAY_TRADE),
            ((70, 80, 90), TradingStyle.SWING),
            ((100, 100, 60), TradingStyle.SCALP),
            ((60, 90, 90), TradingStyle.DAY_TRADE),
        ],
    )
    def test_recommended_style(self, scores, expected):
        style_scores = StyleScores(*scores)

        assert style_scores.recommended_style is expected
        assert style_scores.best_score == max(scores)

    def test_for_style(self):
        scores = StyleScores(scalp=1.0, day_trade=2.0, swing=3.0)

        assert scores.for_style(TradingStyle.SWING) == 3.0


class TestCompositeSignal:
    """Test the emitted signal entity."""

    def test_score_bounds(self, make_signal):
        with pytest.raises(ValueError, match="outside"):
            make_signal(score=100.5)
        with pytest.raises(ValueError):
            make_signal(score=-1)

    def test_signal_is_immutable(self, make_signal):
        signal = make_signal()

        with pytest.raises(AttributeError):
            signal.composite_score = 10.0
        with pytest.raises(TypeError):
            signal.factor_scores["volume_surge"] = 0.0

    def test_unique_ids(self, make_signal):
        assert make_signal().id != make_signal().id

    def test_expiry(self, make_signal):
        signal = make_signal()

        assert not signal.is_expired(DETECTED_AT + timedelta(minutes=29))
        assert signal.is_expired(DETECTED_AT + timedelta(minutes=30))

    def test_to_dict(self, make_signal):
        data = make_signal(metadata={"time_window": "mid_morning"}).to_dict()

        assert data["symbol"] == "AAPL"
        assert data["direction"] == "LONG"
        assert data["asset_class"] == "STOCK"
        assert data["style_scores"]["recommended_style"] == "day_trade"
        assert data["risk_reward"]["targets"] == [102.0, 103.0, 104.0]
        assert data["detected_at"] == "2024-03-12T14:30:00+00:00"
        assert data["metadata"] == {"time_window": "mid_morning"}
        assert data["filtered"] is False


class TestScanResult:
    """Test scan outcomes."""

    def test_rejected(self):
        result = ScanResult.rejected(
            "AAPL",
            "breakout_bullish: In cooldown (15 minutes)",
            detection_count=1,
            rejections={"breakout_bullish": "In cooldown (15 minutes)"},
        )

        assert result.filtered
        assert result.signal is None
        assert result.detection_count == 1
        assert result.rejections["breakout_bullish"] == "In cooldown (15 minutes)"

    def test_strongest_signal(self, make_signal):
        weak = make_signal(score=72.0)
        strong = make_signal(score=91.0, detector_type="mean_reversion_long")

        result = ScanResult(
            symbol="AAPL", filtered=False, detection_count=2, signals=[weak, strong]
        )

        assert result.signals == (weak, strong)
        assert result.signal is strong


def test_dedup_record_key():
    record = DeduplicationRecord(
        symbol="AAPL",
        detector_type="breakout_bullish",
        bar_time_key="k",
        emitted_at=DETECTED_AT,
    )

    assert record.key == ("AAPL", "breakout_bullish", "k")
