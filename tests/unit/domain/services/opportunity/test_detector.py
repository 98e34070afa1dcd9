"""
Unit tests for the opportunity detector framework.

Tests score clamping, composite scoring, detector authoring invariants and
the gate/score evaluation path.
"""

import math

import pytest

from src.domain.entities.options_chain import OptionsChainContext
from src.domain.exceptions import DetectorRegistrationError
from src.domain.services.opportunity import (
    OpportunityDetector,
    ScoreFactor,
    StrategyCategory,
    calculate_composite_score,
    categorize_strategy,
    clamp_score,
)
from src.domain.value_objects.market_context import (
    ALL_ASSET_CLASSES,
    AnalysisMode,
    Direction,
)


def _constant(value):
    return lambda features, options_data: value


def _detector(factors, detector_type="sample_breakout", **kwargs):
    return OpportunityDetector(
        type=detector_type,
        direction=Direction.LONG,
        asset_classes=kwargs.pop("asset_classes", ALL_ASSET_CLASSES),
        gate=kwargs.pop("gate", lambda features, options_data, mode: True),
        score_factors=factors,
        **kwargs,
    )


class TestClampScore:
    """Test factor score clamping."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (-10, 0.0),
            (0, 0.0),
            (42.5, 42.5),
            (100, 100.0),
            (250, 100.0),
            (None, 0.0),
            (math.nan, 0.0),
            (math.inf, 0.0),
            ("abc", 0.0),
            (True, 0.0),
        ],
    )
    def test_clamp(self, raw, expected):
        assert clamp_score(raw) == expected


class TestCompositeScore:
    """Test weighted composite scoring."""

    def test_weighted_sum(self):
        factors = (
            ScoreFactor("a", 0.7, _constant(100)),
            ScoreFactor("b", 0.3, _constant(50)),
        )

        assert calculate_composite_score(factors, {"a": 100, "b": 50}) == pytest.approx(85.0)

    def test_missing_factor_scores_zero(self):
        factors = (ScoreFactor("a", 0.5, _constant(80)), ScoreFactor("b", 0.5, _constant(80)))

        assert calculate_composite_score(factors, {"a": 80}) == pytest.approx(40.0)

    def test_out_of_range_factor_values_are_clamped(self, make_snapshot):
        detector = _detector(
            (ScoreFactor("huge", 0.5, _constant(500)), ScoreFactor("neg", 0.5, _constant(-50)))
        )

        breakdown = detector.factor_breakdown(make_snapshot())

        assert breakdown == {"huge": 100.0, "neg": 0.0}
        assert detector.composite_score(make_snapshot()) == pytest.approx(50.0)

    def test_weights_within_tolerance_are_not_renormalised(self, make_snapshot):
        detector = _detector(
            (ScoreFactor("a", 0.51, _constant(100)), ScoreFactor("b", 0.5, _constant(100)))
        )

        # 1.01 * 100 clamps back to 100
        assert detector.composite_score(make_snapshot()) == 100.0


class TestDetectorValidation:
    """Test authoring invariants checked at registration."""

    def test_valid_detector(self):
        detector = _detector(
            (ScoreFactor("a", 0.6, _constant(1)), ScoreFactor("b", 0.41, _constant(1)))
        )

        detector.validate()
        assert detector.weight_sum == pytest.approx(1.01)

    def test_weight_sum_outside_tolerance(self):
        detector = _detector(
            (ScoreFactor("a", 0.6, _constant(1)), ScoreFactor("b", 0.3, _constant(1)))
        )

        with pytest.raises(DetectorRegistrationError) as exc_info:
            detector.validate()

        assert exc_info.value.detector_type == "sample_breakout"
        assert exc_info.value.weight_sum == pytest.approx(0.9)
        assert exc_info.value.details["weight_sum"] == 0.9

    def test_weight_outside_unit_interval(self):
        detector = _detector(
            (ScoreFactor("a", 1.2, _constant(1)), ScoreFactor("b", -0.2, _constant(1)))
        )

        with pytest.raises(DetectorRegistrationError, match="outside"):
            detector.validate()

    def test_no_factors(self):
        with pytest.raises(DetectorRegistrationError, match="no score factors"):
            _detector(()).validate()

    def test_duplicate_factor_names(self):
        detector = _detector(
            (ScoreFactor("a", 0.5, _constant(1)), ScoreFactor("a", 0.5, _constant(1)))
        )

        with pytest.raises(DetectorRegistrationError, match="duplicate"):
            detector.validate()

    def test_empty_type(self):
        detector = _detector((ScoreFactor("a", 1.0, _constant(1)),), detector_type="")

        with pytest.raises(DetectorRegistrationError):
            detector.validate()

    def test_no_asset_classes(self):
        detector = _detector((ScoreFactor("a", 1.0, _constant(1)),), asset_classes=frozenset())

        with pytest.raises(DetectorRegistrationError, match="no asset class"):
            detector.validate()


class TestDetectorEvaluation:
    """Test the gate and scoring path."""

    def test_gate_false_yields_no_detection(self, make_snapshot):
        detector = _detector(
            (ScoreFactor("a", 1.0, _constant(90)),),
            gate=lambda features, options_data, mode: False,
        )

        result = detector.detect_with_score(make_snapshot())

        assert result.detected is False
        assert result.base_score == 0.0
        assert dict(result.factor_scores) == {}

    def test_gate_true_scores(self, make_snapshot):
        detector = _detector(
            (ScoreFactor("a", 0.5, _constant(90)), ScoreFactor("b", 0.5, _constant(70)))
        )

        result = detector.detect_with_score(make_snapshot())

        assert result.detected is True
        assert result.base_score == pytest.approx(80.0)
        assert dict(result.factor_scores) == {"a": 90.0, "b": 70.0}

    def test_gate_receives_mode(self, make_snapshot):
        detector = _detector(
            (ScoreFactor("a", 1.0, _constant(90)),),
            gate=lambda features, options_data, mode: mode is AnalysisMode.HISTORICAL,
        )

        assert detector.detect(make_snapshot()) is False
        assert detector.detect(make_snapshot(), mode=AnalysisMode.HISTORICAL) is True

    def test_options_requirement(self, make_snapshot):
        detector = _detector(
            (ScoreFactor("a", 1.0, _constant(90)),), requires_options_data=True
        )

        assert detector.detect(make_snapshot()) is False
        assert detector.detect(make_snapshot(), OptionsChainContext()) is True
        assert detector.is_backtestable is False

    def test_factors_see_options_context(self, make_snapshot):
        chain = OptionsChainContext(dealer_net_gamma=-5.0)
        detector = _detector(
            (
                ScoreFactor(
                    "gamma",
                    1.0,
                    lambda features, options_data: 100 if options_data.is_short_gamma else 0,
                ),
            ),
            requires_options_data=True,
        )

        assert detector.detect_with_score(make_snapshot(), chain).base_score == 100.0


class TestStrategyCategory:
    """Test category inference from detector type names."""

    @pytest.mark.parametrize(
        "detector_type, category",
        [
            ("breakout_bullish", StrategyCategory.BREAKOUT),
            ("kcu_orb_breakout_long", StrategyCategory.BREAKOUT),
            ("mean_reversion_long", StrategyCategory.MEAN_REVERSION),
            ("trend_continuation_short", StrategyCategory.TREND_CONTINUATION),
            ("gamma_squeeze_bullish", StrategyCategory.GAMMA),
            ("power_hour_reversal_bearish", StrategyCategory.REVERSAL),
            ("something_new", StrategyCategory.BREAKOUT),
        ],
    )
    def test_categorize(self, detector_type, category):
        assert categorize_strategy(detector_type) is category

    def test_explicit_category_wins(self):
        detector = _detector(
            (ScoreFactor("a", 1.0, _constant(1)),), category=StrategyCategory.GAMMA
        )

        assert detector.category is StrategyCategory.GAMMA

    def test_category_inferred_when_omitted(self):
        detector = _detector((ScoreFactor("a", 1.0, _constant(1)),), detector_type="x_reversion")

        assert detector.category is StrategyCategory.MEAN_REVERSION
