"""
Unit tests for the detector registry and the built-in catalogue.
"""

import pytest

from src.domain.entities.options_chain import OptionsChainContext
from src.domain.exceptions import DetectorRegistrationError, UnknownDetectorError
from src.domain.services.opportunity import (
    WEIGHT_SUM_TOLERANCE,
    DetectorRegistry,
    OpportunityDetector,
    ScoreFactor,
    build_default_registry,
)
from src.domain.value_objects.market_context import (
    ALL_ASSET_CLASSES,
    AnalysisMode,
    AssetClass,
    Direction,
)


@pytest.fixture(scope="module")
def registry():
    return build_default_registry()


class TestCatalogue:
    """Test invariants of the full detector catalogue."""

    def test_catalogue_size(self, registry):
        assert len(registry) == 30
        assert len(set(registry.types)) == 30

    def test_every_weight_sum_within_tolerance(self, registry):
        for detector in registry:
            assert abs(detector.weight_sum - 1.0) <= WEIGHT_SUM_TOLERANCE, detector.type

    def test_every_weight_in_unit_interval(self, registry):
        for detector in registry:
            for factor in detector.score_factors:
                assert 0 < factor.weight <= 1, (detector.type, factor.name)

    @pytest.mark.parametrize("seed", [11, 12, 13, 14])
    def test_composite_score_bounded_on_random_snapshots(self, registry, random_snapshots, seed):
        chain = OptionsChainContext(
            dealer_net_gamma=-2.5e9,
            max_gamma_strike=100.0,
            gamma_flip_level=99.0,
            max_pain_strike=101.0,
            minutes_to_expiry=45,
            is_0dte=True,
        )
        for features in random_snapshots(seed, 60):
            for detector in registry:
                for options_data in (None, chain):
                    score = detector.composite_score(features, options_data)
                    assert 0 <= score <= 100, detector.type
                    for value in detector.factor_breakdown(features, options_data).values():
                        assert 0 <= value <= 100

    @pytest.mark.parametrize("seed", [21, 22])
    def test_gates_never_raise_on_sparse_snapshots(self, registry, random_snapshots, seed):
        for features in random_snapshots(seed, 60):
            for detector in registry:
                for mode in AnalysisMode:
                    assert detector.detect(features, None, mode) in (True, False)

    def test_gates_fail_closed_on_empty_snapshot(self, registry, regular_hours_time):
        from src.domain.entities.feature_snapshot import FeatureSnapshot

        empty = FeatureSnapshot(symbol="AAPL", timestamp=regular_hours_time)

        for detector in registry:
            assert detector.detect(empty, OptionsChainContext()) is False, detector.type

    def test_directions_are_paired(self, registry):
        longs = [d for d in registry if d.direction is Direction.LONG]
        shorts = [d for d in registry if d.direction is Direction.SHORT]

        # eod_pin_setup and kcu_cloud_bounce are long-only
        assert len(longs) == 16
        assert len(shorts) == 14


class TestSubsets:
    """Test the named catalogue subsets."""

    def test_equity_only(self, registry):
        types = {d.type for d in registry.equity_only}

        assert len(types) == 6
        assert "breakout_bullish" in types
        assert "trend_continuation_short" in types

    def test_index_only(self, registry):
        types = {d.type for d in registry.index_only}

        assert len(types) == 11
        assert "gamma_squeeze_bullish" in types
        assert "opening_drive_bearish" in types

    def test_options_dependent(self, registry):
        types = {d.type for d in registry.options_dependent}

        assert types == {
            "gamma_squeeze_bullish",
            "gamma_squeeze_bearish",
            "gamma_flip_bullish",
            "gamma_flip_bearish",
            "eod_pin_setup",
        }

    def test_flow_primary(self, registry):
        types = {d.type for d in registry.flow_primary}

        assert types == {
            "sweep_momentum_long",
            "sweep_momentum_short",
            "institutional_flow_bullish",
            "institutional_flow_bearish",
        }

    def test_backtestable(self, registry):
        assert len(registry.backtestable) == 21
        assert all(d.is_backtestable for d in registry.backtestable)

    def test_subset_by_name(self, registry):
        assert registry.subset("index_only") == registry.index_only

        with pytest.raises(ValueError, match="Unknown detector subset"):
            registry.subset("crypto_only")


class TestLookup:
    """Test registry lookups and filtering."""

    def test_get(self, registry):
        detector = registry.get("breakout_bullish")

        assert detector.direction is Direction.LONG
        assert "breakout_bullish" in registry

    def test_get_unknown(self, registry):
        with pytest.raises(UnknownDetectorError) as exc_info:
            registry.get("does_not_exist")

        assert exc_info.value.detector_type == "does_not_exist"

    def test_for_stock_excludes_index_detectors(self, registry):
        detectors = registry.for_asset_class(AssetClass.STOCK)

        assert len(detectors) == 19
        assert all(AssetClass.STOCK in d.asset_classes for d in detectors)

    def test_for_index_without_chain_skips_options_detectors(self, registry):
        without = registry.for_asset_class(AssetClass.INDEX)
        with_chain = registry.for_asset_class(AssetClass.INDEX, has_options_data=True)

        assert len(without) == 19
        assert len(with_chain) == 24
        assert not any(d.requires_options_data for d in without)

    def test_registration_order_is_preserved(self, registry):
        types = registry.types

        assert types[0] == "breakout_bullish"
        assert types[-1] == "institutional_flow_bearish"

    def test_restricted_to(self, registry):
        subset = registry.restricted_to(["mean_reversion_long", "breakout_bullish"])

        assert subset.types == ("breakout_bullish", "mean_reversion_long")

    def test_restricted_to_unknown(self, registry):
        with pytest.raises(UnknownDetectorError):
            registry.restricted_to(["breakout_bullish", "nope"])

    def test_summary(self, registry):
        summary = registry.summary()

        assert set(summary) == set(registry.types)
        entry = summary["gamma_squeeze_bullish"]
        assert entry["asset_classes"] == ["INDEX"]
        assert entry["requires_options_data"] is True
        assert sum(entry["factors"].values()) == pytest.approx(1.0, abs=WEIGHT_SUM_TOLERANCE)


class TestRegistration:
    """Test that invalid catalogues are rejected up front."""

    def _detector(self, detector_type, weights):
        return OpportunityDetector(
            type=detector_type,
            direction=Direction.LONG,
            asset_classes=ALL_ASSET_CLASSES,
            gate=lambda features, options_data, mode: True,
            score_factors=tuple(
                ScoreFactor(f"f{i}", weight, lambda features, options_data: 50)
                for i, weight in enumerate(weights)
            ),
        )

    def test_bad_weights_rejected(self):
        with pytest.raises(DetectorRegistrationError) as exc_info:
            DetectorRegistry([self._detector("ok", [0.5, 0.5]), self._detector("bad", [0.5, 0.4])])

        assert exc_info.value.detector_type == "bad"

    def test_duplicate_type_rejected(self):
        with pytest.raises(DetectorRegistrationError, match="duplicate detector type"):
            DetectorRegistry([self._detector("same", [1.0]), self._detector("same", [1.0])])

    def test_empty_registry(self):
        registry = DetectorRegistry([])

        assert len(registry) == 0
        assert registry.for_asset_class(AssetClass.STOCK) == []
