"""
Detector registry - the validated catalogue of opportunity detectors.

Authoring invariants (weight sums, unique types) are enforced once, when a
registry is built, so scans never see a misconfigured detector.
"""

import logging
from collections.abc import Iterable, Iterator

from ...exceptions import DetectorRegistrationError, UnknownDetectorError
from ...value_objects.market_context import AssetClass
from .detector import OpportunityDetector
from .detectors import ALL_DETECTORS

logger = logging.getLogger(__name__)

SUBSET_NAMES = ("equity_only", "index_only", "options_dependent", "flow_primary", "backtestable")


class DetectorRegistry:
    """
    Ordered, immutable collection of validated detectors.

    Registration order is preserved and is the order in which the scanner
    evaluates detectors.
    """

    def __init__(self, detectors: Iterable[OpportunityDetector]) -> None:
        """
        Validate and register detectors.

        Args:
            detectors: Detectors to register

        Raises:
            DetectorRegistrationError: If a detector breaks an authoring
                invariant or two detectors share a type
        """
        self._detectors: dict[str, OpportunityDetector] = {}
        for detector in detectors:
            detector.validate()
            if detector.type in self._detectors:
                raise DetectorRegistrationError(detector.type, "duplicate detector type")
            self._detectors[detector.type] = detector

        logger.debug("Registered %d opportunity detectors", len(self._detectors))

    def __len__(self) -> int:
        return len(self._detectors)

    def __iter__(self) -> Iterator[OpportunityDetector]:
        return iter(self._detectors.values())

    def __contains__(self, detector_type: object) -> bool:
        return detector_type in self._detectors

    @property
    def types(self) -> tuple[str, ...]:
        return tuple(self._detectors)

    def get(self, detector_type: str) -> OpportunityDetector:
        """
        Look up a detector by type.

        Raises:
            UnknownDetectorError: If no detector with that type is registered
        """
        try:
            return self._detectors[detector_type]
        except KeyError:
            raise UnknownDetectorError(detector_type) from None

    def for_asset_class(
        self, asset_class: AssetClass, has_options_data: bool = False
    ) -> list[OpportunityDetector]:
        """Detectors applicable to an asset class given options-data availability."""
        return [
            detector
            for detector in self
            if detector.applies_to(asset_class)
            and (has_options_data or not detector.requires_options_data)
        ]

    # ------------------------------------------------------------------
    # Named subsets
    # ------------------------------------------------------------------

    @property
    def equity_only(self) -> list[OpportunityDetector]:
        return [d for d in self if AssetClass.INDEX not in d.asset_classes]

    @property
    def index_only(self) -> list[OpportunityDetector]:
        return [d for d in self if d.asset_classes == frozenset({AssetClass.INDEX})]

    @property
    def options_dependent(self) -> list[OpportunityDetector]:
        return [d for d in self if d.requires_options_data]

    @property
    def flow_primary(self) -> list[OpportunityDetector]:
        return [d for d in self if d.requires_flow_data]

    @property
    def backtestable(self) -> list[OpportunityDetector]:
        return [d for d in self if d.is_backtestable]

    def subset(self, name: str) -> list[OpportunityDetector]:
        """Named subset by string (``equity_only``, ``index_only`` ...)."""
        if name not in SUBSET_NAMES:
            raise ValueError(f"Unknown detector subset '{name}', expected one of {SUBSET_NAMES}")
        return getattr(self, name)

    def restricted_to(self, detector_types: Iterable[str]) -> "DetectorRegistry":
        """New registry holding only the given types, in catalogue order."""
        wanted = set(detector_types)
        for detector_type in wanted:
            self.get(detector_type)
        return DetectorRegistry(d for d in self if d.type in wanted)

    def summary(self) -> dict[str, dict[str, object]]:
        """Catalogue metadata for observability dashboards."""
        return {
            detector.type: {
                "direction": detector.direction.value,
                "asset_classes": sorted(ac.value for ac in detector.asset_classes),
                "category": detector.category.value if detector.category else None,
                "tier": detector.tier,
                "expected_frequency": detector.expected_frequency,
                "requires_options_data": detector.requires_options_data,
                "requires_flow_data": detector.requires_flow_data,
                "factors": {f.name: f.weight for f in detector.score_factors},
            }
            for detector in self
        }


def build_default_registry() -> DetectorRegistry:
    """Build a fresh registry holding the full detector catalogue."""
    return DetectorRegistry(ALL_DETECTORS)
