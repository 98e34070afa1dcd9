"""
Metrics Collection for the Opportunity Scanner

Scanner business metrics collection with:
- Scan counts and scan latency
- Detections and emissions by detector type
- Filter / rejection reasons grouped by category
- OpenTelemetry counters mirroring the in-memory counts
"""

import logging
import time
from collections import Counter, deque
from enum import Enum
from threading import Lock
from typing import Any

from opentelemetry import metrics

logger = logging.getLogger(__name__)


class FilterCategory(Enum):
    """Coarse categories for scan filter and rejection reasons."""

    UNIVERSAL_FILTER = "universal_filter"
    NO_DETECTION = "no_detection"
    THRESHOLD = "threshold"
    COOLDOWN = "cooldown"
    RATE_LIMIT = "rate_limit"
    DUPLICATE = "duplicate"
    OTHER = "other"


def categorize_reason(reason: str | None) -> FilterCategory:
    """Map a scanner reason string to its category."""
    if not reason:
        return FilterCategory.OTHER
    lowered = reason.lower()
    if lowered.startswith("failed universal filters"):
        return FilterCategory.UNIVERSAL_FILTER
    if lowered.startswith("no opportunities detected"):
        return FilterCategory.NO_DETECTION
    if "duplicate bar time key" in lowered:
        return FilterCategory.DUPLICATE
    if "cooldown" in lowered:
        return FilterCategory.COOLDOWN
    if "max signals" in lowered:
        return FilterCategory.RATE_LIMIT
    if "score" in lowered or "risk/reward" in lowered or "disabled" in lowered:
        return FilterCategory.THRESHOLD
    return FilterCategory.OTHER


class ScannerMetricsCollector:
    """
    Thread-safe scanner metrics.

    Counts are kept in memory for ``get_metrics()`` and mirrored to
    OpenTelemetry instruments. Without a configured MeterProvider the
    OpenTelemetry API hands out no-op instruments.
    """

    def __init__(self, meter: Any | None = None, latency_window: int = 1000) -> None:
        self._lock = Lock()
        self._scans = 0
        self._filtered_scans = 0
        self._detections: Counter[str] = Counter()
        self._emissions: Counter[str] = Counter()
        self._filter_reasons: Counter[str] = Counter()
        self._scan_latencies: deque[float] = deque(maxlen=latency_window)
        self._start_time = time.time()

        self.meter = meter or metrics.get_meter(__name__, "1.0.0")
        self._instruments: dict[str, Any] = {}
        self._setup_otel_instruments()

    def _setup_otel_instruments(self) -> None:
        """Setup OpenTelemetry metric instruments."""
        self._instruments.update(
            {
                "scans_total": self.meter.create_counter(
                    name="scanner_scans_total",
                    description="Total number of symbol scans",
                    unit="scans",
                ),
                "detections_total": self.meter.create_counter(
                    name="scanner_detections_total",
                    description="Detector gates that passed",
                    unit="detections",
                ),
                "signals_emitted_total": self.meter.create_counter(
                    name="scanner_signals_emitted_total",
                    description="Composite signals emitted",
                    unit="signals",
                ),
                "filtered_total": self.meter.create_counter(
                    name="scanner_filtered_total",
                    description="Scan and detection rejections by category",
                    unit="rejections",
                ),
                "scan_latency": self.meter.create_histogram(
                    name="scanner_scan_latency_ms",
                    description="Time spent in scan_symbol",
                    unit="ms",
                ),
            }
        )

    def record_scan(self, symbol: str, scan_time_ms: float, filtered: bool) -> None:
        """Record one completed ``scan_symbol`` call."""
        with self._lock:
            self._scans += 1
            if filtered:
                self._filtered_scans += 1
            self._scan_latencies.append(scan_time_ms)

        attributes = {"filtered": str(filtered).lower()}
        self._instruments["scans_total"].add(1, attributes)
        self._instruments["scan_latency"].record(scan_time_ms, attributes)

    def record_detection(self, symbol: str, detector_type: str) -> None:
        """Record a passing detector gate."""
        with self._lock:
            self._detections[detector_type] += 1
        self._instruments["detections_total"].add(1, {"detector_type": detector_type})

    def record_emission(self, symbol: str, detector_type: str, composite_score: float) -> None:
        """Record an emitted signal."""
        with self._lock:
            self._emissions[detector_type] += 1
        self._instruments["signals_emitted_total"].add(1, {"detector_type": detector_type})

    def record_filter(self, reason: str | None, detector_type: str | None = None) -> FilterCategory:
        """
        Record a rejection.

        Args:
            reason: Scanner reason string
            detector_type: Detector the rejection applies to, if any

        Returns:
            The category the reason was counted under
        """
        category = categorize_reason(reason)
        with self._lock:
            self._filter_reasons[category.value] += 1

        attributes = {"category": category.value}
        if detector_type:
            attributes["detector_type"] = detector_type
        self._instruments["filtered_total"].add(1, attributes)
        return category

    def get_metrics(self) -> dict[str, Any]:
        """Get current scanner metrics."""
        with self._lock:
            runtime_seconds = time.time() - self._start_time
            avg_latency = (
                sum(self._scan_latencies) / len(self._scan_latencies)
                if self._scan_latencies
                else 0
            )
            return {
                "scanner_scans_total": self._scans,
                "scanner_filtered_scans": self._filtered_scans,
                "scanner_detections_total": sum(self._detections.values()),
                "scanner_signals_emitted_total": sum(self._emissions.values()),
                "scanner_detections_by_type": dict(self._detections),
                "scanner_emissions_by_type": dict(self._emissions),
                "scanner_filter_reasons": dict(self._filter_reasons),
                "scanner_avg_scan_latency_ms": avg_latency,
                "scanner_scans_per_second": (
                    self._scans / runtime_seconds if runtime_seconds > 0 else 0
                ),
                "scanner_runtime_seconds": runtime_seconds,
            }

    def reset(self) -> None:
        with self._lock:
            self._scans = 0
            self._filtered_scans = 0
            self._detections.clear()
            self._emissions.clear()
            self._filter_reasons.clear()
            self._scan_latencies.clear()
            self._start_time = time.time()
        logger.debug("Scanner metrics reset")
