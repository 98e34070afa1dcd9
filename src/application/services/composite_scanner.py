"""
CompositeScanner - Per-symbol opportunity scanning

Runs every applicable detector against a feature snapshot, scores the
detections, applies thresholds and deduplication, and emits the survivors as
CompositeSignals. The scan path performs no I/O; the deduplication store is
the only mutable state and is injected.
"""

import logging
import threading
import time
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Protocol

from ...domain.entities.composite_signal import CompositeSignal, ScanResult
from ...domain.entities.feature_snapshot import FeatureSnapshot
from ...domain.entities.options_chain import OptionsChainContext
from ...domain.services.adaptive_thresholds import (
    AdaptiveThresholdService,
    passes_adaptive_thresholds,
)
from ...domain.services.confidence_scoring import calculate_signal_confidence
from ...domain.services.market_hours_service import MarketHoursService
from ...domain.services.opportunity import (
    DetectionResult,
    DetectorRegistry,
    OpportunityDetector,
    build_default_registry,
    is_off_hours_analysis,
    is_regular_hours,
)
from ...domain.services.signal_deduplication import DeduplicationStore, generate_bar_time_key
from ...domain.services.style_score_modifiers import calculate_risk_reward, calculate_style_scores
from ...domain.value_objects.market_context import AnalysisMode, AssetClass
from ..config import RateLimitScope, ScannerConfig, SignalThresholds

logger = logging.getLogger(__name__)

NO_OPPORTUNITIES = "No opportunities detected"
UNIVERSAL_FILTER_PREFIX = "Failed universal filters"


class ScanMetrics(Protocol):
    """Metrics sink accepted by the scanner."""

    def record_scan(self, symbol: str, scan_time_ms: float, filtered: bool) -> None: ...

    def record_detection(self, symbol: str, detector_type: str) -> None: ...

    def record_emission(self, symbol: str, detector_type: str, composite_score: float) -> None: ...

    def record_filter(self, reason: str | None, detector_type: str | None = None) -> Any: ...


@dataclass(frozen=True)
class _Evaluation:
    """Outcome of taking one passing detection through thresholds and dedup."""

    signal: CompositeSignal | None = None
    reason: str | None = None


class CompositeScanner:
    """
    Application service that turns feature snapshots into composite signals.

    One scanner may be shared between threads. Scans of the same symbol are
    serialised through the deduplication store's per-symbol lock; scans of
    different symbols run concurrently.
    """

    PRUNE_INTERVAL = 100

    def __init__(
        self,
        config: ScannerConfig | None = None,
        registry: DetectorRegistry | None = None,
        dedup_store: DeduplicationStore | None = None,
        metrics: ScanMetrics | None = None,
        market_hours: MarketHoursService | None = None,
        adaptive: AdaptiveThresholdService | None = None,
    ) -> None:
        """
        Initialize the scanner.

        Args:
            config: Scanner configuration, defaults to ``ScannerConfig()``
            registry: Detector catalogue, defaults to the full catalogue
            dedup_store: Emission history, a fresh store when omitted
            metrics: Optional metrics sink
            market_hours: Market clock used for style and adaptive windows
            adaptive: Adaptive threshold service

        Raises:
            ScannerConfigurationError: If the configuration is invalid
        """
        config = config if config is not None else ScannerConfig()
        config.validate()

        self._config = config
        self._config_lock = threading.Lock()
        self.registry = registry if registry is not None else build_default_registry()
        self.dedup_store = dedup_store if dedup_store is not None else DeduplicationStore()
        self.metrics = metrics
        self.market_hours = market_hours if market_hours is not None else MarketHoursService()
        self.adaptive = (
            adaptive if adaptive is not None else AdaptiveThresholdService(self.market_hours)
        )

        self._prune_lock = threading.Lock()
        self._scans_since_prune = 0

    @property
    def config(self) -> ScannerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def update_config(self, **changes: Any) -> ScannerConfig:
        """
        Replace top-level configuration fields.

        The merged configuration is validated before it is swapped in; on
        failure the current configuration stays active. Scans already running
        finish with the configuration they started with.

        Returns:
            The new active configuration

        Raises:
            ScannerConfigurationError: If the merged configuration is invalid
        """
        with self._config_lock:
            updated = self._config.merged(**changes)
            updated.validate()
            self._config = updated

        logger.info(
            "Scanner configuration updated: %s",
            ", ".join(sorted(changes)),
            extra={"operation_type": "config_update"},
        )
        return updated

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan_symbol(
        self,
        symbol: str,
        features: FeatureSnapshot,
        options_data: OptionsChainContext | None = None,
        mode: AnalysisMode = AnalysisMode.LIVE,
    ) -> ScanResult:
        """
        Scan one symbol for trade opportunities.

        Args:
            symbol: Ticker being scanned
            features: Feature snapshot for the current tick
            options_data: Options-chain context, when available
            mode: LIVE or HISTORICAL analysis

        Returns:
            ScanResult with every emitted signal; when nothing emits, the
            result is filtered and ``filter_reason`` explains why
        """
        started = time.perf_counter()
        config = self._config
        symbol = symbol.upper().strip()

        failures = self._check_universal_filters(symbol, features, mode, config)
        if failures:
            reason = f"{UNIVERSAL_FILTER_PREFIX}: {'; '.join(failures)}"
            result = ScanResult.rejected(symbol, reason)
        else:
            result = self._scan_detectors(symbol, features, options_data, mode, config)

        result = replace(result, scan_time_ms=(time.perf_counter() - started) * 1000)
        self._record_outcome(result)
        self._maybe_prune(features.timestamp, config)
        return result

    def scan_many(
        self,
        snapshots: Iterable[FeatureSnapshot],
        options_data: Mapping[str, OptionsChainContext] | None = None,
        mode: AnalysisMode = AnalysisMode.LIVE,
    ) -> list[ScanResult]:
        """
        Scan many snapshots, fanning out across symbols.

        Snapshots of the same symbol are scanned sequentially in input order
        by one worker; different symbols run on a thread pool bounded by
        ``max_concurrent_scans``.

        Args:
            snapshots: Feature snapshots, possibly several per symbol
            options_data: Options context keyed by symbol
            mode: LIVE or HISTORICAL analysis

        Returns:
            One ScanResult per snapshot, in input order
        """
        options_data = options_data or {}
        items = list(snapshots)
        by_symbol: dict[str, list[int]] = {}
        for index, features in enumerate(items):
            by_symbol.setdefault(features.symbol, []).append(index)

        results: list[ScanResult | None] = [None] * len(items)

        def scan_sequence(symbol: str, indices: list[int]) -> None:
            for index in indices:
                results[index] = self.scan_symbol(
                    symbol, items[index], options_data.get(symbol), mode
                )

        if not by_symbol:
            return []

        workers = min(self._config.max_concurrent_scans, len(by_symbol))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scanner") as executor:
            futures = [
                executor.submit(scan_sequence, symbol, indices)
                for symbol, indices in by_symbol.items()
            ]
            for future in futures:
                future.result()

        logger.debug("Scanned %d snapshots across %d symbols", len(items), len(by_symbol))
        return [result for result in results if result is not None]

    # ------------------------------------------------------------------
    # Deduplication access
    # ------------------------------------------------------------------

    def get_deduplication_stats(self, now: datetime | None = None) -> dict[str, Any]:
        return self.dedup_store.get_stats(now)

    def clear_deduplication(self) -> None:
        self.dedup_store.clear()

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _check_universal_filters(
        self,
        symbol: str,
        features: FeatureSnapshot,
        mode: AnalysisMode,
        config: ScannerConfig,
    ) -> list[str]:
        """Names of the universal filters the snapshot fails, in evaluation order."""
        filters = config.filters
        failures: list[str] = []

        if symbol in filters.blacklist:
            failures.append("symbol is blacklisted")

        if (
            filters.market_hours_only
            and mode is AnalysisMode.LIVE
            and not is_regular_hours(features)
        ):
            failures.append("outside regular market hours")

        rvol = features.relative_volume
        if rvol is not None and rvol < filters.min_rvol:
            failures.append(f"RVOL {rvol:.2f} < {filters.min_rvol:g}")

        # Snapshot spread is a percent of price, the filter a fraction
        if features.spread_pct is not None and features.spread_pct / 100 > filters.max_spread:
            failures.append(f"spread {features.spread_pct:.3f}% > {filters.max_spread * 100:g}%")

        avg_volume = features.volume.avg
        if (
            filters.require_minimum_liquidity
            and avg_volume is not None
            and avg_volume < filters.min_avg_volume
        ):
            failures.append(f"avg volume {avg_volume:,.0f} < {filters.min_avg_volume:,.0f}")

        return failures

    def _scan_detectors(
        self,
        symbol: str,
        features: FeatureSnapshot,
        options_data: OptionsChainContext | None,
        mode: AnalysisMode,
        config: ScannerConfig,
    ) -> ScanResult:
        asset_class = AssetClass.for_symbol(symbol)
        detectors = self.registry.for_asset_class(asset_class, options_data is not None)

        detection_count = 0
        signals: list[CompositeSignal] = []
        rejections: dict[str, str] = {}

        with self.dedup_store.symbol_lock(symbol):
            for detector in detectors:
                detection = self._run_detector(detector, symbol, features, options_data, mode)
                if not detection.detected:
                    continue

                detection_count += 1
                if self.metrics is not None:
                    self.metrics.record_detection(symbol, detector.type)

                evaluation = self._evaluate(
                    detector, detection, symbol, asset_class, features, mode, config
                )
                if evaluation.signal is not None:
                    self.dedup_store.record_signal(evaluation.signal)
                    signals.append(evaluation.signal)
                else:
                    rejections[detector.type] = evaluation.reason or "rejected"

        if signals:
            return ScanResult(
                symbol=symbol,
                filtered=False,
                detection_count=detection_count,
                signals=tuple(signals),
                rejections=rejections,
            )

        if detection_count == 0:
            return ScanResult.rejected(symbol, NO_OPPORTUNITIES)

        reason = "; ".join(f"{detector_type}: {why}" for detector_type, why in rejections.items())
        return ScanResult.rejected(symbol, reason, detection_count, rejections)

    def _run_detector(
        self,
        detector: OpportunityDetector,
        symbol: str,
        features: FeatureSnapshot,
        options_data: OptionsChainContext | None,
        mode: AnalysisMode,
    ) -> DetectionResult:
        """Gate and score one detector; a detector that raises counts as not detected."""
        try:
            return detector.detect_with_score(features, options_data, mode)
        except Exception:
            logger.exception(
                "Detector %s failed on %s",
                detector.type,
                symbol,
                extra={
                    "symbol": symbol,
                    "detector_type": detector.type,
                    "operation_type": "detector_fault",
                },
            )
            return DetectionResult(detected=False)

    def _evaluate(
        self,
        detector: OpportunityDetector,
        detection: DetectionResult,
        symbol: str,
        asset_class: AssetClass,
        features: FeatureSnapshot,
        mode: AnalysisMode,
        config: ScannerConfig,
    ) -> _Evaluation:
        """Apply thresholds then dedup checks; build the signal if everything passes."""
        thresholds = config.resolve_thresholds(asset_class, detector.type)
        off_hours = is_off_hours_analysis(features, mode)
        now = features.timestamp
        base_score = detection.base_score

        style_scores, style_result = calculate_style_scores(
            base_score, features, detector.direction, self.market_hours
        )
        style = style_scores.recommended_style
        style_score = style_scores.best_score
        risk_reward = calculate_risk_reward(features, detector.direction, style)

        reason = _check_static_thresholds(
            base_score, style_score, risk_reward.ratio, thresholds, off_hours
        )
        if reason:
            return _Evaluation(reason=reason)

        adaptive = None
        if config.use_adaptive_thresholds:
            adaptive = self.adaptive.get_adaptive_thresholds(
                now,
                features.vix_level,
                features.market_regime,
                detector.type,
                detector.category,
            )
            passed, reason = passes_adaptive_thresholds(
                base_score, style_score, risk_reward.ratio, adaptive
            )
            if not passed:
                return _Evaluation(reason=reason)

        bar_time_key = generate_bar_time_key(
            symbol, detector.type, now, config.bar_interval_minutes
        )
        reason = self._check_deduplication(
            symbol, detector.type, bar_time_key, now, thresholds, config
        )
        if reason:
            return _Evaluation(reason=reason)

        metadata: dict[str, Any] = {
            "tier": detector.tier,
            "category": detector.category.value if detector.category else None,
            "expected_frequency": detector.expected_frequency,
            "analysis_mode": mode.value,
            "style_warnings": list(style_result.warnings),
        }
        if adaptive is not None:
            metadata["adaptive_thresholds"] = adaptive.to_dict()
            metadata["size_multiplier"] = adaptive.size_multiplier

        signal = CompositeSignal(
            symbol=symbol,
            detector_type=detector.type,
            direction=detector.direction,
            asset_class=asset_class,
            composite_score=base_score,
            confidence=calculate_signal_confidence(features, detector.direction, off_hours),
            factor_scores=detection.factor_scores,
            style_scores=style_scores,
            risk_reward=risk_reward,
            bar_time_key=bar_time_key,
            detected_at=now,
            expires_at=now + timedelta(minutes=config.signal_ttl_minutes),
            detector_version=config.detector_version,
            metadata=metadata,
        )
        return _Evaluation(signal=signal)

    def _check_deduplication(
        self,
        symbol: str,
        detector_type: str,
        bar_time_key: str,
        now: datetime,
        thresholds: SignalThresholds,
        config: ScannerConfig,
    ) -> str | None:
        """Duplicate bar, then cooldown, then the per-hour cap."""
        store = self.dedup_store
        if store.is_duplicate(symbol, detector_type, bar_time_key):
            return "Duplicate bar time key"

        if store.is_in_cooldown(symbol, detector_type, now, thresholds.cooldown_minutes):
            return f"In cooldown ({thresholds.cooldown_minutes:g} minutes)"

        scope = detector_type if config.rate_limit_scope is RateLimitScope.DETECTOR else None
        emitted = store.count_in_window(symbol, scope, timedelta(hours=1), now)
        if emitted >= thresholds.max_signals_per_symbol_per_hour:
            return f"Max signals per hour exceeded ({thresholds.max_signals_per_symbol_per_hour})"

        return None

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _record_outcome(self, result: ScanResult) -> None:
        if result.signals:
            for signal in result.signals:
                logger.info(
                    "Emitted %s %s signal for %s (score %.1f, %s)",
                    signal.detector_type,
                    signal.direction.value,
                    signal.symbol,
                    signal.composite_score,
                    signal.style_scores.recommended_style.value,
                    extra={
                        "symbol": signal.symbol,
                        "detector_type": signal.detector_type,
                        "operation_type": "signal_emitted",
                    },
                )
        else:
            logger.debug(
                "Scan of %s filtered: %s",
                result.symbol,
                result.filter_reason,
                extra={
                    "symbol": result.symbol,
                    "filter_reason": result.filter_reason,
                    "operation_type": "scan_filtered",
                },
            )

        if self.metrics is None:
            return
        self.metrics.record_scan(result.symbol, result.scan_time_ms, result.filtered)
        for signal in result.signals:
            self.metrics.record_emission(
                signal.symbol, signal.detector_type, signal.composite_score
            )
        if result.rejections:
            for detector_type, reason in result.rejections.items():
                self.metrics.record_filter(reason, detector_type)
        elif result.filtered:
            self.metrics.record_filter(result.filter_reason)

    def _maybe_prune(self, now: datetime, config: ScannerConfig) -> None:
        with self._prune_lock:
            self._scans_since_prune += 1
            if self._scans_since_prune < self.PRUNE_INTERVAL:
                return
            self._scans_since_prune = 0
        self.dedup_store.prune(now, config.longest_cooldown_minutes)


def _check_static_thresholds(
    base_score: float,
    style_score: float,
    risk_reward: float,
    thresholds: SignalThresholds,
    off_hours: bool,
) -> str | None:
    """Base score, style score, then risk/reward against the configured minimums."""
    min_base = thresholds.min_base_score
    min_style = thresholds.min_style_score
    suffix = ""
    if off_hours:
        suffix = " (weekend)"
        if thresholds.weekend_min_base_score is not None:
            min_base = thresholds.weekend_min_base_score
        if thresholds.weekend_min_style_score is not None:
            min_style = thresholds.weekend_min_style_score

    if base_score < min_base:
        return f"Base score {base_score:.1f} < {min_base:g}{suffix}"
    if style_score < min_style:
        return f"Style score {style_score:.1f} < {min_style:g}{suffix}"
    if risk_reward < thresholds.min_risk_reward:
        return f"Risk/reward {risk_reward:.1f} < {thresholds.min_risk_reward:g}"
    return None
