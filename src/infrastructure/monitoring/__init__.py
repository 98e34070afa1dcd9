"""
Infrastructure Monitoring Module

Observability for the opportunity scanner:
- Structured JSON logging with correlation IDs and OpenTelemetry trace context
- Scanner metrics (scans, detections, emissions, filter reasons)
"""

from .logging import (
    ScannerJSONFormatter,
    correlation_context,
    get_correlation_id,
    scan_batch_context,
    setup_logging_from_config,
    setup_structured_logging,
)
from .metrics import FilterCategory, ScannerMetricsCollector, categorize_reason

__all__ = [
    "ScannerJSONFormatter",
    "correlation_context",
    "get_correlation_id",
    "scan_batch_context",
    "setup_logging_from_config",
    "setup_structured_logging",
    "FilterCategory",
    "ScannerMetricsCollector",
    "categorize_reason",
]
