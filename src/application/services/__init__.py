"""
Application Services - Scan orchestration

This module contains application services that orchestrate detection across
domain detectors and services. Concurrency across symbols is handled here;
detectors and factors stay pure.
"""

from .composite_scanner import CompositeScanner, ScanMetrics

__all__ = [
    "CompositeScanner",
    "ScanMetrics",
]
