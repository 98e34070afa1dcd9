"""Detector catalogue grouped by strategy family."""

from .equity import EQUITY_DETECTORS
from .flow import FLOW_DETECTORS
from .index import INDEX_DETECTORS
from .kcu import KCU_DETECTORS

ALL_DETECTORS = EQUITY_DETECTORS + INDEX_DETECTORS + KCU_DETECTORS + FLOW_DETECTORS

__all__ = [
    "ALL_DETECTORS",
    "EQUITY_DETECTORS",
    "INDEX_DETECTORS",
    "KCU_DETECTORS",
    "FLOW_DETECTORS",
]
