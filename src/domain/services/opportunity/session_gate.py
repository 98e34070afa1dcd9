"""
Session gating for detectors.

Live scans only run detectors during regular hours; historical scans
(backtests, weekend review) run them regardless. The analysis mode is always
passed in explicitly.
"""

from ...entities.feature_snapshot import FeatureSnapshot
from ...value_objects.market_context import AnalysisMode


def is_regular_hours(features: FeatureSnapshot) -> bool:
    """Regular-hours flag with an unknown (None) flag read as regular hours."""
    return features.session.is_regular_hours is not False


def should_run_detector(features: FeatureSnapshot, mode: AnalysisMode) -> bool:
    """
    Decide whether session timing allows a detector to evaluate.

    Args:
        features: Snapshot being scanned
        mode: LIVE or HISTORICAL

    Returns:
        True in HISTORICAL mode; in LIVE mode True unless the snapshot is
        explicitly flagged as outside regular hours
    """
    if mode is AnalysisMode.HISTORICAL:
        return True
    return is_regular_hours(features)


def is_off_hours_analysis(features: FeatureSnapshot, mode: AnalysisMode) -> bool:
    """True for historical scans of snapshots explicitly outside regular hours."""
    return mode is AnalysisMode.HISTORICAL and not is_regular_hours(features)


def minutes_since_open(features: FeatureSnapshot) -> float | None:
    return features.session.minutes_since_open


def in_session_window(
    features: FeatureSnapshot,
    mode: AnalysisMode,
    start_minute: float,
    end_minute: float,
) -> bool:
    """
    Check that the snapshot falls in ``[start_minute, end_minute)`` after the open.

    Historical off-hours analysis skips the window check; a missing
    ``minutes_since_open`` fails closed in every other case.
    """
    if not should_run_detector(features, mode):
        return False
    if is_off_hours_analysis(features, mode):
        return True
    minutes = features.session.minutes_since_open
    if minutes is None:
        return False
    return start_minute <= minutes < end_minute
