"""
Domain-level exceptions for the opportunity scanning engine.

This module defines exceptions that are specific to domain logic and business rules.
These exceptions are raised within domain entities and services, never from the
scan path itself: scans report rejections as filtered results instead.
"""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class DetectorRegistrationError(DomainException):
    """
    Raised when a detector violates a catalogue invariant.

    Checked once when a registry is built: factor weights must sum to 1.0
    within tolerance, every weight must lie in (0, 1] and detector types
    must be unique.
    """

    def __init__(
        self,
        detector_type: str,
        reason: str,
        weight_sum: float | None = None,
    ) -> None:
        message = f"Invalid detector '{detector_type}': {reason}"
        details: dict[str, Any] = {"detector_type": detector_type, "reason": reason}
        if weight_sum is not None:
            details["weight_sum"] = round(weight_sum, 4)

        super().__init__(message, details)
        self.detector_type = detector_type
        self.reason = reason
        self.weight_sum = weight_sum


class UnknownDetectorError(DomainException):
    """Raised when a registry lookup names a detector type that is not registered."""

    def __init__(self, detector_type: str) -> None:
        super().__init__(
            f"Detector '{detector_type}' is not registered",
            details={"detector_type": detector_type},
        )
        self.detector_type = detector_type
