"""Exception types raised by the solver.

Configuration problems derive from ``ValueError`` and are raised before any
numerical work starts. Per-point problems derive from ``RuntimeError`` and
carry the frequency and scan values of the point that raised them.
"""
from typing import Dict, Optional


class ConfigurationError(ValueError):
    """Malformed stack, illegal sheet class or inconsistent scan request."""


class AnalysisPointError(RuntimeError):
    """Base class for errors tied to a single (frequency, scan) point."""

    def __init__(self, message: str, fghz: Optional[float] = None,
                 steering: Optional[Dict[str, float]] = None):
        self.fghz = fghz
        self.steering = dict(steering) if steering is not None else None
        context = []
        if fghz is not None:
            context.append(f"f = {fghz:g} GHz")
        if steering:
            context.append(", ".join(f"{k} = {v:g}" for k, v in steering.items()))
        if context:
            message = f"{message} ({'; '.join(context)})"
        super().__init__(message)


class CutoffError(AnalysisPointError):
    """The dominant mode is evanescent in an ambient half-space."""


class SingularMatrixError(AnalysisPointError):
    """The interaction matrix of a sheet could not be factored."""

    def __init__(self, message: str, fghz: Optional[float] = None,
                 steering: Optional[Dict[str, float]] = None,
                 sheet: Optional[int] = None):
        self.sheet = sheet
        if sheet is not None:
            message = f"{message} [sheet handle {sheet}]"
        super().__init__(message, fghz, steering)
