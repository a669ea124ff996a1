"""Exceptions raised by the self-absorption corrections.

All errors derive from ValueError so callers that already guard numeric
input with ``except ValueError`` keep working. Lookup failures from the
cross-section table are not wrapped and propagate unchanged.
"""


class SelfAbsorptionError(ValueError):
    """Base exception for all self-absorption correction errors."""

    prefix = "self-absorption error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}: {self.message}"


class InvalidFormula(SelfAbsorptionError):
    """Formula could not be parsed, or the absorber is not part of it."""

    prefix = "invalid formula"


class NoEmissionLines(SelfAbsorptionError):
    """Absorber/edge pair has no emission line with positive intensity."""

    prefix = "no emission lines found for"


class InsufficientData(SelfAbsorptionError):
    """A numeric precondition or per-point stability check failed."""

    prefix = "insufficient data"
