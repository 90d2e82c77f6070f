"""Simulation Error Types

Errors raised by the step engines and the operation sequencer. Each error carries
an optional suggestion and a details dictionary so the sequencer can store a
readable reason on the failing operation.
"""

from typing import Any, Optional


class WellSimError(Exception):
    """Base exception for wellsim errors."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize wellsim error.

        Args:
            message: Primary error message.
            suggestion: Optional suggestion for fixing the error.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with suggestion if available."""
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class MissingGeometry(WellSimError):
    """No annulus or string sections are defined, or a depth falls outside them."""

    pass


class UnresolvedMud(WellSimError):
    """A configured mud id is not in the catalog."""

    pass


class InvalidRange(WellSimError):
    """Start and end depths are not usable for the operation kind."""

    pass


class QueueExhaustedEarly(WellSimError):
    """Pump queue is empty while volume is still required."""

    pass


class NonConvergentBackPressureSolve(WellSimError):
    """Back pressure could not be solved from the inputs."""

    pass


class Cancelled(WellSimError):
    """A running sequence was aborted between steps."""

    pass
