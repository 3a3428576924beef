"""
Shared validation helpers and error kinds for HX Design MCP tools.

The solvers raise these exceptions; the JSON tool functions turn them into
``{"error": ..., "error_kind": ...}`` payloads.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional


# Status reported on a shell-tube result that never converged. Not raised.
MAX_ITERATIONS_EXCEEDED = "MaxIterationsExceeded"


class ValidationError(ValueError):
    kind = "ValidationError"


class UnderspecifiedEnergyBalance(ValidationError):
    """Not enough known flows/temperatures to close the energy balance."""

    kind = "UnderspecifiedEnergyBalance"


class EnergyBalanceMismatch(ValidationError):
    """Both flows and all four temperatures given but Q_hot and Q_cold disagree."""

    kind = "EnergyBalanceMismatch"


class TemperatureCross(ValidationError):
    """LMTD undefined, or hot/cold temperatures run the wrong way."""

    kind = "TemperatureCross"


class InvalidPhysicalState(ValidationError):
    """A non-physical intermediate value (Re <= 0, NaN, log of a non-positive number)."""

    kind = "InvalidPhysicalState"


class NoFeasibleDesign(RuntimeError):
    """The search space was exhausted without a candidate meeting every constraint.

    Carries the full trial log so the caller can see how close the nearest
    candidate came.
    """

    kind = "NoFeasibleDesign"

    def __init__(self, message: str, trial_log=None, closest: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.trial_log = trial_log
        self.closest = closest


def require_positive(value: float, name: str) -> None:
    if value is None or not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{name} must be > 0; got {value}")


def require_non_negative(value: float, name: str) -> None:
    if value is None or not math.isfinite(value) or value < 0:
        raise ValidationError(f"{name} must be >= 0; got {value}")


def require_physical(value: float, name: str) -> float:
    """Return value if it is finite and > 0, else raise InvalidPhysicalState."""
    if value is None or not math.isfinite(value) or value <= 0:
        raise InvalidPhysicalState(f"{name} must be finite and > 0; got {value}")
    return value


def error_payload(exc: Exception) -> Dict[str, Any]:
    """Build the JSON error structure returned by the tools."""
    payload: Dict[str, Any] = {
        "error": str(exc),
        "error_kind": getattr(exc, "kind", type(exc).__name__),
    }
    if isinstance(exc, NoFeasibleDesign):
        if exc.trial_log is not None:
            payload["trial_count"] = len(exc.trial_log)
            payload["trial_log"] = exc.trial_log.to_list()
        if exc.closest is not None:
            payload["closest_candidate"] = exc.closest
    return payload


def require_count(value: Any, name: str, minimum: int = 1) -> int:
    """Return value as an int if it is a whole number >= minimum, else raise ValidationError."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a whole number; got {value!r}")
    if isinstance(value, float) and not (math.isfinite(value) and value.is_integer()):
        raise ValidationError(f"{name} must be a whole number; got {value}")
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}; got {value}")
    return int(value)
