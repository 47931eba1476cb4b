"""
Custom exceptions for AdaptRisk.

Every failure carries a machine-readable kind plus the context a caller
needs to render a meaningful message (variable keys, run counts, ids).
"""

from enum import StrEnum
from typing import Any, Optional


class ErrorKind(StrEnum):
    """Failure kinds surfaced by the core."""
    INVALID_CONFIG = "invalid_config"
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    NOT_FOUND = "not_found"
    COMPUTATION_FAILURE = "computation_failure"


class AdaptRiskError(Exception):
    """
    Base exception for AdaptRisk.

    All custom exceptions inherit from this class.
    """

    kind: ErrorKind = ErrorKind.INVALID_CONFIG

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


class InvalidConfig(AdaptRiskError, ValueError):
    """Malformed distribution params, same-variable dependence, bad copula matrix."""
    kind = ErrorKind.INVALID_CONFIG


class InsufficientSamples(AdaptRiskError):
    """Dependence requested with too few runs to estimate a rank correlation."""
    kind = ErrorKind.INSUFFICIENT_SAMPLES

    def __init__(self, message: str, runs: int, required: int, **context: Any):
        super().__init__(message, runs=runs, required=required, **context)
        self.runs = runs
        self.required = required


class NotFound(AdaptRiskError):
    """Referenced guardrail, decision, portfolio or signal is absent."""
    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str,
        resource_type: str = "",
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        super().__init__(message, resource_type=resource_type, resource_id=resource_id, **context)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ComputationFailure(AdaptRiskError):
    """Numeric failure (non-finite result). Recovered locally with a safe default."""
    kind = ErrorKind.COMPUTATION_FAILURE
