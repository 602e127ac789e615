"""
Domain: Error taxonomy for the conversion pipeline.

Every rejected operation surfaces one of these kinds. Errors carry a
human-readable reason and, once the orchestrator has attached it, the
unchanged aggregate the caller was acting on, so the caller can reconcile
its own view.

Kinds:
- not_found: referenced lead/record does not exist (never retried)
- invalid_state: operation not valid from the current state
- illegal_transition: compliance stage skipped, repeated or reversed
- validation: business-rule input rejected; aggregate left unchanged
- invalid_argument: request is malformed for this aggregate (e.g. financing already chosen)
- concurrency_conflict: compare-and-swap lost after bounded retries
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for every rejection raised by the pipeline core."""

    kind: str = "pipeline_error"

    def __init__(self, reason: str, *, current: Optional[Any] = None) -> None:
        self.reason = reason
        self.current = current
        super().__init__(reason)

    def with_current(self, current: Any) -> "PipelineError":
        """Attach the unchanged aggregate snapshot and return self (for re-raising)."""
        self.current = current
        return self

    def to_dict(self) -> Dict[str, Any]:
        current = self.current
        if current is not None and hasattr(current, "to_summary"):
            current = current.to_summary()
        return {"kind": self.kind, "reason": self.reason, "current": current}


class NotFoundError(PipelineError):
    kind = "not_found"


class InvalidStateError(PipelineError):
    kind = "invalid_state"


class IllegalTransitionError(InvalidStateError):
    kind = "illegal_transition"


class ValidationError(PipelineError):
    kind = "validation"


class InvalidArgumentError(PipelineError):
    kind = "invalid_argument"


class ConcurrencyConflictError(PipelineError):
    kind = "concurrency_conflict"


__all__ = [
    "PipelineError",
    "NotFoundError",
    "InvalidStateError",
    "IllegalTransitionError",
    "ValidationError",
    "InvalidArgumentError",
    "ConcurrencyConflictError",
]
