"""
wordplay.exceptions — Structured Error Hierarchy
==================================================

Every failure the services raise falls in one of four families so callers
can tell "fix your input" from "retry unchanged later":

* :class:`ValidationError` — recoverable, the caller must correct the
  request (bad guess, rejected join, rejected freeze).
* :class:`ConflictError` — lost a compare-and-write race; re-read and retry.
* :class:`ExternalServiceError` — chain / wallet resolver / webhook
  unreachable; the same request may succeed later.
* :class:`InvariantViolation` — the request makes no sense for the current
  state (e.g. guessing on a finished game).

No path that raises one of these leaves partially written state behind.
"""

from __future__ import annotations

from typing import Any


class WordplayError(Exception):
    """Base class.  ``code`` is a stable machine-readable reason."""

    code = "error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# ---------------------------------------------------------------------------
# Validation family
# ---------------------------------------------------------------------------
class ValidationError(WordplayError):
    code = "validation_error"


class InvalidGuessError(ValidationError):
    """A guess failed validation; ``result`` is the ValidationResult tag."""

    def __init__(self, result: Any, message: str | None = None) -> None:
        super().__init__(
            message or f"Invalid guess: {result}",
            code=str(result),
        )
        self.result = result


class ArenaRejectedError(ValidationError):
    code = "arena_rejected"


class FreezeRejectedError(ValidationError):
    code = "freeze_rejected"


class NotFoundError(ValidationError):
    code = "not_found"


# ---------------------------------------------------------------------------
# Other families
# ---------------------------------------------------------------------------
class ConflictError(WordplayError):
    code = "conflict"


class ExternalServiceError(WordplayError):
    code = "external_service_error"


class InvariantViolation(WordplayError):
    code = "invariant_violation"
