"""Exception hierarchy for the eligibility engine."""

from __future__ import annotations


class EligibilityError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(EligibilityError, ValueError):
    """Raised when a criteria definition cannot be compiled.

    Covers unknown operators, malformed multi-value inputs, invalid regular
    expressions, duplicate identifiers and circular group nesting.
    """

    def __init__(self, message: str, *, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self) -> str:
        if not self.errors:
            return super().__str__()
        return f"{super().__str__()}: {'; '.join(self.errors)}"


class CriteriaNotFoundError(EligibilityError, LookupError):
    """Raised when a named criteria or one of its versions does not exist."""


class InputValidationError(EligibilityError, ValueError):
    """Raised when an input record exceeds the configured size limits."""

    def __init__(self, message: str, *, field: str):
        super().__init__(message)
        self.field = field


class CacheUnavailableError(EligibilityError):
    """Raised by cache backends when the store cannot be reached."""


class WorkflowError(EligibilityError):
    """Raised when a workflow action fails and failures are not tolerated."""

    def __init__(self, message: str, *, action: str, event: str):
        super().__init__(message)
        self.action = action
        self.event = event


__all__ = [
    "EligibilityError",
    "ConfigurationError",
    "CriteriaNotFoundError",
    "InputValidationError",
    "CacheUnavailableError",
    "WorkflowError",
]
