"""Error taxonomy for ``fnzo``.

Every failure raised by the services derives from ``FnzoError`` so entry
points can catch one base class. ``ValidationError`` and
``ConfigurationError`` additionally subclass the matching builtins so plain
``except ValueError`` / ``except RuntimeError`` callers keep working.
"""

from __future__ import annotations

from collections.abc import Sequence


class FnzoError(Exception):
    """Base class for all ``fnzo`` errors."""


class ConfigurationError(FnzoError, RuntimeError):
    """Missing or invalid connection settings (fatal for data operations)."""


class AuthenticationError(FnzoError):
    """No session, an expired session that could not be refreshed, or a failed sign-in."""


class ValidationError(FnzoError, ValueError):
    """Input rejected before any remote mutation took place."""


class RemoteError(FnzoError):
    """A Remote Store call failed.

    ``status`` is the HTTP-like status (``0`` for transport failures),
    ``code`` the Postgres SQLSTATE when the store surfaced one and
    ``operation`` the ``verb:table`` label of the failed call.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.operation = operation

    def __str__(self) -> str:
        return self.message


class RateLimitError(RemoteError):
    """Rate limiting persisted through every retry attempt."""


class NotFoundError(RemoteError):
    """The addressed row does not exist (or is not visible to the caller)."""


class PartialConsistencyError(FnzoError):
    """A multi-step category operation stopped half way.

    Raised only when the failed step could not be compensated, i.e. the
    categories and expenses tables may disagree on a category name.
    """

    def __init__(
        self,
        operation: str,
        *,
        completed: Sequence[str],
        failed: str,
        compensated: bool,
        cause: BaseException | None = None,
    ) -> None:
        self.operation = operation
        self.completed = tuple(completed)
        self.failed = failed
        self.compensated = compensated
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"{operation} left categories and transactions out of sync "
            f"(completed={list(self.completed)}, failed={failed}, "
            f"compensated={compensated}){detail}"
        )


# Postgres SQLSTATE -> user-facing message for transaction writes
FRIENDLY_CODES: dict[str, str] = {
    "23505": "This transaction already exists",
    "23503": "Referenced record does not exist",
    "42P01": "The expenses table does not exist; run the database setup first",
    "42703": "The expenses table is missing a required column",
    "23502": "A required field is missing",
}


def friendly_message(code: str | None, fallback: str) -> str:
    """Return the user-facing message for ``code`` or ``fallback``."""

    if code and code in FRIENDLY_CODES:
        return FRIENDLY_CODES[code]
    return fallback


__all__ = [
    "FnzoError",
    "ConfigurationError",
    "AuthenticationError",
    "ValidationError",
    "RemoteError",
    "RateLimitError",
    "NotFoundError",
    "PartialConsistencyError",
    "FRIENDLY_CODES",
    "friendly_message",
]
