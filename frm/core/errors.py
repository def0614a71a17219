"""Domain errors raised by the tracking core.

Every error a user can see derives from FrmError, so the CLI can report
them uniformly while letting programming errors propagate.
"""

from __future__ import annotations


class FrmError(Exception):
    """Base class for all user-facing errors."""


class InvalidDuration(FrmError):
    """A duration string such as "2w" could not be parsed."""


class InvalidDate(FrmError):
    """A date expression could not be parsed."""


class ConfigError(FrmError):
    """The configuration file is missing or invalid."""


class NotFound(FrmError):
    """No contact matched a name across any account."""

    def __init__(self, name: str) -> None:
        super().__init__(f"contact {name!r} not found")
        self.name = name


class AccountUnavailable(FrmError):
    """A remote contact store could not be reached or queried."""

    def __init__(self, account: str, cause: Exception | None = None) -> None:
        message = f"account {account!r} unavailable"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.account = account
        self.cause = cause


class PartialWriteFailure(FrmError):
    """A multi-record write failed after some writes were already applied.

    ``applied`` lists the accounts (or contacts) written before the failure;
    those changes are left in place.
    """

    def __init__(
        self, applied: list[str], failed: str, cause: Exception | None = None,
    ) -> None:
        done = ", ".join(applied) if applied else "none"
        message = f"write to {failed!r} failed (already updated: {done})"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.applied = list(applied)
        self.failed = failed
        self.cause = cause
