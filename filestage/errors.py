"""Exception types raised while resolving and applying staging plans."""

from __future__ import annotations

from typing import Optional


class StagingError(Exception):
    """Base class for every error filestage raises on purpose."""


class ConfigError(StagingError):
    """The request or the configuration cannot be turned into a plan."""


class TransferError(StagingError):
    """Retrieving the source failed: nonzero exit, timeout, or missing file."""

    def __init__(self, message: str, *, returncode: Optional[int] = None, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class StagingPermissionError(StagingError):
    """Ownership or mode could not be applied.

    The staged file is left in place; staged artifacts are never removed
    to recover from a permission failure.
    """

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path
