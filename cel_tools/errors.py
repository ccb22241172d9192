"""Exception types shared by the import and export pipelines."""
from __future__ import annotations


class CelToolsError(RuntimeError):
    """Base class for user-facing CelTools failures."""


class ImportAborted(CelToolsError):
    """Raised when a folder holds nothing that can become a sprite."""


class ExportRefused(CelToolsError):
    """Raised when a sprite is not in a state that allows exporting."""

    def __init__(self, title: str, message: str) -> None:
        super().__init__(message)
        self.title = title
        self.message = message
