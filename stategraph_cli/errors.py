"""Exception types raised across the indexing and analysis layers."""

from __future__ import annotations


class StategraphError(Exception):
    """Base class for errors surfaced to callers."""


class NoIndexDataError(StategraphError):
    """Raised when a build is requested but no discovery manifest exists."""

    def __init__(self, project_path: str) -> None:
        super().__init__(
            f"No data to index for '{project_path}'. Run discovery first."
        )
        self.project_path = project_path


class LiteralSyntaxError(StategraphError, ValueError):
    """Raised by the literal parser when text is not a static data literal."""

    def __init__(self, message: str, position: int = -1) -> None:
        super().__init__(message if position < 0 else f"{message} (at offset {position})")
        self.position = position
