"""Path-template and resolved-path models."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict


class PlaceholderToken(BaseModel):
    """A ``{key}`` or ``{key:format}`` token parsed from a template.

    ``valid`` is False when the token does not match the identifier pattern
    or names a reserved key; ``key`` then holds the best-effort identifier.
    """

    model_config = ConfigDict(frozen=True)

    raw: str
    key: str
    format: str = ""
    valid: bool = True


class PathResolution(BaseModel):
    """Outcome of expanding a template against event data."""

    model_config = ConfigDict(frozen=True)

    path: str | None
    missing: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.path is not None


class ResolvedPath(BaseModel):
    """A relative log path anchored inside a storage root."""

    model_config = ConfigDict(frozen=True)

    full: Path
    dir: Path
    relative: str
