"""Exception hierarchy raised by bookflow."""

from __future__ import annotations

from typing import Any


class BookflowError(Exception):
    """Base class for every error raised by the library."""


class SettingsError(BookflowError, ValueError):
    """A settings or section value is outside its documented range."""

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(f"{field}={value!r}: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


class DocumentLoadError(BookflowError):
    """The input mapping cannot be turned into a Document."""


class ImageMeasureError(BookflowError):
    """An image's intrinsic size could not be determined."""

    def __init__(self, image_id: str, source: str, reason: str) -> None:
        super().__init__(f"image {image_id!r} ({_short(source)}): {reason}")
        self.image_id = image_id
        self.source = source
        self.reason = reason


class RenderCancelled(BookflowError):
    """A render was cancelled; ``pages`` holds what was completed."""

    def __init__(self, pages: list) -> None:
        super().__init__(f"render cancelled after {len(pages)} page(s)")
        self.pages = pages


def _short(source: str, limit: int = 48) -> str:
    if len(source) <= limit:
        return source
    return source[: limit - 3] + "..."
