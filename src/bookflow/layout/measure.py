"""Text-width and image-size capabilities injected into the flow engine."""

from __future__ import annotations

import base64
import re
from pathlib import Path
from typing import Callable, Protocol

from bookflow.document import MM_PER_POINT, FontSpec, Image
from bookflow.errors import ImageMeasureError

try:  # pragma: no cover - optional import guard for environments without pymupdf
    import fitz  # type: ignore
except ImportError:  # pragma: no cover
    fitz = None

_DATA_URI_RE = re.compile(r"^data:([\w/+.-]*)(;base64)?,(.*)$", re.DOTALL)

# Base-14 font aliases understood by PyMuPDF.
_BASE14_BY_FAMILY = {
    "helvetica": "helv",
    "arial": "helv",
    "sans-serif": "helv",
    "times": "tiro",
    "times new roman": "tiro",
    "serif": "tiro",
    "courier": "cour",
    "courier new": "cour",
    "monospace": "cour",
}


def base14_fontname(family: str) -> str:
    return _BASE14_BY_FAMILY.get(family.strip().lower(), "helv")


class TextMeasurer(Protocol):
    def text_width(self, text: str, font: FontSpec) -> float:  # pragma: no cover - structural protocol
        """Return the rendered width of *text* in millimetres."""


ImageMeasurer = Callable[[Image], tuple[float, float]]


class FontMetricsMeasurer:
    """Measure text with PyMuPDF's base-14 font metrics."""

    def text_width(self, text: str, font: FontSpec) -> float:
        if fitz is None:
            raise RuntimeError("pymupdf is required for font metrics")
        points = fitz.get_text_length(text, fontname=base14_fontname(font.family), fontsize=font.size_pt)
        return points * MM_PER_POINT


class MonospaceMeasurer:
    """Give every character the same advance, a fraction of the em size."""

    def __init__(self, advance: float = 0.5) -> None:
        self.advance = advance

    def text_width(self, text: str, font: FontSpec) -> float:
        return len(text) * font.size_pt * MM_PER_POINT * self.advance


def wrap_text(text: str, max_width: float, font: FontSpec, measurer: TextMeasurer) -> list[str]:
    """Greedy word wrap; words wider than *max_width* are split by character."""
    words = text.split()
    if not words:
        return [""]

    lines: list[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if measurer.text_width(candidate, font) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
            current = ""
        if measurer.text_width(word, font) <= max_width:
            current = word
            continue
        pieces = _split_long_word(word, max_width, font, measurer)
        lines.extend(pieces[:-1])
        current = pieces[-1]

    if current:
        lines.append(current)
    return lines


def _split_long_word(word: str, max_width: float, font: FontSpec, measurer: TextMeasurer) -> list[str]:
    pieces: list[str] = []
    piece = ""
    for ch in word:
        if piece and measurer.text_width(piece + ch, font) > max_width:
            pieces.append(piece)
            piece = ch
        else:
            piece += ch
    pieces.append(piece)
    return pieces


def load_image_bytes(source: str, base_dir: Path | None = None) -> bytes:
    """Return raw image bytes for a ``data:`` URI or a file path.

    Raises ``ValueError`` for unsupported or malformed sources and ``OSError``
    when the file cannot be read.
    """
    m = _DATA_URI_RE.match(source)
    if m:
        if not m.group(2):
            raise ValueError("only base64 data URIs are supported")
        return base64.b64decode(m.group(3), validate=True)

    if re.match(r"^[a-z][a-z0-9+.-]*://", source, re.IGNORECASE):
        raise ValueError("remote image sources are not fetched")

    path = Path(source)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path.read_bytes()


class PixmapImageMeasurer:
    """Read intrinsic pixel size through PyMuPDF."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = base_dir

    def __call__(self, image: Image) -> tuple[float, float]:
        if fitz is None:
            raise RuntimeError("pymupdf is required to measure images")
        try:
            data = load_image_bytes(image.source, self.base_dir)
        except (OSError, ValueError) as exc:
            raise ImageMeasureError(image.id, image.source, str(exc)) from exc

        try:
            pixmap = fitz.Pixmap(data)
        except Exception as exc:  # mupdf reports decode failures with several unrelated types
            raise ImageMeasureError(image.id, image.source, f"cannot decode image: {exc}") from exc

        if pixmap.width <= 0 or pixmap.height <= 0:
            raise ImageMeasureError(image.id, image.source, "image has no pixels")
        return float(pixmap.width), float(pixmap.height)
