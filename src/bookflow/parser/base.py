"""Intermediate representation produced by the markup parsers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class RunStyle(str, Enum):
    PLAIN = "plain"
    BOLD = "bold"
    ITALIC = "italic"
    BOLD_ITALIC = "bold_italic"
    STRIKETHROUGH = "strikethrough"
    CODE = "code"
    LINK = "link"


@dataclass(frozen=True, slots=True)
class InlineRun:
    text: str
    style: RunStyle = RunStyle.PLAIN
    href: str | None = None


@dataclass(slots=True)
class Heading:
    level: int
    runs: list[InlineRun]
    indent: int = 0


@dataclass(slots=True)
class Paragraph:
    runs: list[InlineRun]
    indent: int = 0


@dataclass(slots=True)
class ListItem:
    ordered: bool
    indent: int
    runs: list[InlineRun]
    number: int | None = None


@dataclass(slots=True)
class ListBlock:
    """Consecutive list items of one marker type."""

    ordered: bool
    indent: int
    items: list[ListItem] = field(default_factory=list)


@dataclass(slots=True)
class Blockquote:
    runs: list[InlineRun]
    indent: int = 0


@dataclass(slots=True)
class Rule:
    pass


@dataclass(slots=True)
class CodeBlock:
    text: str


Block = Heading | Paragraph | ListBlock | Blockquote | Rule | CodeBlock


def plain_text(runs: list[InlineRun]) -> str:
    """Concatenate run texts, dropping all styling."""
    return "".join(run.text for run in runs)


def block_lines(block: Block) -> list[tuple[str, int]]:
    """Return the glyph text of *block* as ``(text, indent)`` pairs.

    List items get a bullet or their number as a marker; code blocks yield one
    entry per source line; rules yield nothing.
    """
    if isinstance(block, (Heading, Paragraph, Blockquote)):
        return [(plain_text(block.runs), block.indent)]
    if isinstance(block, ListBlock):
        lines = []
        for item in block.items:
            marker = f"{item.number}. " if item.ordered else "• "
            lines.append((marker + plain_text(item.runs), item.indent))
        return lines
    if isinstance(block, CodeBlock):
        return [(line, 0) for line in block.text.split("\n")]
    return []
