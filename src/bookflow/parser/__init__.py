"""Markup parser package."""

from .base import (
    Block,
    Blockquote,
    CodeBlock,
    Heading,
    InlineRun,
    ListBlock,
    ListItem,
    Paragraph,
    Rule,
    RunStyle,
    block_lines,
    plain_text,
)
from .blocks import MarkupParser, parse_blocks
from .inline import InlineState, LexResult, lex, scan

__all__ = [
    "Block",
    "Blockquote",
    "CodeBlock",
    "Heading",
    "InlineRun",
    "InlineState",
    "LexResult",
    "ListBlock",
    "ListItem",
    "MarkupParser",
    "Paragraph",
    "Rule",
    "RunStyle",
    "block_lines",
    "lex",
    "parse_blocks",
    "plain_text",
    "scan",
]
