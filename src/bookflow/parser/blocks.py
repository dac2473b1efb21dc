"""Block markup parser: groups author text into headings, lists, quotes and code."""

from __future__ import annotations

import re
from enum import Enum

from .base import Block, Blockquote, CodeBlock, Heading, ListBlock, ListItem, Paragraph, Rule
from .inline import lex

DEFAULT_TAB_STOP = 4

_RULE_LINES = frozenset({"---", "***", "___"})
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_ORDERED_RE = re.compile(r"^(\d+)\.\s+(.+)$")
_UNORDERED_RE = re.compile(r"^[-*]\s+(.+)$")
_FENCE_RE = re.compile(r"^(`{3,}|~{3,})")


class ListMode(Enum):
    NONE = "none"
    ORDERED = "ordered"
    UNORDERED = "unordered"


class MarkupParser:
    """Parse author-entered text into a flat list of blocks."""

    def __init__(self, tab_stop: int = DEFAULT_TAB_STOP) -> None:
        if tab_stop < 1:
            raise ValueError("tab_stop must be at least 1")
        self.tab_stop = tab_stop

    def parse(self, text: str) -> list[Block]:
        return _BlockStateMachine(self.tab_stop).run(text)


def parse_blocks(text: str, tab_stop: int = DEFAULT_TAB_STOP) -> list[Block]:
    return MarkupParser(tab_stop=tab_stop).parse(text)


class _BlockStateMachine:
    def __init__(self, tab_stop: int) -> None:
        self.tab_stop = tab_stop
        self.blocks: list[Block] = []
        self.mode = ListMode.NONE
        self.list_indent = 0
        self.items: list[ListItem] = []
        self.fence: str | None = None
        self.code_lines: list[str] = []

    def run(self, text: str) -> list[Block]:
        for raw in text.splitlines():
            if self.fence is not None:
                self._collect_code(raw)
                continue
            self._feed(raw)

        if self.fence is not None:
            self.blocks.append(CodeBlock("\n".join(self.code_lines)))
        self._close_list()
        return self.blocks

    def _indent_level(self, raw: str) -> int:
        expanded = raw.expandtabs(self.tab_stop)
        width = len(expanded) - len(expanded.lstrip())
        return width // self.tab_stop

    def _feed(self, raw: str) -> None:
        line = raw.strip()
        if not line:
            self._close_list()
            return

        indent = self._indent_level(raw)

        fence = _FENCE_RE.match(line)
        if fence:
            self._close_list()
            self.fence = fence.group(1)[0] * 3
            self.code_lines = []
            return

        if line in _RULE_LINES:
            self._close_list()
            self.blocks.append(Rule())
            return

        m = _HEADING_RE.match(line)
        if m:
            self._close_list()
            self.blocks.append(Heading(level=len(m.group(1)), runs=lex(m.group(2)), indent=indent))
            return

        m = _ORDERED_RE.match(line)
        if m:
            self._add_item(ListMode.ORDERED, indent, m.group(2), number=int(m.group(1)))
            return

        m = _UNORDERED_RE.match(line)
        if m:
            self._add_item(ListMode.UNORDERED, indent, m.group(1))
            return

        if line.startswith("> "):
            self._close_list()
            self.blocks.append(Blockquote(runs=lex(line[2:]), indent=indent))
            return

        self._close_list()
        self.blocks.append(Paragraph(runs=lex(line), indent=indent))

    def _collect_code(self, raw: str) -> None:
        if raw.strip().startswith(self.fence or ""):
            self.blocks.append(CodeBlock("\n".join(self.code_lines)))
            self.fence = None
            self.code_lines = []
            return
        self.code_lines.append(raw)

    def _add_item(self, mode: ListMode, indent: int, text: str, number: int | None = None) -> None:
        if self.mode is not mode:
            self._close_list()
            self.mode = mode
            self.list_indent = indent
        ordered = mode is ListMode.ORDERED
        self.items.append(ListItem(ordered=ordered, indent=indent, runs=lex(text), number=number))

    def _close_list(self) -> None:
        if self.mode is ListMode.NONE:
            return
        self.blocks.append(
            ListBlock(ordered=self.mode is ListMode.ORDERED, indent=self.list_indent, items=self.items)
        )
        self.mode = ListMode.NONE
        self.list_indent = 0
        self.items = []
