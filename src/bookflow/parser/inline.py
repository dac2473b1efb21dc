"""Inline markup lexer: turns one line of text into styled runs.

Delimiters toggle style flags as they are met (``**``/``__`` bold, ``*``/``_``
italic, ``~~`` strikethrough). There is no pair matching: an unmatched
delimiter keeps its style on for the rest of the line, and the flags left
open at the end are handed back in ``LexResult.state`` so a caller can decide
whether to carry them into the next line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .base import InlineRun, RunStyle

_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")


@dataclass(frozen=True, slots=True)
class InlineState:
    bold: bool = False
    italic: bool = False
    strikethrough: bool = False

    @property
    def is_open(self) -> bool:
        return self.bold or self.italic or self.strikethrough

    @property
    def style(self) -> RunStyle:
        if self.strikethrough:
            return RunStyle.STRIKETHROUGH
        if self.bold and self.italic:
            return RunStyle.BOLD_ITALIC
        if self.bold:
            return RunStyle.BOLD
        if self.italic:
            return RunStyle.ITALIC
        return RunStyle.PLAIN


@dataclass(slots=True)
class LexResult:
    runs: list[InlineRun] = field(default_factory=list)
    state: InlineState = field(default_factory=InlineState)


def lex(line: str) -> list[InlineRun]:
    """Lex *line* starting from a closed state and return its runs."""
    return scan(line).runs


def scan(line: str, state: InlineState | None = None) -> LexResult:
    """Lex *line* starting from *state*; the returned state may be open."""
    state = state or InlineState()
    bold, italic, strike = state.bold, state.italic, state.strikethrough
    runs: list[InlineRun] = []
    buffer: list[str] = []

    def flush() -> None:
        if buffer:
            style = InlineState(bold, italic, strike).style
            runs.append(InlineRun("".join(buffer), style))
            buffer.clear()

    i = 0
    length = len(line)
    while i < length:
        ch = line[i]

        if ch in "*_":
            flush()
            if i + 1 < length and line[i + 1] == ch:
                bold = not bold
                i += 2
            else:
                italic = not italic
                i += 1
            continue

        if ch == "~" and line.startswith("~~", i):
            flush()
            strike = not strike
            i += 2
            continue

        if ch == "`":
            close = line.find("`", i + 1)
            if close == -1:
                buffer.append(ch)
                i += 1
                continue
            flush()
            code = line[i + 1:close]
            if code:
                runs.append(InlineRun(code, RunStyle.CODE))
            i = close + 1
            continue

        if ch == "[":
            m = _LINK_RE.match(line, i)
            if m:
                flush()
                runs.append(InlineRun(m.group(1), RunStyle.LINK, href=m.group(2)))
                i = m.end()
                continue

        buffer.append(ch)
        i += 1

    flush()
    return LexResult(runs=runs, state=InlineState(bold, italic, strike))
