"""Render a book into a single self-contained HTML preview page."""

from __future__ import annotations

import base64
import html
import mimetypes
import re
from dataclasses import asdict, dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from bookflow.document import Document, FontSpec, Image, NumberStyle, Section, SectionKind
from bookflow.layout.flow import split_paragraphs
from bookflow.layout.numerals import page_label
from bookflow.parser.base import (
    Block,
    Blockquote,
    CodeBlock,
    Heading,
    InlineRun,
    ListBlock,
    Paragraph,
    Rule,
    RunStyle,
)
from bookflow.parser.blocks import DEFAULT_TAB_STOP, MarkupParser


@dataclass(slots=True)
class RenderedSubsection:
    anchor: str
    title: str
    html: str


@dataclass(slots=True)
class RenderedSection:
    anchor: str
    title: str
    kind: str
    html: str
    images: list[dict]
    subsections: list[RenderedSubsection]


class HtmlPreviewRenderer:
    """Render ``Document`` values through the preview template."""

    def __init__(self, template_path: Path | None = None, tab_stop: int = DEFAULT_TAB_STOP) -> None:
        if template_path is None:
            template_path = Path(__file__).resolve().parent.parent / "template" / "preview.html"

        loader = FileSystemLoader(str(template_path.parent))
        self._env = Environment(loader=loader, autoescape=True, trim_blocks=True, lstrip_blocks=True)
        self._template_name = template_path.name
        self._parser = MarkupParser(tab_stop=tab_stop)

    def render(self, document: Document, *, base_dir: Path | None = None) -> str:
        settings = document.settings
        fonts = settings.fonts

        toc_items = []
        if settings.table_of_contents.enabled:
            toc_items = self._toc_items(document)

        sections = [self._render_section(section, base_dir) for section in document.sections]

        template = self._env.get_template(self._template_name)
        return template.render(
            title=settings.title or "Untitled",
            author=settings.author,
            description=settings.description,
            toc_enabled=settings.table_of_contents.enabled,
            toc_title=settings.table_of_contents.title,
            toc_items=toc_items,
            sections=[asdict(s) for s in sections],
            title_style=_font_css(fonts.title),
            subtitle_style=_font_css(fonts.subtitle),
            paragraph_style=_font_css(fonts.paragraph),
            subsection_size=f"{fonts.subtitle.size_pt * 0.8:g}pt",
        )

    def render_markup(self, text: str) -> str:
        """Render author markup into HTML fragments, one chunk per paragraph."""
        parts = []
        for chunk in split_paragraphs(text):
            parts.extend(self._render_block(block) for block in self._parser.parse(chunk))
        return "\n".join(part for part in parts if part)

    def _toc_items(self, document: Document) -> list[dict]:
        include_subsections = document.settings.table_of_contents.include_subsections
        style = document.settings.page_numbering.style
        items: list[dict] = []
        chapter_ordinal = 0
        for section in document.sections:
            prefix = ""
            if section.kind is SectionKind.CHAPTER:
                chapter_ordinal += 1
                prefix = f"{chapter_ordinal}."
            items.append(
                {
                    "level": 1,
                    "prefix": prefix,
                    "title": section.title,
                    "anchor": _anchor(section.id),
                    "page": _page_label(section.page_number, section.is_front_matter, style),
                }
            )
            if not include_subsections:
                continue
            for sub in section.subsections:
                items.append(
                    {
                        "level": 2,
                        "prefix": "",
                        "title": sub.title,
                        "anchor": _anchor(sub.id),
                        "page": _page_label(sub.page_number, section.is_front_matter, style),
                    }
                )
        return items

    def _render_section(self, section: Section, base_dir: Path | None) -> RenderedSection:
        return RenderedSection(
            anchor=_anchor(section.id),
            title=section.title,
            kind=section.kind.value,
            html=self._indented(self.render_markup(section.content), section),
            images=[self._image(image, base_dir) for image in section.images],
            subsections=[
                RenderedSubsection(
                    anchor=_anchor(sub.id),
                    title=sub.title,
                    html=self._indented(self.render_markup(sub.content), section),
                )
                for sub in section.subsections
            ],
        )

    def _indented(self, fragment: str, section: Section) -> str:
        return (
            f'<div class="section-body" style="line-height: {section.line_spacing:g}; '
            f'text-indent: {section.indentation:g}em;">{fragment}</div>'
        )

    def _render_block(self, block: Block) -> str:
        if isinstance(block, Heading):
            margin = f' style="margin-left: {(block.level - 1) * 10}px;"' if block.level > 1 else ""
            return f"<h{block.level}{margin}>{render_runs(block.runs)}</h{block.level}>"

        if isinstance(block, Paragraph):
            return f"<p{_indent_style(block.indent)}>{render_runs(block.runs)}</p>"

        if isinstance(block, ListBlock):
            tag = "ol" if block.ordered else "ul"
            items = "".join(
                f"<li{_indent_style(item.indent - block.indent)}>{render_runs(item.runs)}</li>" for item in block.items
            )
            start = ""
            if block.ordered and block.items and block.items[0].number not in (None, 1):
                start = f' start="{block.items[0].number}"'
            return f"<{tag}{start}{_indent_style(block.indent)}>{items}</{tag}>"

        if isinstance(block, Blockquote):
            return f"<blockquote{_indent_style(block.indent)}>{render_runs(block.runs)}</blockquote>"

        if isinstance(block, Rule):
            return "<hr />"

        if isinstance(block, CodeBlock):
            return f"<pre><code>{html.escape(block.text)}</code></pre>"

        return ""

    def _image(self, image: Image, base_dir: Path | None) -> dict:
        return {
            "src": _image_src(image.source, base_dir),
            "caption": image.caption,
            "alignment": image.alignment.value,
            "width": image.width_percent,
        }


def render_runs(runs: list[InlineRun]) -> str:
    parts = []
    for run in runs:
        text = html.escape(run.text)
        if run.style is RunStyle.BOLD:
            parts.append(f"<strong>{text}</strong>")
        elif run.style is RunStyle.ITALIC:
            parts.append(f"<em>{text}</em>")
        elif run.style is RunStyle.BOLD_ITALIC:
            parts.append(f"<strong><em>{text}</em></strong>")
        elif run.style is RunStyle.STRIKETHROUGH:
            parts.append(f"<del>{text}</del>")
        elif run.style is RunStyle.CODE:
            parts.append(f"<code>{text}</code>")
        elif run.style is RunStyle.LINK:
            href = _safe_href(run.href)
            parts.append(f'<a href="{html.escape(href)}">{text}</a>' if href else text)
        else:
            parts.append(text)
    return "".join(parts)


def _indent_style(level: int) -> str:
    return f' style="margin-left: {level * 20}px;"' if level > 0 else ""


def _anchor(identifier: str) -> str:
    return "s-" + "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in identifier)


def _page_label(number: int | None, front_matter: bool, style: NumberStyle) -> str:
    if number is None:
        return ""
    return page_label(number, front_matter, style)


def _font_css(font: FontSpec) -> str:
    return (
        f"font-family: {font.family}; font-size: {font.size_pt:g}pt; "
        f"text-align: {font.alignment.value}; line-height: {font.line_height:g};"
    )


def _image_src(source: str, base_dir: Path | None) -> str:
    if source.startswith("data:") or "://" in source:
        return source
    path = Path(source)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    if not path.exists() or not path.is_file():
        return source
    mime, _ = mimetypes.guess_type(path.name)
    mime = mime or "application/octet-stream"
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{data}"


_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*):")
_SAFE_SCHEMES = {"http", "https", "mailto"}


def _safe_href(href: str | None) -> str | None:
    """Return *href* when it is relative or uses a web/mail scheme, else ``None``."""
    if not href:
        return None
    # Browsers drop control characters and spaces before resolving a scheme.
    compact = re.sub(r"[\x00-\x20]", "", href)
    m = _SCHEME_RE.match(compact)
    if m and m.group(1).lower() not in _SAFE_SCHEMES:
        return None
    return href
