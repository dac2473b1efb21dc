"""Flow sections into fixed-size pages and emit positioned draw operations.

This is the authoritative page numbering: the title page and table of
contents take roman numbers, front-matter sections continue the roman
counter, chapters and back matter use the arabic counter. Both counters live
in a ``_FlowRun`` created per ``render`` call.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from bookflow.document import (
    Alignment,
    Document,
    DocumentSettings,
    FontRole,
    FontSpec,
    Image,
    NumberPosition,
    NumberStyle,
    PageGeometry,
    RunningText,
    Section,
    SectionKind,
)
from bookflow.errors import ImageMeasureError, RenderCancelled
from bookflow.layout.measure import (
    FontMetricsMeasurer,
    ImageMeasurer,
    PixmapImageMeasurer,
    TextMeasurer,
    wrap_text,
)
from bookflow.layout.numerals import page_label
from bookflow.parser.base import block_lines
from bookflow.parser.blocks import DEFAULT_TAB_STOP, MarkupParser
from bookflow.schema import validate_document
from bookflow.utils.logger import get_logger

LOGGER = get_logger(__name__)

TITLE_OFFSET_MM = 40.0
AUTHOR_OFFSET_MM = 60.0
HEADING_OFFSET_MM = 20.0
HEADING_GAP_MM = 20.0
IMAGE_RESERVE_MM = 40.0
IMAGE_GAP_MM = 10.0
CAPTION_HEIGHT_MM = 15.0
CAPTION_SCALE = 0.8
SUBSECTION_RESERVE_MM = 20.0
SUBSECTION_GAP_MM = 20.0
SUBSECTION_TITLE_GAP_MM = 15.0
SUBSECTION_SCALE = 0.8
INDENT_MM_PER_EM = 10.0
TOC_FIRST_ENTRY_MM = 40.0
TOC_ENTRY_STEP_MM = 10.0
TOC_SUBENTRY_STEP_MM = 8.0
TOC_SUBENTRY_INDENT_MM = 10.0
STAMP_TOP_OFFSET_MM = 5.0

_FENCE_LINE_RE = re.compile(r"^\s*(`{3,}|~{3,})")


class NumeralSystem(str, Enum):
    ROMAN = "roman"
    ARABIC = "arabic"


@dataclass(slots=True)
class TextLine:
    text: str
    x: float
    y: float
    role: FontRole
    size_pt: float
    alignment: Alignment = Alignment.LEFT
    indent: int = 0


@dataclass(slots=True)
class ImagePlacement:
    image_id: str
    source: str
    x: float
    y: float
    width: float
    height: float


@dataclass(slots=True)
class PageNumberStamp:
    label: str
    number: int
    numeral: NumeralSystem
    x: float
    y: float
    alignment: Alignment


DrawOp = TextLine | ImagePlacement | PageNumberStamp


@dataclass(slots=True)
class Page:
    index: int
    ops: list[DrawOp] = field(default_factory=list)
    numeral: NumeralSystem | None = None
    number: int | None = None

    @property
    def stamp(self) -> PageNumberStamp | None:
        for op in self.ops:
            if isinstance(op, PageNumberStamp):
                return op
        return None

    def texts(self) -> list[str]:
        return [op.text for op in self.ops if isinstance(op, TextLine)]


@dataclass(frozen=True, slots=True)
class PageAnchor:
    """Where a section or subsection heading landed."""

    page_index: int
    number: int
    label: str


@dataclass(slots=True)
class Pagination:
    pages: list[Page] = field(default_factory=list)
    anchors: dict[str, PageAnchor] = field(default_factory=dict)
    image_errors: list[ImageMeasureError] = field(default_factory=list)


class CancelToken(Protocol):
    def is_set(self) -> bool:  # pragma: no cover - structural protocol
        ...


class FlowEngine:
    """Lay a ``Document`` out into pages."""

    def __init__(
        self,
        text_measurer: TextMeasurer | None = None,
        image_measurer: ImageMeasurer | None = None,
        tab_stop: int = DEFAULT_TAB_STOP,
    ) -> None:
        self.text_measurer = text_measurer or FontMetricsMeasurer()
        self.image_measurer = image_measurer or PixmapImageMeasurer()
        self.parser = MarkupParser(tab_stop=tab_stop)

    def render(self, document: Document, *, cancel: CancelToken | None = None) -> Pagination:
        """Return the pages for *document*.

        Raises ``SettingsError`` before any layout when settings are out of
        range and ``RenderCancelled`` (with the finished pages) when *cancel*
        is set between sections or page breaks.
        """
        validate_document(document)
        run = _FlowRun(self, document.settings, cancel)
        run.layout(document.sections)
        LOGGER.info(
            "Rendered %d section(s) into %d page(s) (%d image error(s))",
            len(document.sections),
            len(run.pages),
            len(run.image_errors),
        )
        return Pagination(pages=run.pages, anchors=run.anchors, image_errors=run.image_errors)


def split_paragraphs(content: str) -> list[str]:
    """Split *content* on blank lines, keeping fenced code blocks whole."""
    chunks: list[str] = []
    current: list[str] = []
    fence: str | None = None
    for line in content.splitlines():
        m = _FENCE_LINE_RE.match(line)
        if m:
            marker = m.group(1)[0]
            if fence is None:
                fence = marker
            elif marker == fence:
                fence = None
        if fence is None and not line.strip():
            if current:
                chunks.append("\n".join(current))
                current = []
            continue
        current.append(line)
    if current:
        chunks.append("\n".join(current))
    return [chunk for chunk in chunks if chunk.strip()]


class _FlowRun:
    """Mutable state for one render call."""

    def __init__(self, engine: FlowEngine, settings: DocumentSettings, cancel: CancelToken | None) -> None:
        self.engine = engine
        self.settings = settings
        self.geometry: PageGeometry = settings.geometry
        self.cancel = cancel
        start = settings.page_numbering.start_from
        self.roman_counter = start
        self.arabic_counter = start
        self.cursor_y = self.geometry.margin_top
        self.pages: list[Page] = []
        self.anchors: dict[str, PageAnchor] = {}
        self.image_errors: list[ImageMeasureError] = []

    # ------------------------------------------------------------------
    # Walk

    def layout(self, sections: list[Section]) -> None:
        self._title_page()
        if self.settings.table_of_contents.enabled:
            self._table_of_contents(sections)

        for idx, section in enumerate(sections):
            self._check_cancel()
            self._section(section)
            if idx < len(sections) - 1:
                self._finish_page(section.is_front_matter)

        if sections:
            self._stamp(sections[-1].is_front_matter)

    @property
    def page(self) -> Page:
        return self.pages[-1]

    def _new_page(self) -> None:
        self.pages.append(Page(index=len(self.pages)))
        self.cursor_y = self.geometry.margin_top

    def _finish_page(self, front_matter: bool) -> None:
        self._stamp(front_matter)
        if front_matter:
            self.roman_counter += 1
        else:
            self.arabic_counter += 1

    def _ensure_room(self, front_matter: bool, reserve: float = 0.0) -> None:
        if self.cursor_y <= self.geometry.bottom_limit - reserve:
            return
        LOGGER.debug("Page %d full at y=%.2fmm; breaking", self.page.index, self.cursor_y)
        self._finish_page(front_matter)
        self._check_cancel()
        self._new_page()

    def _check_cancel(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            LOGGER.info("Render cancelled after %d page(s)", len(self.pages))
            raise RenderCancelled(pages=list(self.pages))

    # ------------------------------------------------------------------
    # Numbers

    def _counter(self, front_matter: bool) -> int:
        return self.roman_counter if front_matter else self.arabic_counter

    def _label(self, number: int, front_matter: bool) -> str:
        return page_label(number, front_matter, self.settings.page_numbering.style)

    def _anchor(self, key: str, front_matter: bool) -> None:
        number = self._counter(front_matter)
        self.anchors[key] = PageAnchor(self.page.index, number, self._label(number, front_matter))

    def _stamp(self, front_matter: bool) -> None:
        page = self.page
        number = self._counter(front_matter)
        page.number = number
        page.numeral = NumeralSystem.ROMAN if front_matter else NumeralSystem.ARABIC

        numbering = self.settings.page_numbering
        if not numbering.enabled or numbering.style is NumberStyle.NONE:
            return
        geometry = self.geometry
        if numbering.position is NumberPosition.TOP:
            y = geometry.margin_top - STAMP_TOP_OFFSET_MM
        else:
            y = geometry.page_height - geometry.margin_bottom / 2
        page.ops.append(
            PageNumberStamp(
                label=self._label(number, front_matter),
                number=number,
                numeral=page.numeral,
                x=self._x_for(numbering.alignment),
                y=y,
                alignment=numbering.alignment,
            )
        )

    def _x_for(self, alignment: Alignment) -> float:
        geometry = self.geometry
        if alignment is Alignment.CENTER:
            return geometry.page_width / 2
        if alignment is Alignment.RIGHT:
            return geometry.page_width - geometry.margin_right
        return geometry.margin_left

    # ------------------------------------------------------------------
    # Fixed pages

    def _title_page(self) -> None:
        self._new_page()
        fonts = self.settings.fonts
        center = self.geometry.page_width / 2
        top = self.geometry.margin_top
        self._text(self.settings.title, center, top + TITLE_OFFSET_MM, FontRole.TITLE, alignment=Alignment.CENTER)
        self._text(self.settings.author, center, top + AUTHOR_OFFSET_MM, FontRole.SUBTITLE, alignment=Alignment.CENTER)
        LOGGER.debug("Title page uses %s %.1fpt", fonts.title.family, fonts.title.size_pt)
        self._finish_page(front_matter=True)

    def _table_of_contents(self, sections: list[Section]) -> None:
        toc = self.settings.table_of_contents
        geometry = self.geometry
        number_x = geometry.page_width - geometry.margin_right

        self._new_page()
        self._text(toc.title, geometry.margin_left, geometry.margin_top + HEADING_OFFSET_MM, FontRole.SUBTITLE)
        self.cursor_y = geometry.margin_top + TOC_FIRST_ENTRY_MM

        chapter_ordinal = 0
        for section in sections:
            front = section.is_front_matter
            prefix = ""
            if section.kind is SectionKind.CHAPTER:
                chapter_ordinal += 1
                prefix = f"{chapter_ordinal}. "

            self._ensure_room(front_matter=True)
            number = section.page_number or self._counter(front)
            self._text(prefix + section.title, geometry.margin_left, self.cursor_y, FontRole.PARAGRAPH)
            self._text(self._label(number, front), number_x, self.cursor_y, FontRole.PARAGRAPH, alignment=Alignment.RIGHT)
            self.cursor_y += TOC_ENTRY_STEP_MM

            if not toc.include_subsections:
                continue
            for sub in section.subsections:
                self._ensure_room(front_matter=True)
                sub_number = sub.page_number or self._counter(front)
                self._text(sub.title, geometry.margin_left + TOC_SUBENTRY_INDENT_MM, self.cursor_y, FontRole.PARAGRAPH)
                self._text(
                    self._label(sub_number, front), number_x, self.cursor_y, FontRole.PARAGRAPH, alignment=Alignment.RIGHT
                )
                self.cursor_y += TOC_SUBENTRY_STEP_MM

        self._finish_page(front_matter=True)

    # ------------------------------------------------------------------
    # Sections

    def _section(self, section: Section) -> None:
        front = section.is_front_matter
        geometry = self.geometry
        first_page = len(self.pages)
        self._new_page()
        self._anchor(section.id, front)

        heading_y = geometry.margin_top + HEADING_OFFSET_MM
        subtitle = self.settings.fonts.subtitle
        self._text(section.title, geometry.margin_left, heading_y, FontRole.SUBTITLE, alignment=subtitle.alignment)
        self.cursor_y = heading_y + HEADING_GAP_MM

        self._paragraphs(section.content, section)

        for image in section.images:
            self._image(image, front)

        for sub in section.subsections:
            self._ensure_room(front, SUBSECTION_RESERVE_MM)
            self._anchor(sub.id, front)
            self.cursor_y += SUBSECTION_GAP_MM
            self._text(
                sub.title,
                geometry.margin_left,
                self.cursor_y,
                FontRole.SUBTITLE,
                size_pt=subtitle.size_pt * SUBSECTION_SCALE,
            )
            self.cursor_y += SUBSECTION_TITLE_GAP_MM
            self._paragraphs(sub.content, section)

        self._running_text(first_page)

    def _paragraphs(self, content: str, section: Section) -> None:
        font = self.settings.fonts.paragraph
        geometry = self.geometry
        right = geometry.page_width - geometry.margin_right
        line_advance = font.size_mm * section.line_spacing

        for chunk in split_paragraphs(content):
            for block in self.engine.parser.parse(chunk):
                for text, indent in block_lines(block):
                    left = geometry.margin_left + (section.indentation + indent) * INDENT_MM_PER_EM
                    if font.alignment is Alignment.CENTER:
                        x = (left + right) / 2
                    elif font.alignment is Alignment.RIGHT:
                        x = right
                    else:
                        x = left
                    for line in wrap_text(text, geometry.content_width, font, self.engine.text_measurer):
                        self._ensure_room(section.is_front_matter)
                        self._text(line, x, self.cursor_y, FontRole.PARAGRAPH, alignment=font.alignment, indent=indent)
                        self.cursor_y += line_advance
            self.cursor_y += font.size_mm

    def _image(self, image: Image, front_matter: bool) -> None:
        try:
            intrinsic_w, intrinsic_h = self.engine.image_measurer(image)
        except ImageMeasureError as exc:
            LOGGER.warning("Skipping image: %s", exc)
            self.image_errors.append(exc)
            return

        self._ensure_room(front_matter, IMAGE_RESERVE_MM)
        geometry = self.geometry
        width = geometry.content_width * image.width_percent / 100
        height = width * intrinsic_h / intrinsic_w
        if image.alignment is Alignment.CENTER:
            x = (geometry.page_width - width) / 2
        elif image.alignment is Alignment.RIGHT:
            x = geometry.page_width - geometry.margin_right - width
        else:
            x = geometry.margin_left

        self.page.ops.append(ImagePlacement(image.id, image.source, x, self.cursor_y, width, height))
        self.cursor_y += height + IMAGE_GAP_MM

        if image.caption:
            size = self.settings.fonts.paragraph.size_pt * CAPTION_SCALE
            self._text(image.caption, geometry.page_width / 2, self.cursor_y, FontRole.PARAGRAPH, size, Alignment.CENTER)
            self.cursor_y += CAPTION_HEIGHT_MM

    def _running_text(self, first_page: int) -> None:
        """Draw the running header/footer on this section's pages."""
        for page in self.pages[first_page:]:
            self._place_running(page, self.settings.header, FontRole.HEADER)
            self._place_running(page, self.settings.footer, FontRole.FOOTER)

    def _place_running(self, page: Page, running: RunningText, role: FontRole) -> None:
        if not running.enabled or not running.text:
            return
        geometry = self.geometry
        font: FontSpec = self.settings.fonts.for_role(role)
        if running.alternate_even_odd:
            alignment = Alignment.LEFT if (page.index + 1) % 2 == 0 else Alignment.RIGHT
        else:
            alignment = font.alignment
        if role is FontRole.HEADER:
            y = geometry.margin_top / 2
        else:
            y = geometry.page_height - geometry.margin_bottom / 2 + font.size_mm * font.line_height
        page.ops.append(TextLine(running.text, self._x_for(alignment), y, role, font.size_pt, alignment))

    # ------------------------------------------------------------------

    def _text(
        self,
        text: str,
        x: float,
        y: float,
        role: FontRole,
        size_pt: float | None = None,
        alignment: Alignment = Alignment.LEFT,
        indent: int = 0,
    ) -> None:
        if size_pt is None:
            size_pt = self.settings.fonts.for_role(role).size_pt
        self.page.ops.append(TextLine(text, x, y, role, size_pt, alignment, indent))
