"""Heuristic page estimate used to fill table-of-contents numbers.

The estimate works from character counts only and does not lay text out, so
its numbers can differ from the ones the flow engine stamps on real pages.
Callers wanting exact numbers should take them from a finished render.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

from bookflow.document import MM_PER_POINT, Document, DocumentSettings, Section
from bookflow.schema import validate_document
from bookflow.utils.logger import get_logger

LOGGER = get_logger(__name__)

IMAGES_PER_PAGE = 2
HEADING_PAGES = 1


@dataclass(frozen=True, slots=True)
class PageCapacity:
    chars_per_line: int
    lines_per_page: int

    @property
    def chars_per_page(self) -> int:
        return self.chars_per_line * self.lines_per_page

    @classmethod
    def from_settings(cls, settings: DocumentSettings) -> "PageCapacity":
        geometry = settings.geometry
        font = settings.fonts.paragraph
        chars_per_line = math.floor(geometry.content_width / (font.size_pt * MM_PER_POINT))
        lines_per_page = math.floor(geometry.content_height / (font.size_pt * font.line_height * MM_PER_POINT))
        return cls(chars_per_line=chars_per_line, lines_per_page=lines_per_page)

    def pages_for(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_page)


def estimate(document: Document, settings: DocumentSettings | None = None) -> Document:
    """Return a copy of *document* with every ``page_number`` estimated.

    Raises ``SettingsError`` when the settings are out of range.
    """
    settings = settings or document.settings
    validate_document(replace(document, settings=settings))
    capacity = PageCapacity.from_settings(settings)
    start = settings.page_numbering.start_from
    roman_counter = start
    arabic_counter = start

    sections: list[Section] = []
    for section in document.sections:
        counter = roman_counter if section.is_front_matter else arabic_counter
        page_number = counter

        content_pages = capacity.pages_for(section.content)
        image_pages = math.ceil(len(section.images) / IMAGES_PER_PAGE)
        counter += content_pages + image_pages + HEADING_PAGES

        subsections = []
        for sub in section.subsections:
            subsections.append(replace(sub, page_number=counter))
            counter += capacity.pages_for(sub.content)

        if section.is_front_matter:
            roman_counter = counter
        else:
            arabic_counter = counter
        sections.append(replace(section, page_number=page_number, subsections=subsections))

    LOGGER.debug(
        "Estimated %d section(s) at %d chars/page (next roman=%d, arabic=%d)",
        len(sections),
        capacity.chars_per_page,
        roman_counter,
        arabic_counter,
    )
    return replace(document, sections=sections, settings=settings)
