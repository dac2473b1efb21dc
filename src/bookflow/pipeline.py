"""Validate, estimate and lay out a book in one call."""

from __future__ import annotations

from dataclasses import replace

from bookflow.document import Document
from bookflow.layout.estimator import estimate
from bookflow.layout.flow import CancelToken, FlowEngine, Pagination
from bookflow.utils.logger import get_logger

LOGGER = get_logger(__name__)


def build_book(
    document: Document,
    *,
    engine: FlowEngine | None = None,
    rendered_toc: bool = False,
    cancel: CancelToken | None = None,
) -> tuple[Document, Pagination]:
    """Return the estimated document and its pagination.

    By default the table of contents shows the estimator's numbers. With
    *rendered_toc* the book is laid out a second time with the numbers taken
    from the first layout, so the contents page matches the stamped pages.
    """
    engine = engine or FlowEngine()

    estimated = estimate(document)
    pagination = engine.render(estimated, cancel=cancel)
    if not rendered_toc:
        return estimated, pagination

    numbered = apply_page_numbers(estimated, pagination)
    LOGGER.info("Re-rendering with table of contents numbers from the first layout")
    return numbered, engine.render(numbered, cancel=cancel)


def apply_page_numbers(document: Document, pagination: Pagination) -> Document:
    """Copy rendered page numbers onto sections and subsections."""
    anchors = pagination.anchors
    sections = []
    for section in document.sections:
        subsections = [
            replace(sub, page_number=anchors[sub.id].number) if sub.id in anchors else sub
            for sub in section.subsections
        ]
        number = anchors[section.id].number if section.id in anchors else section.page_number
        sections.append(replace(section, page_number=number, subsections=subsections))
    return replace(document, sections=sections)
