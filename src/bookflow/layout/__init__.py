"""Page estimation and flow layout."""

from .estimator import PageCapacity, estimate
from .flow import (
    FlowEngine,
    ImagePlacement,
    NumeralSystem,
    Page,
    PageAnchor,
    PageNumberStamp,
    Pagination,
    TextLine,
    split_paragraphs,
)
from .measure import FontMetricsMeasurer, MonospaceMeasurer, PixmapImageMeasurer, wrap_text
from .numerals import format_page_number, romanize

__all__ = [
    "FlowEngine",
    "FontMetricsMeasurer",
    "ImagePlacement",
    "MonospaceMeasurer",
    "NumeralSystem",
    "Page",
    "PageAnchor",
    "PageCapacity",
    "PageNumberStamp",
    "Pagination",
    "PixmapImageMeasurer",
    "TextLine",
    "estimate",
    "format_page_number",
    "romanize",
    "split_paragraphs",
    "wrap_text",
]
