"""Book document model, editor defaults and page geometry."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

MM_PER_POINT = 0.352778
MM_PER_CM = 10.0


class SectionKind(str, Enum):
    FRONT_MATTER = "frontmatter"
    CHAPTER = "chapter"
    BACK_MATTER = "backmatter"


class Alignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    JUSTIFY = "justify"


class PaperSize(str, Enum):
    A4 = "A4"
    LETTER = "Letter"
    LEGAL = "Legal"

    @property
    def dimensions_mm(self) -> tuple[float, float]:
        return _PAPER_DIMENSIONS_MM[self]


_PAPER_DIMENSIONS_MM = {
    PaperSize.A4: (210.0, 297.0),
    PaperSize.LETTER: (215.9, 279.4),
    PaperSize.LEGAL: (215.9, 355.6),
}


class FontRole(str, Enum):
    TITLE = "title"
    SUBTITLE = "subtitle"
    PARAGRAPH = "paragraph"
    HEADER = "header"
    FOOTER = "footer"


class NumberPosition(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


class NumberStyle(str, Enum):
    DECIMAL = "decimal"
    ROMAN = "roman"
    NONE = "none"


@dataclass(slots=True)
class Image:
    id: str
    source: str
    caption: str = ""
    alignment: Alignment = Alignment.CENTER
    width_percent: int = 100


@dataclass(slots=True)
class Subsection:
    id: str
    title: str
    content: str = ""
    page_number: int | None = None


@dataclass(slots=True)
class Section:
    id: str
    title: str
    kind: SectionKind = SectionKind.CHAPTER
    content: str = ""
    images: list[Image] = field(default_factory=list)
    indentation: float = 0.0
    line_spacing: float = 1.5
    subsections: list[Subsection] = field(default_factory=list)
    page_number: int | None = None

    @property
    def is_front_matter(self) -> bool:
        return self.kind is SectionKind.FRONT_MATTER


@dataclass(slots=True)
class FontSpec:
    family: str = "Helvetica"
    size_pt: float = 12.0
    alignment: Alignment = Alignment.LEFT
    line_height: float = 1.5

    @property
    def size_mm(self) -> float:
        return self.size_pt * MM_PER_POINT


@dataclass(slots=True)
class FontSet:
    """One font spec per ``FontRole``; look fonts up with ``for_role``."""

    title: FontSpec = field(default_factory=lambda: FontSpec(size_pt=24, alignment=Alignment.CENTER))
    subtitle: FontSpec = field(default_factory=lambda: FontSpec(size_pt=18))
    paragraph: FontSpec = field(default_factory=lambda: FontSpec(size_pt=12, alignment=Alignment.JUSTIFY))
    header: FontSpec = field(default_factory=lambda: FontSpec(size_pt=10, alignment=Alignment.CENTER, line_height=1.2))
    footer: FontSpec = field(default_factory=lambda: FontSpec(size_pt=10, alignment=Alignment.CENTER, line_height=1.2))

    def for_role(self, role: FontRole) -> FontSpec:
        return getattr(self, role.value)


@dataclass(slots=True)
class Margins:
    """Page margins in centimetres."""

    top: float = 2.54
    bottom: float = 2.54
    left: float = 2.54
    right: float = 2.54


@dataclass(slots=True)
class PageNumbering:
    enabled: bool = True
    start_from: int = 1
    position: NumberPosition = NumberPosition.BOTTOM
    alignment: Alignment = Alignment.CENTER
    style: NumberStyle = NumberStyle.DECIMAL


@dataclass(slots=True)
class TableOfContents:
    enabled: bool = True
    title: str = "Table of Contents"
    include_subsections: bool = True


@dataclass(slots=True)
class RunningText:
    """Running header or footer line repeated on content pages."""

    enabled: bool = False
    text: str = ""
    alternate_even_odd: bool = False


@dataclass(slots=True)
class DocumentSettings:
    title: str = ""
    author: str = ""
    description: str = ""
    cover_image: str | None = None
    back_cover_image: str | None = None
    paper_size: PaperSize = PaperSize.A4
    margins: Margins = field(default_factory=Margins)
    fonts: FontSet = field(default_factory=FontSet)
    page_numbering: PageNumbering = field(default_factory=PageNumbering)
    table_of_contents: TableOfContents = field(default_factory=TableOfContents)
    header: RunningText = field(default_factory=RunningText)
    footer: RunningText = field(default_factory=RunningText)

    @classmethod
    def default(cls) -> "DocumentSettings":
        return cls()

    @property
    def geometry(self) -> "PageGeometry":
        return PageGeometry.from_settings(self)


@dataclass(slots=True)
class Document:
    sections: list[Section] = field(default_factory=list)
    settings: DocumentSettings = field(default_factory=DocumentSettings)


@dataclass(frozen=True, slots=True)
class PageGeometry:
    """Page and content box dimensions in millimetres."""

    page_width: float
    page_height: float
    margin_top: float
    margin_bottom: float
    margin_left: float
    margin_right: float

    @classmethod
    def from_settings(cls, settings: DocumentSettings) -> "PageGeometry":
        width, height = settings.paper_size.dimensions_mm
        margins = settings.margins
        return cls(
            page_width=width,
            page_height=height,
            margin_top=margins.top * MM_PER_CM,
            margin_bottom=margins.bottom * MM_PER_CM,
            margin_left=margins.left * MM_PER_CM,
            margin_right=margins.right * MM_PER_CM,
        )

    @property
    def content_width(self) -> float:
        return self.page_width - self.margin_left - self.margin_right

    @property
    def content_height(self) -> float:
        return self.page_height - self.margin_top - self.margin_bottom

    @property
    def bottom_limit(self) -> float:
        return self.page_height - self.margin_bottom

