"""Pydantic schema for book files and for validating the in-memory model.

The schema accepts the editor's camelCase keys (``subChapters``,
``lineSpacing``, ``url``...) next to the snake_case field names, so the same
models validate a JSON mapping and, with ``from_attributes``, a ``Document``
built in code. Layout code never sees these models; it works on the
dataclasses in ``bookflow.document``.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Mapping

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from bookflow.document import (
    Alignment,
    Document,
    DocumentSettings,
    FontRole,
    FontSet,
    FontSpec,
    Image,
    Margins,
    NumberPosition,
    NumberStyle,
    PageNumbering,
    PaperSize,
    RunningText,
    Section,
    SectionKind,
    Subsection,
    TableOfContents,
)
from bookflow.errors import DocumentLoadError, SettingsError

_RANGE_ERRORS = {"greater_than", "greater_than_equal", "less_than", "less_than_equal"}


def _lenient(enum_type: type[Enum]) -> BeforeValidator:
    """Match enum members by value or name, ignoring case."""

    def coerce(value: Any) -> Any:
        if isinstance(value, str) and not isinstance(value, enum_type):
            for member in enum_type:
                if value.lower() in (member.value.lower(), member.name.lower()):
                    return member
        return value

    return BeforeValidator(coerce)


AlignmentField = Annotated[Alignment, _lenient(Alignment)]


class _Schema(BaseModel):
    model_config = ConfigDict(from_attributes=True, loc_by_alias=False)


class MarginsModel(_Schema):
    """Margins in centimetres."""

    top: float = Field(default=2.54, ge=0)
    bottom: float = Field(default=2.54, ge=0)
    left: float = Field(default=2.54, ge=0)
    right: float = Field(default=2.54, ge=0)


class FontModel(_Schema):
    family: str = "Helvetica"
    size_pt: float = Field(default=12.0, gt=0, validation_alias=AliasChoices("size", "size_pt"))
    alignment: AlignmentField = Alignment.LEFT
    line_height: float = Field(default=1.5, gt=0, validation_alias=AliasChoices("lineHeight", "line_height"))


def _role_default(role: FontRole) -> dict[str, Any]:
    return asdict(FontSet().for_role(role))


class FontsModel(_Schema):
    title: FontModel = Field(default_factory=lambda: FontModel.model_validate(_role_default(FontRole.TITLE)))
    subtitle: FontModel = Field(default_factory=lambda: FontModel.model_validate(_role_default(FontRole.SUBTITLE)))
    paragraph: FontModel = Field(default_factory=lambda: FontModel.model_validate(_role_default(FontRole.PARAGRAPH)))
    header: FontModel = Field(default_factory=lambda: FontModel.model_validate(_role_default(FontRole.HEADER)))
    footer: FontModel = Field(default_factory=lambda: FontModel.model_validate(_role_default(FontRole.FOOTER)))

    @field_validator("title", "subtitle", "paragraph", "header", "footer", mode="before")
    @classmethod
    def _over_role_default(cls, value: Any, info: ValidationInfo) -> Any:
        # A partial font mapping only overrides the keys it names.
        if isinstance(value, Mapping):
            return {**_role_default(FontRole(info.field_name)), **value}
        return value


class PageNumberingModel(_Schema):
    enabled: bool = True
    start_from: int = Field(default=1, ge=1, validation_alias=AliasChoices("startFrom", "start_from"))
    position: Annotated[NumberPosition, _lenient(NumberPosition)] = NumberPosition.BOTTOM
    alignment: AlignmentField = Alignment.CENTER
    style: Annotated[NumberStyle, _lenient(NumberStyle)] = NumberStyle.DECIMAL


class TableOfContentsModel(_Schema):
    enabled: bool = True
    title: str = "Table of Contents"
    include_subsections: bool = Field(
        default=True, validation_alias=AliasChoices("includeSubChapters", "include_subsections")
    )


class RunningTextModel(_Schema):
    enabled: bool = False
    text: str = ""
    alternate_even_odd: bool = Field(default=False, validation_alias=AliasChoices("alternateEvenOdd", "alternate_even_odd"))


class SettingsModel(_Schema):
    title: str = ""
    author: str = ""
    description: str = ""
    cover_image: str | None = Field(default=None, validation_alias=AliasChoices("coverImage", "cover_image"))
    back_cover_image: str | None = Field(default=None, validation_alias=AliasChoices("backCoverImage", "back_cover_image"))
    paper_size: Annotated[PaperSize, _lenient(PaperSize)] = Field(
        default=PaperSize.A4, validation_alias=AliasChoices("paperSize", "paper_size")
    )
    margins: MarginsModel = Field(default_factory=MarginsModel)
    fonts: FontsModel = Field(default_factory=FontsModel)
    page_numbering: PageNumberingModel = Field(
        default_factory=PageNumberingModel, validation_alias=AliasChoices("pageNumbering", "page_numbering")
    )
    table_of_contents: TableOfContentsModel = Field(
        default_factory=TableOfContentsModel, validation_alias=AliasChoices("tableOfContents", "table_of_contents")
    )
    header: RunningTextModel = Field(default_factory=RunningTextModel)
    footer: RunningTextModel = Field(default_factory=RunningTextModel)

    def to_settings(self) -> DocumentSettings:
        fonts = FontSet(**{role.value: FontSpec(**getattr(self.fonts, role.value).model_dump()) for role in FontRole})
        return DocumentSettings(
            title=self.title,
            author=self.author,
            description=self.description,
            cover_image=self.cover_image,
            back_cover_image=self.back_cover_image,
            paper_size=self.paper_size,
            margins=Margins(**self.margins.model_dump()),
            fonts=fonts,
            page_numbering=PageNumbering(**self.page_numbering.model_dump()),
            table_of_contents=TableOfContents(**self.table_of_contents.model_dump()),
            header=RunningText(**self.header.model_dump()),
            footer=RunningText(**self.footer.model_dump()),
        )


class ImageModel(_Schema):
    id: str | None = None
    source: str = Field(min_length=1, validation_alias=AliasChoices("url", "source"))
    caption: str = ""
    alignment: AlignmentField = Alignment.CENTER
    width_percent: int = Field(default=100, ge=10, le=100, validation_alias=AliasChoices("width", "width_percent"))

    def to_image(self, section_id: str, idx: int) -> Image:
        return Image(
            id=self.id or f"{section_id}-img-{idx + 1}",
            source=self.source,
            caption=self.caption,
            alignment=self.alignment,
            width_percent=self.width_percent,
        )


class SubsectionModel(_Schema):
    id: str | None = None
    title: str = ""
    content: str = ""
    page_number: int | None = Field(default=None, validation_alias=AliasChoices("pageNumber", "page_number"))


class SectionModel(_Schema):
    id: str | None = None
    title: str = ""
    kind: Annotated[SectionKind, _lenient(SectionKind)] = Field(
        default=SectionKind.CHAPTER, validation_alias=AliasChoices("type", "kind")
    )
    content: str = ""
    images: list[ImageModel] = Field(default_factory=list)
    indentation: float = Field(default=0.0, ge=0)
    line_spacing: float = Field(default=1.5, ge=1, validation_alias=AliasChoices("lineSpacing", "line_spacing"))
    subsections: list[SubsectionModel] = Field(
        default_factory=list, validation_alias=AliasChoices("subChapters", "subsections")
    )
    page_number: int | None = Field(default=None, validation_alias=AliasChoices("pageNumber", "page_number"))

    def to_section(self, idx: int) -> Section:
        section_id = self.id or f"section-{idx + 1}"
        return Section(
            id=section_id,
            title=self.title,
            kind=self.kind,
            content=self.content,
            images=[image.to_image(section_id, n) for n, image in enumerate(self.images)],
            indentation=self.indentation,
            line_spacing=self.line_spacing,
            subsections=[
                Subsection(
                    id=sub.id or f"{section_id}-{n + 1}",
                    title=sub.title,
                    content=sub.content,
                    page_number=sub.page_number,
                )
                for n, sub in enumerate(self.subsections)
            ],
            page_number=self.page_number,
        )


class BookModel(_Schema):
    """A whole book file: settings plus the ordered sections."""

    settings: SettingsModel = Field(default_factory=SettingsModel)
    sections: list[SectionModel] = Field(default_factory=list, validation_alias=AliasChoices("sections", "chapters"))

    def to_document(self) -> Document:
        return Document(
            sections=[section.to_section(n) for n, section in enumerate(self.sections)],
            settings=self.settings.to_settings(),
        )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def load_document(path: Path) -> Document:
    """Read a JSON book description from *path*."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DocumentLoadError(f"{path.name}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    return document_from_dict(raw)


def document_from_dict(raw: Any) -> Document:
    """Build a ``Document`` from the editor's mapping shape.

    Missing settings fall back to ``DocumentSettings.default()``. Values out
    of range raise ``SettingsError``; anything else malformed raises
    ``DocumentLoadError``.
    """
    try:
        book = BookModel.model_validate(raw)
    except ValidationError as exc:
        raise _translate(exc, raw) from exc
    return book.to_document()


def validate_document(document: Document) -> None:
    """Raise ``SettingsError`` for the first out-of-range value found."""
    try:
        BookModel.model_validate(document, from_attributes=True)
    except ValidationError as exc:
        error = exc.errors()[0]
        raise SettingsError(_field_path(error["loc"], document), error.get("input"), error["msg"]) from exc
    _check_geometry(document.settings)


def _check_geometry(settings: DocumentSettings) -> None:
    geometry = settings.geometry
    if geometry.content_width <= 0 or geometry.content_height <= 0:
        raise SettingsError("margins", settings.margins, "margins leave no content box")

    paragraph = settings.fonts.paragraph
    if geometry.content_width < paragraph.size_mm:
        raise SettingsError("fonts.paragraph.size_pt", paragraph.size_pt, "no character fits on a line")
    if geometry.content_height < paragraph.size_mm * paragraph.line_height:
        raise SettingsError("fonts.paragraph.size_pt", paragraph.size_pt, "no line fits on a page")


def _translate(exc: ValidationError, raw: Any) -> Exception:
    error = exc.errors()[0]
    path = _field_path(error["loc"], raw)
    if error["type"] in _RANGE_ERRORS:
        return SettingsError(path, error.get("input"), error["msg"])
    more = exc.error_count() - 1
    suffix = f" (and {more} more problem(s))" if more else ""
    return DocumentLoadError(f"{path or 'document'}: {error['msg']}{suffix}")


def _field_path(loc: tuple[Any, ...], data: Any) -> str:
    """Dotted field path for an error, naming list items by id when they have one."""
    parts: list[str] = []
    node = data
    for key in loc:
        node = _child(node, key)
        if isinstance(key, int):
            ident = _child(node, "id")
            label = f"[{ident if ident else key}]"
            if parts:
                parts[-1] += label
            else:
                parts.append(label)
        else:
            parts.append(str(key))
    if parts and parts[0] == "settings":
        parts = parts[1:]
    return ".".join(parts)


def _child(node: Any, key: Any) -> Any:
    if node is None:
        return None
    if isinstance(key, int):
        return node[key] if isinstance(node, (list, tuple)) and 0 <= key < len(node) else None
    if isinstance(node, Mapping):
        return node.get(key)
    return getattr(node, key, None)
