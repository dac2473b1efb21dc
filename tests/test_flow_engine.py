import threading

import pytest

from bookflow.document import (
    Alignment,
    Document,
    DocumentSettings,
    FontRole,
    Image,
    NumberPosition,
    NumberStyle,
    Section,
    SectionKind,
    Subsection,
)
from bookflow.errors import ImageMeasureError, RenderCancelled, SettingsError
from bookflow.layout.estimator import PageCapacity, estimate
from bookflow.layout.flow import FlowEngine, ImagePlacement, NumeralSystem, TextLine, split_paragraphs
from bookflow.layout.measure import MonospaceMeasurer
from bookflow.pipeline import apply_page_numbers, build_book


class FakeImageMeasurer:
    def __init__(self, sizes: dict[str, tuple[float, float]] | None = None) -> None:
        self.sizes = sizes or {}
        self.calls: list[str] = []

    def __call__(self, image: Image) -> tuple[float, float]:
        self.calls.append(image.id)
        if image.id not in self.sizes:
            raise ImageMeasureError(image.id, image.source, "corrupt")
        return self.sizes[image.id]


def _engine(sizes: dict[str, tuple[float, float]] | None = None) -> FlowEngine:
    return FlowEngine(text_measurer=MonospaceMeasurer(), image_measurer=FakeImageMeasurer(sizes))


def _settings(*, toc: bool = False) -> DocumentSettings:
    settings = DocumentSettings.default()
    settings.title = "A Book"
    settings.author = "Some Author"
    settings.table_of_contents.enabled = toc
    return settings


def test_lines_per_page_plus_one_gives_two_pages() -> None:
    settings = _settings()
    lines_per_page = PageCapacity.from_settings(settings).lines_per_page
    content = "\n".join(f"line {idx}" for idx in range(lines_per_page + 1))
    document = Document(sections=[Section(id="c1", title="Chapter", content=content)], settings=settings)

    pages = _engine().render(document).pages

    assert len(pages) == 3
    first, second = pages[1], pages[2]
    assert first.stamp.label == "1"
    assert second.stamp.label == "2"
    assert first.numeral is NumeralSystem.ARABIC
    # Title plus the lines that fit below the heading offset.
    assert len(first.texts()) == 34
    assert len(second.texts()) == 6
    assert second.texts()[0] == "line 33"


def test_arabic_stamp_starts_at_configured_counter() -> None:
    settings = _settings()
    settings.page_numbering.start_from = 5
    lines_per_page = PageCapacity.from_settings(settings).lines_per_page
    content = "\n".join("x" for _ in range(lines_per_page + 1))
    document = Document(sections=[Section(id="c1", title="C", content=content)], settings=settings)

    pages = _engine().render(document).pages
    assert [page.stamp.number for page in pages] == [5, 5, 6]
    assert pages[0].stamp.label == "v"


def test_zero_sections_title_and_toc_only() -> None:
    pages = _engine().render(Document(settings=_settings(toc=True))).pages
    assert len(pages) == 2
    assert [page.stamp.label for page in pages] == ["i", "ii"]
    assert pages[0].texts() == ["A Book", "Some Author"]
    assert pages[1].texts() == ["Table of Contents"]

    assert len(_engine().render(Document(settings=_settings())).pages) == 1


def test_empty_section_still_gets_its_own_page() -> None:
    document = Document(
        sections=[Section(id="a", title="A"), Section(id="b", title="B")],
        settings=_settings(),
    )
    pages = _engine().render(document).pages
    assert len(pages) == 3
    assert [page.stamp.label for page in pages] == ["i", "1", "2"]


def test_front_matter_continues_roman_after_toc() -> None:
    document = Document(
        sections=[
            Section(id="pre", title="Preface", kind=SectionKind.FRONT_MATTER, content="Hello."),
            Section(id="c1", title="One", content="Body."),
            Section(id="end", title="Afterword", kind=SectionKind.BACK_MATTER, content="Bye."),
        ],
        settings=_settings(toc=True),
    )
    pagination = _engine().render(document)
    assert [page.stamp.label for page in pagination.pages] == ["i", "ii", "iii", "1", "2"]
    assert pagination.anchors["pre"].label == "iii"
    assert pagination.anchors["end"].number == 2


def test_last_page_uses_last_section_kind() -> None:
    document = Document(
        sections=[
            Section(id="c1", title="One"),
            Section(id="note", title="Note", kind=SectionKind.FRONT_MATTER),
        ],
        settings=_settings(),
    )
    pages = _engine().render(document).pages
    assert pages[-1].numeral is NumeralSystem.ROMAN
    assert pages[-1].stamp.label == "ii"


def test_roman_style_for_main_matter() -> None:
    settings = _settings()
    settings.page_numbering.style = NumberStyle.ROMAN
    document = Document(sections=[Section(id="c1", title="One")], settings=settings)
    pages = _engine().render(document).pages
    assert pages[1].stamp.label == "i"
    assert pages[1].numeral is NumeralSystem.ARABIC


def test_disabled_numbering_omits_stamps_but_counts() -> None:
    settings = _settings()
    settings.page_numbering.enabled = False
    document = Document(sections=[Section(id="c1", title="One"), Section(id="c2", title="Two")], settings=settings)
    pages = _engine().render(document).pages
    assert all(page.stamp is None for page in pages)
    assert [page.number for page in pages] == [1, 1, 2]


def test_stamp_position() -> None:
    settings = _settings()
    settings.page_numbering.position = NumberPosition.TOP
    settings.page_numbering.alignment = Alignment.RIGHT
    pages = _engine().render(Document(sections=[Section(id="c", title="C")], settings=settings)).pages
    stamp = pages[1].stamp
    assert stamp.x == pytest.approx(210 - 25.4)
    assert stamp.y == pytest.approx(25.4 - 5)

    bottom = _engine().render(Document(sections=[Section(id="c", title="C")], settings=_settings())).pages[1].stamp
    assert bottom.x == pytest.approx(105)
    assert bottom.y == pytest.approx(297 - 12.7)


def test_section_indentation_shifts_lines() -> None:
    document = Document(
        sections=[Section(id="c", title="C", content="indented text", indentation=1.5)],
        settings=_settings(),
    )
    page = _engine().render(document).pages[1]
    body = [op for op in page.ops if getattr(op, "text", None) == "indented text"][0]
    assert body.x == pytest.approx(25.4 + 15)
    assert body.y == pytest.approx(25.4 + 40)


def test_indented_paragraph_wraps_to_full_content_width() -> None:
    # 59 glyphs at 12pt monospace is about 125mm; the content box is 159.2mm.
    text = " ".join(["abcdefghi"] * 6)
    document = Document(
        sections=[Section(id="c", title="C", content=text, indentation=5)],
        settings=_settings(),
    )
    page = _engine().render(document).pages[1]
    body = [op for op in page.ops if isinstance(op, TextLine) and "abcdefghi" in op.text]
    assert [op.text for op in body] == [text]
    assert body[0].x == pytest.approx(25.4 + 50)


def test_long_paragraph_wraps_to_content_width() -> None:
    words = " ".join(["word"] * 60)
    document = Document(sections=[Section(id="c", title="C", content=words)], settings=_settings())
    texts = _engine().render(document).pages[1].texts()[1:]
    # 2.116668mm per glyph over 159.2mm fits 75 glyphs; "word " repeats every 5.
    assert len(texts) == 4
    assert all(len(line) <= 75 for line in texts)


def test_images_are_sized_and_aligned() -> None:
    images = [
        Image(id="left", source="l.png", alignment=Alignment.LEFT, width_percent=50),
        Image(id="center", source="c.png", alignment=Alignment.CENTER, width_percent=50, caption="Centered"),
        Image(id="right", source="r.png", alignment=Alignment.RIGHT, width_percent=50),
    ]
    sizes = {"left": (200, 100), "center": (200, 100), "right": (200, 100)}
    document = Document(sections=[Section(id="c", title="C", images=images)], settings=_settings())

    pagination = _engine(sizes).render(document)
    placements = [op for page in pagination.pages for op in page.ops if isinstance(op, ImagePlacement)]

    assert [p.image_id for p in placements] == ["left", "center", "right"]
    assert placements[0].x == pytest.approx(25.4)
    assert placements[1].x == pytest.approx((210 - 79.6) / 2)
    assert placements[2].x == pytest.approx(210 - 25.4 - 79.6)
    assert all(p.width == pytest.approx(79.6) for p in placements)
    assert all(p.height == pytest.approx(39.8) for p in placements)
    # The caption adds its own height below the centered image.
    assert placements[2].y - placements[1].y == pytest.approx(39.8 + 10 + 15)


def test_image_overflow_reserves_space() -> None:
    images = [Image(id=f"i{idx}", source="x.png", width_percent=100) for idx in range(3)]
    sizes = {image.id: (100, 25) for image in images}
    document = Document(sections=[Section(id="c", title="C", images=images)], settings=_settings())

    pages = _engine(sizes).render(document).pages
    per_page = [[op.image_id for op in page.ops if isinstance(op, ImagePlacement)] for page in pages[1:]]
    assert per_page == [["i0", "i1", "i2"]]

    tall = {image.id: (100, 120) for image in images}
    pages = _engine(tall).render(document).pages
    per_page = [[op.image_id for op in page.ops if isinstance(op, ImagePlacement)] for page in pages[1:]]
    assert per_page == [["i0"], ["i1", "i2"]]
    assert [page.stamp.label for page in pages[1:]] == ["1", "2"]


def test_unreadable_image_is_skipped_and_reported() -> None:
    images = [Image(id="good", source="g.png"), Image(id="bad", source="b.png")]
    document = Document(sections=[Section(id="c", title="C", images=images)], settings=_settings())

    pagination = _engine({"good": (10, 10)}).render(document)

    placed = [op.image_id for page in pagination.pages for op in page.ops if isinstance(op, ImagePlacement)]
    assert placed == ["good"]
    assert [error.image_id for error in pagination.image_errors] == ["bad"]


def test_subsections_use_smaller_heading_and_record_anchor() -> None:
    section = Section(
        id="c",
        title="C",
        content="Intro.",
        subsections=[Subsection(id="c-1", title="Part", content="Detail.")],
    )
    pagination = _engine().render(Document(sections=[section], settings=_settings()))
    page = pagination.pages[1]
    heading = [op for op in page.ops if getattr(op, "text", None) == "Part"][0]
    assert heading.size_pt == pytest.approx(18 * 0.8)
    assert "Detail." in page.texts()
    assert pagination.anchors["c-1"].number == 1


def test_subsection_heading_moves_to_next_page_when_near_bottom() -> None:
    settings = _settings()
    # Enough lines to leave the cursor inside the 20mm reserve.
    content = "\n".join("x" for _ in range(31))
    section = Section(id="c", title="C", content=content, subsections=[Subsection(id="s", title="Late")])
    pagination = _engine().render(Document(sections=[section], settings=settings))
    assert "Late" in pagination.pages[2].texts()
    assert pagination.anchors["s"].number == 2


def test_markup_is_stripped_before_measuring() -> None:
    content = "# Heading\n\n**bold** and [link](http://x)\n\n- item"
    document = Document(sections=[Section(id="c", title="C", content=content)], settings=_settings())
    texts = _engine().render(document).pages[1].texts()
    assert texts[1:] == ["Heading", "bold and link", "• item"]


def test_toc_lists_estimated_numbers() -> None:
    document = estimate(
        Document(
            sections=[
                Section(id="pre", title="Preface", kind=SectionKind.FRONT_MATTER),
                Section(id="c1", title="Start", subsections=[Subsection(id="c1-a", title="Sub")]),
                Section(id="c2", title="Next"),
            ],
            settings=_settings(toc=True),
        )
    )
    toc = _engine().render(document).pages[1]
    assert toc.texts() == ["Table of Contents", "Preface", "i", "1. Start", "1", "Sub", "2", "2. Next", "2"]


def test_toc_without_subsections() -> None:
    settings = _settings(toc=True)
    settings.table_of_contents.include_subsections = False
    document = estimate(
        Document(
            sections=[Section(id="c1", title="Start", subsections=[Subsection(id="c1-a", title="Sub")])],
            settings=settings,
        )
    )
    toc = _engine().render(document).pages[1]
    assert "Sub" not in toc.texts()


def test_rendered_toc_matches_stamped_pages() -> None:
    document = Document(
        sections=[
            Section(id="pre", title="Preface", kind=SectionKind.FRONT_MATTER),
            Section(id="c1", title="Start"),
        ],
        settings=_settings(toc=True),
    )

    _, estimated_pages = build_book(document, engine=_engine())
    assert estimated_pages.pages[1].texts()[1:3] == ["Preface", "i"]

    numbered, pagination = build_book(document, engine=_engine(), rendered_toc=True)
    assert pagination.pages[1].texts()[1:3] == ["Preface", "iii"]
    assert numbered.sections[0].page_number == 3
    assert pagination.pages[2].stamp.label == "iii"


def test_apply_page_numbers_keeps_unknown_sections() -> None:
    document = Document(sections=[Section(id="c1", title="One", page_number=9)])
    pagination = _engine().render(Document(sections=[], settings=_settings()))
    assert apply_page_numbers(document, pagination).sections[0].page_number == 9


def test_running_header_on_section_pages_only() -> None:
    settings = _settings()
    settings.header.enabled = True
    settings.header.text = "A Book"
    settings.header.alternate_even_odd = True
    document = Document(sections=[Section(id="c1", title="One"), Section(id="c2", title="Two")], settings=settings)

    pages = _engine().render(document).pages
    assert pages[0].texts().count("A Book") == 1
    headers = [[op for op in page.ops if isinstance(op, TextLine) and op.role is FontRole.HEADER] for page in pages]
    assert headers[0] == []
    assert headers[1][0].alignment is Alignment.LEFT
    assert headers[2][0].alignment is Alignment.RIGHT


def test_invalid_settings_raise_before_layout() -> None:
    settings = _settings()
    settings.margins.left = -1
    measurer = FakeImageMeasurer()
    engine = FlowEngine(text_measurer=MonospaceMeasurer(), image_measurer=measurer)
    document = Document(sections=[Section(id="c", title="C", images=[Image(id="i", source="x")])], settings=settings)
    with pytest.raises(SettingsError):
        engine.render(document)
    assert measurer.calls == []


def test_invalid_image_width_raises() -> None:
    document = Document(
        sections=[Section(id="c", title="C", images=[Image(id="i", source="x", width_percent=5)])],
        settings=_settings(),
    )
    with pytest.raises(SettingsError) as excinfo:
        _engine().render(document)
    assert "width_percent" in excinfo.value.field


def test_cancel_returns_completed_pages() -> None:
    cancel = threading.Event()
    cancel.set()
    document = Document(sections=[Section(id="c", title="C")], settings=_settings(toc=True))
    with pytest.raises(RenderCancelled) as excinfo:
        _engine().render(document, cancel=cancel)
    assert len(excinfo.value.pages) == 2


def test_split_paragraphs_keeps_fenced_code_whole() -> None:
    content = "one\n\n```\na\n\nb\n```\n\n\ntwo"
    assert split_paragraphs(content) == ["one", "```\na\n\nb\n```", "two"]
