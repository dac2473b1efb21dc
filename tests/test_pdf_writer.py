import base64
import struct
import zlib
from pathlib import Path

import pytest

from bookflow.document import Document, DocumentSettings, Image, Section, SectionKind
from bookflow.errors import ImageMeasureError
from bookflow.layout.flow import FlowEngine
from bookflow.layout.measure import FontMetricsMeasurer, PixmapImageMeasurer, load_image_bytes, wrap_text
from bookflow.pipeline import build_book
from bookflow.renderer.pdf_writer import PdfWriter

fitz = pytest.importorskip("fitz")


def make_png(width: int = 2, height: int = 1) -> bytes:
    sig = b"\x89PNG\r\n\x1a\n"
    ihdr_data = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    ihdr_crc = zlib.crc32(b"IHDR" + ihdr_data) & 0xFFFFFFFF
    ihdr = struct.pack(">I", 13) + b"IHDR" + ihdr_data + struct.pack(">I", ihdr_crc)
    raw = b"".join(b"\x00" + b"\x00\x00\x00" * width for _ in range(height))
    idat_data = zlib.compress(raw)
    idat_crc = zlib.crc32(b"IDAT" + idat_data) & 0xFFFFFFFF
    idat = struct.pack(">I", len(idat_data)) + b"IDAT" + idat_data + struct.pack(">I", idat_crc)
    iend_crc = zlib.crc32(b"IEND") & 0xFFFFFFFF
    iend = struct.pack(">I", 0) + b"IEND" + struct.pack(">I", iend_crc)
    return sig + ihdr + idat + iend


def test_pixmap_measurer_reads_file_and_data_uri(tmp_path: Path) -> None:
    (tmp_path / "wide.png").write_bytes(make_png(4, 2))
    measurer = PixmapImageMeasurer(base_dir=tmp_path)
    assert measurer(Image(id="f", source="wide.png")) == (4.0, 2.0)

    uri = "data:image/png;base64," + base64.b64encode(make_png(3, 3)).decode("ascii")
    assert measurer(Image(id="u", source=uri)) == (3.0, 3.0)


def test_pixmap_measurer_errors(tmp_path: Path) -> None:
    measurer = PixmapImageMeasurer(base_dir=tmp_path)
    (tmp_path / "junk.png").write_bytes(b"not an image")

    with pytest.raises(ImageMeasureError) as excinfo:
        measurer(Image(id="missing", source="missing.png"))
    assert excinfo.value.image_id == "missing"

    with pytest.raises(ImageMeasureError):
        measurer(Image(id="junk", source="junk.png"))

    with pytest.raises(ImageMeasureError):
        measurer(Image(id="remote", source="https://example.com/a.png"))


def test_load_image_bytes_rejects_plain_data_uri() -> None:
    with pytest.raises(ValueError):
        load_image_bytes("data:text/plain,hello")


def test_font_metrics_wrap() -> None:
    settings = DocumentSettings.default()
    lines = wrap_text("lorem ipsum " * 40, 159.2, settings.fonts.paragraph, FontMetricsMeasurer())
    assert len(lines) > 1
    measurer = FontMetricsMeasurer()
    assert all(measurer.text_width(line, settings.fonts.paragraph) <= 159.2 for line in lines)


def test_writes_pdf_with_images_and_covers(tmp_path: Path) -> None:
    (tmp_path / "fig.png").write_bytes(make_png(4, 2))
    (tmp_path / "cover.png").write_bytes(make_png(2, 3))

    settings = DocumentSettings.default()
    settings.title = "Printed Book"
    settings.author = "Bob"
    settings.cover_image = "cover.png"
    settings.back_cover_image = "cover.png"
    document = Document(
        sections=[
            Section(id="pre", title="Preface", kind=SectionKind.FRONT_MATTER, content="Opening words."),
            Section(
                id="c1",
                title="Chapter One",
                content="Some **body** text.",
                images=[Image(id="fig", source="fig.png", caption="Figure one", width_percent=50)],
            ),
        ],
        settings=settings,
    )
    engine = FlowEngine(image_measurer=PixmapImageMeasurer(base_dir=tmp_path))
    estimated, pagination = build_book(document, engine=engine)

    output = tmp_path / "out" / "book.pdf"
    page_count = PdfWriter(output, base_dir=tmp_path).write(pagination, estimated.settings)

    assert page_count == len(pagination.pages) + 2
    pdf = fitz.open(str(output))
    try:
        assert pdf.page_count == page_count
        assert pdf.metadata["title"] == "Printed Book"
        assert "Printed Book" in pdf[1].get_text()
        chapter_text = pdf[4].get_text()
        assert "Chapter One" in chapter_text
        assert "Some body text." in chapter_text
        assert "Figure one" in chapter_text
        assert pdf[4].get_images()
    finally:
        pdf.close()
