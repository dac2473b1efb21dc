"""Write paginated draw operations into a PDF file with PyMuPDF."""

from __future__ import annotations

from pathlib import Path

from bookflow.document import MM_PER_POINT, Alignment, DocumentSettings, FontRole
from bookflow.layout.flow import ImagePlacement, PageNumberStamp, Pagination, TextLine
from bookflow.layout.measure import base14_fontname, load_image_bytes
from bookflow.utils.logger import get_logger

try:  # pragma: no cover - optional import guard for environments without pymupdf
    import fitz  # type: ignore
except ImportError:  # pragma: no cover
    fitz = None

LOGGER = get_logger(__name__)


def mm_to_pt(value: float) -> float:
    return value / MM_PER_POINT


class PdfWriter:
    """Serialize a ``Pagination`` into ``output_path``."""

    def __init__(self, output_path: Path, base_dir: Path | None = None) -> None:
        self._output_path = Path(output_path)
        self._base_dir = base_dir

    def write(self, pagination: Pagination, settings: DocumentSettings) -> int:
        """Write the PDF and return the number of pages in it."""
        if fitz is None:
            raise RuntimeError("pymupdf is required for PDF output")

        width_mm, height_mm = settings.paper_size.dimensions_mm
        width, height = mm_to_pt(width_mm), mm_to_pt(height_mm)

        doc = fitz.open()
        try:
            if settings.cover_image:
                self._cover_page(doc, settings.cover_image, width, height)

            for page in pagination.pages:
                pdf_page = doc.new_page(width=width, height=height)
                for op in page.ops:
                    if isinstance(op, TextLine):
                        self._draw_text(pdf_page, op.text, op.x, op.y, op.size_pt, op.alignment, settings, op.role)
                    elif isinstance(op, PageNumberStamp):
                        size = settings.fonts.footer.size_pt
                        self._draw_text(pdf_page, op.label, op.x, op.y, size, op.alignment, settings, FontRole.FOOTER)
                    elif isinstance(op, ImagePlacement):
                        self._draw_image(pdf_page, op)

            if settings.back_cover_image:
                self._cover_page(doc, settings.back_cover_image, width, height)

            doc.set_metadata(
                {
                    "title": settings.title,
                    "author": settings.author,
                    "subject": settings.description,
                    "creator": "bookflow",
                }
            )
            page_count = doc.page_count
            self._output_path.parent.mkdir(parents=True, exist_ok=True)
            doc.save(str(self._output_path))
        finally:
            doc.close()

        LOGGER.info("Wrote %d page(s) to %s", page_count, self._output_path.name)
        return page_count

    def _draw_text(
        self,
        pdf_page,
        text: str,
        x_mm: float,
        y_mm: float,
        size_pt: float,
        alignment: Alignment,
        settings: DocumentSettings,
        role: FontRole,
    ) -> None:
        if not text:
            return
        fontname = base14_fontname(settings.fonts.for_role(role).family)
        x = mm_to_pt(x_mm)
        if alignment in (Alignment.CENTER, Alignment.RIGHT):
            length = fitz.get_text_length(text, fontname=fontname, fontsize=size_pt)
            x -= length / 2 if alignment is Alignment.CENTER else length
        pdf_page.insert_text(fitz.Point(x, mm_to_pt(y_mm)), text, fontname=fontname, fontsize=size_pt)

    def _draw_image(self, pdf_page, op: ImagePlacement) -> None:
        data = load_image_bytes(op.source, self._base_dir)
        rect = fitz.Rect(mm_to_pt(op.x), mm_to_pt(op.y), mm_to_pt(op.x + op.width), mm_to_pt(op.y + op.height))
        pdf_page.insert_image(rect, stream=data)

    def _cover_page(self, doc, source: str, width: float, height: float) -> None:
        try:
            data = load_image_bytes(source, self._base_dir)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Skipping cover image %s: %s", source[:48], exc)
            return
        page = doc.new_page(width=width, height=height)
        page.insert_image(page.rect, stream=data, keep_proportion=True)
