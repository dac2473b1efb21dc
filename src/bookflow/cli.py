"""bookflow CLI entrypoint."""

from __future__ import annotations

from pathlib import Path

import click

from bookflow.document import Document, PaperSize
from bookflow.errors import BookflowError
from bookflow.layout.estimator import estimate
from bookflow.layout.flow import FlowEngine
from bookflow.layout.measure import FontMetricsMeasurer, MonospaceMeasurer, PixmapImageMeasurer
from bookflow.layout.numerals import page_label
from bookflow.parser.blocks import DEFAULT_TAB_STOP
from bookflow.pipeline import build_book
from bookflow.renderer.html_renderer import HtmlPreviewRenderer
from bookflow.renderer.pdf_writer import PdfWriter
from bookflow.schema import load_document

_BOOK_ARGUMENT = click.argument("book_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))


def _settings_options(func):
    func = click.option("--tab-stop", type=click.IntRange(min=1), default=DEFAULT_TAB_STOP, show_default=True, help="Spaces per indent level")(func)
    func = click.option("--start-from", type=int, default=None, help="First page number for both counters")(func)
    func = click.option("--no-toc", is_flag=True, help="Disable the table of contents")(func)
    func = click.option(
        "--paper-size",
        type=click.Choice([size.value for size in PaperSize], case_sensitive=False),
        default=None,
        help="Override the paper size",
    )(func)
    return func


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def main() -> None:
    """Lay out books with roman front matter, arabic chapters and a table of contents."""


@main.command()
@_BOOK_ARGUMENT
@click.option("--output", "-o", type=click.Path(path_type=Path), required=True, help="Output PDF path")
@click.option("--html", "html_output", type=click.Path(path_type=Path), default=None, help="Also write an HTML preview")
@click.option("--rendered-toc", is_flag=True, help="Take contents page numbers from a first layout pass")
@click.option("--monospace", is_flag=True, help="Measure text with a fixed advance instead of font metrics")
@_settings_options
def render(
    book_path: Path,
    output: Path,
    html_output: Path | None,
    rendered_toc: bool,
    monospace: bool,
    paper_size: str | None,
    no_toc: bool,
    start_from: int | None,
    tab_stop: int,
) -> None:
    """Render BOOK_PATH (JSON) into a PDF."""
    document = _load(book_path, paper_size=paper_size, no_toc=no_toc, start_from=start_from)
    engine = FlowEngine(
        text_measurer=MonospaceMeasurer() if monospace else FontMetricsMeasurer(),
        image_measurer=PixmapImageMeasurer(base_dir=book_path.parent),
        tab_stop=tab_stop,
    )
    try:
        estimated, pagination = build_book(document, engine=engine, rendered_toc=rendered_toc)
        page_count = PdfWriter(output, base_dir=book_path.parent).write(pagination, estimated.settings)
    except BookflowError as exc:
        raise click.ClickException(str(exc)) from exc

    for error in pagination.image_errors:
        click.echo(f"warning: {error}", err=True)

    if html_output is not None:
        _write_preview(estimated, html_output, book_path.parent, tab_stop)

    click.echo(f"Rendered: {output} ({page_count} pages)")


@main.command(name="estimate")
@_BOOK_ARGUMENT
@_settings_options
def estimate_command(
    book_path: Path,
    paper_size: str | None,
    no_toc: bool,
    start_from: int | None,
    tab_stop: int,
) -> None:
    """Print estimated page numbers for every section of BOOK_PATH."""
    document = _load(book_path, paper_size=paper_size, no_toc=no_toc, start_from=start_from)
    try:
        estimated = estimate(document)
    except BookflowError as exc:
        raise click.ClickException(str(exc)) from exc

    style = estimated.settings.page_numbering.style
    for section in estimated.sections:
        front = section.is_front_matter
        click.echo(f"{page_label(section.page_number or 0, front, style):>6}  {section.title}")
        for sub in section.subsections:
            click.echo(f"{page_label(sub.page_number or 0, front, style):>6}    {sub.title}")


@main.command()
@_BOOK_ARGUMENT
@click.option("--output", "-o", type=click.Path(path_type=Path), required=True, help="Output HTML path")
@_settings_options
def preview(
    book_path: Path,
    output: Path,
    paper_size: str | None,
    no_toc: bool,
    start_from: int | None,
    tab_stop: int,
) -> None:
    """Write an HTML preview of BOOK_PATH."""
    document = _load(book_path, paper_size=paper_size, no_toc=no_toc, start_from=start_from)
    try:
        estimated = estimate(document)
    except BookflowError as exc:
        raise click.ClickException(str(exc)) from exc
    _write_preview(estimated, output, book_path.parent, tab_stop)
    click.echo(f"Rendered: {output}")


def _load(book_path: Path, *, paper_size: str | None, no_toc: bool, start_from: int | None) -> Document:
    try:
        document = load_document(book_path)
    except BookflowError as exc:
        raise click.ClickException(str(exc)) from exc

    settings = document.settings
    if paper_size is not None:
        settings.paper_size = next(size for size in PaperSize if size.value.lower() == paper_size.lower())
    if no_toc:
        settings.table_of_contents.enabled = False
    if start_from is not None:
        settings.page_numbering.start_from = start_from
    return document


def _write_preview(document: Document, output: Path, base_dir: Path, tab_stop: int) -> None:
    html = HtmlPreviewRenderer(tab_stop=tab_stop).render(document, base_dir=base_dir)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(html, encoding="utf-8")


if __name__ == "__main__":  # pragma: no cover
    main()
