import os
import json
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from folio.core.backfill import CancellationToken, backfill_embeddings
from folio.core.cache import PgNotifyInvalidator
from folio.core.compliance import build_strategy
from folio.core.config import Settings, load_settings
from folio.core.embed import build_embedder
from folio.core.errors import InvalidTransition, MalformedInput, ProviderError, StoreError
from folio.core.gate import PersistenceGate, ValidationRejected
from folio.core.logging_config import configure_logging, get_audit_logger
from folio.core.models import OcrInput
from folio.core.providers import build_completion_provider
from folio.core.sanitizer import sanitize_summary
from folio.core.store import PostgresPageStore
from folio.pipelines.page_graph import PipelineDeps
from folio.pipelines.service import PageLifecycle, PageSummaryService

app = typer.Typer(help="Folio CLI — grounded page summaries")
console = Console()

EXIT_FAILURE = 1
EXIT_MALFORMED = 2
EXIT_REJECTED = 3

# Initialize structured logging
configure_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    json_logs=os.getenv("JSON_LOGS", "false").lower() == "true"
)


def read_ocr_file(path: Path, title: Optional[str] = None) -> OcrInput:
    """Plain text becomes the OCR text; a .json file must match the OCR input shape."""
    if not path.exists():
        raise MalformedInput(f"OCR file {path} does not exist")
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            ocr = OcrInput.model_validate_json(raw)
        except ValueError as e:
            raise MalformedInput(f"invalid OCR JSON in {path}: {e}") from e
    else:
        ocr = OcrInput(ocr_text=raw)
    if title:
        ocr = ocr.model_copy(update={"title": title})
    return ocr


def _build_service(settings: Settings, rag: Optional[bool] = None) -> PageSummaryService:
    rag_options = settings.rag
    if rag is not None:
        rag_options = rag_options.model_copy(update={"enabled": rag})

    store = PostgresPageStore(settings.database.url)
    invalidator = PgNotifyInvalidator(settings.database.url)
    deps = PipelineDeps(
        completion=build_completion_provider(settings.completion),
        store=store,
        gate=PersistenceGate(store, settings.compliance.min_compliance_score, invalidator),
        policy=settings.compliance,
        rag_options=rag_options,
        embedder=build_embedder(settings.embedding) if rag_options.enabled else None,
        completion_config=settings.completion,
    )
    return PageSummaryService(deps, invalidator=invalidator)


def _fail(message: str, error: Exception) -> None:
    """Print the error and exit with the code for its kind."""
    console.print(f"[red]{message}:[/] {error}")
    if isinstance(error, MalformedInput):
        raise typer.Exit(EXIT_MALFORMED)
    raise typer.Exit(EXIT_FAILURE)


def _print_rejection(rejection: ValidationRejected) -> None:
    console.print(f"[yellow]⛔ {rejection.message}[/]")


def _print_page(page, show_summary: bool = True) -> None:
    table = Table(title=f"{page.book_id} — page {page.page_number}")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Title", page.title or "-")
    table.add_row("Compliance score", f"{page.compliance_score:.1f}" if page.compliance_score is not None else "-")
    table.add_row("Confidence", f"{page.confidence:.1f}")
    table.add_row("OCR confidence", f"{page.ocr_confidence:.1f}")
    table.add_row("Violations", ", ".join(page.validation_meta.violations) or "none")
    table.add_row("Removed sections", ", ".join(page.validation_meta.removed_sections) or "none")
    table.add_row("Provider", page.provider_used or "-")
    table.add_row("Embedding", page.embedding_model or "pending")
    table.add_row("Stale", "yes" if page.is_stale else "no")
    table.add_row("Updated", str(page.updated_at) if page.updated_at else "-")
    console.print(table)
    if show_summary and page.summary_markdown:
        console.print(Markdown(page.summary_markdown))


@app.command()
def summarize(
    book_id: str,
    page_number: int,
    ocr_file: Path = typer.Option(..., "--ocr-file", help="OCR text (.txt) or OCR input (.json) for the page"),
    title: Optional[str] = typer.Option(None, help="Page title"),
    lang: str = typer.Option("ar", help="Summary language (ar or en)"),
    rag: Optional[bool] = typer.Option(None, "--rag/--no-rag", help="Override RAG_ENABLED"),
    force: bool = typer.Option(False, "--force", help="Discard any stored summary or rejection first"),
):
    """Summarize one page, publishing it only if it passes the grounding gate."""
    audit_logger = get_audit_logger("cli_summarize")

    try:
        ocr = read_ocr_file(ocr_file, title)
        service = _build_service(load_settings(), rag)
        if force:
            service.regenerate(book_id, page_number)
        with console.status("[bold green]Generating summary..."):
            result = service.get_page(book_id, page_number, lambda b, p: ocr, lang=lang)
    except (MalformedInput, ProviderError, StoreError, InvalidTransition, ValueError) as e:
        audit_logger.error("summarize_failed", book_id=book_id, page_number=page_number, error=str(e))
        _fail("Error summarizing page", e)

    if isinstance(result, ValidationRejected):
        _print_rejection(result)
        raise typer.Exit(EXIT_REJECTED)

    console.print("[green]✅ Summary published[/]")
    _print_page(result)


@app.command()
def check(
    ocr_file: Path = typer.Option(..., "--ocr-file", help="OCR text for the page"),
    summary_file: Path = typer.Option(..., "--summary-file", help="Markdown summary to validate"),
    confidence: Optional[float] = typer.Option(None, help="Self-reported confidence to score with"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the sanitized summary here"),
):
    """Validate and sanitize a summary offline, without calling any provider or database."""
    try:
        ocr = read_ocr_file(ocr_file)
        if not summary_file.exists():
            raise MalformedInput(f"summary file {summary_file} does not exist")
        summary = summary_file.read_text(encoding="utf-8")
    except MalformedInput as e:
        _fail("Error reading input", e)

    settings = load_settings()
    result = sanitize_summary(summary, ocr.ocr_text)
    score = build_strategy(settings.compliance).score(result.violations, confidence)
    accepted = score >= settings.compliance.min_compliance_score

    table = Table(title="Grounding check")
    table.add_column("Check", style="bold")
    table.add_column("Result")
    table.add_row("Violations", ", ".join(result.violations) or "none")
    table.add_row("Removed sections", ", ".join(result.removed_sections) or "none")
    table.add_row("Compliance score", f"{score:.1f} (minimum {settings.compliance.min_compliance_score:.1f})")
    table.add_row("Gate", "[green]accept[/]" if accepted else "[red]reject[/]")
    console.print(table)

    if output:
        output.write_text(result.sanitized_content, encoding="utf-8")
        console.print(f"[bold]Sanitized summary written to:[/] {output}")

    if not accepted:
        raise typer.Exit(EXIT_REJECTED)


def _lifecycle(settings: Settings) -> PageLifecycle:
    return PageLifecycle(PostgresPageStore(settings.database.url), PgNotifyInvalidator(settings.database.url))


@app.command()
def regenerate(book_id: str, page_number: int):
    """Delete the stored summary (and any rejection) so the next request regenerates it."""
    try:
        deleted = _lifecycle(load_settings()).regenerate(book_id, page_number)
    except StoreError as e:
        _fail("Error deleting page", e)

    if deleted:
        console.print(f"[green]✅ Page {page_number} of {book_id} will be regenerated on next request[/]")
    else:
        console.print(f"[yellow]Nothing stored for page {page_number} of {book_id}[/]")


@app.command("mark-stale")
def mark_stale(book_id: str, page_number: int):
    """Flag a published summary as stale."""
    try:
        _lifecycle(load_settings()).mark_stale(book_id, page_number)
    except (StoreError, InvalidTransition) as e:
        _fail("Error marking page stale", e)

    console.print(f"[green]Marked page {page_number} of {book_id} as stale[/]")


@app.command()
def show(
    book_id: str,
    page_number: int,
    as_json: bool = typer.Option(False, "--json", help="Print the stored row as JSON"),
):
    """Show the stored summary or recorded rejection for a page."""
    settings = load_settings()
    store = PostgresPageStore(settings.database.url)
    try:
        page = store.get_page(book_id, page_number)
        rejection = store.get_rejection(book_id, page_number)
    except StoreError as e:
        _fail("Error reading page", e)

    if as_json:
        payload = {
            "page": page.model_dump(mode="json", exclude={"embedding"}) if page else None,
            "rejection": rejection.model_dump(mode="json") if rejection else None,
        }
        console.print_json(json.dumps(payload, ensure_ascii=False))
        return

    if rejection is not None:
        console.print(
            f"[yellow]⛔ Rejected by the grounding gate:[/] score {rejection.compliance_score:.1f} "
            f"< {rejection.minimum_score:.1f} ({', '.join(rejection.violations) or 'no violations'})"
        )
    if page is None:
        if rejection is None:
            console.print(f"[yellow]No summary stored for page {page_number} of {book_id}[/]")
        return
    _print_page(page)


@app.command()
def backfill(
    book_id: str,
    force: bool = typer.Option(False, "--force", help="Re-embed pages that already have embeddings"),
    batch_size: Optional[int] = typer.Option(None, help="Pages per batch (default BACKFILL_BATCH_SIZE)"),
):
    """Compute embeddings for a book's stored pages."""
    settings = load_settings()
    store = PostgresPageStore(settings.database.url)
    token = CancellationToken()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())

    try:
        embedder = build_embedder(settings.embedding)
        with console.status("[bold green]Generating embeddings..."):
            report = backfill_embeddings(
                book_id,
                store,
                embedder,
                force_regenerate=force,
                batch_size=batch_size or settings.backfill.batch_size,
                cancel_token=token,
                delay_min_seconds=settings.backfill.delay_min_seconds,
                delay_max_seconds=settings.backfill.delay_max_seconds,
            )
    except (StoreError, ValueError) as e:
        _fail("Error during backfill", e)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    console.print(f"[bold]Total pages:[/] {report.total_pages}")
    console.print(f"[bold]Processed:[/] {report.processed}")
    console.print(f"[bold]Errors:[/] {report.errors}")
    console.print(f"[bold]Success rate:[/] {report.success_rate:.1%}")
    for failure in report.failures:
        console.print(f"  [red]page {failure.page_number}:[/] {failure.error}")
    if report.cancelled:
        console.print("[yellow]Backfill cancelled before all batches ran[/]")
    if report.errors:
        raise typer.Exit(EXIT_FAILURE)


@app.command()
def stats(book_id: str):
    """Show embedding coverage for a book."""
    settings = load_settings()
    try:
        result = PostgresPageStore(settings.database.url).embedding_stats(book_id)
    except StoreError as e:
        _fail("Error getting stats", e)

    console.print(f"[bold]📊 Embedding status for {book_id}[/]")
    console.print(f"  Total pages: {result['total_pages']}")
    console.print(f"  Embedded pages: {result['embedded_pages']}")
    console.print(f"  Pending pages: {result['pending_pages']}")
    console.print(f"  Completion rate: {result['completion_rate']:.1%}")
    if result["models"]:
        console.print()
        console.print("[bold]🤖 Embedding Models:[/]")
        for model, count in result["models"].items():
            console.print(f"  {model}: {count} pages")


if __name__ == "__main__":
    app()
