"""
Application entry point — wires dependencies and exposes the CLI.

Composition root: creates concrete adapters and injects them into the batch
orchestrator, the reconciliation sweep and the scheduler.

This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.

Commands:
  cert-issuer init-db            create the certificates table
  cert-issuer issue roster.csv   one batch from a CSV file, outcome printed as JSON
  cert-issuer sweep              one reconciliation pass over stored artifacts
  cert-issuer schedule           cron-driven sweep (blocking)
"""

from __future__ import annotations

import csv
import json
import logging
import sys
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from pathlib import Path

import structlog
import typer
from pydantic import ValidationError

from cert_issuer import __version__
from cert_issuer.adapters.mailer import SmtpNotifier
from cert_issuer.adapters.renderer import create_renderer
from cert_issuer.adapters.repository import PsycopgIssuanceRepository
from cert_issuer.adapters.storage import SupabaseArtifactStore
from cert_issuer.config import AppSettings
from cert_issuer.domain.models import BatchOutcome
from cert_issuer.domain.ports import ArtifactRenderer, ArtifactStore, IssuanceRepository, Notifier
from cert_issuer.pipeline import run_csv_upload
from cert_issuer.railway import LoggingExecutionContext
from cert_issuer.reconciliation import sweep_orphans
from cert_issuer.scheduler import create_scheduler

EXIT_PARTIAL_FAILURE = 3


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Colored, human-readable console output on stderr (stdout carries command
    output), filtered at log_level (unknown level names fall back to INFO).
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@dataclass(frozen=True, slots=True)
class Adapters:
    renderer: ArtifactRenderer
    store: ArtifactStore
    repository: IssuanceRepository
    notifier: Notifier


def create_adapters(settings: AppSettings) -> Adapters:
    """Instantiate the renderer, artifact store, repository and notifier from settings."""
    renderer = create_renderer(
        settings.artifact.format,
        regular_font_path=settings.artifact.regular_font_path,
        bold_font_path=settings.artifact.bold_font_path,
    )
    store = SupabaseArtifactStore(
        url=settings.storage.url,
        key=settings.storage.upload_key(),
        bucket=settings.storage.bucket,
        prefix=settings.storage.prefix,
        timeout=settings.http_timeout_seconds,
    )
    repository = PsycopgIssuanceRepository(dsn=settings.database.get_dsn())
    mail = settings.mail
    notifier = SmtpNotifier(
        host=mail.host,
        port=mail.port,
        sender=mail.sender or "",
        frontend_url=settings.frontend_url,
        username=mail.username,
        password=mail.password.get_secret_value() if mail.password else None,
        use_starttls=mail.use_starttls,
        timeout=mail.timeout_seconds,
    )
    return Adapters(renderer=renderer, store=store, repository=repository, notifier=notifier)


def load_settings() -> AppSettings:
    """Load settings or exit with a readable configuration error."""
    try:
        settings = AppSettings()  # type: ignore[call-arg]
    except ValidationError as e:
        typer.echo("FATAL: Configuration error", err=True)
        for error in e.errors():
            loc = ".".join(str(part) for part in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None
    configure_structlog(settings.log_level)
    return settings


def write_failed_rows(outcome: BatchOutcome, path: Path) -> int:
    """Write failed recipients as a CSV ready for re-upload. Returns the row count."""
    rows = outcome.failed_rows()
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=["Name", "Email", "Program"])
        writer.writeheader()
        writer.writerows(rows)
    return len(rows)


# ─────────────────────── CLI ───────────────────────

app = typer.Typer(
    name="cert-issuer",
    help="Bulk certificate issuance: render, store, record and notify.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cert-issuer version {__version__}")
        raise typer.Exit()


@app.callback()
def cli(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """cert-issuer command line."""


@app.command()
def issue(
    csv_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    failed_out: Path | None = typer.Option(
        None,
        "--failed-out",
        help="Write rows that failed issuance to this CSV for re-submission.",
    ),
) -> None:
    """Issue certificates for every valid row of CSV_FILE."""
    settings = load_settings()
    log = structlog.get_logger()
    adapters = create_adapters(settings)
    log.info("app.issue_starting", version=__version__, file=str(csv_file))

    ctx = LoggingExecutionContext(operation="CertificateBatch")
    result = ctx.execute(
        lambda: run_csv_upload(
            csv_file.read_bytes(),
            csv_file.name,
            adapters.renderer,
            adapters.store,
            adapters.repository,
            adapters.notifier,
        )
    )
    if result.is_failure():
        typer.echo(str(result.error()), err=True)
        raise typer.Exit(1)

    outcome = result.value()
    typer.echo(json.dumps(outcome.to_response(), indent=2))
    if failed_out is not None and outcome.failed:
        written = write_failed_rows(outcome, failed_out)
        log.info("app.failed_rows_written", path=str(failed_out), rows=written)
    if outcome.failed:
        raise typer.Exit(EXIT_PARTIAL_FAILURE)


@app.command("init-db")
def init_db() -> None:
    """Create the certificates table if it does not exist."""
    settings = load_settings()
    repository = PsycopgIssuanceRepository(dsn=settings.database.get_dsn())
    result = repository.ensure_schema()
    if result.is_failure():
        typer.echo(str(result.error()), err=True)
        raise typer.Exit(1)
    typer.echo("certificates table ready")


@app.command()
def sweep(
    delete: bool | None = typer.Option(
        None,
        "--delete/--report-only",
        help="Delete orphaned artifacts (defaults to SWEEP__DELETE_ORPHANS).",
    ),
) -> None:
    """Run one reconciliation pass and print the orphaned artifact ids."""
    settings = load_settings()
    adapters = create_adapters(settings)
    delete_orphans = settings.sweep.delete_orphans if delete is None else delete

    ctx = LoggingExecutionContext(operation="OrphanSweep")
    result = ctx.execute(
        lambda: sweep_orphans(
            adapters.store,
            adapters.repository,
            delete_orphans=delete_orphans,
            grace=timedelta(minutes=settings.sweep.grace_minutes),
        )
    )
    if result.is_failure():
        typer.echo(str(result.error()), err=True)
        raise typer.Exit(1)

    report = result.value()
    typer.echo(
        json.dumps(
            {
                "scanned": report.scanned,
                "orphaned": list(report.orphaned),
                "deleted": report.deleted,
            },
            indent=2,
        )
    )


@app.command()
def schedule() -> None:
    """Run the reconciliation sweep on the configured cron schedule (blocking)."""
    settings = load_settings()
    log = structlog.get_logger()
    adapters = create_adapters(settings)

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        cron=settings.sweep.cron,
        run_on_startup=settings.sweep.run_on_startup,
        delete_orphans=settings.sweep.delete_orphans,
    )

    sweep_fn = partial(
        sweep_orphans,
        store=adapters.store,
        repository=adapters.repository,
        delete_orphans=settings.sweep.delete_orphans,
        grace=timedelta(minutes=settings.sweep.grace_minutes),
    )
    scheduler = create_scheduler(
        sweep_fn=sweep_fn,
        trigger=settings.sweep.trigger(),
        run_on_startup=settings.sweep.run_on_startup,
    )

    log.info("app.scheduler_starting", cron=settings.sweep.cron)

    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
