"""
Pipeline — the batch issuance orchestrator.

Domain layer — all I/O is injected via ports (Protocol interfaces), so the
same code runs against PostgreSQL/Supabase/SMTP in production and fakes in
tests.

Upload flow:

  decode_csv(bytes)                      → FORMAT_ERROR aborts the whole submission
    → validate_rows(rows)                → invalid rows recorded, never issued
      → for each recipient, in order:
          render → upload → save → send  → succeeded / failed

Per-recipient isolation: a recipient's pass ends at its first failing gate
and the loop moves on. Nothing one recipient does can undo another's
committed record.

Gate policy:
  render fails  → failed(RENDER)
  upload fails  → failed(STORE); no record, no email
  save fails    → failed(PERSIST); the uploaded file stays (orphan, swept later)
  send fails    → still succeeded, with notified=False

No gate is retried. Recipients are processed sequentially so the report
follows input order and load on the store and mail relay stays bounded.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import TypeVar

import structlog

from cert_issuer.domain.models import (
    BatchOutcome,
    FailedIssuance,
    IssuanceRecord,
    RawRow,
    Recipient,
    Stage,
    SucceededIssuance,
    new_issuance_id,
)
from cert_issuer.domain.ports import (
    ArtifactRenderer,
    ArtifactStore,
    IssuanceRepository,
    Notifier,
)
from cert_issuer.domain.tabular import decode_csv
from cert_issuer.domain.validation import validate_rows
from cert_issuer.railway import ErrorCode, FailureDescription, Result

T = TypeVar("T")

log = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(UTC)


def _attempt(step: str, call: Callable[[], Result[T]]) -> Result[T]:
    """Run one port call; an exception escaping the adapter becomes UNKNOWN_ERROR."""
    try:
        return call()
    except Exception as e:
        return Result.failure(ErrorCode.UNKNOWN_ERROR, f"Unexpected error during {step}: {e}", e)


def _failed(recipient: Recipient, stage: Stage, error: FailureDescription) -> FailedIssuance:
    log.error(
        "batch.recipient_failed",
        stage=stage.value,
        error_code=error.code.value,
        reason=error.message,
    )
    return FailedIssuance(recipient=recipient, stage=stage, code=error.code, reason=error.message)


def issue_certificate(
    recipient: Recipient,
    renderer: ArtifactRenderer,
    store: ArtifactStore,
    repository: IssuanceRepository,
    notifier: Notifier,
    clock: Callable[[], datetime] = utc_now,
    id_factory: Callable[[], str] = new_issuance_id,
) -> SucceededIssuance | FailedIssuance:
    """
    Run one recipient through render → upload → save → send.

    The issuance id and timestamp are fixed before any side effect, so the
    rendered file, the stored object and the record all agree on them.
    """
    issuance_id = id_factory()
    issued_at = clock()

    with structlog.contextvars.bound_contextvars(issuance_id=issuance_id, email=recipient.email):
        rendered = _attempt(
            "render",
            lambda: renderer.render(recipient.name, issuance_id, recipient.program, issued_at),
        )
        if rendered.is_failure():
            return _failed(recipient, Stage.RENDER, rendered.error())
        artifact = rendered.value()

        uploaded = _attempt(
            "upload",
            lambda: store.upload(artifact.content, issuance_id, artifact.content_type),
        )
        if uploaded.is_failure():
            return _failed(recipient, Stage.STORE, uploaded.error())
        artifact_url = uploaded.value()

        record = IssuanceRecord(
            issuance_id=issuance_id,
            recipient=recipient,
            issued_at=issued_at,
            artifact_url=artifact_url,
            artifact_content_type=artifact.content_type,
        )
        saved = _attempt("save", lambda: repository.save(record))
        if saved.is_failure():
            return _failed(recipient, Stage.PERSIST, saved.error())

        sent = _attempt(
            "notify",
            lambda: notifier.send(recipient.email, recipient.name, issuance_id),
        )
        sent.peek_failure(
            lambda err: log.warning(
                "batch.notify_failed", error_code=err.code.value, reason=err.message
            )
        )

        log.info("batch.recipient_issued", artifact_url=artifact_url, notified=sent.is_success())
        return SucceededIssuance(
            recipient=recipient,
            issuance_id=issuance_id,
            artifact_url=artifact_url,
            notified=sent.is_success(),
        )


def run_batch(
    recipients: Sequence[Recipient],
    renderer: ArtifactRenderer,
    store: ArtifactStore,
    repository: IssuanceRepository,
    notifier: Notifier,
    clock: Callable[[], datetime] = utc_now,
    id_factory: Callable[[], str] = new_issuance_id,
) -> BatchOutcome:
    """
    Issue certificates for already-validated recipients, strictly in order.

    Returns a BatchOutcome whose succeeded/failed lists follow input order
    and together account for every recipient.
    """
    log.info("batch.started", recipients=len(recipients))
    succeeded: list[SucceededIssuance] = []
    failed: list[FailedIssuance] = []

    for recipient in recipients:
        outcome = issue_certificate(
            recipient, renderer, store, repository, notifier, clock, id_factory
        )
        match outcome:
            case SucceededIssuance():
                succeeded.append(outcome)
            case FailedIssuance():
                failed.append(outcome)

    result = BatchOutcome(
        valid_rows=len(recipients),
        succeeded=tuple(succeeded),
        failed=tuple(failed),
    )
    log.info(
        "batch.completed",
        valid_rows=result.valid_rows,
        succeeded=len(result.succeeded),
        failed=len(result.failed),
        not_notified=len(result.not_notified),
    )
    return result


def run_upload(
    rows: Iterable[RawRow],
    renderer: ArtifactRenderer,
    store: ArtifactStore,
    repository: IssuanceRepository,
    notifier: Notifier,
    clock: Callable[[], datetime] = utc_now,
    id_factory: Callable[[], str] = new_issuance_id,
) -> BatchOutcome:
    """Validate raw rows, then issue for the valid ones. Invalid rows are reported."""
    recipients, invalid = validate_rows(rows)
    if invalid:
        log.info("batch.rows_rejected", invalid_rows=len(invalid))
    outcome = run_batch(recipients, renderer, store, repository, notifier, clock, id_factory)
    return replace(outcome, invalid_rows=tuple(invalid))


def run_csv_upload(
    content: bytes,
    filename: str | None,
    renderer: ArtifactRenderer,
    store: ArtifactStore,
    repository: IssuanceRepository,
    notifier: Notifier,
    clock: Callable[[], datetime] = utc_now,
    id_factory: Callable[[], str] = new_issuance_id,
) -> Result[BatchOutcome]:
    """
    Full submission: decode the file, then validate and issue.

    Returns Result.failure(FORMAT_ERROR) without touching any row when the
    file is not a readable CSV.
    """
    return decode_csv(content, filename).map(
        lambda rows: run_upload(rows, renderer, store, repository, notifier, clock, id_factory)
    )
