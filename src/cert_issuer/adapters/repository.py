"""
PostgreSQL repository adapter — issuance record persistence.

Adapter layer — implements the IssuanceRepository port using psycopg (v3)
with parameterized queries. No ORM.

Table mapping:
  IssuanceRecord → certificates (issuance_id is the primary key)

Write path: `save` is a single INSERT in its own transaction and never
retries; a primary-key collision becomes DUPLICATE_ISSUANCE so the batch
report can tell it apart from connectivity faults (DATABASE_ERROR).

Read paths retry transient connection failures via tenacity, since a
repeated SELECT has no side effects.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import psycopg
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cert_issuer.domain.models import (
    IssuanceRecord,
    Recipient,
    RecordPage,
    RepositoryStats,
)
from cert_issuer.railway import ErrorCode, Result

log = structlog.get_logger()

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS certificates (
    issuance_id            TEXT PRIMARY KEY,
    name                   TEXT NOT NULL,
    email                  TEXT NOT NULL,
    program                TEXT NOT NULL DEFAULT 'General Program',
    issued_at              TIMESTAMPTZ NOT NULL,
    artifact_url           TEXT NOT NULL,
    artifact_content_type  TEXT NOT NULL DEFAULT 'application/pdf',
    created_at             TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS certificates_created_at_idx ON certificates (created_at DESC);
"""

_COLUMNS = "issuance_id, name, email, program, issued_at, artifact_url, artifact_content_type"

_INSERT = f"""
INSERT INTO certificates ({_COLUMNS})
VALUES (%s, %s, %s, %s, %s, %s, %s)
"""

_SELECT_BY_ID = f"SELECT {_COLUMNS} FROM certificates WHERE issuance_id = %s"

_SELECT_PAGE = f"""
SELECT {_COLUMNS} FROM certificates
ORDER BY created_at DESC, issuance_id
LIMIT %s OFFSET %s
"""

_SEARCH = f"""
SELECT {_COLUMNS} FROM certificates
WHERE name ILIKE %(pattern)s OR email ILIKE %(pattern)s OR issuance_id ILIKE %(pattern)s
ORDER BY created_at DESC, issuance_id
LIMIT %(limit)s
"""

_COUNT = "SELECT count(*) FROM certificates"

_SELECT_EXISTING = "SELECT issuance_id FROM certificates WHERE issuance_id = ANY(%s)"

SEARCH_LIMIT = 20
RECENT_LIMIT = 5

_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=0.1, max=5),
    retry=retry_if_exception_type(psycopg.OperationalError),
    reraise=True,
)


class PsycopgIssuanceRepository:
    """
    Persist issuance records to PostgreSQL.

    Implements the IssuanceRepository port. All exceptions are caught at
    this adapter boundary and returned as Result failures.
    """

    def __init__(self, dsn: str, connect_timeout: int = 10) -> None:
        self._dsn = dsn
        self._connect_timeout = connect_timeout

    def _connect(self) -> psycopg.Connection[Any]:
        return psycopg.connect(self._dsn, connect_timeout=self._connect_timeout)

    def ensure_schema(self) -> Result[bool]:
        """Create the certificates table if it does not exist yet."""

        def _create() -> bool:
            with self._connect() as conn:
                conn.execute(SCHEMA_DDL)
            log.info("repository.schema_ready")
            return True

        return Result.from_computation(
            _create, ErrorCode.DATABASE_ERROR, "Failed to create certificates schema"
        )

    # ─────────────────────── Write ───────────────────────

    def save(self, record: IssuanceRecord) -> Result[IssuanceRecord]:
        """Insert one record. Never retried."""
        try:
            with self._connect() as conn, conn.transaction():
                conn.execute(
                    _INSERT,
                    (
                        record.issuance_id,
                        record.recipient.name,
                        record.recipient.email,
                        record.recipient.program,
                        record.issued_at,
                        record.artifact_url,
                        record.artifact_content_type,
                    ),
                )
        except psycopg.errors.UniqueViolation as e:
            log.error("repository.duplicate", issuance_id=record.issuance_id)
            return Result.failure(
                ErrorCode.DUPLICATE_ISSUANCE,
                f"Certificate {record.issuance_id} already exists",
                e,
            )
        except psycopg.Error as e:
            log.error("repository.save_failed", issuance_id=record.issuance_id, error=str(e))
            return Result.failure(
                ErrorCode.DATABASE_ERROR,
                f"Failed to save certificate record: {e}",
                e,
            )
        log.info("repository.saved", issuance_id=record.issuance_id)
        return Result.success(record)

    # ─────────────────────── Read ───────────────────────

    def find_by_id(self, issuance_id: str) -> Result[IssuanceRecord]:
        try:
            record = self._fetch_one(issuance_id)
        except psycopg.Error as e:
            log.error("repository.fetch_failed", issuance_id=issuance_id, error=str(e))
            return Result.failure(ErrorCode.DATABASE_ERROR, "Failed to fetch certificate", e)
        if record is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Certificate not found")
        return Result.success(record)

    def list_records(self, page: int, limit: int) -> Result[RecordPage]:
        return Result.from_computation(
            lambda: self._fetch_page(page, limit),
            ErrorCode.DATABASE_ERROR,
            "Failed to list certificates",
        )

    def search(self, text: str) -> Result[list[IssuanceRecord]]:
        """Case-insensitive substring match over name, email and issuance id."""
        return Result.from_computation(
            lambda: self._fetch_search(text),
            ErrorCode.DATABASE_ERROR,
            "Failed to search certificates",
        )

    def stats(self) -> Result[RepositoryStats]:
        return Result.from_computation(
            self._fetch_stats,
            ErrorCode.DATABASE_ERROR,
            "Failed to compute certificate statistics",
        )

    def existing_ids(self, issuance_ids: Iterable[str]) -> Result[set[str]]:
        ids = list(issuance_ids)
        return Result.from_computation(
            lambda: self._fetch_existing(ids),
            ErrorCode.DATABASE_ERROR,
            "Failed to look up certificate ids",
        )

    # ─────────────────────── Queries (retried) ───────────────────────

    @_read_retry
    def _fetch_one(self, issuance_id: str) -> IssuanceRecord | None:
        with self._connect() as conn:
            row = conn.execute(_SELECT_BY_ID, (issuance_id,)).fetchone()
        return _to_record(row) if row else None

    @_read_retry
    def _fetch_page(self, page: int, limit: int) -> RecordPage:
        with self._connect() as conn:
            total = _scalar(conn.execute(_COUNT).fetchone())
            rows = conn.execute(_SELECT_PAGE, (limit, (page - 1) * limit)).fetchall()
        return RecordPage(records=[_to_record(r) for r in rows], total=total, page=page, limit=limit)

    @_read_retry
    def _fetch_search(self, text: str) -> list[IssuanceRecord]:
        pattern = f"%{_escape_like(text)}%"
        with self._connect() as conn:
            rows = conn.execute(_SEARCH, {"pattern": pattern, "limit": SEARCH_LIMIT}).fetchall()
        return [_to_record(r) for r in rows]

    @_read_retry
    def _fetch_stats(self) -> RepositoryStats:
        with self._connect() as conn:
            total = _scalar(conn.execute(_COUNT).fetchone())
            rows = conn.execute(_SELECT_PAGE, (RECENT_LIMIT, 0)).fetchall()
        return RepositoryStats(total=total, recent=[_to_record(r) for r in rows])

    @_read_retry
    def _fetch_existing(self, ids: list[str]) -> set[str]:
        if not ids:
            return set()
        with self._connect() as conn:
            rows = conn.execute(_SELECT_EXISTING, (ids,)).fetchall()
        return {r[0] for r in rows}


def _to_record(row: tuple[Any, ...]) -> IssuanceRecord:
    issuance_id, name, email, program, issued_at, url, content_type = row
    return IssuanceRecord(
        issuance_id=issuance_id,
        recipient=Recipient(name=name, email=email, program=program),
        issued_at=issued_at,
        artifact_url=url,
        artifact_content_type=content_type,
    )


def _scalar(row: tuple[Any, ...] | None) -> int:
    return int(row[0]) if row else 0


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
