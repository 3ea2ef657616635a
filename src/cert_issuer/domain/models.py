"""
Domain models — immutable data structures for recipients, issuance records
and batch outcomes.

Pure value objects with no I/O. The batch orchestrator builds them; adapters
persist or serialize them.

All models are frozen dataclasses (immutable) following functional principles.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TypeAlias
from uuid import uuid4

from cert_issuer.railway import ErrorCode

DEFAULT_PROGRAM = "General Program"

ISSUANCE_ID_PREFIX = "cert_"

RawRow: TypeAlias = Mapping[str, str]

_EXTENSIONS = {
    "application/pdf": "pdf",
    "image/png": "png",
}


def new_issuance_id() -> str:
    """Generate a fresh issuance identifier from a 128-bit random UUID."""
    return f"{ISSUANCE_ID_PREFIX}{uuid4()}"


def extension_for(content_type: str) -> str:
    """File extension used for an artifact content type (``bin`` when unknown)."""
    return _EXTENSIONS.get(content_type, "bin")


class Stage(Enum):
    """Pipeline gate at which a recipient's pass can fail."""

    RENDER = "render"
    STORE = "store"
    PERSIST = "persist"


@dataclass(frozen=True, slots=True)
class Recipient:
    """
    A validated row: who a certificate is issued to.

    `name` and `email` are never empty once validation has succeeded.
    """

    name: str
    email: str
    program: str = DEFAULT_PROGRAM

    def to_row(self) -> dict[str, str]:
        """Render back into the upload column vocabulary (for re-submission)."""
        return {"Name": self.name, "Email": self.email, "Program": self.program}


@dataclass(frozen=True, slots=True)
class RenderedArtifact:
    """Certificate file bytes plus their MIME type."""

    content: bytes = field(repr=False)
    content_type: str

    @property
    def extension(self) -> str:
        return extension_for(self.content_type)


@dataclass(frozen=True, slots=True)
class IssuanceRecord:
    """
    One issued certificate as stored by the repository.

    Maps to the `certificates` table. Immutable once persisted.
    """

    issuance_id: str
    recipient: Recipient
    issued_at: datetime
    artifact_url: str
    artifact_content_type: str

    def to_public_dict(self) -> dict[str, str]:
        """Public fields returned by the lookup-by-id endpoint."""
        return {
            "certificateId": self.issuance_id,
            "studentName": self.recipient.name,
            "email": self.recipient.email,
            "programName": self.recipient.program,
            "dateOfIssue": self.issued_at.isoformat(),
            "certificateUrl": self.artifact_url,
            "certificateFileType": self.artifact_content_type,
        }


# ─────────────────────── Batch outcome ───────────────────────


@dataclass(frozen=True, slots=True)
class InvalidRow:
    """A raw row rejected by the validator, echoed back verbatim."""

    raw_row: RawRow
    code: ErrorCode
    reason: str


@dataclass(frozen=True, slots=True)
class SucceededIssuance:
    """
    A recipient whose certificate was rendered, stored and persisted.

    `notified` is False when the email could not be sent; the issuance
    still counts as succeeded.
    """

    recipient: Recipient
    issuance_id: str
    artifact_url: str
    notified: bool = True


@dataclass(frozen=True, slots=True)
class FailedIssuance:
    """A recipient whose pass stopped at `stage`."""

    recipient: Recipient
    stage: Stage
    code: ErrorCode
    reason: str


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    """
    Aggregate report of one batch.

    Every input row lands in exactly one of invalid_rows / succeeded / failed,
    each list in input order, and valid_rows == len(succeeded) + len(failed).
    """

    valid_rows: int
    invalid_rows: tuple[InvalidRow, ...] = ()
    succeeded: tuple[SucceededIssuance, ...] = ()
    failed: tuple[FailedIssuance, ...] = ()

    @property
    def total_rows(self) -> int:
        return self.valid_rows + len(self.invalid_rows)

    @property
    def not_notified(self) -> tuple[SucceededIssuance, ...]:
        return tuple(s for s in self.succeeded if not s.notified)

    def failed_rows(self) -> list[dict[str, str]]:
        """Failed recipients as upload rows, ready to be re-submitted."""
        return [f.recipient.to_row() for f in self.failed]

    def to_response(self) -> dict[str, object]:
        """JSON body of the bulk-upload endpoint."""
        return {
            "success": True,
            "message": "CSV processing completed",
            "summary": {
                "totalRecords": self.valid_rows,
                "successfullyProcessed": len(self.succeeded),
                "failed": len(self.failed),
            },
            "processed": [
                {
                    "studentName": s.recipient.name,
                    "email": s.recipient.email,
                    "certificateId": s.issuance_id,
                    "status": "Success",
                    "certificateUrl": s.artifact_url,
                    "notified": s.notified,
                }
                for s in self.succeeded
            ],
            "failed": [
                {
                    "studentName": f.recipient.name,
                    "email": f.recipient.email,
                    "status": "Failed",
                    "stage": f.stage.value,
                    "errorCode": f.code.value,
                    "error": f.reason,
                }
                for f in self.failed
            ],
            "csvValidationErrors": [
                {"row": dict(i.raw_row), "error": i.reason, "errorCode": i.code.value}
                for i in self.invalid_rows
            ],
        }


# ─────────────────────── Admin queries ───────────────────────


@dataclass(frozen=True, slots=True)
class RecordPage:
    """One page of issuance records, newest first."""

    records: list[IssuanceRecord]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True, slots=True)
class RepositoryStats:
    total: int
    recent: list[IssuanceRecord] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SweepReport:
    """Result of one orphaned-artifact reconciliation pass."""

    scanned: int
    orphaned: tuple[str, ...] = ()
    deleted: int = 0


@dataclass(frozen=True, slots=True)
class StoredArtifact:
    """An object found in the artifact store, identified by its issuance id."""

    issuance_id: str
    created_at: datetime | None = None
