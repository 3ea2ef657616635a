"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the issuance pipeline needs without specifying HOW:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing), so adapters and test fakes
satisfy the contract by implementing the methods — no inheritance.

Per-recipient flow:
  1. ArtifactRenderer → certificate bytes (pure, CPU-bound)
  2. ArtifactStore    → public URL (I/O)
  3. IssuanceRepository.save → persisted record (I/O)
  4. Notifier         → email with the deep link (I/O, bounded by a timeout)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol, runtime_checkable

from cert_issuer.domain.models import (
    IssuanceRecord,
    RecordPage,
    RenderedArtifact,
    RepositoryStats,
    StoredArtifact,
)
from cert_issuer.railway import Result


@runtime_checkable
class ArtifactRenderer(Protocol):
    """
    Port: draw a certificate in memory.

    Same inputs must give identical bytes. The issuance id and a long-form
    issue date are always printed on the artifact. Failures are RENDER_ERROR.
    """

    def render(
        self,
        name: str,
        issuance_id: str,
        program: str,
        issued_at: datetime,
    ) -> Result[RenderedArtifact]: ...


@runtime_checkable
class ArtifactStore(Protocol):
    """
    Port: durable object storage for certificate files.

    `upload` overwrites any object already stored under the same issuance id
    and returns a public URL. It never retries; failures are one of
    NETWORK_UNREACHABLE, ACCESS_DENIED or UPLOAD_FAILED.
    """

    def upload(self, content: bytes, issuance_id: str, content_type: str) -> Result[str]: ...

    def list_artifacts(self) -> Result[list[StoredArtifact]]:
        """Every stored artifact, with its upload time when the store reports one."""
        ...

    def delete(self, issuance_ids: list[str]) -> Result[int]: ...


@runtime_checkable
class IssuanceRepository(Protocol):
    """
    Port: persistence of issuance records keyed by issuance id.

    Uniqueness of the id is enforced here; a duplicate is DUPLICATE_ISSUANCE.
    """

    def save(self, record: IssuanceRecord) -> Result[IssuanceRecord]: ...

    def find_by_id(self, issuance_id: str) -> Result[IssuanceRecord]:
        """Fails with NOT_FOUND when no record has this id."""
        ...

    def list_records(self, page: int, limit: int) -> Result[RecordPage]:
        """One page of records, newest first."""
        ...

    def search(self, text: str) -> Result[list[IssuanceRecord]]: ...

    def stats(self) -> Result[RepositoryStats]: ...

    def existing_ids(self, issuance_ids: Iterable[str]) -> Result[set[str]]: ...


@runtime_checkable
class Notifier(Protocol):
    """
    Port: tell a recipient their certificate is ready.

    Bounded by a fixed timeout; a timeout is NOTIFY_TIMEOUT, any other
    transport fault NOTIFY_ERROR. Returns the address the message went to.
    """

    def send(self, address: str, name: str, issuance_id: str) -> Result[str]: ...
