"""
Shared test fixtures and helpers for the cert-issuer test suite.

Provides in-memory stand-ins for the I/O ports (artifact store, notifier)
and a fixed clock / id sequence so batch outcomes are reproducible.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from itertools import count

import pytest

from cert_issuer.domain.models import RenderedArtifact, StoredArtifact
from cert_issuer.railway import ErrorCode, Result

FIXED_NOW = datetime(2026, 3, 5, 10, 30, tzinfo=UTC)


def fixed_clock() -> datetime:
    return FIXED_NOW


def sequential_ids(prefix: str = "cert_test-") -> Callable[[], str]:
    """Id factory yielding cert_test-1, cert_test-2, ..."""
    numbers: Iterator[int] = count(1)
    return lambda: f"{prefix}{next(numbers)}"


class FakeRenderer:
    """Renders a tiny deterministic payload; fails for names in `fail_for`."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.calls: list[str] = []

    def render(
        self, name: str, issuance_id: str, program: str, issued_at: datetime
    ) -> Result[RenderedArtifact]:
        self.calls.append(issuance_id)
        if name in self.fail_for:
            return Result.failure(ErrorCode.RENDER_ERROR, "Certificate generation failed")
        body = f"{name}|{issuance_id}|{program}|{issued_at.isoformat()}".encode()
        return Result.success(RenderedArtifact(content=body, content_type="application/pdf"))


class InMemoryArtifactStore:
    """Keeps uploaded bytes in a dict keyed by issuance id."""

    def __init__(self, deny_for: set[str] | None = None) -> None:
        self.deny_for = deny_for or set()
        self.objects: dict[str, bytes] = {}
        self.created: dict[str, datetime | None] = {}
        self.deleted: list[str] = []

    def upload(self, content: bytes, issuance_id: str, content_type: str) -> Result[str]:
        if any(marker in content.decode(errors="ignore") for marker in self.deny_for):
            return Result.failure(
                ErrorCode.ACCESS_DENIED,
                "Storage rejected the upload (access policy): new row violates row-level security policy",
            )
        self.objects[issuance_id] = content
        self.created[issuance_id] = None
        return Result.success(f"https://storage.test/certificates/{issuance_id}.pdf")

    def list_artifacts(self) -> Result[list[StoredArtifact]]:
        return Result.success(
            [StoredArtifact(issuance_id=i, created_at=self.created[i]) for i in self.objects]
        )

    def delete(self, issuance_ids: list[str]) -> Result[int]:
        removed = 0
        for issuance_id in issuance_ids:
            if self.objects.pop(issuance_id, None) is not None:
                removed += 1
                self.deleted.append(issuance_id)
        return Result.success(removed)


class RecordingNotifier:
    """Records every send; fails for addresses in `fail_for`."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.sent: list[tuple[str, str, str]] = []

    def send(self, address: str, name: str, issuance_id: str) -> Result[str]:
        if address in self.fail_for:
            return Result.failure(ErrorCode.NOTIFY_TIMEOUT, "Email send timeout after 15s")
        self.sent.append((address, name, issuance_id))
        return Result.success(address)


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
def store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
