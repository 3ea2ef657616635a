"""
Reconciliation — find (and optionally remove) orphaned certificate files.

An upload that succeeded followed by a save that failed leaves a file in the
bucket with no issuance record. The batch accepts that state instead of
running a compensating delete; this sweep is the later cleanup.

  list_artifacts()                         → every stored file
    → drop files younger than the grace period (a batch may still be saving them)
      → existing_ids(candidates)           → ids that do have a record
        → orphans = candidates − existing
          → delete(orphans)                (only when delete_orphans=True)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from cert_issuer.domain.models import StoredArtifact, SweepReport
from cert_issuer.domain.ports import ArtifactStore, IssuanceRepository
from cert_issuer.pipeline import utc_now
from cert_issuer.railway import Result

log = structlog.get_logger()

DEFAULT_GRACE = timedelta(hours=1)


def _settled(artifacts: list[StoredArtifact], cutoff: datetime) -> list[str]:
    """Ids of artifacts uploaded before cutoff. Unknown upload times count as settled."""
    return [
        a.issuance_id for a in artifacts if a.created_at is None or a.created_at < cutoff
    ]


def sweep_orphans(
    store: ArtifactStore,
    repository: IssuanceRepository,
    delete_orphans: bool = False,
    grace: timedelta = DEFAULT_GRACE,
    clock: Callable[[], datetime] = utc_now,
) -> Result[SweepReport]:
    """Compare stored files with persisted records and report the difference."""
    cutoff = clock() - grace

    def _find_orphans(artifacts: list[StoredArtifact]) -> Result[SweepReport]:
        candidates = _settled(artifacts, cutoff)
        return repository.existing_ids(candidates).map(
            lambda existing: SweepReport(
                scanned=len(artifacts),
                orphaned=tuple(sorted(set(candidates) - existing)),
            )
        )

    def _remove(report: SweepReport) -> Result[SweepReport]:
        if not delete_orphans or not report.orphaned:
            return Result.success(report)
        return store.delete(list(report.orphaned)).map(
            lambda removed: SweepReport(
                scanned=report.scanned, orphaned=report.orphaned, deleted=removed
            )
        )

    return (
        store.list_artifacts()
        .flat_map(_find_orphans)
        .flat_map(_remove)
        .peek(
            lambda report: log.info(
                "sweep.completed",
                scanned=report.scanned,
                orphaned=len(report.orphaned),
                deleted=report.deleted,
            )
        )
    )
