"""
Scheduler — runs the orphaned-artifact sweep in its own process.

Uses APScheduler (3.x) with a BlockingScheduler; the cron trigger comes
ready-made from SweepSettings.trigger(), so parsing and validation of the
expression live with the rest of the configuration.

The web process never schedules sweeps. `cert-issuer schedule` is the one
long-running process that does, which keeps several web workers from
sweeping the same bucket at once.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from cert_issuer.domain.models import SweepReport
from cert_issuer.railway import FailureDescription, LoggingExecutionContext, Result

log = structlog.get_logger()

JOB_ID = "orphan_sweep"


def sweep_job(sweep_fn: Callable[[], Result[SweepReport]]) -> Callable[[], None]:
    """Wrap the wired sweep as a scheduler job that logs its outcome and never raises."""
    ctx = LoggingExecutionContext(operation="OrphanSweep")

    def _on_report(report: SweepReport) -> None:
        log.info(
            "scheduler.sweep_completed",
            scanned=report.scanned,
            orphaned=len(report.orphaned),
            deleted=report.deleted,
        )

    def _on_failure(error: FailureDescription) -> None:
        log.error("scheduler.sweep_failed", code=error.code.value, failure=error.message)

    def _run() -> None:
        ctx.execute(sweep_fn).either(on_success=_on_report, on_failure=_on_failure)

    return _run


def create_scheduler(
    sweep_fn: Callable[[], Result[SweepReport]],
    trigger: CronTrigger,
    run_on_startup: bool = False,
) -> BlockingScheduler:
    """
    Build the sweep scheduler without starting it.

    With run_on_startup the sweep runs once, synchronously, before this
    returns. SIGINT/SIGTERM shut the scheduler down and exit the process.
    """
    job = sweep_job(sweep_fn)
    scheduler = BlockingScheduler()
    scheduler.add_job(
        job,
        trigger=trigger,
        id=JOB_ID,
        name="Orphaned certificate sweep",
        replace_existing=True,
    )

    if run_on_startup:
        log.info("scheduler.startup_run")
        job()

    _register_shutdown_signals(scheduler)
    return scheduler


def _register_shutdown_signals(scheduler: BlockingScheduler) -> None:
    def _shutdown(signum: int, frame: object) -> None:
        log.info("scheduler.shutdown_requested", signal=signal.Signals(signum).name)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
