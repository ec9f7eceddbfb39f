"""
Requeue scheduler — run reconciliations now or later, one job per secret.

Infrastructure layer — uses APScheduler (3.x) with a thread pool so
reconciliations of different secrets run concurrently. Each secret owns a
single job id (`reconcile:<namespace>/<name>`); when a request arrives for
a secret that already has a pending run, the earlier of the two is kept.

After every run the reconciler's outcome decides the next one: its
`requeue_after` is scheduled, or nothing when it is None. A pass that was
cancelled by its own deadline is retried after `cancelled_requeue`; once
the shutdown token fires nothing is scheduled any more.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from railway import ErrorCode

from cert_sync.domain.models import CancellationToken, ReconcileOutcome, SecretRef

log = structlog.get_logger()

ReconcileFn = Callable[[SecretRef, CancellationToken], ReconcileOutcome]


def job_id(ref: SecretRef) -> str:
    return f"reconcile:{ref}"


class RequeueScheduler:
    """
    Drive a reconcile function from events and requeue requests.

    Every run gets a child of `shutdown_token` with its own deadline, so
    cancelling the shutdown token aborts in-flight passes.
    """

    def __init__(
        self,
        reconcile_fn: ReconcileFn,
        shutdown_token: CancellationToken,
        workers: int = 4,
        reconcile_timeout_seconds: float = 120,
        cancelled_requeue: timedelta = timedelta(minutes=5),
    ) -> None:
        self._reconcile_fn = reconcile_fn
        self._shutdown_token = shutdown_token
        self._reconcile_timeout_seconds = reconcile_timeout_seconds
        self._cancelled_requeue = cancelled_requeue
        # Same-secret runs may overlap; the reconciler's domain lock serializes them.
        self._scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(workers)},
            job_defaults={"coalesce": True, "max_instances": workers, "misfire_grace_time": None},
            timezone=UTC,
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        self._scheduler.start()
        log.info("scheduler.started")

    def shutdown(self, wait: bool = True) -> None:
        """Stop scheduling; with `wait`, let in-flight runs finish first."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            log.info("scheduler.stopped")

    def enqueue(self, ref: SecretRef) -> None:
        """Reconcile `ref` as soon as a worker is free."""
        self.schedule(ref, timedelta(0))

    def schedule(self, ref: SecretRef, delay: timedelta) -> None:
        """Reconcile `ref` after `delay`, unless an earlier run is already pending."""
        run_date = datetime.now(UTC) + delay
        existing = self._scheduler.get_job(job_id(ref))
        pending_at = getattr(existing, "next_run_time", None)
        if pending_at is not None and pending_at <= run_date:
            log.debug("scheduler.already_pending", secret=str(ref))
            return

        self._scheduler.add_job(
            self.run_once,
            trigger=DateTrigger(run_date=run_date),
            args=[ref],
            id=job_id(ref),
            name=f"Sync {ref} to ACM",
            replace_existing=True,
        )
        log.debug("scheduler.scheduled", secret=str(ref), delay_seconds=delay.total_seconds())

    def pending(self) -> dict[str, datetime]:
        """Pending job ids and their next run time."""
        return {
            job.id: job.next_run_time
            for job in self._scheduler.get_jobs()
            if getattr(job, "next_run_time", None) is not None
        }

    def run_once(self, ref: SecretRef) -> ReconcileOutcome:
        """Reconcile `ref` now on the calling thread and honour its requeue request."""
        token = self._shutdown_token.child(self._reconcile_timeout_seconds)
        outcome = self._reconcile_fn(ref, token)
        if self._shutdown_token.cancelled:
            return outcome
        requeue_after = outcome.requeue_after
        if requeue_after is None and _was_cancelled(outcome):
            # The pass ran out of time, not the process: redeliver it.
            requeue_after = self._cancelled_requeue
            log.info("scheduler.cancelled_requeue", secret=str(ref), reason=outcome.failure.message)
        if requeue_after is not None:
            self.schedule(ref, requeue_after)
        return outcome


def _was_cancelled(outcome: ReconcileOutcome) -> bool:
    return outcome.failure is not None and outcome.failure.code is ErrorCode.CANCELLED
