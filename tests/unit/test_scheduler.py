"""
Unit tests for the requeue scheduler.

The reconcile function is a plain callable returning canned outcomes, so
these tests only exercise scheduling: requeue requests, the one-job-per-
secret rule, and shutdown behaviour.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from railway import ErrorCode, Result
from railway.failure import FailureDescription

from cert_sync.domain.models import (
    CancellationToken,
    CatalogPage,
    ReconcileOutcome,
    SecretRef,
    SyncAction,
)
from cert_sync.reconciler import SecretReconciler
from cert_sync.scheduler import RequeueScheduler, job_id
from tests.conftest import make_secret

REF = SecretRef("default", "example-tls")


class _RecordingReconcile:
    """Callable reconcile stub that records calls and returns one outcome."""

    def __init__(self, outcome: ReconcileOutcome) -> None:
        self.outcome = outcome
        self.calls: list[tuple[SecretRef, CancellationToken]] = []
        self.called = threading.Event()

    def __call__(self, ref: SecretRef, token: CancellationToken) -> ReconcileOutcome:
        self.calls.append((ref, token))
        self.called.set()
        return self.outcome


SUCCESS = ReconcileOutcome(
    requeue_after=timedelta(hours=24), action=SyncAction.NO_OP, certificate_arn="arn:1"
)
FAILED = ReconcileOutcome(
    requeue_after=timedelta(minutes=5),
    failure=FailureDescription(ErrorCode.REMOTE_CATALOG_ERROR, "throttled"),
)
SKIPPED = ReconcileOutcome()
DEADLINE = ReconcileOutcome(
    failure=FailureDescription(ErrorCode.CANCELLED, "Reconciliation deadline exceeded"),
)


@pytest.fixture
def shutdown_token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def make_scheduler(shutdown_token: CancellationToken) -> Iterator:
    started: list[RequeueScheduler] = []

    def factory(outcome: ReconcileOutcome, start: bool = True) -> tuple[RequeueScheduler, _RecordingReconcile]:
        reconcile = _RecordingReconcile(outcome)
        scheduler = RequeueScheduler(reconcile, shutdown_token, workers=2, reconcile_timeout_seconds=30)
        if start:
            scheduler.start()
            started.append(scheduler)
        return scheduler, reconcile

    yield factory
    for scheduler in started:
        scheduler.shutdown(wait=False)


def _seconds_until(when: datetime) -> float:
    return (when - datetime.now(UTC)).total_seconds()


class TestJobId:
    def test_one_id_per_secret(self) -> None:
        assert job_id(REF) == "reconcile:default/example-tls"
        assert job_id(SecretRef("other", "example-tls")) != job_id(REF)


class TestRunOnce:
    def test_success_requeues_after_long_interval(self, make_scheduler) -> None:
        """
        GIVEN a reconcile pass that succeeds
        WHEN run_once completes
        THEN the secret is scheduled again about 24h later.
        """
        scheduler, reconcile = make_scheduler(SUCCESS)

        outcome = scheduler.run_once(REF)

        assert outcome is SUCCESS
        assert reconcile.calls[0][0] == REF
        pending = scheduler.pending()
        assert set(pending) == {job_id(REF)}
        assert 23.9 * 3600 < _seconds_until(pending[job_id(REF)]) <= 24 * 3600

    def test_failure_requeues_after_short_interval(self, make_scheduler) -> None:
        scheduler, _ = make_scheduler(FAILED)

        scheduler.run_once(REF)

        remaining = _seconds_until(scheduler.pending()[job_id(REF)])
        assert 290 < remaining <= 300

    def test_skip_does_not_requeue(self, make_scheduler) -> None:
        scheduler, _ = make_scheduler(SKIPPED)

        scheduler.run_once(REF)

        assert scheduler.pending() == {}

    def test_no_requeue_after_shutdown(self, make_scheduler, shutdown_token) -> None:
        scheduler, _ = make_scheduler(FAILED)
        shutdown_token.cancel()

        scheduler.run_once(REF)

        assert scheduler.pending() == {}

    def test_deadline_cancellation_is_redelivered(self, make_scheduler) -> None:
        """
        GIVEN a pass cancelled by its own deadline while the process keeps running
        WHEN run_once completes
        THEN the secret is scheduled again after the short retry interval.
        """
        scheduler, _ = make_scheduler(DEADLINE)

        scheduler.run_once(REF)

        remaining = _seconds_until(scheduler.pending()[job_id(REF)])
        assert 290 < remaining <= 300

    def test_cancellation_during_shutdown_is_not_redelivered(
        self, make_scheduler, shutdown_token
    ) -> None:
        scheduler, _ = make_scheduler(DEADLINE)
        shutdown_token.cancel()

        scheduler.run_once(REF)

        assert scheduler.pending() == {}

    def test_token_is_child_with_deadline(self, make_scheduler, shutdown_token) -> None:
        """
        GIVEN a scheduler with a 30s reconcile timeout
        WHEN run_once hands a token to the reconcile function
        THEN the token carries that deadline and follows the shutdown token.
        """
        scheduler, reconcile = make_scheduler(SKIPPED, start=False)

        scheduler.run_once(REF)

        token = reconcile.calls[0][1]
        assert token is not shutdown_token
        assert not token.deadline_exceeded
        assert not token.cancelled
        shutdown_token.cancel()
        assert token.cancelled


class TestSchedule:
    def test_earlier_pending_run_is_kept(self, make_scheduler) -> None:
        scheduler, _ = make_scheduler(SKIPPED)
        scheduler.schedule(REF, timedelta(minutes=5))

        scheduler.schedule(REF, timedelta(hours=24))

        assert _seconds_until(scheduler.pending()[job_id(REF)]) <= 300

    def test_earlier_request_replaces_later_pending_run(self, make_scheduler) -> None:
        scheduler, _ = make_scheduler(SKIPPED)
        scheduler.schedule(REF, timedelta(hours=24))

        scheduler.schedule(REF, timedelta(minutes=5))

        pending = scheduler.pending()
        assert len(pending) == 1
        assert _seconds_until(pending[job_id(REF)]) <= 300

    def test_distinct_secrets_get_distinct_jobs(self, make_scheduler) -> None:
        scheduler, _ = make_scheduler(SKIPPED)

        scheduler.schedule(REF, timedelta(hours=1))
        scheduler.schedule(SecretRef("default", "other-tls"), timedelta(hours=1))

        assert len(scheduler.pending()) == 2

    def test_enqueue_runs_on_worker(self, make_scheduler) -> None:
        """
        GIVEN a started scheduler
        WHEN a secret is enqueued
        THEN a worker thread reconciles it promptly.
        """
        scheduler, reconcile = make_scheduler(SKIPPED)

        scheduler.enqueue(REF)

        assert reconcile.called.wait(timeout=5)
        assert reconcile.calls[0][0] == REF


class TestLifecycle:
    def test_start_and_shutdown(self, make_scheduler) -> None:
        scheduler, _ = make_scheduler(SKIPPED, start=False)
        assert not scheduler.running

        scheduler.start()
        assert scheduler.running

        scheduler.shutdown(wait=False)
        assert not scheduler.running

    def test_shutdown_when_not_started_is_noop(self, make_scheduler) -> None:
        scheduler, _ = make_scheduler(SKIPPED, start=False)

        scheduler.shutdown()

        assert not scheduler.running


class TestDeadlineWithReconciler:
    def test_slow_catalog_pass_is_retried(self, shutdown_token: CancellationToken) -> None:
        """
        GIVEN a reconciler whose catalog listing outlasts the 0.1s pass deadline
        WHEN the scheduler runs the pass
        THEN the outcome is CANCELLED and a retry is pending about 5 minutes out.
        """

        def slow_list_page(next_token: str | None = None) -> Result[CatalogPage]:
            time.sleep(0.2)
            return Result.success(CatalogPage())

        store = MagicMock()
        store.get.return_value = Result.success(make_secret())
        catalog = MagicMock()
        catalog.list_page.side_effect = slow_list_page
        importer = MagicMock()
        reconciler = SecretReconciler(store=store, catalog=catalog, importer=importer)
        scheduler = RequeueScheduler(
            reconciler.reconcile,
            shutdown_token,
            workers=1,
            reconcile_timeout_seconds=0.1,
            cancelled_requeue=timedelta(minutes=5),
        )
        scheduler.start()
        try:
            outcome = scheduler.run_once(REF)

            assert outcome.failure is not None
            assert outcome.failure.code is ErrorCode.CANCELLED
            importer.import_certificate.assert_not_called()
            remaining = _seconds_until(scheduler.pending()[job_id(REF)])
            assert 290 < remaining <= 300
        finally:
            scheduler.shutdown(wait=False)
