"""
Reconciler — the ROP pipeline that syncs one secret to ACM.

Domain orchestration — all I/O goes through the injected ports.
Stages are connected via flat_map, forming a railway:

  store.get(ref)
    → check_eligibility(secret)
      → [domain lock]
        → locate_certificate(domain)
          → split_certificate_chain(tls.crt)
            → decide_sync(match)
              → execute_upsert(decision)

Each stage returns Result[T]; the first failure short-circuits the rest.
The final Result is translated into a ReconcileOutcome carrying the
requeue request the caller should honour:

  success (including NO_OP)      → long requeue (24h)
  NOT_FOUND / NOT_ELIGIBLE       → silent no-op, no requeue
  CANCELLED                      → error reported, no requeue
  any other failure              → error reported, short requeue (5m)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import TypeVar

import structlog
from railway import ErrorCode, LoggingExecutionContext
from railway.failure import FailureDescription
from railway.result import Result

from cert_sync.domain.decision import DEFAULT_LOOKAHEAD, decide_sync
from cert_sync.domain.locator import locate_certificate
from cert_sync.domain.models import (
    CancellationToken,
    CatalogMatch,
    CertificateBundle,
    ReconcileOutcome,
    SecretRef,
    SourceSecret,
    SyncReport,
)
from cert_sync.domain.pem_chain import split_certificate_chain
from cert_sync.domain.ports import CertificateCatalog, CertificateImporter, SecretStore
from cert_sync.domain.upsert import DEFAULT_OWNERSHIP_TAG_KEY, execute_upsert

T = TypeVar("T")
log = structlog.get_logger()

DEFAULT_SUCCESS_REQUEUE = timedelta(hours=24)
DEFAULT_FAILURE_REQUEUE = timedelta(minutes=5)

_SILENT_SKIPS = (ErrorCode.NOT_FOUND, ErrorCode.NOT_ELIGIBLE)
_LOCK_POLL_SECONDS = 0.5


def check_eligibility(secret: SourceSecret) -> Result[SourceSecret]:
    """
    Keep only secrets that are opted in, of TLS type, and name a domain.

    Rejection is Failure(NOT_ELIGIBLE), which the reconciler treats as a
    silent skip rather than an error.
    """
    if not secret.sync_enabled:
        return Result.failure(ErrorCode.NOT_ELIGIBLE, "sync-to-acm annotation is not \"true\"")
    if not secret.is_tls:
        return Result.failure(ErrorCode.NOT_ELIGIBLE, f"secret type is {secret.type!r}")
    if not secret.domain_name:
        return Result.failure(
            ErrorCode.NOT_ELIGIBLE, "cert-manager.io/common-name annotation is missing"
        )
    return Result.success(secret)


class DomainLocks:
    """
    One mutex per domain name.

    Two secrets resolving to the same domain are reconciled one after the
    other within this process, so both cannot observe ABSENT and CREATE
    duplicate records. An entry lives only while some reconciliation holds
    or waits for it, so the map is bounded by the number of workers.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._claims: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def _claim(self, domain: str) -> Iterator[threading.Lock]:
        with self._guard:
            lock = self._locks.setdefault(domain, threading.Lock())
            self._claims[domain] = self._claims.get(domain, 0) + 1
        try:
            yield lock
        finally:
            with self._guard:
                self._claims[domain] -= 1
                if not self._claims[domain]:
                    del self._claims[domain]
                    del self._locks[domain]

    def run_exclusive(
        self,
        domain: str,
        token: CancellationToken,
        computation: Callable[[], Result[T]],
    ) -> Result[T]:
        """Run `computation` holding the domain's lock; give up on cancellation."""
        with self._claim(domain) as lock:
            while not lock.acquire(timeout=_LOCK_POLL_SECONDS):
                if token.cancelled:
                    return Result.failure(
                        ErrorCode.CANCELLED, f"Cancelled while waiting for lock on {domain}"
                    )
            try:
                return computation()
            finally:
                lock.release()


class SecretReconciler:
    """
    Sync one secret to ACM per call; stateless between calls.

    Safe to call concurrently for different secrets. Collaborators are
    created once by the composition root and shared.
    """

    def __init__(
        self,
        store: SecretStore,
        catalog: CertificateCatalog,
        importer: CertificateImporter,
        lookahead: timedelta = DEFAULT_LOOKAHEAD,
        success_requeue: timedelta = DEFAULT_SUCCESS_REQUEUE,
        failure_requeue: timedelta = DEFAULT_FAILURE_REQUEUE,
        ownership_tag_key: str = DEFAULT_OWNERSHIP_TAG_KEY,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        locks: DomainLocks | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._importer = importer
        self._lookahead = lookahead
        self._success_requeue = success_requeue
        self._failure_requeue = failure_requeue
        self._ownership_tag_key = ownership_tag_key
        self._clock = clock
        self._locks = locks if locks is not None else DomainLocks()
        self._context = LoggingExecutionContext(operation="SecretSync")

    def reconcile(self, ref: SecretRef, token: CancellationToken) -> ReconcileOutcome:
        """Run one reconciliation pass for `ref` and say when to run the next."""
        with structlog.contextvars.bound_contextvars(secret=str(ref)):
            log.debug("reconcile.started")
            result = self._context.execute(lambda: self._sync(ref, token))
            return result.either(self._on_success, self._on_failure)

    # ──────────────────────── Pipeline ────────────────────────

    def _sync(self, ref: SecretRef, token: CancellationToken) -> Result[SyncReport]:
        return (
            token.guard(ref)
            .flat_map(lambda r: self._store.get(r.namespace, r.name))
            .flat_map(check_eligibility)
            .flat_map(
                lambda secret: self._locks.run_exclusive(
                    secret.domain_name,
                    token,
                    lambda: self._sync_secret(secret, token),
                )
            )
        )

    def _sync_secret(self, secret: SourceSecret, token: CancellationToken) -> Result[SyncReport]:
        return (
            locate_certificate(secret.domain_name, self._catalog, token)
            .flat_map(
                lambda match: split_certificate_chain(secret.certificate_pem).map(
                    lambda bundle: (match, bundle)
                )
            )
            .flat_map(lambda pair: self._apply(secret, pair[0], pair[1], token))
        )

    def _apply(
        self,
        secret: SourceSecret,
        match: CatalogMatch,
        bundle: CertificateBundle,
        token: CancellationToken,
    ) -> Result[SyncReport]:
        decision = decide_sync(match, self._clock(), self._lookahead)
        log.info(
            "reconcile.decided",
            domain=secret.domain_name,
            state=decision.state.value,
            action=decision.action.value,
            certificate_arn=decision.certificate_arn,
        )
        return execute_upsert(
            decision,
            bundle,
            secret.private_key_pem,
            secret,
            self._importer,
            token,
            self._ownership_tag_key,
        ).map(
            lambda arn: SyncReport(
                secret=secret.ref,
                domain_name=secret.domain_name,
                action=decision.action,
                certificate_arn=arn,
            )
        )

    # ──────────────────────── Outcome mapping ────────────────────────

    def _on_success(self, report: SyncReport) -> ReconcileOutcome:
        log.info(
            "reconcile.synced",
            domain=report.domain_name,
            action=report.action.value,
            certificate_arn=report.certificate_arn,
            requeue_after_seconds=self._success_requeue.total_seconds(),
        )
        return ReconcileOutcome(
            requeue_after=self._success_requeue,
            action=report.action,
            certificate_arn=report.certificate_arn,
        )

    def _on_failure(self, error: FailureDescription) -> ReconcileOutcome:
        if error.code in _SILENT_SKIPS:
            log.debug("reconcile.skipped", reason=error.message)
            return ReconcileOutcome()
        if error.code is ErrorCode.CANCELLED:
            log.warning("reconcile.cancelled", reason=error.message)
            return ReconcileOutcome(failure=error)
        log.error(
            "reconcile.failed",
            error_code=error.code.value,
            message=error.message,
            requeue_after_seconds=self._failure_requeue.total_seconds(),
        )
        return ReconcileOutcome(requeue_after=self._failure_requeue, failure=error)
