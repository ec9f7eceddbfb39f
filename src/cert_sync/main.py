"""
Application entry point — wires dependencies and runs the controller.

Composition root: creates the process-wide Kubernetes and ACM clients,
injects them into the adapters, hands the adapters to the reconciler,
and connects the watcher to the requeue scheduler.

This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog for structured logging
  2. Load and validate configuration from environment
  3. Create the clients once and share them across reconciliations
  4. Start the scheduler and the watcher thread
  5. Stop both cleanly on SIGINT/SIGTERM
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from dataclasses import dataclass, field

import structlog

from cert_sync import __version__
from cert_sync.adapters.acm_client import (
    AcmCertificateCatalog,
    AcmCertificateImporter,
    build_acm_client,
)
from cert_sync.adapters.secret_store import KubernetesSecretStore, load_core_v1_api
from cert_sync.adapters.watcher import SecretWatcher
from cert_sync.config import AppSettings
from cert_sync.domain.models import CancellationToken
from cert_sync.reconciler import SecretReconciler
from cert_sync.scheduler import RequeueScheduler

WATCHER_JOIN_TIMEOUT_SECONDS = 5.0


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured, key/value logging.

    Context bound with structlog.contextvars (the secret being reconciled)
    is merged into every event.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@dataclass
class Runtime:
    """The wired controller: reconciler, scheduler, watcher, and shutdown signal."""

    reconciler: SecretReconciler
    scheduler: RequeueScheduler
    watcher: SecretWatcher
    shutdown_token: CancellationToken
    _watcher_thread: threading.Thread | None = field(default=None, repr=False)

    @property
    def watcher_alive(self) -> bool:
        return self._watcher_thread is not None and self._watcher_thread.is_alive()

    def start(self) -> None:
        """Start the scheduler, then the watcher on a daemon thread."""
        self.scheduler.start()
        self._watcher_thread = threading.Thread(
            target=self.watcher.run,
            args=(self.shutdown_token,),
            name="secret-watcher",
            daemon=True,
        )
        self._watcher_thread.start()

    def stop(self) -> None:
        """Cancel in-flight work, close the watch, and drain the scheduler."""
        log = structlog.get_logger()
        self.shutdown_token.cancel()
        self.watcher.stop()
        self.scheduler.shutdown(wait=True)
        if self._watcher_thread is not None:
            self._watcher_thread.join(timeout=WATCHER_JOIN_TIMEOUT_SECONDS)
            if self._watcher_thread.is_alive():
                log.warning("app.watcher_thread_timeout", timeout_seconds=WATCHER_JOIN_TIMEOUT_SECONDS)


def build_runtime(settings: AppSettings) -> Runtime:
    """
    Instantiate every concrete collaborator from application settings.

    The ACM and Kubernetes clients are created here once and reused by
    every reconciliation for the lifetime of the process.
    """
    acm = build_acm_client(settings.aws)
    core_v1 = load_core_v1_api(settings.kubernetes.kubeconfig)

    reconciler = SecretReconciler(
        store=KubernetesSecretStore(core_v1),
        catalog=AcmCertificateCatalog(acm),
        importer=AcmCertificateImporter(acm),
        lookahead=settings.sync.lookahead,
        success_requeue=settings.sync.success_requeue,
        failure_requeue=settings.sync.failure_requeue,
        ownership_tag_key=settings.sync.ownership_tag_key,
    )
    shutdown_token = CancellationToken()
    scheduler = RequeueScheduler(
        reconcile_fn=reconciler.reconcile,
        shutdown_token=shutdown_token,
        workers=settings.workers,
        reconcile_timeout_seconds=settings.sync.reconcile_timeout_seconds,
        cancelled_requeue=settings.sync.failure_requeue,
    )
    watcher = SecretWatcher(
        api=core_v1,
        on_change=scheduler.enqueue,
        namespace=settings.kubernetes.namespace,
        timeout_seconds=settings.kubernetes.watch_timeout_seconds,
    )
    return Runtime(
        reconciler=reconciler,
        scheduler=scheduler,
        watcher=watcher,
        shutdown_token=shutdown_token,
    )


def _register_shutdown_signals(token: CancellationToken) -> None:
    """Register SIGINT and SIGTERM handlers that cancel the shutdown token."""
    log = structlog.get_logger()

    def _shutdown(signum: int, frame: object) -> None:
        log.info("app.shutdown_requested", signal=signal.Signals(signum).name)
        token.cancel()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)


def main() -> None:
    """Wire dependencies and run the controller until a shutdown signal arrives."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        namespace=settings.kubernetes.namespace or "*",
        lookahead_hours=settings.sync.lookahead_hours,
        workers=settings.workers,
    )

    try:
        runtime = build_runtime(settings)
    except Exception as e:
        log.error("app.init_error", error=str(e))
        sys.exit(1)

    _register_shutdown_signals(runtime.shutdown_token)
    runtime.start()

    watcher_died = False
    while not runtime.shutdown_token.wait(1.0):
        if not runtime.watcher_alive:
            log.error("app.watcher_died")
            watcher_died = True
            break

    runtime.stop()
    log.info("app.shutdown_complete")
    if watcher_died:
        sys.exit(1)


if __name__ == "__main__":
    main()
