"""
Secret watcher — turn Kubernetes secret events into reconcile requests.

Streams TLS secrets (field selector type=kubernetes.io/tls) and calls
`on_change(SecretRef)` for every ADDED or MODIFIED secret that is opted in
to syncing. The first stream lists every existing secret as ADDED, which
gives a full resync at startup. DELETED events are ignored: remote
certificates are never removed.

The watch is restarted whenever the server closes it, resuming from the
last seen resource version; an expired version (HTTP 410) restarts from a
fresh list.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog
from kubernetes import watch as k8s_watch
from kubernetes.client.rest import ApiException

from cert_sync.domain.models import (
    SYNC_ANNOTATION,
    TLS_SECRET_TYPE,
    CancellationToken,
    SecretRef,
)

log = structlog.get_logger()

HTTP_GONE = 410
RETRY_BACKOFF_SECONDS = 5.0


class SecretWatcher:
    """Long-running watch loop over TLS secrets."""

    def __init__(
        self,
        api: Any,
        on_change: Callable[[SecretRef], None],
        namespace: str | None = None,
        timeout_seconds: int = 300,
    ) -> None:
        self._api = api
        self._on_change = on_change
        self._namespace = namespace
        self._timeout_seconds = timeout_seconds
        self._watch: k8s_watch.Watch | None = None

    def run(self, token: CancellationToken) -> None:
        """Watch until `token` is cancelled. Blocks the calling thread."""
        resource_version: str | None = None
        log.info("watcher.started", namespace=self._namespace or "*")
        while not token.cancelled:
            try:
                resource_version = self._stream(resource_version, token)
            except ApiException as e:
                if e.status == HTTP_GONE:
                    log.info("watcher.resource_version_expired", resource_version=resource_version)
                    resource_version = None
                    continue
                log.error("watcher.api_error", status=e.status, reason=e.reason)
                token.wait(RETRY_BACKOFF_SECONDS)
            except Exception as e:
                log.error("watcher.stream_error", error=str(e))
                token.wait(RETRY_BACKOFF_SECONDS)
        log.info("watcher.stopped")

    def stop(self) -> None:
        """Close the active stream, if any."""
        if self._watch is not None:
            self._watch.stop()

    def _list_call(self) -> tuple[Callable[..., Any], dict[str, Any]]:
        kwargs: dict[str, Any] = {
            "field_selector": f"type={TLS_SECRET_TYPE}",
            "timeout_seconds": self._timeout_seconds,
        }
        if self._namespace:
            kwargs["namespace"] = self._namespace
            return self._api.list_namespaced_secret, kwargs
        return self._api.list_secret_for_all_namespaces, kwargs

    def _stream(self, resource_version: str | None, token: CancellationToken) -> str | None:
        """Consume one watch stream; return the last resource version seen."""
        list_fn, kwargs = self._list_call()
        if resource_version:
            kwargs["resource_version"] = resource_version

        self._watch = k8s_watch.Watch()
        for event in self._watch.stream(list_fn, **kwargs):
            if token.cancelled:
                self._watch.stop()
                break
            secret = event["object"]
            metadata = secret.metadata
            resource_version = metadata.resource_version
            if event["type"] not in ("ADDED", "MODIFIED"):
                continue
            if (metadata.annotations or {}).get(SYNC_ANNOTATION) != "true":
                continue
            ref = SecretRef(metadata.namespace, metadata.name)
            log.debug("watcher.secret_changed", secret=str(ref), event_type=event["type"])
            self._on_change(ref)
        return resource_version
