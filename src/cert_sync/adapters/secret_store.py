"""
Kubernetes secret store adapter.

Adapter layer — implements the SecretStore port with the official
kubernetes client (CoreV1Api). Secret payloads arrive base64-encoded
and are decoded here, so the domain only ever sees raw PEM bytes.
"""

from __future__ import annotations

import base64
from typing import Any

import structlog
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from railway import ErrorCode
from railway.failure import FailureDescription
from railway.result import Result

from cert_sync.domain.models import TLS_CERT_KEY, TLS_PRIVATE_KEY_KEY, SourceSecret

log = structlog.get_logger()


def load_core_v1_api(kubeconfig: str | None = None) -> k8s_client.CoreV1Api:
    """
    Build a CoreV1Api client.

    With an explicit kubeconfig path that file is used. Otherwise the
    in-cluster service account is tried first, then the default kubeconfig.
    Raises kubernetes.config.ConfigException when neither is available.
    """
    if kubeconfig:
        k8s_config.load_kube_config(config_file=kubeconfig)
        log.info("kubernetes.config_loaded", source="kubeconfig", path=kubeconfig)
        return k8s_client.CoreV1Api()
    try:
        k8s_config.load_incluster_config()
        log.info("kubernetes.config_loaded", source="in-cluster")
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()
        log.info("kubernetes.config_loaded", source="default kubeconfig")
    return k8s_client.CoreV1Api()


def _decode(data: dict[str, str] | None, key: str) -> bytes:
    if not data or not data.get(key):
        return b""
    return base64.b64decode(data[key])


def to_source_secret(secret: Any) -> SourceSecret:
    """Convert a V1Secret into the domain's SourceSecret."""
    metadata = secret.metadata
    return SourceSecret(
        namespace=metadata.namespace,
        name=metadata.name,
        type=secret.type or "",
        annotations=dict(metadata.annotations or {}),
        certificate_pem=_decode(secret.data, TLS_CERT_KEY),
        private_key_pem=_decode(secret.data, TLS_PRIVATE_KEY_KEY),
    )


class KubernetesSecretStore:
    """
    Read secrets through the Kubernetes API.

    Implements the SecretStore port. HTTP 404 maps to NOT_FOUND so the
    reconciler can treat a deleted secret as a no-op.
    """

    def __init__(self, api: Any) -> None:
        self._api = api

    def get(self, namespace: str, name: str) -> Result[SourceSecret]:
        """
        Read and decode one secret.

        Returns Result[SourceSecret] on success, Result.failure(NOT_FOUND, ...)
        when the secret does not exist, or Result.failure(SECRET_STORE_ERROR, ...)
        on any other error.
        """
        return (
            Result.from_computation(
                lambda: self._api.read_namespaced_secret(name=name, namespace=namespace),
                ErrorCode.SECRET_STORE_ERROR,
                f"Reading secret {namespace}/{name} failed",
            )
            .map_failure(_not_found_on_404)
            .flat_map(_decode_secret)
        )


def _not_found_on_404(error: FailureDescription) -> FailureDescription:
    exception = error.exception
    if isinstance(exception, ApiException) and exception.status == 404:
        return FailureDescription(ErrorCode.NOT_FOUND, error.message, exception)
    return error


def _decode_secret(secret: Any) -> Result[SourceSecret]:
    return Result.from_computation(
        lambda: to_source_secret(secret),
        ErrorCode.SECRET_STORE_ERROR,
        "Decoding secret payload failed",
    )
