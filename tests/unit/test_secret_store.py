"""
Unit tests for the Kubernetes secret store adapter.

Uses a mock CoreV1Api returning real V1Secret models, and ApiException
for error paths. No cluster is contacted.
"""

from __future__ import annotations

import base64
from unittest.mock import MagicMock, patch

from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException
from railway import ErrorCode, ResultAssertions

from cert_sync.adapters.secret_store import KubernetesSecretStore, load_core_v1_api


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _v1_secret(
    data: dict[str, str] | None,
    annotations: dict[str, str] | None = None,
    secret_type: str = "kubernetes.io/tls",
) -> k8s_client.V1Secret:
    return k8s_client.V1Secret(
        metadata=k8s_client.V1ObjectMeta(
            name="example-tls", namespace="default", annotations=annotations
        ),
        type=secret_type,
        data=data,
    )


def _make_api(secret: k8s_client.V1Secret | None = None, error: Exception | None = None) -> MagicMock:
    mock = MagicMock()
    if error is not None:
        mock.read_namespaced_secret.side_effect = error
    else:
        mock.read_namespaced_secret.return_value = secret
    return mock


class TestGet:
    def test_decodes_tls_payload(self) -> None:
        """
        GIVEN a TLS secret with base64 tls.crt and tls.key
        WHEN get is called
        THEN the SourceSecret carries decoded bytes, type and annotations.
        """
        api = _make_api(
            _v1_secret(
                {"tls.crt": _b64(b"CERT"), "tls.key": _b64(b"KEY"), "ca.crt": _b64(b"CA")},
                annotations={"sync-to-acm": "true", "cert-manager.io/common-name": "example.com"},
            )
        )

        secret = ResultAssertions.assert_success(
            KubernetesSecretStore(api).get("default", "example-tls")
        )

        api.read_namespaced_secret.assert_called_once_with(name="example-tls", namespace="default")
        assert secret.certificate_pem == b"CERT"
        assert secret.private_key_pem == b"KEY"
        assert secret.is_tls
        assert secret.sync_enabled
        assert secret.domain_name == "example.com"

    def test_missing_data_and_annotations(self) -> None:
        """
        GIVEN a secret without data or annotations
        WHEN get is called
        THEN payloads are empty and no annotations are present.
        """
        api = _make_api(_v1_secret(None, secret_type="Opaque"))

        secret = ResultAssertions.assert_success(
            KubernetesSecretStore(api).get("default", "example-tls")
        )

        assert secret.certificate_pem == b""
        assert secret.annotations == {}
        assert not secret.is_tls

    def test_404_is_not_found(self) -> None:
        """
        GIVEN the API answers 404
        WHEN get is called
        THEN it returns Failure(NOT_FOUND).
        """
        api = _make_api(error=ApiException(status=404, reason="Not Found"))

        result = KubernetesSecretStore(api).get("default", "example-tls")

        ResultAssertions.assert_failure(result, ErrorCode.NOT_FOUND)

    def test_403_is_store_error(self) -> None:
        api = _make_api(error=ApiException(status=403, reason="Forbidden"))

        result = KubernetesSecretStore(api).get("default", "example-tls")

        ResultAssertions.assert_failure(result, ErrorCode.SECRET_STORE_ERROR)

    def test_connection_error_is_store_error(self) -> None:
        api = _make_api(error=ConnectionError("connection refused"))

        result = KubernetesSecretStore(api).get("default", "example-tls")

        ResultAssertions.assert_failure(result, ErrorCode.SECRET_STORE_ERROR)

    def test_invalid_base64_is_store_error(self) -> None:
        api = _make_api(_v1_secret({"tls.crt": "%%%not-base64%%%"}))

        result = KubernetesSecretStore(api).get("default", "example-tls")

        ResultAssertions.assert_failure(result, ErrorCode.SECRET_STORE_ERROR)


class TestLoadCoreV1Api:
    @patch("cert_sync.adapters.secret_store.k8s_config")
    def test_prefers_in_cluster_config(self, mock_config: MagicMock) -> None:
        load_core_v1_api()

        mock_config.load_incluster_config.assert_called_once()
        mock_config.load_kube_config.assert_not_called()

    @patch("cert_sync.adapters.secret_store.k8s_config")
    def test_falls_back_to_kubeconfig(self, mock_config: MagicMock) -> None:
        mock_config.ConfigException = type("ConfigException", (Exception,), {})
        mock_config.load_incluster_config.side_effect = mock_config.ConfigException()

        load_core_v1_api()

        mock_config.load_kube_config.assert_called_once_with()

    @patch("cert_sync.adapters.secret_store.k8s_config")
    def test_explicit_kubeconfig(self, mock_config: MagicMock) -> None:
        load_core_v1_api("/etc/kube/config")

        mock_config.load_kube_config.assert_called_once_with(config_file="/etc/kube/config")
        mock_config.load_incluster_config.assert_not_called()
