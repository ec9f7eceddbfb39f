"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the reconciler needs without specifying HOW:

  Domain ← Ports (protocols) ← Adapters (Kubernetes, ACM)

Adapters satisfy a port simply by implementing its methods. Every method
returns a Result; adapters never raise into the domain.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from railway.result import Result

from cert_sync.domain.models import (
    CatalogPage,
    ImportRequest,
    RemoteCertificate,
    SourceSecret,
)


@runtime_checkable
class SecretStore(Protocol):
    """
    Port: read one secret by namespace and name.

    A missing secret is Failure(NOT_FOUND); any other read problem is
    Failure(SECRET_STORE_ERROR).
    """

    def get(self, namespace: str, name: str) -> Result[SourceSecret]: ...


@runtime_checkable
class CertificateCatalog(Protocol):
    """
    Port: page through remote certificates and fetch their details.

    `list_page` is filtered server-side to statuses ISSUED, INACTIVE,
    EXPIRED, REVOKED and to server-auth or client-auth extended key usage.
    Pass the previous page's `next_token` to continue; None starts over.
    """

    def list_page(self, next_token: str | None = None) -> Result[CatalogPage]: ...

    def describe(self, certificate_arn: str) -> Result[RemoteCertificate]: ...


@runtime_checkable
class CertificateImporter(Protocol):
    """
    Port: import certificate material, creating or replacing a record.

    With `request.certificate_arn` set, the existing record is replaced in
    place and keeps its identifier. Returns the ARN of the record.
    """

    def import_certificate(self, request: ImportRequest) -> Result[str]: ...
