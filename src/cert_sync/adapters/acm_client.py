"""
ACM adapter — certificate catalog and importer backed by boto3.

Adapter layer — implements the CertificateCatalog and CertificateImporter
ports on top of one shared `acm` client. The client is built once per
process by `build_acm_client` and injected here; it is thread-safe, so
concurrent reconciliations share it.

botocore handles transient retries according to its configured retry mode;
anything it gives up on is captured into a Result failure. No exception
leaks to the domain layer.
"""

from __future__ import annotations

from typing import Any

import boto3
import structlog
from botocore.config import Config
from railway import ErrorCode
from railway.result import Result

from cert_sync.config import AwsSettings
from cert_sync.domain.models import CatalogPage, ImportRequest, RemoteCertificate

log = structlog.get_logger()

CANDIDATE_STATUSES = ["ISSUED", "INACTIVE", "EXPIRED", "REVOKED"]
CANDIDATE_KEY_USAGES = ["TLS_WEB_SERVER_AUTHENTICATION", "TLS_WEB_CLIENT_AUTHENTICATION"]
# ListCertificates returns only RSA_1024 and RSA_2048 records unless key types are named.
CANDIDATE_KEY_TYPES = [
    "RSA_1024",
    "RSA_2048",
    "RSA_3072",
    "RSA_4096",
    "EC_prime256v1",
    "EC_secp384r1",
    "EC_secp521r1",
]


def build_acm_client(settings: AwsSettings) -> Any:
    """
    Create the process-wide ACM client.

    Credentials come from boto3's default provider chain.
    """
    config = Config(
        retries={"max_attempts": settings.max_attempts, "mode": settings.retry_mode},
        connect_timeout=settings.connect_timeout_seconds,
        read_timeout=settings.read_timeout_seconds,
    )
    return boto3.client(
        "acm",
        region_name=settings.region,
        endpoint_url=settings.endpoint_url,
        config=config,
    )


def _to_remote_certificate(detail: dict[str, Any]) -> RemoteCertificate:
    return RemoteCertificate(
        arn=detail["CertificateArn"],
        domain_name=detail.get("DomainName", ""),
        subject_alternative_names=tuple(detail.get("SubjectAlternativeNames", ())),
        not_after=detail.get("NotAfter"),
        status=detail.get("Status"),
    )


class AcmCertificateCatalog:
    """
    Page through ACM certificates usable for TLS and describe them.

    Implements the CertificateCatalog port.
    """

    def __init__(self, client: Any, page_size: int | None = None) -> None:
        self._client = client
        self._page_size = page_size

    def list_page(self, next_token: str | None = None) -> Result[CatalogPage]:
        """
        Fetch one page of ListCertificates.

        Returns Result[CatalogPage] on success,
        or Result.failure(REMOTE_CATALOG_ERROR, ...) on failure.
        """
        return Result.from_computation(
            lambda: self._do_list(next_token),
            ErrorCode.REMOTE_CATALOG_ERROR,
            "ListCertificates failed",
        )

    def describe(self, certificate_arn: str) -> Result[RemoteCertificate]:
        """
        Fetch the full detail record of one certificate.

        Returns Result[RemoteCertificate] on success,
        or Result.failure(REMOTE_CATALOG_ERROR, ...) on failure.
        """
        return Result.from_computation(
            lambda: self._do_describe(certificate_arn),
            ErrorCode.REMOTE_CATALOG_ERROR,
            f"DescribeCertificate failed for {certificate_arn}",
        )

    def _do_list(self, next_token: str | None) -> CatalogPage:
        params: dict[str, Any] = {
            "CertificateStatuses": CANDIDATE_STATUSES,
            "Includes": {
                "extendedKeyUsage": CANDIDATE_KEY_USAGES,
                "keyTypes": CANDIDATE_KEY_TYPES,
            },
        }
        if next_token:
            params["NextToken"] = next_token
        if self._page_size is not None:
            params["MaxItems"] = self._page_size

        response = self._client.list_certificates(**params)
        arns = tuple(
            summary["CertificateArn"]
            for summary in response.get("CertificateSummaryList", [])
        )
        log.debug("acm.page_listed", certificates=len(arns), has_more=bool(response.get("NextToken")))
        return CatalogPage(certificate_arns=arns, next_token=response.get("NextToken") or None)

    def _do_describe(self, certificate_arn: str) -> RemoteCertificate:
        response = self._client.describe_certificate(CertificateArn=certificate_arn)
        return _to_remote_certificate(response["Certificate"])


class AcmCertificateImporter:
    """
    Import certificate material into ACM.

    Implements the CertificateImporter port. ACM refuses tags on a
    re-import, so for a replacement the ownership tag is applied with a
    separate AddTagsToCertificate call on the same ARN.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    def import_certificate(self, request: ImportRequest) -> Result[str]:
        """
        Import (or re-import, when `request.certificate_arn` is set) and tag.

        Returns Result[str] with the certificate ARN on success,
        or Result.failure(REMOTE_UPSERT_ERROR, ...) on failure.
        """
        action = "Re-import" if request.is_reimport else "Import"
        return Result.from_computation(
            lambda: self._do_import(request),
            ErrorCode.REMOTE_UPSERT_ERROR,
            f"{action} of certificate failed",
        )

    def _do_import(self, request: ImportRequest) -> str:
        tags = [{"Key": key, "Value": value} for key, value in request.tags.items()]
        params: dict[str, Any] = {
            "Certificate": request.bundle.leaf,
            "PrivateKey": request.private_key,
        }
        if request.bundle.has_chain:
            params["CertificateChain"] = request.bundle.chain
        if request.is_reimport:
            params["CertificateArn"] = request.certificate_arn
        elif tags:
            params["Tags"] = tags

        arn: str = self._client.import_certificate(**params)["CertificateArn"]

        if request.is_reimport and tags:
            self._client.add_tags_to_certificate(CertificateArn=arn, Tags=tags)
        log.debug("acm.certificate_imported", certificate_arn=arn, reimport=request.is_reimport)
        return arn
