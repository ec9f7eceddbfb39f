"""
Remote certificate locator — find the ACM record serving a domain.

Walks the catalog page by page in the order ACM returns it and describes
every candidate, because the listing summary does not carry the complete
set of alternate names. The first record whose primary domain or any
alternate name equals the requested domain wins.

A traversal that fails part-way is a failure, never "not found": acting
on a partial scan could create a duplicate of a record on a later page.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

import structlog
from railway import ErrorCode
from railway.failure import FailureDescription
from railway.result import Result

from cert_sync.domain.models import (
    CancellationToken,
    CatalogMatch,
    CatalogPage,
    RemoteCertificate,
)
from cert_sync.domain.ports import CertificateCatalog

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class _Cursor:
    """Traversal progress: counters plus the token for the next page."""

    match: CatalogMatch
    next_token: str | None = None
    exhausted: bool = False


def _as_catalog_error(error: FailureDescription) -> FailureDescription:
    if error.code in (ErrorCode.CANCELLED, ErrorCode.REMOTE_CATALOG_ERROR):
        return error
    return FailureDescription(
        ErrorCode.REMOTE_CATALOG_ERROR, error.message, error.exception
    )


def _describe(
    arn: str,
    catalog: CertificateCatalog,
    token: CancellationToken,
) -> Result[RemoteCertificate]:
    return token.guard(arn).flat_map(catalog.describe)


def _scan_page(
    page: CatalogPage,
    domain: str,
    cursor: _Cursor,
    catalog: CertificateCatalog,
    token: CancellationToken,
) -> Result[_Cursor]:
    """Describe each ARN of one page until a match is found."""
    examined = cursor.match.certificates_examined
    pages = cursor.match.pages_scanned + 1

    for arn in page.certificate_arns:
        described = _describe(arn, catalog, token)
        if described.is_failure():
            return Result.failure_from(_as_catalog_error(described.error()))
        examined += 1
        certificate = described.value()
        if certificate.matches(domain):
            return Result.success(
                _Cursor(
                    match=CatalogMatch(certificate, pages, examined),
                    exhausted=True,
                )
            )

    return Result.success(
        _Cursor(
            match=replace(cursor.match, pages_scanned=pages, certificates_examined=examined),
            next_token=page.next_token,
            exhausted=not page.next_token,
        )
    )


def locate_certificate(
    domain: str,
    catalog: CertificateCatalog,
    token: CancellationToken,
) -> Result[CatalogMatch]:
    """
    Find the first remote certificate serving `domain`.

    Returns Success(CatalogMatch) on a completed traversal, with
    `certificate=None` when nothing matched. Any listing or describe
    failure is REMOTE_CATALOG_ERROR; cancellation is CANCELLED.
    """
    if not domain:
        return Result.failure(ErrorCode.VALIDATION_ERROR, "Domain name must not be empty")

    cursor = _Cursor(match=CatalogMatch())
    while not cursor.exhausted:
        page_result = token.guard(cursor).flat_map(
            lambda c: catalog.list_page(c.next_token)
        )
        if page_result.is_failure():
            return Result.failure_from(_as_catalog_error(page_result.error()))

        scanned = _scan_page(page_result.value(), domain, cursor, catalog, token)
        if scanned.is_failure():
            return Result.failure_from(scanned.error())
        cursor = scanned.value()

    if cursor.match.found:
        log.info(
            "locator.match_found",
            domain=domain,
            certificate_arn=cursor.match.certificate.arn,  # type: ignore[union-attr]
            pages_scanned=cursor.match.pages_scanned,
        )
    else:
        log.info(
            "locator.no_match",
            domain=domain,
            pages_scanned=cursor.match.pages_scanned,
            certificates_examined=cursor.match.certificates_examined,
        )
    return Result.success(cursor.match)
