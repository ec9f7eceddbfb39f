"""
Remote upsert executor — push certificate material to ACM.

CREATE imports without an ARN and lets ACM allocate one. REPLACE imports
with the existing ARN, so the record keeps its identifier and everything
referencing it (listeners, tags) picks up the new material. Both attach
the ownership tag pointing back at the source secret. NO_OP makes no call.

Failures are reported as REMOTE_UPSERT_ERROR and nothing is rolled back;
the next reconciliation pass retries.
"""

from __future__ import annotations

import structlog
from railway import ErrorCode
from railway.failure import FailureDescription
from railway.result import Result

from cert_sync.domain.models import (
    CancellationToken,
    CertificateBundle,
    ImportRequest,
    SourceSecret,
    SyncAction,
    SyncDecision,
)
from cert_sync.domain.ports import CertificateImporter

log = structlog.get_logger()

DEFAULT_OWNERSHIP_TAG_KEY = "kubernetes-secrets"


def build_import_request(
    decision: SyncDecision,
    bundle: CertificateBundle,
    private_key: bytes,
    secret: SourceSecret,
    tag_key: str = DEFAULT_OWNERSHIP_TAG_KEY,
) -> ImportRequest:
    """Assemble the import call; the ARN is carried only for REPLACE."""
    return ImportRequest(
        bundle=bundle,
        private_key=private_key,
        tags={tag_key: secret.ownership_value},
        certificate_arn=decision.certificate_arn if decision.action is SyncAction.REPLACE else None,
    )


def _as_upsert_error(error: FailureDescription) -> FailureDescription:
    if error.code in (ErrorCode.CANCELLED, ErrorCode.REMOTE_UPSERT_ERROR):
        return error
    return FailureDescription(ErrorCode.REMOTE_UPSERT_ERROR, error.message, error.exception)


def execute_upsert(
    decision: SyncDecision,
    bundle: CertificateBundle,
    private_key: bytes,
    secret: SourceSecret,
    importer: CertificateImporter,
    token: CancellationToken,
    tag_key: str = DEFAULT_OWNERSHIP_TAG_KEY,
) -> Result[str]:
    """
    Carry out `decision` and return the ARN of the remote record.

    For NO_OP this is the existing record's ARN and no remote call is made.
    """
    if decision.action is SyncAction.NO_OP:
        log.info(
            "upsert.skipped",
            reason="certificate valid",
            certificate_arn=decision.certificate_arn,
            not_after=decision.not_after.isoformat() if decision.not_after else None,
        )
        return Result.from_optional(
            decision.certificate_arn,
            "NO_OP decision carries no certificate ARN",
            ErrorCode.VALIDATION_ERROR,
        )

    request = build_import_request(decision, bundle, private_key, secret, tag_key)
    return (
        token.guard(request)
        .flat_map(importer.import_certificate)
        .map_failure(_as_upsert_error)
        .peek(
            lambda arn: log.info(
                "upsert.imported",
                action=decision.action.value,
                certificate_arn=arn,
                has_chain=bundle.has_chain,
            )
        )
    )
