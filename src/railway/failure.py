"""
Failure description — structured error information for the failure track.

ErrorCode enumerates every way a secret sync can leave the happy path.
Two of them (NOT_FOUND, NOT_ELIGIBLE) are expected outcomes that the
reconciler turns into a silent no-op; everything else is reported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """Structured error codes for the failure track."""

    # --- Expected skips (never surfaced as errors) ---
    NOT_FOUND = "NOT_FOUND"
    """The source secret no longer exists."""

    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    """The secret is not opted in, not TLS, or has no domain annotation."""

    # --- Reported failures ---
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Invalid input handed to a domain operation."""

    MALFORMED_CERTIFICATE_INPUT = "MALFORMED_CERTIFICATE_INPUT"
    """The certificate payload holds no CERTIFICATE PEM block."""

    REMOTE_CATALOG_ERROR = "REMOTE_CATALOG_ERROR"
    """Listing or describing remote certificates failed."""

    REMOTE_UPSERT_ERROR = "REMOTE_UPSERT_ERROR"
    """Importing or tagging a remote certificate failed."""

    SECRET_STORE_ERROR = "SECRET_STORE_ERROR"
    """Reading the source secret failed for a reason other than absence."""

    CANCELLED = "CANCELLED"
    """The reconciliation was cancelled or ran past its deadline."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Unexpected exception escaping a stage."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    What went wrong: a code for the caller to branch on, a message for the
    log, and the originating exception when there was one.

    >>> str(FailureDescription(ErrorCode.REMOTE_CATALOG_ERROR, "ListCertificates failed"))
    'REMOTE_CATALOG_ERROR: ListCertificates failed'
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"
