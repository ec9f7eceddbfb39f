"""
Domain models — immutable value objects for secrets, certificates, and decisions.

All models are frozen dataclasses. They carry no I/O; adapters build them
from Kubernetes and ACM payloads and the domain functions consume them.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, unique
from typing import TypeVar

from railway import ErrorCode
from railway.failure import FailureDescription
from railway.result import Result

T = TypeVar("T")

# ─────────────────────── Secret contract ───────────────────────
# Keys are part of the external contract and must match bit for bit.

SYNC_ANNOTATION = "sync-to-acm"
DOMAIN_ANNOTATION = "cert-manager.io/common-name"
TLS_SECRET_TYPE = "kubernetes.io/tls"
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"


@dataclass(frozen=True, slots=True)
class SecretRef:
    """Namespace/name pair identifying a source secret."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True, slots=True)
class SourceSecret:
    """
    A certificate-bearing secret as read from the secret store.

    Owned by the external issuer; this service only reads it.
    """

    namespace: str
    name: str
    type: str
    annotations: dict[str, str] = field(default_factory=dict)
    certificate_pem: bytes = field(default=b"", repr=False)
    private_key_pem: bytes = field(default=b"", repr=False)

    @property
    def ref(self) -> SecretRef:
        return SecretRef(self.namespace, self.name)

    @property
    def sync_enabled(self) -> bool:
        return self.annotations.get(SYNC_ANNOTATION) == "true"

    @property
    def is_tls(self) -> bool:
        return self.type == TLS_SECRET_TYPE

    @property
    def domain_name(self) -> str:
        return self.annotations.get(DOMAIN_ANNOTATION) or ""

    @property
    def ownership_value(self) -> str:
        """Value of the ownership tag attached to the remote certificate."""
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True, slots=True)
class CertificateBundle:
    """
    Leaf certificate plus the intermediate chain, both PEM encoded.

    `chain` is empty when the source held a single certificate.
    """

    leaf: bytes = field(repr=False)
    chain: bytes = field(default=b"", repr=False)

    @property
    def has_chain(self) -> bool:
        return bool(self.chain)


@dataclass(frozen=True, slots=True)
class RemoteCertificate:
    """Detail record of a certificate hosted by ACM."""

    arn: str
    domain_name: str
    subject_alternative_names: tuple[str, ...] = ()
    not_after: datetime | None = None
    status: str | None = None

    def matches(self, domain: str) -> bool:
        """Exact match against the primary domain or any alternate name."""
        return self.domain_name == domain or domain in self.subject_alternative_names


@dataclass(frozen=True, slots=True)
class CatalogPage:
    """One page of the remote certificate listing."""

    certificate_arns: tuple[str, ...] = ()
    next_token: str | None = None


@dataclass(frozen=True, slots=True)
class CatalogMatch:
    """
    Outcome of a completed catalog traversal.

    `certificate` is None when the traversal finished without a match.
    A failed traversal never produces a CatalogMatch.
    """

    certificate: RemoteCertificate | None = None
    pages_scanned: int = 0
    certificates_examined: int = 0

    @property
    def found(self) -> bool:
        return self.certificate is not None


@unique
class CertificateState(Enum):
    ABSENT = "ABSENT"
    VALID = "VALID"
    NEEDS_REPLACEMENT = "NEEDS_REPLACEMENT"


@unique
class SyncAction(Enum):
    CREATE = "CREATE"
    REPLACE = "REPLACE"
    NO_OP = "NO_OP"


@dataclass(frozen=True, slots=True)
class SyncDecision:
    """
    What to do with the remote side for one secret.

    `certificate_arn` is the existing record for REPLACE and NO_OP,
    and None for CREATE.
    """

    state: CertificateState
    action: SyncAction
    certificate_arn: str | None = None
    not_after: datetime | None = None


@dataclass(frozen=True, slots=True)
class ImportRequest:
    """Material and metadata for one ImportCertificate call."""

    bundle: CertificateBundle
    private_key: bytes = field(repr=False)
    tags: dict[str, str] = field(default_factory=dict)
    certificate_arn: str | None = None

    @property
    def is_reimport(self) -> bool:
        return self.certificate_arn is not None


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Success value of one reconciliation pass."""

    secret: SecretRef
    domain_name: str
    action: SyncAction
    certificate_arn: str


@dataclass(frozen=True, slots=True)
class ReconcileOutcome:
    """
    What the caller should do next, and what went wrong if anything.

    `requeue_after` None means "do not requeue".
    """

    requeue_after: timedelta | None = None
    failure: FailureDescription | None = None
    action: SyncAction | None = None
    certificate_arn: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None


class CancellationToken:
    """
    Cooperative cancellation signal with an optional deadline.

    A child token is cancelled when its parent is, so one process-wide
    token can stop every in-flight reconciliation at shutdown.
    """

    def __init__(
        self,
        timeout_seconds: float | None = None,
        parent: CancellationToken | None = None,
    ) -> None:
        self._event = threading.Event()
        self._parent = parent
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def cancel(self) -> None:
        self._event.set()

    def child(self, timeout_seconds: float | None = None) -> CancellationToken:
        return CancellationToken(timeout_seconds=timeout_seconds, parent=self)

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set() or self.deadline_exceeded:
            return True
        return self._parent is not None and self._parent.cancelled

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancel. Returns `cancelled`."""
        self._event.wait(seconds)
        return self.cancelled

    def guard(self, value: T) -> Result[T]:
        """Pass `value` through, or fail with CANCELLED if the token has fired."""
        if self.cancelled:
            reason = "deadline exceeded" if self.deadline_exceeded else "cancelled"
            return Result.failure(ErrorCode.CANCELLED, f"Reconciliation {reason}")
        return Result.success(value)
