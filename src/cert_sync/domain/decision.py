"""
Sync decision engine — decide between CREATE, REPLACE, and NO_OP.

    ABSENT             → CREATE   (no record serves the domain)
    VALID              → NO_OP    (record expires after now + lookahead)
    NEEDS_REPLACEMENT  → REPLACE  (record expires at or before now + lookahead)

The lookahead window makes a certificate due for replacement before it
actually expires, so it cannot lapse between two reconciliation passes as
long as passes run more often than the window. A zero window reduces the
policy to "replace once expired".
"""

from __future__ import annotations

from datetime import datetime, timedelta

from cert_sync.domain.models import (
    CatalogMatch,
    CertificateState,
    SyncAction,
    SyncDecision,
)

DEFAULT_LOOKAHEAD = timedelta(hours=72)


def decide_sync(
    match: CatalogMatch,
    now: datetime,
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
) -> SyncDecision:
    """
    Map a locator result onto the action to take.

    `now` must be timezone-aware, like the expiry timestamps ACM returns.
    A record without an expiry timestamp is replaced.
    """
    certificate = match.certificate
    if certificate is None:
        return SyncDecision(state=CertificateState.ABSENT, action=SyncAction.CREATE)

    not_after = certificate.not_after
    if not_after is not None and not_after > now + lookahead:
        return SyncDecision(
            state=CertificateState.VALID,
            action=SyncAction.NO_OP,
            certificate_arn=certificate.arn,
            not_after=not_after,
        )

    return SyncDecision(
        state=CertificateState.NEEDS_REPLACEMENT,
        action=SyncAction.REPLACE,
        certificate_arn=certificate.arn,
        not_after=not_after,
    )
