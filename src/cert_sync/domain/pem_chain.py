"""
PEM chain splitter — separate the leaf certificate from its intermediates.

cert-manager writes `tls.crt` as the leaf followed by the issuing chain.
ACM wants them apart: `Certificate` holds the leaf, `CertificateChain` the
rest. Blocks are decoded with asn1crypto and re-armored, so the output is
normalized PEM regardless of the input's line endings or wrapping.
Re-armoring keeps only the type label and the payload: RFC 1421 style
headers (`Proc-Type: ...`) inside a block are not carried over.

No certificate is parsed or validated here; only the PEM type label matters.
"""

from __future__ import annotations

import re

import structlog
from asn1crypto import pem
from railway import ErrorCode
from railway.result import Result

from cert_sync.domain.models import CertificateBundle

log = structlog.get_logger()

CERTIFICATE_BLOCK = "CERTIFICATE"
_BLOCK_START = re.compile(rb"^-----BEGIN ", re.MULTILINE)


def _candidate_spans(pem_bytes: bytes) -> list[bytes]:
    """Cut the input at every BEGIN line so each span holds at most one block."""
    starts = [match.start() for match in _BLOCK_START.finditer(pem_bytes)]
    return [pem_bytes[start:end] for start, end in zip(starts, [*starts[1:], len(pem_bytes)])]


def _certificate_blocks(pem_bytes: bytes) -> list[bytes]:
    """
    Decode PEM blocks in order and keep the DER payload of CERTIFICATE ones.

    A span that does not decode (no END line, bad base64) is skipped and
    decoding resumes at the next BEGIN line.
    """
    blocks: list[bytes] = []
    for span in _candidate_spans(pem_bytes):
        try:
            block_type, _headers, der_bytes = pem.unarmor(span)
        except ValueError as e:
            log.debug("pem_chain.block_skipped", error=str(e))
            continue
        if block_type == CERTIFICATE_BLOCK:
            blocks.append(der_bytes)
    return blocks


def split_certificate_chain(pem_bytes: bytes) -> Result[CertificateBundle]:
    """
    Split a PEM bundle into leaf and chain.

    The first CERTIFICATE block is the leaf; any later CERTIFICATE blocks,
    concatenated in their original order, form the chain. Other block types
    (keys, parameters) are skipped. Fails with MALFORMED_CERTIFICATE_INPUT
    when no CERTIFICATE block is present.
    """
    if not pem_bytes or not pem.detect(pem_bytes):
        return Result.failure(
            ErrorCode.MALFORMED_CERTIFICATE_INPUT, "No PEM data found in certificate payload"
        )

    blocks = _certificate_blocks(pem_bytes)
    if not blocks:
        return Result.failure(
            ErrorCode.MALFORMED_CERTIFICATE_INPUT, "No certificates found in PEM data"
        )

    leaf = pem.armor(CERTIFICATE_BLOCK, blocks[0])
    chain = b"".join(pem.armor(CERTIFICATE_BLOCK, der) for der in blocks[1:])
    return Result.success(CertificateBundle(leaf=leaf, chain=chain))
