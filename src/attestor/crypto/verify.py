"""Offline attestation verification.

Needs only the attestation itself: the framed message is rebuilt from the
claimed fields and the signature is checked against the embedded raw public
key. Nothing here talks to the service.
"""
from __future__ import annotations

from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from ..models import Attestation
from ..utils.ct import ct_eq
from .digest import digest_bytes
from .framing import frame_message


def verify_signature(public_key: bytes, signature: bytes, message: bytes) -> bool:
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
        return True
    except (InvalidSignature, ValueError):
        return False


def verify_attestation(att: Attestation, expected_public_key: Optional[bytes] = None) -> bool:
    if att.scheme != "ed25519":
        return False
    if not att.verdict.passed:
        return False
    if expected_public_key is not None and not ct_eq(att.signer_public_key, expected_public_key):
        return False
    try:
        rebuilt = frame_message(att.subject, att.content_id, digest_bytes(att.content_digest), att.issued_at)
    except ValueError:
        return False
    if not ct_eq(rebuilt, att.message):
        return False
    return verify_signature(att.signer_public_key, att.signature, att.message)


__all__ = ["verify_attestation", "verify_signature"]
