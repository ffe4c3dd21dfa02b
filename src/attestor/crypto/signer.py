from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ..errors import KeyUnavailable, VerdictNotPassed
from ..models import Attestation, Verdict
from .digest import blake2b_256, digest_bytes
from .framing import frame_message
from .keyloader import SUI_ED25519_FLAG


@runtime_checkable
class Signer(Protocol):
    def sign(self, msg: bytes) -> bytes: ...
    def public_key(self) -> bytes: ...


def sui_address(public_key: bytes) -> str:
    return "0x" + blake2b_256(bytes([SUI_ED25519_FLAG]) + public_key).hex()


@dataclass
class Ed25519Signer:
    """In-process signer over a key loaded once at startup.

    The key object is only read after construction, so one instance is shared
    by every request without locking.
    """

    key: Ed25519PrivateKey
    _public: bytes = field(init=False, repr=False)

    def __post_init__(self):
        self._public = self.key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def sign(self, msg: bytes) -> bytes:
        return self.key.sign(msg)

    def public_key(self) -> bytes:
        return self._public

    def __repr__(self) -> str:
        return f"Ed25519Signer(address={sui_address(self._public)})"


class AttestationSigner:
    """Signs passing verdicts and nothing else."""

    def __init__(self, signer: Optional[Signer]):
        self._signer = signer

    @property
    def available(self) -> bool:
        return self._signer is not None

    @property
    def public_key(self) -> bytes:
        if self._signer is None:
            raise KeyUnavailable("no signing key loaded")
        return self._signer.public_key()

    @property
    def address(self) -> str:
        return sui_address(self.public_key)

    def sign(
        self,
        subject: str,
        content_id: str,
        digest: str,
        verdict: Verdict,
        issued_at: Optional[int] = None,
    ) -> Attestation:
        if not verdict.passed:
            raise VerdictNotPassed(f"refusing to sign failing checks: {', '.join(verdict.failed_checks())}")
        if self._signer is None:
            raise KeyUnavailable("no signing key loaded")
        ts = int(time.time()) if issued_at is None else int(issued_at)
        message = frame_message(subject, content_id, digest_bytes(digest), ts)
        signature = self._signer.sign(message)
        pub = self._signer.public_key()
        return Attestation(
            subject=subject,
            content_id=content_id,
            content_digest=digest,
            verdict=verdict,
            issued_at=ts,
            message=message,
            signature=signature,
            signer_public_key=pub,
            signer_address=sui_address(pub),
        )
