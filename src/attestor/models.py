from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


ATTESTATION_VERSION = "echo-attestation/v1"


def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode()


def utc_iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def parse_utc_iso(value: str) -> int:
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())


class CanonicalContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    length: int
    byte_length: int
    digest: str  # hex sha-256 over the canonical UTF-8 bytes


class Verdict(BaseModel):
    """Named policy checks. Only the policy evaluator builds these."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    min_length: bool = Field(alias="minLength")
    digest_match: bool = Field(alias="digestMatch")
    integrity: bool

    @property
    def passed(self) -> bool:
        return self.min_length and self.digest_match and self.integrity

    def checks_dict(self) -> Dict[str, bool]:
        return {
            "minLength": self.min_length,
            "digestMatch": self.digest_match,
            "integrity": self.integrity,
        }

    def failed_checks(self) -> List[str]:
        return [name for name, ok in self.checks_dict().items() if not ok]


class Attestation(BaseModel):
    """Signed claim that ``subject`` verified ``content_id`` at ``issued_at``.

    ``message`` is the exact framed byte string that was signed; verifiers
    rebuild it from the other fields and compare before checking the
    signature.
    """

    model_config = ConfigDict(frozen=True)

    version: str = ATTESTATION_VERSION
    scheme: str = "ed25519"
    subject: str
    content_id: str
    content_digest: str
    verdict: Verdict
    issued_at: int
    message: bytes
    signature: bytes
    signer_public_key: bytes
    signer_address: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "scheme": self.scheme,
            "subject": self.subject,
            "contentId": self.content_id,
            "contentDigest": self.content_digest,
            "verdict": {**self.verdict.checks_dict(), "passed": self.verdict.passed},
            "issuedAt": utc_iso(self.issued_at),
            "message": _b64(self.message),
            "signature": _b64(self.signature),
            "signerPublicKey": _b64(self.signer_public_key),
            "signerAddress": self.signer_address,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Attestation":
        verdict = {k: v for k, v in (data.get("verdict") or {}).items() if k != "passed"}
        return cls(
            version=data.get("version", ATTESTATION_VERSION),
            scheme=data.get("scheme", "ed25519"),
            subject=data["subject"],
            content_id=data["contentId"],
            content_digest=data["contentDigest"],
            verdict=Verdict(**verdict),
            issued_at=parse_utc_iso(data["issuedAt"]),
            message=base64.b64decode(data["message"]),
            signature=base64.b64decode(data["signature"]),
            signer_public_key=base64.b64decode(data["signerPublicKey"]),
            signer_address=data.get("signerAddress"),
        )


class SubmissionReceipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_digest: str
    status: str = "success"

    def to_json(self) -> Dict[str, Any]:
        return {"transactionDigest": self.transaction_digest, "status": self.status}


class SubjectStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject_id: str
    verified: bool = False
    content_id: Optional[str] = None
    uploader: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "verified": self.verified,
            "contentId": self.content_id,
            "uploader": self.uploader,
        }
