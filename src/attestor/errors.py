"""Typed failures for the attestation service.

Every error carries a machine-readable ``kind`` and the HTTP status the API
layer maps it to. Callers branch on ``kind``, never on message text.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class AttestorError(Exception):
    kind = "internal_error"
    http_status = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.kind)
        self.detail = detail

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.kind}
        if self.detail:
            body["detail"] = self.detail
        return body


# client errors: fixed by the caller, never retried

class ClientError(AttestorError):
    kind = "invalid_request"
    http_status = 400


class InvalidContentId(ClientError):
    kind = "invalid_content_id"


class InvalidSubjectId(ClientError):
    kind = "invalid_subject_id"


class InvalidExpectedDigest(ClientError):
    kind = "invalid_expected_digest"


# upstream content store: caller may retry with backoff

class UpstreamError(AttestorError):
    kind = "upstream_transport"
    http_status = 502


class ContentNotFound(UpstreamError):
    kind = "content_not_found"
    http_status = 404


class FetchTimeout(UpstreamError):
    kind = "upstream_timeout"
    http_status = 504


class ContentTooLarge(UpstreamError):
    kind = "content_too_large"
    http_status = 502


class UpstreamTransportError(UpstreamError):
    kind = "upstream_transport"
    http_status = 502


class DecodeFailure(AttestorError):
    kind = "decode_failure"
    http_status = 422


# signing

class SigningUnavailable(AttestorError):
    kind = "signing_unavailable"
    http_status = 503


class KeyUnavailable(SigningUnavailable):
    kind = "key_unavailable"


class VerdictNotPassed(AttestorError):
    """Raised when something asks the signer to sign a failing verdict."""

    kind = "verdict_not_passed"
    http_status = 422


class PolicyRejection(AttestorError):
    """Verification completed and the content failed policy."""

    kind = "verification_failed"
    http_status = 422

    def __init__(self, verdict, content_digest: str):
        super().__init__("content failed policy checks")
        self.verdict = verdict
        self.content_digest = content_digest

    def to_body(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "verdict": self.verdict.checks_dict(),
            "contentDigest": self.content_digest,
        }


# ledger

class LedgerError(AttestorError):
    kind = "ledger_error"
    http_status = 502


class LedgerUnavailable(LedgerError):
    kind = "ledger_unavailable"
    http_status = 503


class InvalidObjectType(LedgerError):
    kind = "invalid_object_type"
    http_status = 400


class SubmissionFailure(LedgerError):
    """The attestation exists but the ledger did not accept it."""

    kind = "submission_failed"
    http_status = 502

    def __init__(self, detail: str, attestation=None, transaction_digest: Optional[str] = None):
        super().__init__(detail)
        self.attestation = attestation
        self.transaction_digest = transaction_digest

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "status": "submission_failed",
            "error": self.kind,
            "detail": self.detail,
        }
        if self.attestation is not None:
            body["attestation"] = self.attestation.to_json()
        if self.transaction_digest:
            body["transactionDigest"] = self.transaction_digest
        return body
