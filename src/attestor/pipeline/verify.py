"""Verification pipeline: fetch, canonicalize, evaluate, sign, submit.

One call to :meth:`VerificationPipeline.run` walks

    Fetching -> Canonicalizing -> Evaluating -> Signing -> Attested
                                             \\-> Rejected
    (any stage) -> Failed

and returns a :class:`PipelineResult` describing the terminal state. Expected
failures come back as values carrying a typed error; only programming errors
escape as exceptions. Nothing is retried.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from ..crypto.digest import normalize_hex_digest
from ..crypto.signer import AttestationSigner
from ..errors import (
    AttestorError,
    ClientError,
    DecodeFailure,
    InvalidExpectedDigest,
    InvalidSubjectId,
    PolicyRejection,
    SubmissionFailure,
    UpstreamError,
)
from ..models import Attestation, SubmissionReceipt, Verdict
from ..obs.prom import observe_submission, observe_verification
from ..store.content import validate_content_id
from ..utils.logging import get_logger, kv
from .canonical import canonicalize
from .policy import PolicyEvaluator

log = get_logger("attestor.pipeline")

DEFAULT_SUBJECT_PATTERN = r"^[A-Za-z0-9_:-]{1,256}$"


class State(str, Enum):
    FETCHING = "fetching"
    CANONICALIZING = "canonicalizing"
    EVALUATING = "evaluating"
    SIGNING = "signing"
    ATTESTED = "attested"
    VERIFIED_LOCALLY = "verified_locally"
    REJECTED = "rejected"
    FAILED = "failed"
    SUBMISSION_FAILED = "submission_failed"


class ContentStore(Protocol):
    async def fetch(self, content_id: str) -> bytes: ...


class Ledger(Protocol):
    async def submit(self, att: Attestation) -> SubmissionReceipt: ...


@dataclass(frozen=True)
class VerificationRequest:
    content_id: str
    subject_id: str
    expected_digest: Optional[str] = None

    @classmethod
    def parse(cls, body: Any, subject_pattern: str = DEFAULT_SUBJECT_PATTERN) -> "VerificationRequest":
        if not isinstance(body, dict):
            raise ClientError("request body must be a JSON object")
        content_id = validate_content_id(body.get("contentId"))
        subject_id = body.get("subjectId")
        if not isinstance(subject_id, str) or not subject_id:
            raise InvalidSubjectId("subjectId must be a non-empty string")
        if not re.fullmatch(subject_pattern, subject_id):
            raise InvalidSubjectId("subjectId has an unsupported format")
        expected = body.get("expectedDigest")
        if expected is not None and expected != "":
            try:
                expected = normalize_hex_digest(expected)
            except ValueError as e:
                raise InvalidExpectedDigest(str(e)) from e
        else:
            expected = None
        return cls(content_id=content_id, subject_id=subject_id, expected_digest=expected)


@dataclass(frozen=True)
class PipelineResult:
    state: State
    verdict: Optional[Verdict] = None
    content_digest: Optional[str] = None
    attestation: Optional[Attestation] = None
    submission: Optional[SubmissionReceipt] = None
    error: Optional[AttestorError] = None

    @property
    def http_status(self) -> int:
        if self.error is not None:
            return self.error.http_status
        return 200

    def to_body(self) -> Dict[str, Any]:
        if self.error is not None:
            return self.error.to_body()
        body: Dict[str, Any] = {
            "status": self.state.value,
            "contentDigest": self.content_digest,
            "verdict": self.verdict.checks_dict() if self.verdict else None,
        }
        if self.state is State.VERIFIED_LOCALLY:
            body["message"] = "Content verified. Attestation skipped: signing key not configured."
        if self.attestation is not None:
            body["attestation"] = self.attestation.to_json()
        if self.submission is not None:
            body["submission"] = self.submission.to_json()
        return body


class VerificationPipeline:
    def __init__(
        self,
        store: ContentStore,
        evaluator: PolicyEvaluator,
        signer: AttestationSigner,
        ledger: Optional[Ledger] = None,
    ):
        self.store = store
        self.evaluator = evaluator
        self.signer = signer
        self.ledger = ledger

    async def run(self, req: VerificationRequest) -> PipelineResult:
        ctx = kv(content_id=req.content_id, subject=req.subject_id)
        log.info("verification started %s", ctx)

        try:
            data = await self.store.fetch(req.content_id)
        except UpstreamError as e:
            return self._finish(PipelineResult(State.FAILED, error=e), ctx, stage=State.FETCHING)

        try:
            content = canonicalize(data)
        except DecodeFailure as e:
            return self._finish(PipelineResult(State.FAILED, error=e), ctx, stage=State.CANONICALIZING)

        verdict = self.evaluator.evaluate(content, req.expected_digest)
        if not verdict.passed:
            log.warning("verification rejected %s", kv(content_id=req.content_id, failed=",".join(verdict.failed_checks())))
            return self._finish(PipelineResult(
                State.REJECTED,
                verdict=verdict,
                content_digest=content.digest,
                error=PolicyRejection(verdict, content.digest),
            ), ctx)

        if not self.signer.available:
            log.warning("signing key not configured, returning local verdict %s", ctx)
            return self._finish(PipelineResult(State.VERIFIED_LOCALLY, verdict=verdict, content_digest=content.digest), ctx)

        att = self.signer.sign(req.subject_id, req.content_id, content.digest, verdict)

        if self.ledger is None:
            return self._finish(PipelineResult(State.ATTESTED, verdict=verdict, content_digest=content.digest, attestation=att), ctx)

        try:
            receipt = await self.ledger.submit(att)
        except SubmissionFailure as e:
            observe_submission(False)
            if e.attestation is None:
                e.attestation = att
            return self._finish(PipelineResult(
                State.SUBMISSION_FAILED,
                verdict=verdict,
                content_digest=content.digest,
                attestation=att,
                error=e,
            ), ctx)
        observe_submission(True)
        return self._finish(PipelineResult(
            State.ATTESTED,
            verdict=verdict,
            content_digest=content.digest,
            attestation=att,
            submission=receipt,
        ), ctx)

    def _finish(self, result: PipelineResult, ctx: str, stage: Optional[State] = None) -> PipelineResult:
        kind = result.error.kind if result.error is not None else ""
        observe_verification(state=result.state.value, kind=kind)
        if result.state is State.FAILED:
            log.warning("verification failed %s %s", ctx, kv(stage=stage.value if stage else None, kind=kind, detail=result.error.detail))
        else:
            log.info("verification finished %s %s", ctx, kv(state=result.state.value, digest=result.content_digest))
        return result
