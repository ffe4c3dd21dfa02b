import asyncio
import base64
import hashlib
import json

import httpx
import pytest

from attestor.crypto.signer import AttestationSigner, Ed25519Signer
from attestor.crypto.verify import verify_attestation, verify_signature
from attestor.errors import InvalidObjectType, InvalidSubjectId, LedgerError, SubmissionFailure
from attestor.ledger.sui import SuiLedgerClient, TX_INTENT
from attestor.models import Verdict
from attestor.pipeline.policy import PolicyEvaluator
from attestor.pipeline.verify import State, VerificationPipeline, VerificationRequest

RPC = "https://fullnode.test"
PASS = Verdict(min_length=True, digest_match=True, integrity=True)
DIGEST = hashlib.sha256(b"Hello, accessible world!").hexdigest()


class FakeNode:
    def __init__(self, objects=None, effects_status="success"):
        self.objects = objects or {}
        self.effects_status = effects_status
        self.calls = []

    def __call__(self, request):
        body = json.loads(request.content)
        self.calls.append(body)
        method, params = body["method"], body["params"]
        if method == "sui_getObject":
            obj = self.objects.get(params[0])
            if obj is None:
                result = {"error": {"code": "notExists", "object_id": params[0]}}
            else:
                result = {"data": {"objectId": params[0], "content": obj}}
        elif method == "unsafe_moveCall":
            result = {"txBytes": base64.b64encode(b"tx-data").decode()}
        elif method == "sui_executeTransactionBlock":
            status = {"status": self.effects_status}
            if self.effects_status != "success":
                status["error"] = "MoveAbort(verify_handout, 3)"
            result = {"digest": "TxDigest111", "effects": {"status": status}}
        else:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "no such method"}})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


def _ledger(node, signer=None, package_id="0xpkg"):
    return SuiLedgerClient(RPC, package_id=package_id, signer=signer, transport=httpx.MockTransport(node))


def _run(coro_fn):
    return asyncio.run(coro_fn())


def test_status_of_move_object():
    node = FakeNode({"0xabc": {"dataType": "moveObject", "fields": {"verified": True, "blob_id": "blob1", "uploader": "0xfeed"}}})
    ledger = _ledger(node)
    status = _run(lambda: ledger.get_subject_status("0xabc"))
    assert status.to_json() == {"subjectId": "0xabc", "verified": True, "contentId": "blob1", "uploader": "0xfeed"}
    assert node.calls[0]["params"] == ["0xabc", {"showContent": True}]


def test_status_absent_and_wrong_type():
    node = FakeNode({"0xbad": {"dataType": "package"}})
    ledger = _ledger(node)
    assert _run(lambda: ledger.get_subject_status("0x404")) is None
    with pytest.raises(InvalidObjectType):
        _run(lambda: ledger.get_subject_status("0xbad"))
    with pytest.raises(InvalidSubjectId):
        _run(lambda: ledger.get_subject_status("abc"))


def test_rpc_error_is_ledger_error():
    def handler(request):
        return httpx.Response(500)

    with pytest.raises(LedgerError):
        _run(lambda: _ledger(handler).get_subject_status("0xabc"))


def test_submit_signs_intent_digest(private_key, public_key):
    raw = Ed25519Signer(private_key)
    att = AttestationSigner(raw).sign("0x5e1f", "hello-blob", DIGEST, PASS, issued_at=1700000000)
    node = FakeNode()
    receipt = _run(lambda: _ledger(node, signer=raw).submit(att))
    assert receipt.transaction_digest == "TxDigest111"

    move_call = node.calls[0]["params"]
    assert move_call[1:5] == ["0xpkg", "echo", "verify_handout", []]
    assert move_call[5] == ["0x5e1f", "hello-blob", list(bytes.fromhex(DIGEST)), "1700000000", list(att.signature)]

    tx_b64, sigs = node.calls[1]["params"][:2]
    serialized = base64.b64decode(sigs[0])
    assert serialized[0] == 0x00
    assert serialized[65:] == public_key
    intent_digest = hashlib.blake2b(TX_INTENT + base64.b64decode(tx_b64), digest_size=32).digest()
    assert verify_signature(public_key, serialized[1:65], intent_digest)


def test_failed_effects_raise_with_attestation(private_key):
    raw = Ed25519Signer(private_key)
    att = AttestationSigner(raw).sign("0x5e1f", "hello-blob", DIGEST, PASS)
    with pytest.raises(SubmissionFailure) as ei:
        _run(lambda: _ledger(FakeNode(effects_status="failure"), signer=raw).submit(att))
    assert ei.value.attestation == att
    assert ei.value.transaction_digest == "TxDigest111"
    assert "MoveAbort" in ei.value.detail


def test_submission_needs_package_and_key(private_key):
    assert _ledger(FakeNode(), signer=None).submission_configured is False
    assert _ledger(FakeNode(), signer=Ed25519Signer(private_key), package_id=None).submission_configured is False
    assert _ledger(FakeNode(), signer=Ed25519Signer(private_key)).submission_configured is True


def _replying(execute_reply, build_reply=None):
    def handler(request):
        body = json.loads(request.content)
        if body["method"] == "unsafe_moveCall":
            reply = build_reply if build_reply is not None else {
                "jsonrpc": "2.0", "id": body["id"], "result": {"txBytes": base64.b64encode(b"tx").decode()},
            }
        else:
            reply = execute_reply
        return httpx.Response(200, json=reply)

    return handler


@pytest.mark.parametrize("build_reply, execute_reply", [
    (["oops"], None),
    (None, ["oops"]),
    (None, {"jsonrpc": "2.0", "id": 2, "result": "weird"}),
    (None, {"jsonrpc": "2.0", "id": 2, "result": {"digest": "Tx1", "effects": "weird"}}),
    (None, {"jsonrpc": "2.0", "id": 2, "result": {"effects": {"status": {"status": "success"}}}}),
])
def test_malformed_replies_keep_attestation(private_key, build_reply, execute_reply):
    raw = Ed25519Signer(private_key)
    att = AttestationSigner(raw).sign("0x5e1f", "hello-blob", DIGEST, PASS)
    ledger = _ledger(_replying(execute_reply, build_reply), signer=raw)
    with pytest.raises(SubmissionFailure) as ei:
        _run(lambda: ledger.submit(att))
    assert ei.value.attestation == att


def test_non_object_reply_on_status_is_ledger_error():
    def handler(request):
        return httpx.Response(200, json=["oops"])

    with pytest.raises(LedgerError):
        _run(lambda: _ledger(handler).get_subject_status("0xabc"))


def test_pipeline_reports_submission_failure_on_malformed_reply(store, private_key):
    raw = Ed25519Signer(private_key)
    ledger = _ledger(_replying({"jsonrpc": "2.0", "id": 2, "result": "weird"}), signer=raw)
    pipeline = VerificationPipeline(store, PolicyEvaluator(), AttestationSigner(raw), ledger=ledger)
    res = asyncio.run(pipeline.run(VerificationRequest(content_id="hello-blob", subject_id="0x5e1f")))
    assert res.state is State.SUBMISSION_FAILED
    body = res.to_body()
    assert body["status"] == "submission_failed"
    assert verify_attestation(res.attestation)
