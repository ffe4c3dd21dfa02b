"""Sui JSON-RPC client for the two ledger operations the service needs.

Reading a subject's recorded state (``sui_getObject``) and submitting a signed
attestation as a Move call. Transactions are built server-side with
``unsafe_moveCall`` and signed locally with the service key, so the key never
leaves the process.
"""
from __future__ import annotations

import base64
import itertools
import re
from typing import Any, List, Optional

import httpx

from ..crypto.digest import blake2b_256, digest_bytes
from ..crypto.keyloader import SUI_ED25519_FLAG
from ..crypto.signer import Signer, sui_address
from ..errors import InvalidObjectType, InvalidSubjectId, LedgerError, SubmissionFailure
from ..models import Attestation, SubjectStatus, SubmissionReceipt
from ..utils.logging import get_logger, kv

log = get_logger("attestor.ledger")

OBJECT_ID_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")

# IntentMessage prefix: scope TransactionData, version V0, app Sui
TX_INTENT = bytes([0, 0, 0])


def validate_object_id(object_id) -> str:
    if not isinstance(object_id, str) or not OBJECT_ID_RE.fullmatch(object_id):
        raise InvalidSubjectId("expected a 0x-prefixed hex object id")
    return object_id


def serialize_signature(signer: Signer, tx_bytes: bytes) -> str:
    """Sign transaction bytes the way Sui validators expect.

    Result is base64 of ``flag || signature || public key`` where the signature
    covers Blake2b-256 of the intent-prefixed transaction.
    """
    sig = signer.sign(blake2b_256(TX_INTENT + tx_bytes))
    return base64.b64encode(bytes([SUI_ED25519_FLAG]) + sig + signer.public_key()).decode()


class SuiLedgerClient:
    def __init__(
        self,
        rpc_url: str,
        *,
        package_id: Optional[str] = None,
        module: str = "echo",
        function: str = "verify_handout",
        signer: Optional[Signer] = None,
        gas_budget: int = 10_000_000,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.package_id = package_id
        self.module = module
        self.function = function
        self.signer = signer
        self.gas_budget = gas_budget
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    @property
    def submission_configured(self) -> bool:
        return bool(self.package_id) and self.signer is not None

    @property
    def target(self) -> str:
        return f"{self.package_id}::{self.module}::{self.function}"

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise LedgerError(f"{method} failed: {e.__class__.__name__}") from e
        except ValueError as e:
            raise LedgerError(f"{method} returned malformed JSON") from e
        if not isinstance(body, dict):
            raise LedgerError(f"{method} returned a non-object JSON-RPC reply")
        if body.get("error"):
            err = body["error"]
            raise LedgerError(f"{method}: {err.get('message', err) if isinstance(err, dict) else err}")
        return body.get("result")

    async def get_subject_status(self, object_id: str) -> Optional[SubjectStatus]:
        validate_object_id(object_id)
        result = await self._rpc("sui_getObject", [object_id, {"showContent": True}]) or {}
        data = result.get("data")
        if not data:
            return None
        content = data.get("content") or {}
        if content.get("dataType") != "moveObject":
            raise InvalidObjectType("object is not a Move object")
        fields = content.get("fields") or {}
        return SubjectStatus(
            subject_id=object_id,
            verified=bool(fields.get("verified", False)),
            content_id=fields.get("blob_id"),
            uploader=fields.get("uploader"),
        )

    def move_call_arguments(self, att: Attestation) -> List[Any]:
        return [
            att.subject,
            att.content_id,
            list(digest_bytes(att.content_digest)),
            str(att.issued_at),
            list(att.signature),
        ]

    async def submit(self, att: Attestation) -> SubmissionReceipt:
        if not self.submission_configured:
            raise SubmissionFailure("ledger submission is not configured", attestation=att)
        sender = sui_address(self.signer.public_key())
        try:
            built = await self._rpc(
                "unsafe_moveCall",
                [sender, self.package_id, self.module, self.function, [], self.move_call_arguments(att), None, str(self.gas_budget)],
            )
            tx_b64 = built["txBytes"]
            sig = serialize_signature(self.signer, base64.b64decode(tx_b64))
            result = await self._rpc(
                "sui_executeTransactionBlock",
                [tx_b64, [sig], {"showEffects": True, "showEvents": True}, "WaitForLocalExecution"],
            )
            digest = (result or {}).get("digest")
            status = ((result or {}).get("effects") or {}).get("status") or {}
            status_value = status.get("status")
        except LedgerError as e:
            raise SubmissionFailure(e.detail, attestation=att) from e
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SubmissionFailure("ledger returned an unexpected transaction payload", attestation=att) from e
        if status_value != "success":
            log.error("submission rejected %s", kv(tx=digest, error=status.get("error")))
            raise SubmissionFailure(
                str(status.get("error") or "transaction execution failed"),
                attestation=att,
                transaction_digest=digest if isinstance(digest, str) else None,
            )
        if not isinstance(digest, str) or not digest:
            raise SubmissionFailure("ledger reported success without a transaction digest", attestation=att)
        log.info("submission accepted %s", kv(tx=digest, subject=att.subject))
        return SubmissionReceipt(transaction_digest=digest)

    async def aclose(self) -> None:
        await self._client.aclose()
