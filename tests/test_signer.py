import base64
import hashlib

import pytest
from cryptography.hazmat.primitives import serialization
from hypothesis import given, strategies as st

from attestor.crypto.framing import frame_message
from attestor.crypto.keyloader import _BECH32_CHARSET, _bech32_polymod, load_signing_key, parse_secret_key
from attestor.crypto.signer import AttestationSigner, Ed25519Signer, sui_address
from attestor.crypto.verify import verify_attestation, verify_signature
from attestor.errors import KeyUnavailable, VerdictNotPassed
from attestor.models import Attestation, Verdict

DIGEST = hashlib.sha256(b"Hello, accessible world!").hexdigest()
PASS = Verdict(min_length=True, digest_match=True, integrity=True)


@pytest.fixture
def att_signer(private_key):
    return AttestationSigner(Ed25519Signer(private_key))


def test_signed_attestation_verifies_from_its_own_fields(att_signer, public_key):
    att = att_signer.sign("0x5e1f", "hello-blob", DIGEST, PASS, issued_at=1700000000)
    assert att.signer_public_key == public_key
    assert att.message == frame_message("0x5e1f", "hello-blob", bytes.fromhex(DIGEST), 1700000000)
    # only message, signature and public key are needed
    assert verify_signature(att.signer_public_key, att.signature, att.message)
    assert verify_attestation(att)
    assert verify_attestation(att, expected_public_key=public_key)


def test_json_roundtrip_still_verifies(att_signer):
    att = att_signer.sign("0x5e1f", "hello-blob", DIGEST, PASS, issued_at=1700000000)
    data = att.to_json()
    assert data["issuedAt"] == "2023-11-14T22:13:20Z"
    assert data["verdict"]["passed"] is True
    assert verify_attestation(Attestation.from_json(data))


def test_tampered_fields_fail_verification(att_signer):
    att = att_signer.sign("0x5e1f", "hello-blob", DIGEST, PASS, issued_at=1700000000)
    assert not verify_attestation(att.model_copy(update={"subject": "0x5e1e"}))
    assert not verify_attestation(att.model_copy(update={"content_id": "other"}))
    assert not verify_attestation(att.model_copy(update={"issued_at": 1700000001}))
    flipped = bytearray(att.signature)
    flipped[0] ^= 1
    assert not verify_attestation(att.model_copy(update={"signature": bytes(flipped)}))


def test_pinned_key_mismatch_fails(att_signer):
    att = att_signer.sign("0x5e1f", "hello-blob", DIGEST, PASS)
    assert not verify_attestation(att, expected_public_key=b"\x00" * 32)


@given(st.tuples(st.booleans(), st.booleans(), st.booleans()).filter(lambda t: not all(t)))
def test_failing_verdict_is_never_signed(checks):
    signer = AttestationSigner(Ed25519Signer(parse_secret_key("01" * 32)))
    verdict = Verdict(min_length=checks[0], digest_match=checks[1], integrity=checks[2])
    with pytest.raises(VerdictNotPassed):
        signer.sign("0x5e1f", "hello-blob", DIGEST, verdict)


def test_missing_key_is_key_unavailable():
    signer = AttestationSigner(None)
    assert signer.available is False
    with pytest.raises(KeyUnavailable):
        signer.sign("0x5e1f", "hello-blob", DIGEST, PASS)


def test_sui_address_derivation(public_key):
    expected = "0x" + hashlib.blake2b(b"\x00" + public_key, digest_size=32).hexdigest()
    assert sui_address(public_key) == expected


def _bech32_encode(hrp: str, payload: bytes) -> str:
    acc, bits, words = 0, 0, []
    for b in payload:
        acc = (acc << 8) | b
        bits += 8
        while bits >= 5:
            bits -= 5
            words.append((acc >> bits) & 31)
    if bits:
        words.append((acc << (5 - bits)) & 31)
    expanded = [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]
    polymod = _bech32_polymod(expanded + words + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_BECH32_CHARSET[w] for w in words + checksum)


def test_secret_key_encodings_agree(private_key, public_key, tmp_path):
    raw = bytes(range(1, 33))
    forms = [
        raw.hex(),
        "0x" + raw.hex(),
        base64.b64encode(raw).decode(),
        base64.b64encode(b"\x00" + raw).decode(),
        base64.b64encode(raw + public_key).decode(),
        _bech32_encode("suiprivkey", b"\x00" + raw),
    ]
    for form in forms:
        assert Ed25519Signer(parse_secret_key(form)).public_key() == public_key, form

    pem = tmp_path / "sk.pem"
    pem.write_bytes(private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    assert Ed25519Signer(load_signing_key(path=str(pem))).public_key() == public_key


def test_unusable_key_sources_raise(tmp_path):
    assert load_signing_key() is None
    with pytest.raises(KeyUnavailable):
        load_signing_key(secret="not a key!")
    with pytest.raises(KeyUnavailable):
        load_signing_key(secret=base64.b64encode(b"\x01" + bytes(32)).decode())
    with pytest.raises(KeyUnavailable):
        load_signing_key(path=str(tmp_path / "missing.pem"))
