"""Signing key loading.

Accepted secret encodings:
  - PEM (PKCS#8) file via ``ATTESTOR_SIGNING_KEY_FILE``
  - ``suiprivkey1...`` bech32 strings as exported by ``sui keytool``
  - base64 of 32 raw bytes, of ``0x00 || 32 bytes`` (Sui keystore) or of a
    64 byte ``secret || public`` pair
  - hex of 32 raw bytes, with or without ``0x``
"""
from __future__ import annotations

import base64
import binascii
import os
import re
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ..errors import KeyUnavailable

SUI_ED25519_FLAG = 0x00
_HEX32 = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"


def ensure_server_key(path: str) -> None:
    if os.path.exists(path):
        return
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    key = Ed25519PrivateKey.generate()
    with open(path, "wb") as f:
        f.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ))


def _bech32_polymod(values) -> int:
    gen = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for v in values:
        b = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= gen[i] if ((b >> i) & 1) else 0
    return chk


def _decode_sui_bech32(value: str) -> bytes:
    value = value.lower()
    hrp, sep, data = value.rpartition("1")
    if not sep or hrp != "suiprivkey" or len(data) < 6:
        raise ValueError("not a suiprivkey string")
    try:
        words = [_BECH32_CHARSET.index(c) for c in data]
    except ValueError as e:
        raise ValueError("invalid bech32 character") from e
    expanded = [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]
    if _bech32_polymod(expanded + words) != 1:
        raise ValueError("bad bech32 checksum")
    acc, bits, out = 0, 0, bytearray()
    for w in words[:-6]:
        acc = (acc << 5) | w
        bits += 5
        while bits >= 8:
            bits -= 8
            out.append((acc >> bits) & 0xFF)
    return bytes(out)


def _secret_from_bytes(raw: bytes) -> bytes:
    if len(raw) == 32:
        return raw
    if len(raw) == 33:
        if raw[0] != SUI_ED25519_FLAG:
            raise ValueError("only ed25519 keys are supported")
        return raw[1:]
    if len(raw) == 64:
        return raw[:32]
    raise ValueError(f"unexpected secret key length {len(raw)}")


def parse_secret_key(value: str) -> Ed25519PrivateKey:
    value = value.strip()
    if value.startswith("suiprivkey"):
        raw = _decode_sui_bech32(value)
    elif _HEX32.fullmatch(value):
        raw = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    else:
        try:
            raw = base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise ValueError("secret key is not base64, hex or bech32") from e
    return Ed25519PrivateKey.from_private_bytes(_secret_from_bytes(raw))


def load_pem_key(path: str) -> Ed25519PrivateKey:
    with open(path, "rb") as f:
        sk = serialization.load_pem_private_key(f.read(), password=None)
    if not isinstance(sk, Ed25519PrivateKey):
        raise ValueError("expected Ed25519 private key")
    return sk


def load_signing_key(secret: Optional[str] = None, path: Optional[str] = None) -> Optional[Ed25519PrivateKey]:
    """Load the service key, or ``None`` when neither source is configured.

    A configured but unreadable key is a hard error, never a silent ``None``.
    """
    if secret:
        try:
            return parse_secret_key(secret)
        except ValueError as e:
            raise KeyUnavailable(f"signing key could not be parsed: {e}") from e
    if path:
        try:
            return load_pem_key(path)
        except (OSError, ValueError) as e:
            raise KeyUnavailable(f"signing key file unusable: {e}") from e
    return None
