import hashlib
import re

_HEX_DIGEST = re.compile(r"^[0-9a-fA-F]{64}$")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def normalize_hex_digest(value: str) -> str:
    """Return a lowercase hex SHA-256 or raise ValueError."""
    if not isinstance(value, str) or not _HEX_DIGEST.fullmatch(value.strip()):
        raise ValueError("expected a 64 character hex sha-256 digest")
    return value.strip().lower()


def digest_bytes(hex_digest: str) -> bytes:
    return bytes.fromhex(normalize_hex_digest(hex_digest))


def blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()
