"""Reduction of fetched bytes to the form that is hashed and evaluated.

Canonical form is the strict UTF-8 decoding of the blob with a leading BOM
removed. The digest covers ``text.encode("utf-8")``, so for BOM-less UTF-8
input it equals the SHA-256 of the raw bytes. Length counts code points.
"""
from __future__ import annotations

import codecs

from ..crypto.digest import sha256_hex
from ..errors import DecodeFailure
from ..models import CanonicalContent


def canonicalize(data: bytes) -> CanonicalContent:
    if data.startswith(codecs.BOM_UTF8):
        data = data[len(codecs.BOM_UTF8):]
    try:
        text = data.decode("utf-8", errors="strict")
    except UnicodeDecodeError as e:
        raise DecodeFailure(f"content is not valid UTF-8 at byte {e.start}") from e
    canonical = text.encode("utf-8")
    return CanonicalContent(
        text=text,
        length=len(text),
        byte_length=len(canonical),
        digest=sha256_hex(canonical),
    )
