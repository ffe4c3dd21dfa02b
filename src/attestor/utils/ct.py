import hmac


def ct_eq(a: bytes, b: bytes) -> bool:
    """Constant-time equality for two byte strings (length must match)."""
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)


def ct_eq_str(a: str, b: str) -> bool:
    return ct_eq(a.encode("utf-8"), b.encode("utf-8"))
