from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..models import CanonicalContent, Verdict
from ..utils.ct import ct_eq_str


@dataclass(frozen=True)
class Policy:
    min_length: int = 10
    # When False a request without an expected digest passes digestMatch.
    require_expected_digest: bool = False


class PolicyEvaluator:
    """Runs every check and records each one; nothing short-circuits."""

    def __init__(self, policy: Optional[Policy] = None):
        self.policy = policy or Policy()

    def evaluate(self, content: CanonicalContent, expected_digest: Optional[str] = None) -> Verdict:
        min_length = content.length >= self.policy.min_length
        if expected_digest is None:
            digest_match = not self.policy.require_expected_digest
        else:
            digest_match = ct_eq_str(expected_digest.lower(), content.digest)
        # decoded content reaching this point is the whole integrity check for now
        integrity = True
        return Verdict(min_length=min_length, digest_match=digest_match, integrity=integrity)
