import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from attestor.config import Settings
from attestor.errors import ContentNotFound, SubmissionFailure
from attestor.models import SubjectStatus, SubmissionReceipt


HELLO = b"Hello, accessible world!"
SUBJECT = "0x5e1f"


class FakeStore:
    def __init__(self, blobs=None, error=None):
        self.blobs = dict(blobs or {})
        self.error = error
        self.calls = []

    async def fetch(self, content_id):
        self.calls.append(content_id)
        if self.error is not None:
            raise self.error
        if content_id not in self.blobs:
            raise ContentNotFound("content not found in store")
        return self.blobs[content_id]


class FakeLedger:
    def __init__(self, fail_with=None, statuses=None, submission_configured=True):
        self.submission_configured = submission_configured
        self.fail_with = fail_with
        self.statuses = dict(statuses or {})
        self.submitted = []

    async def submit(self, att):
        self.submitted.append(att)
        if self.fail_with:
            raise SubmissionFailure(self.fail_with)
        return SubmissionReceipt(transaction_digest="9xTxDigest")

    async def get_subject_status(self, object_id):
        return self.statuses.get(object_id)


@pytest.fixture
def private_key():
    # fixed key so failures are reproducible
    return Ed25519PrivateKey.from_private_bytes(bytes(range(1, 33)))


@pytest.fixture
def public_key(private_key):
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


@pytest.fixture
def secret_hex():
    return bytes(range(1, 33)).hex()


@pytest.fixture
def settings(secret_hex):
    return Settings(signing_key=secret_hex, rate_limit_max_requests=1000)


@pytest.fixture
def store():
    return FakeStore({"hello-blob": HELLO, "short_blob": b"hi!"})


@pytest.fixture
def status_ok():
    return SubjectStatus(subject_id="0xabc", verified=True, content_id="hello-blob", uploader="0xfeed")
