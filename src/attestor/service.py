"""Startup-built service context.

Everything a request needs (settings, the one signing key, the store and
ledger clients) is constructed here once and handed to the app. There are no
module-level clients or keys.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .crypto.keyloader import load_signing_key
from .crypto.signer import AttestationSigner, Ed25519Signer
from .errors import KeyUnavailable
from .ledger.sui import SuiLedgerClient
from .pipeline.policy import Policy, PolicyEvaluator
from .pipeline.verify import ContentStore, VerificationPipeline
from .store.content import ContentStoreClient
from .utils.logging import get_logger, kv

log = get_logger("attestor.service")


@dataclass
class ServiceContext:
    settings: Settings
    signer: AttestationSigner
    store: ContentStore
    ledger: Optional[SuiLedgerClient]
    pipeline: VerificationPipeline

    @property
    def signing_key_configured(self) -> bool:
        return self.signer.available

    @property
    def submission_configured(self) -> bool:
        return self.ledger is not None and self.ledger.submission_configured

    async def aclose(self) -> None:
        for client in (self.store, self.ledger):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()


def build_context(
    settings: Settings,
    *,
    store: Optional[ContentStore] = None,
    ledger: Optional[SuiLedgerClient] = None,
) -> ServiceContext:
    """Load the key and wire the pipeline.

    Raises :class:`KeyUnavailable` when a key is configured but unusable, or
    when ``require_signing_key`` is set and no key is configured.
    """
    key = load_signing_key(settings.signing_key, settings.signing_key_file)
    if key is None and settings.require_signing_key:
        raise KeyUnavailable("REQUIRE_SIGNING_KEY is set but no signing key is configured")
    raw_signer = Ed25519Signer(key) if key is not None else None
    signer = AttestationSigner(raw_signer)

    if store is None:
        store = ContentStoreClient(
            settings.aggregator_url,
            max_bytes=settings.fetch_max_bytes,
            timeout=settings.fetch_timeout_sec,
        )
    if ledger is None:
        ledger = SuiLedgerClient(
            settings.rpc_url,
            package_id=settings.sui_package_id if settings.package_configured else None,
            module=settings.sui_module,
            function=settings.sui_function,
            signer=raw_signer,
            gas_budget=settings.sui_gas_budget,
            timeout=settings.ledger_timeout_sec,
        )

    evaluator = PolicyEvaluator(Policy(
        min_length=settings.min_length,
        require_expected_digest=settings.require_expected_digest,
    ))
    submit_to = ledger if ledger.submission_configured else None
    pipeline = VerificationPipeline(store, evaluator, signer, ledger=submit_to)

    log.info("service context ready %s", kv(
        network=settings.sui_network,
        signing=signer.available,
        address=signer.address if signer.available else None,
        submission=submit_to is not None,
        min_length=settings.min_length,
        require_expected_digest=settings.require_expected_digest,
    ))
    return ServiceContext(settings=settings, signer=signer, store=store, ledger=ledger, pipeline=pipeline)
