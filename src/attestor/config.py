"""Service configuration.

Values come from the environment (optionally seeded from a ``.env`` file) and
are parsed once into a :class:`Settings` instance that the service context
carries around. Nothing here is read lazily by the pipeline.
"""
from __future__ import annotations

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


SUI_FULLNODES = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
    "localnet": "http://127.0.0.1:9000",
}

DEFAULT_AGGREGATOR = "https://aggregator.walrus-testnet.walrus.space"


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    version: str = "1.0.0"

    # content store
    aggregator_url: str = DEFAULT_AGGREGATOR
    fetch_timeout_sec: float = Field(default=30.0, gt=0)
    fetch_max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)

    # policy
    min_length: int = Field(default=10, ge=0)
    require_expected_digest: bool = False

    # signing
    signing_key: Optional[str] = None
    signing_key_file: Optional[str] = None
    require_signing_key: bool = False

    # ledger
    sui_network: str = "testnet"
    sui_rpc_url: Optional[str] = None
    sui_package_id: Optional[str] = None
    sui_module: str = "echo"
    sui_function: str = "verify_handout"
    sui_gas_budget: int = 10_000_000
    ledger_timeout_sec: float = Field(default=15.0, gt=0)

    # http surface
    subject_id_pattern: str = r"^[A-Za-z0-9_:-]{1,256}$"
    allowed_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    rate_limit_max_requests: int = Field(default=30, ge=0)
    rate_limit_window_sec: float = Field(default=60.0, gt=0)
    log_level: str = "INFO"

    @property
    def rpc_url(self) -> str:
        if self.sui_rpc_url:
            return self.sui_rpc_url
        return SUI_FULLNODES.get(self.sui_network, SUI_FULLNODES["testnet"])

    @property
    def signing_key_configured(self) -> bool:
        return bool(self.signing_key or self.signing_key_file)

    @property
    def package_configured(self) -> bool:
        # "0x..." is the placeholder shipped in example env files
        return bool(self.sui_package_id) and self.sui_package_id != "0x..."


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from ``env`` (defaults to the process environment)."""
    if env is None:
        load_dotenv()
        env = os.environ
    data: dict = {}
    simple = {
        "aggregator_url": "WALRUS_AGGREGATOR_URL",
        "fetch_timeout_sec": "FETCH_TIMEOUT_SEC",
        "fetch_max_bytes": "FETCH_MAX_BYTES",
        "min_length": "POLICY_MIN_LENGTH",
        "signing_key": "ATTESTOR_SIGNING_KEY",
        "signing_key_file": "ATTESTOR_SIGNING_KEY_FILE",
        "sui_network": "SUI_NETWORK",
        "sui_rpc_url": "SUI_RPC_URL",
        "sui_package_id": "SUI_PACKAGE_ID",
        "sui_module": "SUI_MODULE",
        "sui_function": "SUI_FUNCTION",
        "sui_gas_budget": "SUI_GAS_BUDGET",
        "ledger_timeout_sec": "LEDGER_TIMEOUT_SEC",
        "subject_id_pattern": "SUBJECT_ID_PATTERN",
        "rate_limit_max_requests": "RATE_LIMIT_MAX_REQUESTS",
        "rate_limit_window_sec": "RATE_LIMIT_WINDOW_SEC",
        "log_level": "LOG_LEVEL",
    }
    for field, var in simple.items():
        value = env.get(var)
        if value not in (None, ""):
            data[field] = value
    # legacy name used by the original deployment scripts
    if "signing_key" not in data and env.get("ADMIN_SECRET_KEY"):
        data["signing_key"] = env["ADMIN_SECRET_KEY"]
    if "sui_package_id" not in data and env.get("PACKAGE_ID"):
        data["sui_package_id"] = env["PACKAGE_ID"]
    data["require_expected_digest"] = _flag(env.get("REQUIRE_EXPECTED_DIGEST"))
    data["require_signing_key"] = _flag(env.get("REQUIRE_SIGNING_KEY"))
    origins = env.get("ALLOWED_ORIGINS")
    if origins:
        data["allowed_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
    return Settings(**data)
