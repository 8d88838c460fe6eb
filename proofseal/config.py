"""
Client configuration.

Settings come from environment variables, with testnet defaults for the
blob network, full node and key servers.

    PROOFSEAL_PACKAGE_ID         package the truth_nft module lives in
    WALRUS_PUBLISHER             blob write endpoint (secondary read)
    WALRUS_AGGREGATOR            blob read endpoint
    WALRUS_EPOCHS                storage duration for uploads (optional)
    SUI_RPC_URL                  full-node JSON-RPC endpoint
    PROOFSEAL_KEY_SERVERS        comma-separated key server object ids
    PROOFSEAL_THRESHOLD          key servers needed to decrypt
    PROOFSEAL_SESSION_TTL_MIN    session lifetime, 1–30 minutes
    PROOFSEAL_SETTLE_DELAY       seconds to wait before re-reading after grant/revoke
    PROOFSEAL_RESOLVE_ATTEMPTS   resolver polling attempts
    PROOFSEAL_RESOLVE_INTERVAL   seconds between resolver attempts
    PROOFSEAL_REQUEST_TIMEOUT    HTTP timeout in seconds
"""

import os
from dataclasses import dataclass, field

import httpx

from proofseal.errors import ValidationError

DEFAULT_PUBLISHER = "https://publisher.walrus-testnet.walrus.space"
DEFAULT_AGGREGATOR = "https://aggregator.walrus-testnet.walrus.space"
DEFAULT_RPC_URL = "https://fullnode.testnet.sui.io:443"

# Testnet key servers
DEFAULT_KEY_SERVERS = [
    "0x73d05d62c18d9374e3ea529e8e0ed6161da1a141a94d3f76ae3fe4e99356db75",
    "0xf5d14a81a982144ae441cd7d64b09027f116a468bd36e7eca494f750591623c8",
]


@dataclass
class Settings:
    package_id: str = ""
    publisher_url: str = DEFAULT_PUBLISHER
    aggregator_url: str = DEFAULT_AGGREGATOR
    rpc_url: str = DEFAULT_RPC_URL
    key_servers: list[str] = field(default_factory=lambda: list(DEFAULT_KEY_SERVERS))
    threshold: int = 1
    session_ttl_min: int = 30
    settle_delay: float = 3.0
    resolve_attempts: int = 30
    resolve_interval: float = 2.0
    request_timeout: float = 30.0
    blob_epochs: int | None = None

    def validate(self) -> "Settings":
        if not self.package_id:
            raise ValidationError("package_id is required (PROOFSEAL_PACKAGE_ID)")
        if not self.key_servers:
            raise ValidationError("At least one key server is required")
        if not 1 <= self.threshold <= len(self.key_servers):
            raise ValidationError(
                f"threshold {self.threshold} must be between 1 and {len(self.key_servers)}"
            )
        if not 1 <= self.session_ttl_min <= 30:
            raise ValidationError(f"session_ttl_min {self.session_ttl_min} must be 1–30")
        if self.resolve_attempts < 1:
            raise ValidationError("resolve_attempts must be at least 1")
        for name in ("settle_delay", "resolve_interval", "request_timeout"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} cannot be negative")
        return self

    def http_client(self) -> httpx.AsyncClient:
        """A client with the configured timeout. The caller owns and closes it."""
        return httpx.AsyncClient(timeout=self.request_timeout)

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ

        def number(name: str, cast, default):
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ValidationError(f"{name}={raw!r} is not a valid {cast.__name__}") from None

        key_servers = [s.strip() for s in env.get("PROOFSEAL_KEY_SERVERS", "").split(",") if s.strip()]

        settings = cls(
            package_id=env.get("PROOFSEAL_PACKAGE_ID", ""),
            publisher_url=env.get("WALRUS_PUBLISHER") or DEFAULT_PUBLISHER,
            aggregator_url=env.get("WALRUS_AGGREGATOR") or DEFAULT_AGGREGATOR,
            rpc_url=env.get("SUI_RPC_URL") or DEFAULT_RPC_URL,
            key_servers=key_servers or list(DEFAULT_KEY_SERVERS),
            threshold=number("PROOFSEAL_THRESHOLD", int, 1),
            session_ttl_min=number("PROOFSEAL_SESSION_TTL_MIN", int, 30),
            settle_delay=number("PROOFSEAL_SETTLE_DELAY", float, 3.0),
            resolve_attempts=number("PROOFSEAL_RESOLVE_ATTEMPTS", int, 30),
            resolve_interval=number("PROOFSEAL_RESOLVE_INTERVAL", float, 2.0),
            request_timeout=number("PROOFSEAL_REQUEST_TIMEOUT", float, 30.0),
            blob_epochs=number("WALRUS_EPOCHS", int, None),
        )
        return settings.validate()
