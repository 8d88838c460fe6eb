"""
Local development network.

Simulates every external collaborator in-process so the whole protocol
runs without a chain, a blob network or key servers:

  LocalWalrus       publisher + aggregator behind an httpx.MockTransport
  InMemoryLedger    the truth_nft contract
  LocalKeyServer    N key servers evaluating predicates on that ledger
  LocalWallet       Ed25519 signers submitting to that ledger
"""

import asyncio
import base64
import hashlib
from dataclasses import dataclass, field

import httpx

from proofseal.client import ProofClient
from proofseal.config import Settings
from proofseal.events import EventBus
from proofseal.keyservers.local import LocalKeyServer
from proofseal.ledger.memory import InMemoryLedger
from proofseal.wallet import LocalWallet

PUBLISHER_URL = "http://publisher.local"
AGGREGATOR_URL = "http://aggregator.local"
DEV_PACKAGE_ID = "0x" + "5e" * 32


def blob_id_for(data: bytes) -> str:
    """Content-derived blob id (url-safe base64 of blake2b-256)."""
    digest = hashlib.blake2b(data, digest_size=32).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


@dataclass
class LocalWalrus:
    """
    In-memory blob network speaking the publisher/aggregator HTTP API.

    down: hosts that answer 503, to exercise fallback paths.
    """
    blobs: dict = field(default_factory=dict)
    down: set = field(default_factory=set)
    requests: list = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, str(request.url)))

        if request.url.host in self.down:
            return httpx.Response(503, text="service unavailable")

        path = request.url.path
        if request.method == "PUT" and path == "/v1/blobs":
            data = request.content
            if not data:
                return httpx.Response(400, text="empty blob")
            blob_id = blob_id_for(data)
            if blob_id in self.blobs:
                return httpx.Response(200, json={
                    "alreadyCertified": {"blobId": blob_id, "endEpoch": 100},
                })
            self.blobs[blob_id] = data
            return httpx.Response(200, json={
                "newlyCreated": {"blobObject": {"blobId": blob_id, "size": len(data)}},
            })

        if request.method == "GET" and path.startswith("/v1/blobs/"):
            blob_id = path.removeprefix("/v1/blobs/")
            if blob_id not in self.blobs:
                return httpx.Response(404, text=f"blob {blob_id} not found")
            return httpx.Response(200, content=self.blobs[blob_id])

        return httpx.Response(404, text="no route")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@dataclass
class LocalNetwork:
    settings: Settings
    ledger: InMemoryLedger
    walrus: LocalWalrus
    key_servers: list
    http: httpx.AsyncClient

    def wallet(self) -> LocalWallet:
        return LocalWallet(self.ledger)

    def client(self, events: EventBus = None, sleep=asyncio.sleep) -> ProofClient:
        return ProofClient.from_settings(
            self.settings, self.http, self.ledger, self.key_servers, events=events, sleep=sleep,
        )


def local_network(
    package_id: str = DEV_PACKAGE_ID,
    num_key_servers: int = 2,
    threshold: int = 1,
    index_delay: int = 0,
    viewer_encoding: str = "nested",
    settle_delay: float = 0.0,
    resolve_interval: float = 0.0,
) -> LocalNetwork:
    ledger = InMemoryLedger(package_id, index_delay=index_delay, viewer_encoding=viewer_encoding)
    key_servers = [
        LocalKeyServer(
            "0x" + hashlib.blake2b(f"key-server-{i}".encode(), digest_size=32).hexdigest(),
            ledger,
            package_id,
        )
        for i in range(1, num_key_servers + 1)
    ]
    settings = Settings(
        package_id=package_id,
        publisher_url=PUBLISHER_URL,
        aggregator_url=AGGREGATOR_URL,
        rpc_url="",
        key_servers=[ks.object_id for ks in key_servers],
        threshold=threshold,
        settle_delay=settle_delay,
        resolve_interval=resolve_interval,
    ).validate()

    walrus = LocalWalrus()
    http = httpx.AsyncClient(transport=walrus.transport())
    return LocalNetwork(settings, ledger, walrus, key_servers, http)
