"""
ProofClient — the full access-control protocol in one object.

Owner flow:
  seal_document → infer → seal result → mint → resolve
Sharing:
  grant / revoke → settle (re-query after the indexing delay)
Viewer flow:
  create_session → open (query record → decrypt document and result)

Every step that changes state publishes an event on the client's bus.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from proofseal.access import AccessGrantController
from proofseal.blobstore import BlobStore
from proofseal.decrypt import DecryptionOrchestrator
from proofseal.errors import AuthorizationError, InvalidIdentifierError
from proofseal.events import DocumentSealed, EventBus, ProofMinted
from proofseal.policy import PolicyEncryptor
from proofseal.records import LedgerRecordManager, PendingWrite, ProofSnapshot
from proofseal.resolver import RetryPolicy, TransactionIndexResolver
from proofseal.session import SessionAuthorizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SealedDocument:
    owner: str
    blob_id: str
    policy_id: str


@dataclass(frozen=True)
class InferenceResult:
    text: str
    attestation: str


class Inference(Protocol):
    async def infer(self, document: str) -> InferenceResult:
        """Analyse a document; return result text and an attestation."""


@dataclass(frozen=True)
class MintedProof:
    pending: PendingWrite
    record_id: str | None       # None: not indexed yet, call resolve() later
    document: SealedDocument
    result: SealedDocument
    attestation: str


@dataclass(frozen=True)
class OpenedProof:
    snapshot: ProofSnapshot
    document: bytes
    result: bytes


class ProofClient:
    """
    Composes the protocol components. Use from_settings() for the usual wiring.
    """

    def __init__(
        self,
        encryptor: PolicyEncryptor,
        blob_store: BlobStore,
        records: LedgerRecordManager,
        resolver: TransactionIndexResolver,
        access: AccessGrantController,
        sessions: SessionAuthorizer,
        orchestrator: DecryptionOrchestrator,
        events: EventBus = None,
    ):
        self.encryptor = encryptor
        self.blob_store = blob_store
        self.records = records
        self.resolver = resolver
        self.access = access
        self.sessions = sessions
        self.orchestrator = orchestrator
        self.events = events or EventBus()

    @classmethod
    def from_settings(
        cls,
        settings,
        http_client,
        reader,
        key_servers: list,
        events: EventBus = None,
        sleep=asyncio.sleep,
    ) -> "ProofClient":
        """
        Args:
            settings: Validated Settings.
            http_client: httpx.AsyncClient for the blob network.
            reader: LedgerReader for queries and resolution.
            key_servers: KeyServer connectors, in the order of settings.key_servers.
            events: Shared EventBus; a new one is created if not given.
            sleep: Async sleep used by the resolver and settle().
        """
        events = events or EventBus()
        blob_store = BlobStore(
            http_client,
            publisher=settings.publisher_url,
            aggregator=settings.aggregator_url,
            epochs=settings.blob_epochs,
        )
        records = LedgerRecordManager(settings.package_id, reader, events=events)
        policy = RetryPolicy(
            attempts=settings.resolve_attempts,
            interval=settings.resolve_interval,
            sleep=sleep,
        )
        return cls(
            encryptor=PolicyEncryptor(settings.package_id, key_servers, threshold=settings.threshold),
            blob_store=blob_store,
            records=records,
            resolver=TransactionIndexResolver(settings.package_id, reader, policy),
            access=AccessGrantController(
                records, settle_delay=settings.settle_delay, sleep=sleep, events=events
            ),
            sessions=SessionAuthorizer(settings.package_id, ttl_min=settings.session_ttl_min),
            orchestrator=DecryptionOrchestrator(blob_store, key_servers),
            events=events,
        )

    # ---- owner ---------------------------------------------------------

    async def seal_document(self, document: bytes | str, owner: str) -> SealedDocument:
        """Encrypt under the owner's policy and upload the ciphertext."""
        encrypted = self.encryptor.encrypt(document, owner)
        blob_id = await self.blob_store.upload(encrypted.ciphertext)
        sealed = SealedDocument(owner=owner.lower(), blob_id=blob_id, policy_id=encrypted.policy_id)
        self.events.publish(DocumentSealed(sealed.owner, blob_id, encrypted.policy_id))
        return sealed

    async def prove(self, document: str, signer, inference: Inference) -> MintedProof:
        """
        Seal a document and its inference result, then mint a Proof.

        The returned record_id is None if the mint was not indexed within
        the resolver's bound; call resolve(minted.pending) later.
        """
        sealed = await self.seal_document(document, signer.address)

        outcome = await inference.infer(document)
        result = await self.seal_document(outcome.text, signer.address)

        pending = await self.records.mint(
            signer,
            sealed.blob_id,
            sealed.policy_id,
            result.blob_id,
            result.policy_id,
            outcome.attestation,
        )
        record_id = await self.resolve(pending)

        return MintedProof(
            pending=pending,
            record_id=record_id,
            document=sealed,
            result=result,
            attestation=outcome.attestation,
        )

    async def resolve(self, pending: PendingWrite) -> str | None:
        record_id = await self.resolver.resolve(pending)
        if record_id is not None:
            self.events.publish(ProofMinted(pending.sender, pending.digest, record_id))
        return record_id

    async def grant(self, signer, record_id: str, viewer: str, duration_epochs: int = 30) -> None:
        await self.access.grant(signer, record_id, viewer, duration_epochs)

    async def revoke(self, signer, record_id: str, viewer: str) -> None:
        await self.access.revoke(signer, record_id, viewer)

    async def settle(self, record_id: str) -> ProofSnapshot | None:
        return await self.access.settle(record_id)

    # ---- viewer --------------------------------------------------------

    async def create_session(self, signer, ttl_min: int = None):
        return await self.sessions.create_session(
            signer.address, signer.sign_personal_message, ttl_min=ttl_min
        )

    async def open(self, record_id: str, session) -> OpenedProof:
        """
        Decrypt a record's document and result for the session's address.

        The local viewer check only fails fast; key servers make the
        authoritative decision.

        Raises:
            InvalidIdentifierError: The record does not exist.
            AuthorizationError: The address is neither owner nor viewer.
        """
        snapshot = await self.records.query(record_id)
        if snapshot is None:
            raise InvalidIdentifierError("record id", record_id)

        if not snapshot.can_decrypt(session.address):
            raise AuthorizationError(
                f"{session.address} is not the owner or an approved viewer of {record_id}",
                address=session.address,
                policy_id=snapshot.policy_id,
            )

        document = await self.orchestrator.decrypt(snapshot.blob_id, snapshot.policy_id, session)
        result = await self.orchestrator.decrypt(
            snapshot.result_blob_id, snapshot.result_policy_id, session
        )
        logger.info("opened record %s for %s", record_id, session.address)
        return OpenedProof(snapshot=snapshot, document=document, result=result)
