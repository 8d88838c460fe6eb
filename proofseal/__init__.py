"""
proofseal — Encrypted proofs with owner-controlled access
Policy-bound threshold encryption for documents referenced from ledger records.

Three layers, one owner:
1. PolicyEncryptor + BlobStore — ciphertext no one can open without the key servers
2. LedgerRecordManager + AccessGrantController — the Proof record and its viewer list
3. SessionAuthorizer + DecryptionOrchestrator — short-lived, address-bound reads

Key servers release a key only after dry-running seal_approve against the
current ledger state, so revoking a viewer takes effect without touching
the ciphertext.

Usage:
    from proofseal.devnet import local_network
    net = local_network()
    client = net.client()
    minted = await client.prove("my document", wallet, inference)
"""

from proofseal.client import (
    Inference,
    InferenceResult,
    MintedProof,
    OpenedProof,
    ProofClient,
    SealedDocument,
)
from proofseal.config import Settings
from proofseal.events import EventBus
from proofseal.identity import derive_policy_id, normalize_address
from proofseal.policy import EncryptedObject, PolicyEncryptor
from proofseal.records import LedgerRecordManager, ProofSnapshot
from proofseal.resolver import RetryPolicy, TransactionIndexResolver
from proofseal.access import AccessGrantController
from proofseal.session import SessionAuthorizer, SessionToken
from proofseal.decrypt import DecryptionOrchestrator
from proofseal.blobstore import BlobStore
from proofseal.wallet import LocalWallet

__version__ = "0.1.0"
__all__ = [
    "ProofClient",
    "SealedDocument",
    "MintedProof",
    "OpenedProof",
    "Inference",
    "InferenceResult",
    "Settings",
    "EventBus",
    "derive_policy_id",
    "normalize_address",
    "EncryptedObject",
    "PolicyEncryptor",
    "BlobStore",
    "LedgerRecordManager",
    "ProofSnapshot",
    "RetryPolicy",
    "TransactionIndexResolver",
    "AccessGrantController",
    "SessionAuthorizer",
    "SessionToken",
    "DecryptionOrchestrator",
    "LocalWallet",
]
