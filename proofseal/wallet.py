"""
Signers — the identity-holding collaborator.

A signer is anything that holds an address's private key and can
  - sign personal messages (session creation)
  - sign and submit transactions (mint, grant, revoke)

Browser wallets satisfy this contract externally. LocalWallet is an
in-process Ed25519 signer for development, scripts and tests.
"""

from typing import Protocol

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from proofseal.identity import (
    address_from_public_key,
    personal_message_digest,
    public_key_bytes,
    serialize_signature,
)
from proofseal.transactions import Transaction, TransactionResult


class Signer(Protocol):
    address: str

    async def sign_personal_message(self, message: bytes) -> str:
        """Return a serialized signature over the personal message."""

    async def sign_and_submit_transaction(self, tx: Transaction) -> TransactionResult:
        """Sign tx as self.address, submit it, and return its outcome."""


class LocalWallet:
    """
    Ed25519 keypair that signs locally and submits to an executing ledger.

    Args:
        ledger: Anything with execute(tx, sender) -> TransactionResult
            (InMemoryLedger). Optional if only used for sessions.
        private_key: Existing key; generated randomly if not provided.
    """

    def __init__(self, ledger=None, private_key: Ed25519PrivateKey = None):
        self._private_key = private_key or Ed25519PrivateKey.generate()
        self._public_key = public_key_bytes(self._private_key)
        self.address = address_from_public_key(self._public_key)
        self.ledger = ledger

    async def sign_personal_message(self, message: bytes) -> str:
        signature = self._private_key.sign(personal_message_digest(message))
        return serialize_signature(signature, self._public_key)

    async def sign_and_submit_transaction(self, tx: Transaction) -> TransactionResult:
        if self.ledger is None:
            raise RuntimeError("LocalWallet has no ledger to submit to")
        tx.sender = self.address
        return self.ledger.execute(tx, sender=self.address)

    def __repr__(self) -> str:
        return f"LocalWallet({self.address})"
