"""
DecryptionOrchestrator — from blob id and policy to plaintext.

Flow:
  1. Session must be live and bound to the caller
  2. Fetch ciphertext from the BlobStore
  3. Build the predicate request seal_approve(policy_id), sender = session
     address. It is never executed; key servers dry-run it.
  4. Ask the key servers named in the ciphertext for their keys until the
     threshold is met. Each server independently checks the predicate.
  5. Unseal shares, recombine the data key, decrypt.
"""

import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from proofseal import shamir
from proofseal.envelope import decrypt_data, open_sealed, x25519_public_bytes
from proofseal.errors import (
    AuthorizationError,
    DecryptionError,
    KeyServerError,
    NetworkError,
    SessionExpiredError,
)
from proofseal.identity import policy_id_bytes, require_identifier
from proofseal.keyservers.base import KeyRequest
from proofseal.keyservers.local import key_delivery_info
from proofseal.policy import EncryptedObject
from proofseal.transactions import Pure, Transaction

logger = logging.getLogger(__name__)


def build_predicate(package_id: str, policy_id: str, sender: str) -> Transaction:
    """seal_approve(policy_id) for sender. Read-only; never submitted."""
    tx = Transaction(sender=sender)
    tx.move_call(
        f"{package_id}::truth_nft::seal_approve",
        [Pure.vector_u8(policy_id_bytes(policy_id))],
    )
    return tx


class DecryptionOrchestrator:
    """
    Args:
        blob_store: BlobStore to fetch ciphertexts from.
        key_servers: KeyServer connectors, matched to ciphertexts by object_id.
    """

    def __init__(self, blob_store, key_servers: list):
        self.blob_store = blob_store
        self.key_servers = {ks.object_id: ks for ks in key_servers}

    async def decrypt(self, blob_id: str, policy_id: str, session, caller: str = None) -> bytes:
        """
        Recover the plaintext of blob_id.

        Args:
            caller: Address of whoever is asking; must match the session.

        Raises:
            SessionExpiredError: Session lapsed, or bound to another address.
            InvalidIdentifierError: Empty or "undefined" ids.
            FetchError: Ciphertext could not be fetched.
            AuthorizationError: Key servers rejected the session's address.
            DecryptionError: Malformed ciphertext or cryptographic failure.
            KeyServerError: Threshold unreachable for transport reasons.
        """
        if session.is_expired():
            raise SessionExpiredError(
                f"Session for {session.address} has expired; create a new one",
                address=session.address,
            )
        if caller is not None and caller.lower() != session.address:
            raise SessionExpiredError(
                f"Session is bound to {session.address}, not {caller}",
                address=session.address,
            )

        blob_id = require_identifier("blob id", blob_id)
        policy_id = require_identifier("policy id", policy_id).lower()

        data = await self.blob_store.fetch(blob_id)
        try:
            obj = EncryptedObject.from_bytes(data)
        except DecryptionError as e:
            raise DecryptionError(str(e), blob_id=blob_id) from e

        if obj.policy_id.lower() != policy_id:
            raise DecryptionError(
                f"Blob {blob_id} is encrypted under policy {obj.policy_id}, not {policy_id}",
                blob_id=blob_id,
            )

        predicate = build_predicate(obj.package_id, policy_id, session.address)
        shares = await self._collect_shares(obj, predicate, session, blob_id)

        try:
            data_key = shamir.combine(shares)
            plaintext = decrypt_data(obj.ciphertext, data_key, obj.header())
        except (InvalidTag, ValueError) as e:
            raise DecryptionError(f"Failed to decrypt blob {blob_id}: {e!r}", blob_id=blob_id) from e

        logger.debug("decrypted blob %s for %s", blob_id, session.address)
        return plaintext

    async def decrypt_text(self, blob_id: str, policy_id: str, session, caller: str = None) -> str:
        plaintext = await self.decrypt(blob_id, policy_id, session, caller)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError(f"Blob {blob_id} is not UTF-8 text", blob_id=blob_id) from e

    async def _collect_shares(self, obj: EncryptedObject, predicate: Transaction, session, blob_id: str):
        ptb = predicate.to_bytes()
        collected = []
        denied = []
        failures = []

        for slot in obj.shares:
            server = self.key_servers.get(slot.object_id)
            if server is None:
                failures.append(f"{slot.object_id}: no connector configured")
                continue

            enc_private = X25519PrivateKey.generate()
            request = KeyRequest(
                package_id=obj.package_id,
                policy_id=obj.policy_id,
                ptb=ptb,
                encapsulation=slot.encapsulation,
                enc_key=x25519_public_bytes(enc_private),
                certificate=session.certificate(),
            )
            request.request_signature = session.sign_request(request.signing_payload())

            try:
                response = await server.fetch_key(request)
            except AuthorizationError as e:
                denied.append(e)
                continue
            except NetworkError as e:
                failures.append(f"{slot.object_id}: {e}")
                logger.warning("key server %s failed: %s", slot.object_id, e)
                continue

            try:
                wrap_key = open_sealed(
                    enc_private, response.ephemeral_key, response.sealed_key,
                    key_delivery_info(slot.object_id, obj.policy_id),
                )
                share_hex = decrypt_data(slot.wrapped_share, wrap_key, obj.policy_id.encode())
                collected.append(shamir.Share.from_hex(share_hex.decode()))
            except (InvalidTag, ValueError) as e:
                raise DecryptionError(
                    f"Key from {slot.object_id} does not open blob {blob_id}: {e!r}",
                    blob_id=blob_id,
                ) from e

            if len(collected) >= obj.threshold:
                return collected

        if denied:
            raise AuthorizationError(
                f"{session.address} is not authorized to decrypt blob {blob_id} "
                f"(policy {obj.policy_id}): {denied[0]}",
                address=session.address,
                policy_id=obj.policy_id,
            ) from denied[0]

        raise KeyServerError(
            f"Got {len(collected)} of {obj.threshold} required keys for blob {blob_id}: "
            + "; ".join(failures)
        )
