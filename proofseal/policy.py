"""
PolicyEncryptor — policy-bound threshold encryption.

Encryption:
  1. policy_id = fixed-width prefix of the owner's address
  2. Random data key encrypts the payload (AES-256-GCM, header as AAD)
  3. Data key is Shamir-split across the key servers (threshold K)
  4. Each share is sealed to one key server:
       X25519(ephemeral, server)  → HKDF(package, policy_id, server) → wrap key
     The wrap key only leaves a key server after that server has checked
     the access predicate for policy_id.

The ciphertext is self-describing: it names its package, policy, threshold
and the key servers that hold its shares.
"""

import base64
import json
import logging
from dataclasses import dataclass, field

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey

from proofseal import shamir
from proofseal.envelope import (
    SHARE_WRAP_CONTEXT,
    context,
    derive_key,
    encrypt_data,
    x25519_public_bytes,
)
from proofseal.errors import DecryptionError, EncryptionError, ValidationError
from proofseal.identity import derive_policy_id

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
DEFAULT_THRESHOLD = 1
MAX_PLAINTEXT_SIZE = 64 * 1024 * 1024  # 64 MiB


@dataclass
class ShareSlot:
    """One key server's sealed share of the data key."""
    object_id: str          # key server object id
    index: int              # Shamir x-coordinate
    encapsulation: bytes    # ephemeral X25519 public key
    wrapped_share: bytes    # nonce || AES-GCM(share)

    def to_dict(self) -> dict:
        return {
            "object_id": self.object_id,
            "index": self.index,
            "encapsulation": base64.b64encode(self.encapsulation).decode(),
            "wrapped_share": base64.b64encode(self.wrapped_share).decode(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ShareSlot":
        return cls(
            object_id=data["object_id"],
            index=int(data["index"]),
            encapsulation=base64.b64decode(data["encapsulation"]),
            wrapped_share=base64.b64decode(data["wrapped_share"]),
        )


@dataclass
class EncryptedObject:
    package_id: str
    policy_id: str
    threshold: int
    shares: list[ShareSlot]
    ciphertext: bytes       # nonce || AES-GCM(payload)
    version: int = FORMAT_VERSION

    def header(self) -> bytes:
        """Associated data binding the payload to its package and policy."""
        return context(
            b"proofseal-object-v1",
            str(self.version), self.package_id, self.policy_id, str(self.threshold),
        )

    def to_bytes(self) -> bytes:
        return json.dumps({
            "version": self.version,
            "package_id": self.package_id,
            "policy_id": self.policy_id,
            "threshold": self.threshold,
            "shares": [s.to_dict() for s in self.shares],
            "ciphertext": base64.b64encode(self.ciphertext).decode(),
        }, separators=(",", ":")).encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptedObject":
        """
        Raises:
            DecryptionError: If the bytes are not a ciphertext this client can read.
        """
        try:
            body = json.loads(data)
            obj = cls(
                version=int(body["version"]),
                package_id=body["package_id"],
                policy_id=body["policy_id"],
                threshold=int(body["threshold"]),
                shares=[ShareSlot.from_dict(s) for s in body["shares"]],
                ciphertext=base64.b64decode(body["ciphertext"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise DecryptionError(f"Malformed encrypted object: {e}") from e

        if obj.version != FORMAT_VERSION:
            raise DecryptionError(f"Unsupported encrypted object version {obj.version}")
        return obj


def share_wrap_info(package_id: str, policy_id: str, object_id: str) -> bytes:
    return context(SHARE_WRAP_CONTEXT, package_id, policy_id.lower(), object_id)


@dataclass
class EncryptionResult:
    ciphertext: bytes
    policy_id: str
    encrypted_object: EncryptedObject = field(repr=False, default=None)


class PolicyEncryptor:
    """
    Encrypts documents under an owner's access policy.

    Args:
        package_id: Package whose seal_approve predicate guards decryption.
        key_servers: Objects exposing object_id and public_key (X25519 raw).
        threshold: Shares needed to decrypt. Defaults to 1, the minimum:
            any single authorized key server can release the data key.
    """

    def __init__(self, package_id: str, key_servers: list, threshold: int = DEFAULT_THRESHOLD):
        self.package_id = package_id
        self.key_servers = list(key_servers)
        self.threshold = threshold

    def encrypt(self, plaintext: bytes | str, owner: str) -> EncryptionResult:
        """
        Encrypt plaintext under the owner's policy.

        Raises:
            EncryptionError: Invalid owner, payload too large, or an unusable
                key-server configuration.
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        try:
            policy_id = derive_policy_id(owner)
        except ValidationError as e:
            raise EncryptionError(f"Cannot derive policy for owner: {e}") from e

        if len(plaintext) > MAX_PLAINTEXT_SIZE:
            raise EncryptionError(
                f"Payload of {len(plaintext)} bytes exceeds {MAX_PLAINTEXT_SIZE} byte limit"
            )
        if not self.key_servers:
            raise EncryptionError("No key servers configured")
        if not 1 <= self.threshold <= len(self.key_servers):
            raise EncryptionError(
                f"Threshold {self.threshold} invalid for {len(self.key_servers)} key servers"
            )

        data_key = shamir.random_secret()
        shares = shamir.split(data_key, self.threshold, len(self.key_servers))

        slots = []
        for share, server in zip(shares, self.key_servers):
            ephemeral = X25519PrivateKey.generate()
            shared = ephemeral.exchange(X25519PublicKey.from_public_bytes(server.public_key))
            wrap_key = derive_key(shared, share_wrap_info(self.package_id, policy_id, server.object_id))
            slots.append(ShareSlot(
                object_id=server.object_id,
                index=share.index,
                encapsulation=x25519_public_bytes(ephemeral),
                wrapped_share=encrypt_data(share.to_hex().encode(), wrap_key, policy_id.encode()),
            ))

        obj = EncryptedObject(
            package_id=self.package_id,
            policy_id=policy_id,
            threshold=self.threshold,
            shares=slots,
            ciphertext=b"",
        )
        obj.ciphertext = encrypt_data(plaintext, data_key, obj.header())

        logger.debug(
            "encrypted %d bytes under policy %s (%d-of-%d)",
            len(plaintext), policy_id, self.threshold, len(slots),
        )
        return EncryptionResult(ciphertext=obj.to_bytes(), policy_id=policy_id, encrypted_object=obj)
