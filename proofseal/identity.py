"""
Identities, policy identifiers and personal-message signatures.

An address is 0x followed by 64 hex characters, derived from an Ed25519
public key:  0x || blake2b-256(flag || public_key).

A policy identifier is a fixed-width prefix of the owner's address.
It is structural, not random: every ciphertext an owner encrypts without
extra salt shares the same policy identifier and the same access predicate.

Serialized signatures follow the wallet convention:
    base64(flag || signature(64) || public_key(32))
so a verifier can recover the public key and check it hashes to the address.
"""

import base64
import hashlib
import re

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives import serialization

from proofseal.errors import InvalidIdentifierError, ValidationError


ADDRESS_LENGTH = 66            # "0x" + 64 hex chars
POLICY_ID_HEX_CHARS = 32       # 16 bytes of the owner's address
ED25519_FLAG = 0x00
SIGNATURE_SIZE = 64
PUBLIC_KEY_SIZE = 32

# Intent prefix for personal messages (scope=3, version=0, app=0)
_PERSONAL_MESSAGE_INTENT = bytes([3, 0, 0])

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{64}$")


def is_valid_address(value) -> bool:
    """True if value is a well-formed 66-character hex address."""
    if not isinstance(value, str):
        return False
    return bool(_ADDRESS_RE.match(value.lower()))


def normalize_address(value) -> str:
    """
    Validate and lowercase an address.

    Raises:
        ValidationError: If the address is not 0x + 64 hex characters.
    """
    if not is_valid_address(value):
        raise ValidationError(
            f"Invalid address {value!r}: must start with 0x and be "
            f"{ADDRESS_LENGTH} characters of hex"
        )
    return value.lower()


def derive_policy_id(owner: str) -> str:
    """
    Derive the policy identifier for an owner.

    Deterministic: the same owner always yields the same policy id.
    """
    address = normalize_address(owner)
    return "0x" + address[2:2 + POLICY_ID_HEX_CHARS]


def require_identifier(kind: str, value) -> str:
    """Reject empty, missing or literal-"undefined" identifiers."""
    if not isinstance(value, str) or not value.strip() or value.strip() in ("undefined", "null"):
        raise InvalidIdentifierError(kind, value)
    return value.strip()


def policy_id_bytes(policy_id: str) -> bytes:
    """Raw bytes of a 0x-prefixed policy identifier."""
    policy_id = require_identifier("policy id", policy_id)
    try:
        return bytes.fromhex(policy_id.removeprefix("0x"))
    except ValueError:
        raise InvalidIdentifierError("policy id", policy_id) from None


def address_from_public_key(public_key: bytes) -> str:
    digest = hashlib.blake2b(bytes([ED25519_FLAG]) + public_key, digest_size=32)
    return "0x" + digest.hexdigest()


def personal_message_digest(message: bytes) -> bytes:
    """Digest actually signed for a personal message (intent + length + body)."""
    payload = _PERSONAL_MESSAGE_INTENT + len(message).to_bytes(4, "big") + message
    return hashlib.blake2b(payload, digest_size=32).digest()


def serialize_signature(signature: bytes, public_key: bytes) -> str:
    return base64.b64encode(bytes([ED25519_FLAG]) + signature + public_key).decode()


def verify_personal_message(message: bytes, signature: str, address: str) -> bool:
    """
    Check that signature is a valid personal-message signature by address.

    Returns False for any malformed or mismatching signature.
    """
    try:
        raw = base64.b64decode(signature, validate=True)
    except (ValueError, TypeError):
        return False

    if len(raw) != 1 + SIGNATURE_SIZE + PUBLIC_KEY_SIZE or raw[0] != ED25519_FLAG:
        return False

    sig = raw[1:1 + SIGNATURE_SIZE]
    public_key = raw[1 + SIGNATURE_SIZE:]

    if not is_valid_address(address):
        return False
    if address_from_public_key(public_key) != address.lower():
        return False

    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(
            sig, personal_message_digest(message)
        )
    except InvalidSignature:
        return False
    return True


def public_key_bytes(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
