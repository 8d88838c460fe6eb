"""
Envelope primitives shared by the encryptor, key servers and sessions.

  AES-256-GCM   — payload and share encryption
  HKDF-SHA256   — wrap-key derivation, domain separated per context
  X25519        — sealing a value to a recipient's public key

HKDF contexts are length-prefixed field lists, never delimiter-joined
strings, so no two distinct field tuples produce the same context.
"""

import os

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF


NONCE_SIZE = 12  # AES-256-GCM standard
KEY_SIZE = 32    # 256 bits

SHARE_WRAP_CONTEXT = b"proofseal-share-wrap-v1"
KEY_DELIVERY_CONTEXT = b"proofseal-key-delivery-v1"


def context(label: bytes, *parts: str | bytes) -> bytes:
    """Build an HKDF info string from a label and length-prefixed parts."""
    out = bytearray(label)
    for part in parts:
        raw = part.encode("utf-8") if isinstance(part, str) else bytes(part)
        out += len(raw).to_bytes(4, "big") + raw
    return bytes(out)


def derive_key(material: bytes, info: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=info,
    )
    return hkdf.derive(material)


def encrypt_data(data: bytes, key: bytes, aad: bytes | None = None) -> bytes:
    """Encrypt with AES-256-GCM. Returns nonce || ciphertext."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, data, aad)


def decrypt_data(sealed: bytes, key: bytes, aad: bytes | None = None) -> bytes:
    """Decrypt nonce || ciphertext. Raises cryptography's InvalidTag on failure."""
    nonce = sealed[:NONCE_SIZE]
    ciphertext = sealed[NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ciphertext, aad)


def x25519_public_bytes(private_key: X25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def seal_to(recipient_public: bytes, data: bytes, info: bytes) -> tuple[bytes, bytes]:
    """
    Encrypt data so only the holder of recipient_public's private key can read it.

    Returns:
        (ephemeral_public_key, nonce || ciphertext)
    """
    ephemeral = X25519PrivateKey.generate()
    shared = ephemeral.exchange(X25519PublicKey.from_public_bytes(recipient_public))
    key = derive_key(shared, info)
    return x25519_public_bytes(ephemeral), encrypt_data(data, key)


def open_sealed(private_key: X25519PrivateKey, ephemeral_public: bytes, sealed: bytes, info: bytes) -> bytes:
    """Inverse of seal_to."""
    shared = private_key.exchange(X25519PublicKey.from_public_bytes(ephemeral_public))
    return decrypt_data(sealed, derive_key(shared, info))
