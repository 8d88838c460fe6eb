"""
Tests for addresses, policy identifiers and personal-message signatures.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from proofseal.errors import InvalidIdentifierError, ValidationError
from proofseal.identity import (
    derive_policy_id,
    is_valid_address,
    normalize_address,
    personal_message_digest,
    policy_id_bytes,
    require_identifier,
    verify_personal_message,
)
from proofseal.wallet import LocalWallet

OWNER_A = "0x" + "aa" * 32


def test_address_format():
    """0x followed by 64 hex characters, case-insensitive."""
    assert is_valid_address(OWNER_A)
    assert is_valid_address(OWNER_A.upper().replace("0X", "0x"))
    assert not is_valid_address("0x123")
    assert not is_valid_address("aa" * 33)
    assert not is_valid_address("0x" + "zz" * 32)
    assert not is_valid_address(None)


def test_normalize_address():
    assert normalize_address("0x" + "AB" * 32) == "0x" + "ab" * 32
    with pytest.raises(ValidationError):
        normalize_address("0xnot-an-address")


def test_policy_id_is_owner_prefix():
    """The policy id is the first 16 bytes of the owner's address."""
    assert derive_policy_id(OWNER_A) == "0x" + "a" * 32
    assert derive_policy_id(OWNER_A) == derive_policy_id(OWNER_A.upper().replace("0X", "0x"))
    assert policy_id_bytes(derive_policy_id(OWNER_A)) == b"\xaa" * 16


def test_policy_id_requires_valid_owner():
    with pytest.raises(ValidationError):
        derive_policy_id("0x1234")


@pytest.mark.parametrize("value", ["", "   ", "undefined", "null", None, 42])
def test_require_identifier_rejects_placeholders(value):
    with pytest.raises(InvalidIdentifierError):
        require_identifier("blob id", value)


def test_require_identifier_strips():
    assert require_identifier("blob id", "  abc  ") == "abc"


def test_policy_id_bytes_rejects_non_hex():
    with pytest.raises(InvalidIdentifierError):
        policy_id_bytes("0xnothex")


@pytest.mark.asyncio
async def test_personal_message_signature():
    """A wallet's signature verifies for its own address only."""
    wallet = LocalWallet()
    other = LocalWallet()
    message = b"Accessing keys of package 0x1"

    signature = await wallet.sign_personal_message(message)
    assert verify_personal_message(message, signature, wallet.address)
    assert not verify_personal_message(message, signature, other.address)
    assert not verify_personal_message(b"something else", signature, wallet.address)
    assert not verify_personal_message(message, "not base64!", wallet.address)


def test_personal_message_digest_is_length_prefixed():
    assert personal_message_digest(b"ab") != personal_message_digest(b"a")
    assert len(personal_message_digest(b"")) == 32
