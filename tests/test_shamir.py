"""
Tests for Shamir's Secret Sharing over the data-key field.
"""

import itertools
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from proofseal.shamir import PRIME, SECRET_SIZE, Share, combine, random_secret, split


def test_split_and_combine_basic():
    """Split 3-of-5 and reconstruct from exactly the threshold."""
    secret = random_secret()
    shares = split(secret, threshold=3, num_shares=5)

    assert len(shares) == 5
    for s in shares:
        assert s.threshold == 3
        assert s.total == 5

    assert combine(shares[:3]) == secret


def test_threshold_one_every_share_is_the_key():
    """With K = 1 any single share recovers the data key."""
    secret = random_secret()
    shares = split(secret, threshold=1, num_shares=2)

    for share in shares:
        assert share.value == int.from_bytes(secret, "big")
        assert combine([share]) == secret


def test_combine_any_k_shares():
    """ANY K shares reconstruct."""
    secret = random_secret()
    shares = split(secret, threshold=2, num_shares=4)

    tested = 0
    for combo in itertools.combinations(shares, 2):
        assert combine(list(combo)) == secret, f"Failed with shares {[s.index for s in combo]}"
        tested += 1
    assert tested == 6


def test_insufficient_shares_fail():
    """Fewer than K shares cannot reconstruct."""
    shares = split(random_secret(), threshold=3, num_shares=4)
    with pytest.raises(ValueError):
        combine(shares[:2])
    with pytest.raises(ValueError):
        combine([])


def test_duplicate_shares_rejected():
    """Passing the same share twice is not K distinct shares."""
    shares = split(random_secret(), threshold=2, num_shares=3)
    with pytest.raises(ValueError, match="Duplicate"):
        combine([shares[0], shares[0]])


def test_wrong_shares_wrong_secret():
    """Mixing shares of different secrets yields neither secret."""
    secret1 = random_secret()
    secret2 = random_secret()
    shares1 = split(secret1, threshold=3, num_shares=5)
    shares2 = split(secret2, threshold=3, num_shares=5)

    mixed = [shares1[0], shares2[1], shares1[2]]
    reconstructed = combine(mixed)
    assert reconstructed != secret1
    assert reconstructed != secret2


def test_share_serialization():
    """Shares survive hex serialization and still reconstruct."""
    secret = random_secret()
    shares = split(secret, threshold=2, num_shares=3)

    restored = [Share.from_hex(s.to_hex()) for s in shares]
    assert restored == shares
    assert combine(restored[1:]) == secret


def test_malformed_share_rejected():
    with pytest.raises(ValueError, match="4 fields"):
        Share.from_hex("1:abcd:1")


def test_split_parameter_validation():
    """Bad thresholds and oversize secrets are rejected up front."""
    with pytest.raises(ValueError):
        split(random_secret(), threshold=0, num_shares=2)
    with pytest.raises(ValueError):
        split(random_secret(), threshold=3, num_shares=2)
    with pytest.raises(ValueError):
        split(b"\x00" * (SECRET_SIZE + 1), threshold=1, num_shares=1)
    with pytest.raises(ValueError):
        split(PRIME.to_bytes(SECRET_SIZE, "big"), threshold=1, num_shares=1)


def test_random_secret_in_field():
    for _ in range(50):
        secret = random_secret()
        assert len(secret) == SECRET_SIZE
        assert int.from_bytes(secret, "big") < PRIME


if __name__ == "__main__":
    print("\n=== proofseal — Shamir Tests ===\n")
    test_split_and_combine_basic()
    test_threshold_one_every_share_is_the_key()
    test_combine_any_k_shares()
    test_insufficient_shares_fail()
    test_duplicate_shares_rejected()
    test_wrong_shares_wrong_secret()
    test_share_serialization()
    test_malformed_share_rejected()
    test_split_parameter_validation()
    test_random_secret_in_field()
    print("\n=== ALL SHAMIR TESTS PASSED ===\n")
