"""
Shamir's Secret Sharing
Split a data key into N shares where any K can reconstruct it.

Used by the PolicyEncryptor to spread each ciphertext's data key across
the key-server network. Each key server can unwrap exactly one share,
and only after its predicate check passes.

K = 1 is allowed: the polynomial is constant and every share carries the
whole key. That is the network's default threshold; it leaves no
key-server fault tolerance.
"""

import secrets
from dataclasses import dataclass

# 256-bit prime field (secp256k1 group order)
PRIME = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

SECRET_SIZE = 32


@dataclass
class Share:
    """A single share of a split secret."""
    index: int      # The x-coordinate (1-indexed, never 0)
    value: int      # The y-coordinate (the share value)
    threshold: int  # K: shares needed to reconstruct
    total: int      # N: total number of shares

    def to_hex(self) -> str:
        """Serialize to a portable hex string."""
        return f"{self.index}:{self.value:064x}:{self.threshold}:{self.total}"

    @classmethod
    def from_hex(cls, hex_str: str) -> "Share":
        """Deserialize from hex string."""
        parts = hex_str.split(":")
        if len(parts) != 4:
            raise ValueError(f"Malformed share: expected 4 fields, got {len(parts)}")
        return cls(
            index=int(parts[0]),
            value=int(parts[1], 16),
            threshold=int(parts[2]),
            total=int(parts[3]),
        )


def random_secret() -> bytes:
    """A uniformly random field element, serialized as 32 bytes."""
    return secrets.randbelow(PRIME).to_bytes(SECRET_SIZE, "big")


def _mod_inverse(a: int, p: int) -> int:
    """Modular multiplicative inverse using Fermat's little theorem."""
    return pow(a, p - 2, p)


def _eval_polynomial(coefficients: list[int], x: int, prime: int) -> int:
    """Evaluate a polynomial at x in the prime field."""
    result = 0
    for i, coeff in enumerate(coefficients):
        result = (result + coeff * pow(x, i, prime)) % prime
    return result


def split(secret: bytes, threshold: int, num_shares: int) -> list[Share]:
    """
    Split a secret into shares using Shamir's Secret Sharing.

    Args:
        secret: The secret bytes to split (max 32 bytes / 256 bits).
        threshold: Minimum shares needed to reconstruct (K >= 1).
        num_shares: Total shares to generate (N).

    Returns:
        List of N Share objects. Any K can reconstruct the secret.

    Raises:
        ValueError: If parameters are invalid.
    """
    if threshold < 1:
        raise ValueError("Threshold must be at least 1")
    if threshold > num_shares:
        raise ValueError("Threshold cannot exceed number of shares")
    if len(secret) > SECRET_SIZE:
        raise ValueError("Secret must be 32 bytes or less")

    secret_int = int.from_bytes(secret, "big")
    if secret_int >= PRIME:
        raise ValueError("Secret too large for the prime field")

    # f(x) = secret + a1*x + ... + a(k-1)*x^(k-1), so f(0) = secret
    coefficients = [secret_int]
    for _ in range(threshold - 1):
        coefficients.append(secrets.randbelow(PRIME))

    return [
        Share(
            index=i,
            value=_eval_polynomial(coefficients, i, PRIME),
            threshold=threshold,
            total=num_shares,
        )
        for i in range(1, num_shares + 1)
    ]


def combine(shares: list[Share]) -> bytes:
    """
    Reconstruct a secret from K or more shares using Lagrange interpolation.

    Raises:
        ValueError: If not enough (or duplicate) shares are provided.
    """
    if not shares:
        raise ValueError("Need at least 1 share")

    threshold = shares[0].threshold
    if len(shares) < threshold:
        raise ValueError(f"Need at least {threshold} shares, got {len(shares)}")

    shares = shares[:threshold]
    if len({s.index for s in shares}) != len(shares):
        raise ValueError("Duplicate share indices")

    # Lagrange interpolation at x=0 to recover f(0) = secret
    secret_int = 0
    for i, share_i in enumerate(shares):
        numerator = 1
        denominator = 1
        for j, share_j in enumerate(shares):
            if i == j:
                continue
            numerator = (numerator * (-share_j.index)) % PRIME
            denominator = (denominator * (share_i.index - share_j.index)) % PRIME

        lagrange = (share_i.value * numerator * _mod_inverse(denominator, PRIME)) % PRIME
        secret_int = (secret_int + lagrange) % PRIME

    return secret_int.to_bytes(SECRET_SIZE, "big")
