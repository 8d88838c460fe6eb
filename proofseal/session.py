"""
Session Tokens
Short-lived, address-bound authorization for decryption requests.

Creating a session:
  1. Generate an ephemeral Ed25519 session key
  2. Build a personal message binding package, TTL, creation time and the
     session public key
  3. The wallet signs it (the only wallet interaction per session)
  4. The signature is verified against the address before the token is used

Key servers receive the token's certificate plus a per-request signature
made with the session key. A token is bound to one address; it never
leaves the client process except as that certificate, and it is never
sent to or stored on the ledger.
"""

import base64
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from proofseal.errors import (
    AuthorizationError,
    SessionCreationError,
    SessionExpiredError,
    ValidationError,
)
from proofseal.identity import normalize_address, public_key_bytes, verify_personal_message

logger = logging.getLogger(__name__)

MIN_TTL_MIN = 1
MAX_TTL_MIN = 30

# Tolerated clock difference between the issuing client and a key server
MAX_CLOCK_SKEW_MS = 60_000


def build_personal_message(package_id: str, ttl_min: int, creation_time_ms: int, session_vk: bytes) -> bytes:
    created = datetime.fromtimestamp(creation_time_ms / 1000, tz=timezone.utc)
    return (
        f"Accessing keys of package {package_id} for {ttl_min} mins from "
        f"{created.strftime('%Y-%m-%d %H:%M:%S')} UTC, "
        f"session key {base64.b64encode(session_vk).decode()}"
    ).encode("utf-8")


@dataclass
class SessionToken:
    address: str
    package_id: str
    creation_time_ms: int
    ttl_min: int
    signature: str
    _session_key: Ed25519PrivateKey = field(repr=False)

    @property
    def session_vk(self) -> bytes:
        return public_key_bytes(self._session_key)

    @property
    def expiry_ms(self) -> int:
        return self.creation_time_ms + self.ttl_min * 60_000

    def is_expired(self, now: float = None) -> bool:
        now_ms = int((time.time() if now is None else now) * 1000)
        return now_ms >= self.expiry_ms

    def personal_message(self) -> bytes:
        return build_personal_message(
            self.package_id, self.ttl_min, self.creation_time_ms, self.session_vk
        )

    def certificate(self) -> dict:
        """Public proof of the session presented to key servers."""
        return {
            "address": self.address,
            "package_id": self.package_id,
            "creation_time_ms": self.creation_time_ms,
            "ttl_min": self.ttl_min,
            "session_vk": base64.b64encode(self.session_vk).decode(),
            "signature": self.signature,
        }

    def sign_request(self, payload: bytes) -> str:
        return base64.b64encode(self._session_key.sign(payload)).decode()


def verify_certificate(certificate: dict, package_id: str, now: float = None) -> str:
    """
    Validate a session certificate and return the address it is bound to.

    Raises:
        SessionExpiredError: The session's TTL has lapsed.
        AuthorizationError: Malformed, wrong package, dated in the future, or
            bad wallet signature.
    """
    try:
        address = normalize_address(certificate["address"])
        creation_time_ms = int(certificate["creation_time_ms"])
        ttl_min = int(certificate["ttl_min"])
        session_vk = base64.b64decode(certificate["session_vk"])
        signature = certificate["signature"]
    except (KeyError, TypeError, ValueError) as e:
        raise AuthorizationError(f"Malformed session certificate: {e}") from e

    if certificate.get("package_id") != package_id:
        raise AuthorizationError(
            f"Session is for package {certificate.get('package_id')}, not {package_id}",
            address=address,
        )
    if not MIN_TTL_MIN <= ttl_min <= MAX_TTL_MIN:
        raise AuthorizationError(f"Session TTL {ttl_min} out of range", address=address)

    now_ms = int((time.time() if now is None else now) * 1000)
    if creation_time_ms > now_ms + MAX_CLOCK_SKEW_MS:
        raise AuthorizationError(
            f"Session for {address} is dated in the future", address=address
        )
    if now_ms >= creation_time_ms + ttl_min * 60_000:
        raise SessionExpiredError(f"Session for {address} has expired", address=address)

    message = build_personal_message(package_id, ttl_min, creation_time_ms, session_vk)
    if not verify_personal_message(message, signature, address):
        raise AuthorizationError(f"Invalid session signature for {address}", address=address)

    return address


def verify_request_signature(certificate: dict, payload: bytes, request_signature: str) -> bool:
    try:
        session_vk = Ed25519PublicKey.from_public_bytes(base64.b64decode(certificate["session_vk"]))
        session_vk.verify(base64.b64decode(request_signature), payload)
    except (InvalidSignature, KeyError, TypeError, ValueError):
        return False
    return True


class SessionAuthorizer:
    """
    Issues session tokens for one package.

    Args:
        package_id: Package whose keys the session may request.
        ttl_min: Session lifetime in minutes, 1–30.
        clock: Time source in seconds.
    """

    def __init__(self, package_id: str, ttl_min: int = MAX_TTL_MIN, clock=time.time):
        self.package_id = package_id
        self.ttl_min = ttl_min
        self.clock = clock

    async def create_session(self, address: str, sign, ttl_min: int = None) -> SessionToken:
        """
        Create a session for address, signed by the caller's wallet.

        Args:
            address: The identity the session is bound to.
            sign: Async callable(bytes) -> serialized signature; normally
                a wallet's sign_personal_message.
            ttl_min: Overrides the authorizer's default TTL.

        Raises:
            SessionCreationError: Bad address or TTL, signing rejected, or
                a signature that does not belong to address.
        """
        ttl_min = self.ttl_min if ttl_min is None else ttl_min
        if not isinstance(ttl_min, int) or not MIN_TTL_MIN <= ttl_min <= MAX_TTL_MIN:
            raise SessionCreationError(
                f"TTL must be between {MIN_TTL_MIN} and {MAX_TTL_MIN} minutes, got {ttl_min!r}"
            )

        try:
            address = normalize_address(address)
        except ValidationError as e:
            raise SessionCreationError(str(e)) from e

        session_key = Ed25519PrivateKey.generate()
        creation_time_ms = int(self.clock() * 1000)
        message = build_personal_message(
            self.package_id, ttl_min, creation_time_ms, public_key_bytes(session_key)
        )

        try:
            signature = await sign(message)
        except Exception as e:
            raise SessionCreationError(f"Signing rejected for {address}: {e}") from e

        if not verify_personal_message(message, signature, address):
            raise SessionCreationError(f"Signature does not belong to {address}")

        logger.info("session created for %s (ttl %d min)", address, ttl_min)
        return SessionToken(
            address=address,
            package_id=self.package_id,
            creation_time_ms=creation_time_ms,
            ttl_min=ttl_min,
            signature=signature,
            _session_key=session_key,
        )
