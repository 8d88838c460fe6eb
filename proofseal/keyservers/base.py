"""
Base class for key servers.
Every key server in the threshold network implements this interface.
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass

from proofseal.envelope import context

_REQUEST_CONTEXT = b"proofseal-key-request-v1"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


@dataclass
class KeyRequest:
    """
    Everything a key server needs to decide whether to release a key.

    ptb is the predicate transaction (seal_approve, never executed);
    enc_key is the X25519 key the answer is sealed to.
    """
    package_id: str
    policy_id: str
    ptb: bytes
    encapsulation: bytes
    enc_key: bytes
    certificate: dict
    request_signature: str = ""

    def signing_payload(self) -> bytes:
        """Bytes the session key signs for this request."""
        return context(
            _REQUEST_CONTEXT,
            self.package_id, self.policy_id, self.ptb, self.encapsulation, self.enc_key,
        )

    def to_dict(self) -> dict:
        return {
            "package_id": self.package_id,
            "policy_id": self.policy_id,
            "ptb": _b64(self.ptb),
            "encapsulation": _b64(self.encapsulation),
            "enc_key": _b64(self.enc_key),
            "certificate": self.certificate,
            "request_signature": self.request_signature,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KeyRequest":
        return cls(
            package_id=data["package_id"],
            policy_id=data["policy_id"],
            ptb=base64.b64decode(data["ptb"]),
            encapsulation=base64.b64decode(data["encapsulation"]),
            enc_key=base64.b64decode(data["enc_key"]),
            certificate=dict(data["certificate"]),
            request_signature=data["request_signature"],
        )


@dataclass
class KeyResponse:
    """A wrap key sealed to the requester's enc_key."""
    object_id: str
    ephemeral_key: bytes
    sealed_key: bytes

    def to_dict(self) -> dict:
        return {
            "object_id": self.object_id,
            "ephemeral_key": _b64(self.ephemeral_key),
            "sealed_key": _b64(self.sealed_key),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KeyResponse":
        return cls(
            object_id=data["object_id"],
            ephemeral_key=base64.b64decode(data["ephemeral_key"]),
            sealed_key=base64.b64decode(data["sealed_key"]),
        )


class KeyServer(ABC):
    """Abstract base class for threshold key servers."""

    object_id: str
    public_key: bytes

    @abstractmethod
    async def fetch_key(self, request: KeyRequest) -> KeyResponse:
        """
        Evaluate the access predicate and release this server's key.

        Raises:
            AuthorizationError: Predicate rejected the session's address.
            SessionExpiredError: The session certificate has lapsed.
        """

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if this key server is reachable."""

    @abstractmethod
    def get_info(self) -> dict:
        """Get metadata about this key server."""
