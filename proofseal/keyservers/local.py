"""
In-process key server.

Holds an X25519 master key and answers key requests after:
  1. verifying the session certificate (wallet signature, TTL, package)
  2. verifying the per-request session-key signature
  3. checking the predicate transaction targets seal_approve for exactly
     the requested policy, and was built for the certificate's address
  4. dry-running the predicate against current ledger state

Each server does all four independently; none trusts the client's view of
approved_viewers.
"""

import logging
import time

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey

from proofseal.envelope import KEY_DELIVERY_CONTEXT, context, derive_key, seal_to, x25519_public_bytes
from proofseal.errors import AuthorizationError, SessionExpiredError
from proofseal.identity import policy_id_bytes
from proofseal.keyservers.base import KeyRequest, KeyResponse, KeyServer
from proofseal.policy import share_wrap_info
from proofseal.session import verify_certificate, verify_request_signature
from proofseal.transactions import Pure, Transaction

logger = logging.getLogger(__name__)


def key_delivery_info(object_id: str, policy_id: str) -> bytes:
    return context(KEY_DELIVERY_CONTEXT, object_id, policy_id.lower())


class LocalKeyServer(KeyServer):
    """
    Args:
        object_id: This server's on-chain identifier.
        ledger: Anything with async dry_run(tx_kind, sender) -> bool.
        package_id: Package whose seal_approve this server evaluates.
        private_key: Master key; generated randomly if not provided.
        clock: Time source in seconds.
    """

    def __init__(
        self,
        object_id: str,
        ledger,
        package_id: str,
        private_key: X25519PrivateKey = None,
        clock=time.time,
    ):
        self.object_id = object_id
        self.ledger = ledger
        self.package_id = package_id
        self.clock = clock
        self._private_key = private_key or X25519PrivateKey.generate()
        self.public_key = x25519_public_bytes(self._private_key)
        self.requests_served = 0

    async def fetch_key(self, request: KeyRequest) -> KeyResponse:
        if request.package_id != self.package_id:
            raise AuthorizationError(f"Unknown package {request.package_id}")

        address = verify_certificate(request.certificate, self.package_id, now=self.clock())

        if not verify_request_signature(
            request.certificate, request.signing_payload(), request.request_signature
        ):
            raise AuthorizationError("Invalid request signature", address=address)

        self._check_predicate_shape(request, address)

        tx = Transaction.from_bytes(request.ptb)
        approved = await self.ledger.dry_run(tx.to_bytes(only_transaction_kind=True), address)
        if not approved:
            logger.info("%s: %s denied for policy %s", self.object_id, address, request.policy_id)
            raise AuthorizationError(
                f"{address} is not authorized for policy {request.policy_id}",
                address=address,
                policy_id=request.policy_id,
            )

        shared = self._private_key.exchange(X25519PublicKey.from_public_bytes(request.encapsulation))
        wrap_key = derive_key(shared, share_wrap_info(self.package_id, request.policy_id, self.object_id))
        ephemeral, sealed = seal_to(
            request.enc_key, wrap_key, key_delivery_info(self.object_id, request.policy_id)
        )

        self.requests_served += 1
        logger.debug("%s: released key for %s to %s", self.object_id, request.policy_id, address)
        return KeyResponse(object_id=self.object_id, ephemeral_key=ephemeral, sealed_key=sealed)

    def _check_predicate_shape(self, request: KeyRequest, address: str):
        """The predicate must be seal_approve(policy_id), built for address."""
        try:
            tx = Transaction.from_bytes(request.ptb)
            expected = policy_id_bytes(request.policy_id)
        except (ValueError, KeyError, TypeError) as e:
            raise AuthorizationError(f"Malformed predicate: {e}", address=address) from e

        if tx.sender is not None and tx.sender.lower() != address:
            raise AuthorizationError(
                f"Predicate was built for {tx.sender}, session is for {address}",
                address=address,
                policy_id=request.policy_id,
            )

        target = f"{self.package_id}::truth_nft::seal_approve"
        for call in tx.calls:
            arg = call.arguments[0] if len(call.arguments) == 1 else None
            if (
                call.target != target
                or not isinstance(arg, Pure)
                or arg.type != "vector<u8>"
                or arg.value != expected
            ):
                raise AuthorizationError(
                    f"Predicate does not check policy {request.policy_id}",
                    address=address,
                    policy_id=request.policy_id,
                )
        if not tx.calls:
            raise AuthorizationError("Empty predicate", address=address)

    async def handle(self, payload: dict) -> tuple[int, dict]:
        """
        HTTP-style entry point: JSON body in, (status, JSON body) out.

        400 malformed request, 401 expired session, 403 denied.
        """
        try:
            request = KeyRequest.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            return 400, {"error": f"Malformed request: {e}"}

        try:
            response = await self.fetch_key(request)
        except SessionExpiredError as e:
            return 401, {"error": str(e)}
        except AuthorizationError as e:
            return 403, {"error": str(e)}

        return 200, response.to_dict()

    async def is_available(self) -> bool:
        return True

    def get_info(self) -> dict:
        return {
            "object_id": self.object_id,
            "kind": "local",
            "package_id": self.package_id,
            "requests_served": self.requests_served,
        }
