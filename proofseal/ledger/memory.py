"""
In-memory ledger for local development and tests.

Executes the truth_nft contract's entry functions against an in-process
object store and serves reads in the same shape a full node returns.

Contract (module truth_nft):
  mint(blob_id, policy_id, result_blob_id, result_policy_id, proof_hash)
      creates a Proof owned by the sender, no approved viewers
  grant_access(proof, viewer, duration_epochs)
      owner only; adds viewer (never the owner, never twice)
  revoke_access(proof, viewer)
      owner only; removes viewer, no-op if absent
  seal_approve(id)
      access predicate: passes when some Proof with policy_id == id is
      owned by the sender or lists the sender as an approved viewer

Indexing delay is simulated: each new transaction answers "not indexed"
for the first index_delay lookups.
"""

import base64
import hashlib
import itertools
import logging
import time

from proofseal.errors import TransactionNotIndexedError
from proofseal.ledger.base import LedgerReader
from proofseal.transactions import ObjectArg, Pure, Transaction, TransactionResult

logger = logging.getLogger(__name__)

MODULE = "truth_nft"

# Move abort codes
E_NOT_OWNER = 1
E_BAD_ARGS = 2

VIEWER_ENCODINGS = ("nested", "flat", "bare")


class MoveAbort(Exception):
    def __init__(self, function: str, code: int):
        self.function = function
        self.code = code
        super().__init__(f"MoveAbort in {MODULE}::{function} with code {code}")


class InMemoryLedger(LedgerReader):
    """
    Args:
        package_id: Package the truth_nft module is published under.
        index_delay: Lookups that report "not indexed" per new transaction.
        viewer_encoding: How approved_viewers is rendered on reads
            ("nested", "flat" or "bare").
        clock: Time source in seconds.
    """

    def __init__(
        self,
        package_id: str,
        index_delay: int = 0,
        viewer_encoding: str = "nested",
        clock=time.time,
    ):
        if viewer_encoding not in VIEWER_ENCODINGS:
            raise ValueError(f"viewer_encoding must be one of {VIEWER_ENCODINGS}")
        self.package_id = package_id
        self.index_delay = index_delay
        self.viewer_encoding = viewer_encoding
        self.clock = clock

        self._objects: dict[str, dict] = {}
        self._transactions: dict[str, dict] = {}
        self._pending_lookups: dict[str, int] = {}
        self._counter = itertools.count(1)

    @property
    def proof_type(self) -> str:
        return f"{self.package_id}::{MODULE}::Proof"

    # ---- writes --------------------------------------------------------

    def execute(self, tx: Transaction, sender: str) -> TransactionResult:
        """Execute all calls atomically. Aborts roll back every call."""
        digest = self._digest(tx, sender)
        snapshot = {oid: {**obj, "approved_viewers": list(obj["approved_viewers"])}
                    for oid, obj in self._objects.items()}
        created = []

        try:
            for call in tx.calls:
                if call.package != self.package_id or call.module != MODULE:
                    raise MoveAbort(call.function, E_BAD_ARGS)
                handler = getattr(self, f"_call_{call.function}", None)
                if handler is None:
                    raise MoveAbort(call.function, E_BAD_ARGS)
                result = handler(sender, *call.arguments)
                if result:
                    created.append(result)
        except (MoveAbort, TypeError, ValueError) as e:
            self._objects = snapshot
            error = str(e)
            self._record(digest, "failure", error, [])
            logger.info("tx %s failed: %s", digest, error)
            return TransactionResult(digest=digest, status="failure", error=error)

        self._record(digest, "success", None, created)
        logger.info("tx %s executed (%d created)", digest, len(created))
        return TransactionResult(digest=digest)

    def _digest(self, tx: Transaction, sender: str) -> str:
        material = tx.to_bytes() + sender.encode() + str(next(self._counter)).encode()
        raw = hashlib.blake2b(material, digest_size=32).digest()
        return base64.urlsafe_b64encode(raw).decode().rstrip("=")

    def _record(self, digest: str, status: str, error: str | None, created: list[str]):
        effects = {"status": {"status": status}}
        if error:
            effects["status"]["error"] = error
        self._transactions[digest] = {
            "digest": digest,
            "effects": effects,
            "objectChanges": [
                {"type": "created", "objectType": self.proof_type, "objectId": oid}
                for oid in created
            ],
        }
        self._pending_lookups[digest] = self.index_delay

    def _owned_proof(self, function: str, sender: str, arg) -> dict:
        if not isinstance(arg, ObjectArg) or arg.object_id not in self._objects:
            raise MoveAbort(function, E_BAD_ARGS)
        proof = self._objects[arg.object_id]
        if proof["owner"] != sender:
            raise MoveAbort(function, E_NOT_OWNER)
        return proof

    @staticmethod
    def _text(function: str, arg) -> str:
        if not isinstance(arg, Pure) or arg.type != "vector<u8>":
            raise MoveAbort(function, E_BAD_ARGS)
        return arg.value.decode("utf-8")

    @staticmethod
    def _address(function: str, arg) -> str:
        if not isinstance(arg, Pure) or arg.type != "address":
            raise MoveAbort(function, E_BAD_ARGS)
        return arg.value.lower()

    def _call_mint(self, sender, blob_id, policy_id, result_blob_id, result_policy_id, proof_hash):
        object_id = "0x" + hashlib.blake2b(
            f"{sender}:{next(self._counter)}".encode(), digest_size=32
        ).hexdigest()
        self._objects[object_id] = {
            "owner": sender,
            "blob_id": self._text("mint", blob_id),
            "policy_id": self._text("mint", policy_id),
            "result_blob_id": self._text("mint", result_blob_id),
            "result_policy_id": self._text("mint", result_policy_id),
            "proof_hash": self._text("mint", proof_hash),
            "created_at": int(self.clock() * 1000),
            "approved_viewers": [],
        }
        return object_id

    def _call_grant_access(self, sender, proof_arg, viewer_arg, duration_arg):
        proof = self._owned_proof("grant_access", sender, proof_arg)
        viewer = self._address("grant_access", viewer_arg)
        if not isinstance(duration_arg, Pure) or duration_arg.type != "u64":
            raise MoveAbort("grant_access", E_BAD_ARGS)
        if viewer != proof["owner"] and viewer not in proof["approved_viewers"]:
            proof["approved_viewers"].append(viewer)

    def _call_revoke_access(self, sender, proof_arg, viewer_arg):
        proof = self._owned_proof("revoke_access", sender, proof_arg)
        viewer = self._address("revoke_access", viewer_arg)
        if viewer in proof["approved_viewers"]:
            proof["approved_viewers"].remove(viewer)

    # ---- reads ---------------------------------------------------------

    async def get_transaction(self, digest: str) -> dict:
        if digest not in self._transactions:
            raise TransactionNotIndexedError(digest)
        remaining = self._pending_lookups.get(digest, 0)
        if remaining > 0:
            self._pending_lookups[digest] = remaining - 1
            raise TransactionNotIndexedError(digest)
        return self._transactions[digest]

    async def get_object(self, object_id: str) -> dict:
        proof = self._objects.get(object_id)
        if proof is None:
            return {"error": {"code": "notExists", "object_id": object_id}}

        viewers = list(proof["approved_viewers"])
        if self.viewer_encoding == "nested":
            encoded = {"type": "0x2::vec_set::VecSet<address>", "fields": {"contents": viewers}}
        elif self.viewer_encoding == "flat":
            encoded = {"contents": viewers}
        else:
            encoded = viewers

        fields = {
            "id": {"id": object_id},
            "owner": proof["owner"],
            "blob_id": proof["blob_id"],
            "policy_id": proof["policy_id"],
            "result_blob_id": proof["result_blob_id"],
            "result_policy_id": proof["result_policy_id"],
            "proof_hash": proof["proof_hash"],
            "created_at": str(proof["created_at"]),
            "approved_viewers": encoded,
        }
        return {
            "data": {
                "objectId": object_id,
                "type": self.proof_type,
                "owner": {"AddressOwner": proof["owner"]},
                "content": {"dataType": "moveObject", "type": self.proof_type, "fields": fields},
            }
        }

    async def dry_run(self, tx_kind: bytes, sender: str) -> bool:
        """
        Evaluate a seal_approve predicate without executing anything.

        Returns True only if every call is seal_approve on this package
        and each passes for sender.
        """
        tx = Transaction.from_bytes(tx_kind)
        if not tx.calls:
            return False
        sender = sender.lower()

        for call in tx.calls:
            if call.target != f"{self.package_id}::{MODULE}::seal_approve":
                return False
            if len(call.arguments) != 1:
                return False
            arg = call.arguments[0]
            if not isinstance(arg, Pure) or arg.type != "vector<u8>":
                return False
            policy_id = "0x" + arg.value.hex()
            if not self._approves(policy_id, sender):
                return False
        return True

    def _approves(self, policy_id: str, sender: str) -> bool:
        for proof in self._objects.values():
            if policy_id not in (proof["policy_id"].lower(), proof["result_policy_id"].lower()):
                continue
            if proof["owner"] == sender or sender in proof["approved_viewers"]:
                return True
        return False
