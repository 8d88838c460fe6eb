"""
LedgerRecordManager — Proof records on the ledger.

A Proof is minted once and never updated in place except for its
approved-viewer set. Reads are defensive: the viewer set has been observed
in three encodings and none of them is treated as canonical.

    nested   {"type": ..., "fields": {"contents": [addr, ...]}}
    flat     {"contents": [addr, ...]}
    bare     [addr, ...]

An unrecognized encoding degrades to an empty set plus a diagnostic on the
snapshot; it never crashes the caller.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum

from proofseal.errors import (
    MalformedRecordError,
    TransactionRejectedError,
    ValidationError,
)
from proofseal.events import ProofSubmitted
from proofseal.identity import derive_policy_id, is_valid_address, require_identifier
from proofseal.transactions import Pure, Transaction

logger = logging.getLogger(__name__)

MODULE = "truth_nft"


class ViewerEncoding(Enum):
    NESTED_CONTENTS = "nested"
    FLAT_CONTENTS = "flat"
    BARE_ARRAY = "bare"
    ABSENT = "absent"
    UNRECOGNIZED = "unrecognized"


def _nested_contents(raw):
    if isinstance(raw, dict) and isinstance(raw.get("fields"), dict):
        contents = raw["fields"].get("contents")
        if isinstance(contents, list):
            return contents
    return None


def _flat_contents(raw):
    if isinstance(raw, dict) and isinstance(raw.get("contents"), list):
        return raw["contents"]
    return None


def _bare_array(raw):
    return raw if isinstance(raw, list) else None


# Tried in order; the first extractor that recognizes the shape wins
VIEWER_PARSERS = [
    (ViewerEncoding.NESTED_CONTENTS, _nested_contents),
    (ViewerEncoding.FLAT_CONTENTS, _flat_contents),
    (ViewerEncoding.BARE_ARRAY, _bare_array),
]


def parse_approved_viewers(raw, record_id: str = "") -> tuple[ViewerEncoding, frozenset]:
    """
    Normalize an approved_viewers field into a set of lowercase addresses.

    Raises:
        MalformedRecordError: No known encoding matched, or an entry is not
            an address.
    """
    if raw is None:
        return ViewerEncoding.ABSENT, frozenset()

    for encoding, extract in VIEWER_PARSERS:
        contents = extract(raw)
        if contents is None:
            continue
        if not all(is_valid_address(v) for v in contents):
            raise MalformedRecordError(record_id, raw)
        return encoding, frozenset(v.lower() for v in contents)

    raise MalformedRecordError(record_id, raw)


def _text(fields: dict, name: str, diagnostics: list) -> str:
    """
    Move strings arrive as str; raw vector<u8> fields arrive as int lists.

    Bytes that are not UTF-8 are kept as 0x-hex and noted in diagnostics.
    """
    value = fields.get(name)
    if isinstance(value, dict) and "bytes" in value:
        value = value["bytes"]
    if not isinstance(value, list):
        return "" if value is None else str(value)

    try:
        raw = bytes(value)
    except (TypeError, ValueError):
        diagnostics.append(f"{name} is not a byte vector: {value!r}")
        return ""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        diagnostics.append(f"{name} is not UTF-8, kept as hex")
        return "0x" + raw.hex()


def _timestamp(fields: dict, name: str, diagnostics: list) -> int:
    value = fields.get(name)
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        diagnostics.append(f"{name} is not a millisecond timestamp: {value!r}")
        return 0


@dataclass(frozen=True)
class ProofSnapshot:
    """Point-in-time view of a Proof record."""
    record_id: str
    owner: str
    blob_id: str
    policy_id: str
    result_blob_id: str
    result_policy_id: str
    proof_hash: str
    created_at: int
    approved_viewers: frozenset
    viewer_encoding: ViewerEncoding = ViewerEncoding.ABSENT
    diagnostics: tuple = ()

    def can_decrypt(self, address: str) -> bool:
        address = address.lower()
        return address == self.owner or address in self.approved_viewers


@dataclass(frozen=True)
class PendingWrite:
    """A submitted write that may not be queryable yet."""
    digest: str
    sender: str
    submitted_at: float


class LedgerRecordManager:
    """
    Mints and reads Proof records.

    Args:
        package_id: Package the truth_nft module is published under.
        reader: LedgerReader used for queries.
        events: Optional EventBus for ProofSubmitted.
    """

    def __init__(self, package_id: str, reader, events=None):
        self.package_id = package_id
        self.reader = reader
        self.events = events
        self._snapshots: dict[str, ProofSnapshot] = {}

    def target(self, function: str) -> str:
        return f"{self.package_id}::{MODULE}::{function}"

    async def mint(
        self,
        signer,
        blob_id: str,
        policy_id: str,
        result_blob_id: str,
        result_policy_id: str,
        proof_digest: str,
    ) -> PendingWrite:
        """
        Create a Proof record in a single ledger write.

        Every field is its own vector<u8> argument.

        Raises:
            ValidationError: Bad identifiers, or policy ids not derived
                from the signer's address.
            TransactionRejectedError: The ledger rejected the write.
        """
        fields = {
            "blob id": blob_id,
            "policy id": policy_id,
            "result blob id": result_blob_id,
            "result policy id": result_policy_id,
            "proof digest": proof_digest,
        }
        for kind, value in fields.items():
            require_identifier(kind, value)

        expected = derive_policy_id(signer.address)
        for kind in ("policy id", "result policy id"):
            if fields[kind].lower() != expected:
                raise ValidationError(
                    f"{kind} {fields[kind]} is not the policy of {signer.address} ({expected})"
                )

        tx = Transaction().move_call(
            self.target("mint"),
            [Pure.vector_u8(v) for v in fields.values()],
        )
        result = await signer.sign_and_submit_transaction(tx)
        if not result.ok:
            raise TransactionRejectedError(result.digest, result.error or "unknown error")

        logger.info("mint submitted by %s: %s", signer.address, result.digest)
        if self.events is not None:
            self.events.publish(ProofSubmitted(owner=signer.address.lower(), digest=result.digest))

        return PendingWrite(digest=result.digest, sender=signer.address.lower(), submitted_at=time.time())

    async def query(self, record_id: str) -> ProofSnapshot | None:
        """
        Read a Proof record. Returns None if it does not exist.

        Transport errors propagate unchanged.
        """
        record_id = require_identifier("record id", record_id)
        response = await self.reader.get_object(record_id)

        data = (response or {}).get("data")
        if not data:
            logger.debug("record %s not found: %s", record_id, (response or {}).get("error"))
            return None

        fields = (data.get("content") or {}).get("fields") or {}

        diagnostics = []
        try:
            encoding, viewers = parse_approved_viewers(fields.get("approved_viewers"), record_id)
        except MalformedRecordError as e:
            encoding, viewers = ViewerEncoding.UNRECOGNIZED, frozenset()
            diagnostics.append(str(e))

        owner = _text(fields, "owner", diagnostics).lower()
        # The owner never counts as a viewer
        viewers = viewers - {owner}

        snapshot = ProofSnapshot(
            record_id=record_id,
            owner=owner,
            blob_id=_text(fields, "blob_id", diagnostics),
            policy_id=_text(fields, "policy_id", diagnostics),
            result_blob_id=_text(fields, "result_blob_id", diagnostics),
            result_policy_id=_text(fields, "result_policy_id", diagnostics),
            proof_hash=_text(fields, "proof_hash", diagnostics),
            created_at=_timestamp(fields, "created_at", diagnostics),
            approved_viewers=viewers,
            viewer_encoding=encoding,
            diagnostics=tuple(diagnostics),
        )
        if diagnostics:
            logger.warning("record %s read with issues: %s", record_id, "; ".join(diagnostics))
        self._snapshots[record_id] = snapshot
        return snapshot

    def cached(self, record_id: str) -> ProofSnapshot | None:
        """Last snapshot read for record_id, without touching the ledger."""
        return self._snapshots.get(record_id)
