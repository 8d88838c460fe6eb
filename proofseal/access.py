"""
AccessGrantController — grant and revoke viewers on a Proof record.

Both operations are owner-only ledger writes. Neither is visible to
readers right away: callers that need the updated viewer set must call
settle(), which waits `settle_delay` seconds and re-queries. Reading
immediately after a grant may still return the old set.
"""

import asyncio
import logging

from proofseal.errors import OwnershipError, TransactionRejectedError, ValidationError
from proofseal.events import AccessGranted, AccessRevoked
from proofseal.identity import normalize_address, require_identifier
from proofseal.transactions import ObjectArg, Pure, Transaction

logger = logging.getLogger(__name__)

SETTLE_DELAY = 3.0
DEFAULT_DURATION_EPOCHS = 30


class AccessGrantController:
    """
    Args:
        records: LedgerRecordManager (for targets, cached snapshots, settle).
        settle_delay: Seconds to wait before re-querying after a write.
        sleep: Async sleep function, injectable for tests.
        events: Optional EventBus for AccessGranted / AccessRevoked.
    """

    def __init__(self, records, settle_delay: float = SETTLE_DELAY, sleep=asyncio.sleep, events=None):
        self.records = records
        self.settle_delay = settle_delay
        self.sleep = sleep
        self.events = events

    def _check_owner(self, signer, record_id: str):
        snapshot = self.records.cached(record_id)
        if snapshot is not None and snapshot.owner and snapshot.owner != signer.address.lower():
            raise OwnershipError(record_id, signer.address, snapshot.owner)
        return snapshot

    async def _submit(self, signer, tx: Transaction, record_id: str, viewer: str) -> str:
        result = await signer.sign_and_submit_transaction(tx)
        if not result.ok:
            raise TransactionRejectedError(
                result.digest,
                f"{result.error or 'unknown error'} (record {record_id}, viewer {viewer})",
            )
        return result.digest

    async def grant(
        self,
        signer,
        record_id: str,
        viewer: str,
        duration_epochs: int = DEFAULT_DURATION_EPOCHS,
    ) -> None:
        """
        Add viewer to the record's approved set.

        duration_epochs is transmitted to the contract; whether it is
        enforced is up to the contract.

        Raises:
            ValidationError: Malformed viewer, the owner as viewer, or a
                non-positive duration.
            OwnershipError: The signer is known not to own the record.
            TransactionRejectedError: The ledger rejected the write.
        """
        record_id = require_identifier("record id", record_id)
        viewer = normalize_address(viewer)
        if not isinstance(duration_epochs, int) or duration_epochs <= 0:
            raise ValidationError(f"duration_epochs must be a positive integer, got {duration_epochs!r}")

        snapshot = self._check_owner(signer, record_id)
        owner = snapshot.owner if snapshot is not None else signer.address.lower()
        if viewer == owner:
            raise ValidationError(f"{viewer} owns record {record_id}; owners always have access")

        tx = Transaction().move_call(
            self.records.target("grant_access"),
            [ObjectArg(record_id), Pure.address(viewer), Pure.u64(duration_epochs)],
        )
        digest = await self._submit(signer, tx, record_id, viewer)

        logger.info("granted %s on %s for %d epochs (%s)", viewer, record_id, duration_epochs, digest)
        if self.events is not None:
            self.events.publish(AccessGranted(record_id, viewer, duration_epochs, digest))

    async def revoke(self, signer, record_id: str, viewer: str) -> None:
        """
        Remove viewer from the record's approved set.

        Revoking a viewer that is not in the set succeeds and changes nothing.

        Raises:
            ValidationError: Malformed viewer.
            OwnershipError: The signer is known not to own the record.
            TransactionRejectedError: The ledger rejected the write.
        """
        record_id = require_identifier("record id", record_id)
        viewer = normalize_address(viewer)
        self._check_owner(signer, record_id)

        tx = Transaction().move_call(
            self.records.target("revoke_access"),
            [ObjectArg(record_id), Pure.address(viewer)],
        )
        digest = await self._submit(signer, tx, record_id, viewer)

        logger.info("revoked %s on %s (%s)", viewer, record_id, digest)
        if self.events is not None:
            self.events.publish(AccessRevoked(record_id, viewer, digest))

    async def settle(self, record_id: str):
        """Wait out the indexing delay, then return a fresh snapshot."""
        await self.sleep(self.settle_delay)
        return await self.records.query(record_id)
