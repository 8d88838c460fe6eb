"""
TransactionIndexResolver — from a pending write to a durable record id.

A write accepted by the ledger is not immediately queryable. The resolver
polls the transaction by digest under a RetryPolicy:

  not indexed yet  → sleep(interval), try again (up to `attempts`)
  any other error  → abort with ResolutionError
  ceiling reached  → None (a timeout, not "does not exist"; resolve again later)
"""

import asyncio
import logging
from dataclasses import dataclass, field

from proofseal.errors import IndexingTimeout, ResolutionError, TransactionNotIndexedError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 30
DEFAULT_INTERVAL = 2.0


@dataclass
class RetryPolicy:
    """
    Bounded polling policy.

    sleep is injected so tests can run the loop against a fake clock.
    """
    attempts: int = DEFAULT_ATTEMPTS
    interval: float = DEFAULT_INTERVAL
    retryable: tuple = (TransactionNotIndexedError,)
    sleep: object = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval cannot be negative")

    def is_retryable(self, error: Exception) -> bool:
        return isinstance(error, self.retryable)


class TransactionIndexResolver:
    """
    Args:
        package_id: Package whose Proof type identifies the created record.
        reader: LedgerReader with get_transaction(digest).
        policy: RetryPolicy; defaults to 30 attempts every 2 seconds.
    """

    def __init__(self, package_id: str, reader, policy: RetryPolicy = None):
        self.package_id = package_id
        self.reader = reader
        self.policy = policy or RetryPolicy()

    @property
    def proof_type(self) -> str:
        return f"{self.package_id}::truth_nft::Proof"

    async def resolve(self, pending) -> str | None:
        """
        Poll until the write is indexed and return the created record id.

        Args:
            pending: A PendingWrite or a bare digest string.

        Returns:
            The record id, or None if still not indexed after all attempts.

        Raises:
            ResolutionError: A non-retryable lookup error, a failed
                transaction, or a transaction that created no Proof.
        """
        digest = getattr(pending, "digest", pending)
        attempts = self.policy.attempts

        for attempt in range(1, attempts + 1):
            try:
                tx = await self.reader.get_transaction(digest)
            except Exception as e:
                if not self.policy.is_retryable(e):
                    raise ResolutionError(digest, f"{e.__class__.__name__}: {e}") from e
                logger.debug("indexing delay for %s: retry %d/%d", digest, attempt, attempts)
                if attempt < attempts:
                    await self.policy.sleep(self.policy.interval)
                continue

            return self._record_id(digest, tx)

        logger.warning("transaction %s still not indexed after %d attempts", digest, attempts)
        return None

    async def require(self, pending) -> str:
        """Like resolve, but raise IndexingTimeout instead of returning None."""
        record_id = await self.resolve(pending)
        if record_id is None:
            raise IndexingTimeout(getattr(pending, "digest", pending), self.policy.attempts)
        return record_id

    def _record_id(self, digest: str, tx: dict) -> str:
        status = ((tx.get("effects") or {}).get("status") or {})
        if status.get("status", "success") != "success":
            raise ResolutionError(digest, f"transaction failed: {status.get('error', 'unknown')}")

        for change in tx.get("objectChanges") or []:
            if change.get("type") == "created" and change.get("objectType") == self.proof_type:
                record_id = change.get("objectId")
                if record_id:
                    logger.info("transaction %s created record %s", digest, record_id)
                    return record_id

        raise ResolutionError(digest, f"no {self.proof_type} created")
