"""
Base class for ledger readers.
Every ledger backend (JSON-RPC node, in-memory devnet) implements this.
"""

from abc import ABC, abstractmethod


class LedgerReader(ABC):
    """Read side of the ledger: transactions by digest, objects by id."""

    @abstractmethod
    async def get_transaction(self, digest: str) -> dict:
        """
        Look up a transaction block by digest.

        Returns:
            Dict with "digest", "effects" ({"status": {"status", "error"}})
            and "objectChanges" (list of {"type", "objectType", "objectId"}).

        Raises:
            TransactionNotIndexedError: The write is not yet queryable.
        """

    @abstractmethod
    async def get_object(self, object_id: str) -> dict:
        """
        Look up an object by id.

        Returns:
            {"data": {..., "content": {"fields": {...}}}} when the object
            exists, {"error": {"code": "notExists", ...}} when it does not.
        """
