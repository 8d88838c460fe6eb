"""
JSON-RPC ledger reader.
Reads transactions and objects from a full node over HTTP.

Writes never go through here: they are signed and submitted by the
wallet (see proofseal.wallet.Signer).
"""

import itertools
import logging

import httpx

from proofseal.errors import LedgerError, TransactionNotIndexedError
from proofseal.ledger.base import LedgerReader

logger = logging.getLogger(__name__)

# Error text the node returns while a freshly executed transaction is
# still being indexed
NOT_INDEXED_MARKER = "Could not find the referenced transaction"


class JsonRpcLedgerReader(LedgerReader):
    """
    Full-node reader using sui_getTransactionBlock / sui_getObject.

    Args:
        rpc_url: Full-node JSON-RPC endpoint.
        client: Shared httpx.AsyncClient (caller owns its lifecycle).
    """

    def __init__(self, rpc_url: str, client: httpx.AsyncClient):
        self.rpc_url = rpc_url
        self._client = client
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: list):
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        logger.debug("rpc %s %s", method, params[0])
        response = await self._client.post(self.rpc_url, json=payload)
        response.raise_for_status()
        body = response.json()

        if "error" in body:
            message = body["error"].get("message", str(body["error"]))
            if NOT_INDEXED_MARKER in message:
                raise TransactionNotIndexedError(params[0])
            raise LedgerError(f"{method} failed: {message}")

        return body.get("result")

    async def get_transaction(self, digest: str) -> dict:
        return await self._call(
            "sui_getTransactionBlock",
            [digest, {"showObjectChanges": True, "showEffects": True}],
        )

    async def get_object(self, object_id: str) -> dict:
        return await self._call(
            "sui_getObject",
            [object_id, {"showContent": True, "showType": True, "showOwner": True}],
        )
