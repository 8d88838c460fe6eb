"""
BlobStore — content-addressed ciphertext storage.

Writes go to a publisher (PUT /v1/blobs); reads go to an aggregator
(GET /v1/blobs/<id>) with the publisher as a one-shot fallback. Uploading
identical bytes twice yields the same blob id: the store derives the id
from the content.
"""

import logging

import httpx

from proofseal.errors import FetchError, UploadError
from proofseal.identity import require_identifier

logger = logging.getLogger(__name__)


def extract_blob_id(body: dict) -> str | None:
    """
    Pull the blob id out of a publisher response.

    A first upload answers {"newlyCreated": {"blobObject": {"blobId"}}};
    a repeat upload answers {"alreadyCertified": {"blobId"}}.
    """
    if not isinstance(body, dict):
        return None
    newly = body.get("newlyCreated") or {}
    blob_id = (newly.get("blobObject") or {}).get("blobId")
    if blob_id:
        return blob_id
    already = body.get("alreadyCertified") or {}
    if already.get("blobId"):
        return already["blobId"]
    return body.get("blobId")


class BlobStore:
    """
    Client for a publisher/aggregator blob network.

    Args:
        client: Shared httpx.AsyncClient (caller owns its lifecycle).
        publisher: Write endpoint base URL; also the secondary read endpoint.
        aggregator: Primary read endpoint base URL.
        epochs: Storage duration passed to the publisher, if set.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        publisher: str,
        aggregator: str,
        epochs: int | None = None,
    ):
        self._client = client
        self.publisher = publisher.rstrip("/")
        self.aggregator = aggregator.rstrip("/")
        self.epochs = epochs

    async def upload(self, data: bytes) -> str:
        """
        Store bytes and return their blob id.

        Raises:
            UploadError: Non-success response, or no blob id in the answer.
        """
        url = f"{self.publisher}/v1/blobs"
        params = {"epochs": self.epochs} if self.epochs else None

        logger.debug("uploading %d bytes to %s", len(data), url)
        response = await self._client.put(url, content=data, params=params)

        if not response.is_success:
            raise UploadError(response.status_code, response.text, url)

        try:
            body = response.json()
        except ValueError:
            raise UploadError(response.status_code, response.text, url) from None

        blob_id = extract_blob_id(body)
        if not blob_id:
            raise UploadError(response.status_code, f"no blobId in response: {body}", url)

        logger.info("uploaded blob %s (%d bytes)", blob_id, len(data))
        return blob_id

    async def fetch(self, blob_id: str) -> bytes:
        """
        Read a blob, falling back from aggregator to publisher once.

        Raises:
            InvalidIdentifierError: Empty or "undefined" blob id.
            FetchError: Both endpoints failed.
        """
        blob_id = require_identifier("blob id", blob_id)

        failures = []
        for base_url in (self.aggregator, self.publisher):
            url = f"{base_url}/v1/blobs/{blob_id}"
            try:
                response = await self._client.get(
                    url, headers={"Accept": "application/octet-stream"}
                )
            except httpx.TransportError as e:
                failures.append(f"{url}: {e.__class__.__name__}: {e}")
                logger.warning("fetch %s failed: %s", url, e)
                continue

            if response.is_success:
                return response.content

            failures.append(f"{url}: ({response.status_code}) {response.text}")
            logger.warning("fetch %s failed with %d", url, response.status_code)

        raise FetchError(blob_id, failures)
