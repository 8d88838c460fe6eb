"""
HTTP key server connector.
Talks to a remote key server's /v1/fetch_key endpoint.
"""

import logging

import httpx

from proofseal.errors import AuthorizationError, KeyServerError, SessionExpiredError
from proofseal.keyservers.base import KeyRequest, KeyResponse, KeyServer

logger = logging.getLogger(__name__)


def _error_text(response: httpx.Response) -> str:
    try:
        return response.json().get("error", response.text)
    except (ValueError, AttributeError):
        return response.text


class HttpKeyServer(KeyServer):
    """
    Remote key server.

    Args:
        url: Base URL of the key server.
        object_id: The server's on-chain identifier.
        public_key: The server's X25519 public key (raw 32 bytes).
        client: Shared httpx.AsyncClient (caller owns its lifecycle).
    """

    def __init__(self, url: str, object_id: str, public_key: bytes, client: httpx.AsyncClient):
        self.url = url.rstrip("/")
        self.object_id = object_id
        self.public_key = public_key
        self._client = client

    async def fetch_key(self, request: KeyRequest) -> KeyResponse:
        try:
            response = await self._client.post(f"{self.url}/v1/fetch_key", json=request.to_dict())
        except httpx.TransportError as e:
            # Other servers may still reach the threshold
            raise KeyServerError(f"Key server {self.object_id} unreachable: {e}") from e

        if response.status_code == 403:
            raise AuthorizationError(
                _error_text(response),
                address=request.certificate.get("address", ""),
                policy_id=request.policy_id,
            )
        if response.status_code == 401:
            raise SessionExpiredError(
                _error_text(response), address=request.certificate.get("address", "")
            )
        if not response.is_success:
            raise KeyServerError(
                f"Key server {self.object_id} answered {response.status_code}: {_error_text(response)}"
            )

        try:
            return KeyResponse.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise KeyServerError(
                f"Key server {self.object_id} sent a malformed response: {e!r}"
            ) from e

    async def is_available(self) -> bool:
        try:
            response = await self._client.get(f"{self.url}/v1/service")
        except httpx.HTTPError as e:
            logger.debug("key server %s unreachable: %s", self.object_id, e)
            return False
        return response.is_success

    def get_info(self) -> dict:
        return {
            "object_id": self.object_id,
            "kind": "http",
            "url": self.url,
        }
