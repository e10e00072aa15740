"""
HTTP Document Fetcher

Fetches attribute documents (NFT-style JSON metadata) over HTTP(S).
ipfs:// URIs are rewritten through the configured gateway.
"""

from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import get_settings
from src.services.metadata.interface import AttributeFetchError, DocumentFetcherInterface


IPFS_SCHEME = "ipfs://"


class HttpDocumentFetcher(DocumentFetcherInterface):
    """
    Document fetcher backed by httpx.

    404 and 410 mean "no document" and return None. Any other failure
    raises AttributeFetchError.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._settings = get_settings().metadata
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.timeout_seconds,
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def resolve_uri(self, uri: str) -> str:
        """Map ipfs://<cid>/<path> onto the HTTP gateway."""
        uri = uri.strip()
        if uri.startswith(IPFS_SCHEME):
            path = uri[len(IPFS_SCHEME):]
            if path.startswith("ipfs/"):
                path = path[len("ipfs/"):]
            return self._settings.ipfs_gateway + path
        return uri

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _get(self, url: str) -> httpx.Response:
        return await self._get_client().get(url)

    async def fetch_document(self, uri: str) -> Optional[dict[str, Any]]:
        if not uri or not uri.strip():
            return None

        url = self.resolve_uri(uri)
        try:
            response = await self._get(url)
        except httpx.HTTPError as e:
            raise AttributeFetchError(uri, f"Fetching {url} failed: {e}") from e

        if response.status_code in (404, 410):
            return None
        if response.is_error:
            raise AttributeFetchError(
                uri, f"Fetching {url} returned HTTP {response.status_code}"
            )

        try:
            document = response.json()
        except ValueError as e:
            raise AttributeFetchError(uri, f"Document at {url} is not valid JSON") from e

        if not isinstance(document, dict):
            raise AttributeFetchError(uri, f"Document at {url} is not a JSON object")
        return document
