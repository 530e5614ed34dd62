"""
Async HTTP client for the Local RAG indexing service, using aiohttp.

Every public call returns a ClientResult instead of raising, so callers
decide whether a failure re-queues a document, becomes a notice, or is
only logged.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from .errors import ClientResult, TransportError
from .models import BatchResponse, DocumentRecord, SearchResult


logger = logging.getLogger(__name__)

# Timeout for HTTP requests (seconds)
REQUEST_TIMEOUT = 30.0


class RemoteIndexClient:
    """Client for the Local RAG HTTP API."""

    def __init__(self, base_url: str, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the shared aiohttp session"""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        url = f"{self.base_url}{path}"
        try:
            session = await self._get_session()
            async with session.post(url, json=payload) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise TransportError(
                        f"{path} returned HTTP {response.status}: {body[:200]}",
                        status=response.status,
                    )
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"{path} request failed: {e!r}") from e

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise TransportError(f"{path} returned invalid JSON: {e}") from e

    async def process_document(self, name: str, data: str) -> ClientResult:
        """Index a single document (data is base64 encoded)."""
        try:
            await self._post_json(
                "/api/process_document",
                {"document_name": name, "document_data": data},
            )
        except TransportError as e:
            return ClientResult.failed(e)
        return ClientResult.ok()

    async def batch_process_documents(self, documents: Sequence[DocumentRecord]) -> ClientResult:
        """Index several documents; value is the BatchResponse."""
        payload = {"documents": [doc.to_payload() for doc in documents]}
        try:
            data = await self._post_json("/api/batch_process_documents", payload)
        except TransportError as e:
            return ClientResult.failed(e)
        return ClientResult.ok(BatchResponse.from_json(data))

    async def delete_document(self, name: str) -> ClientResult:
        """Remove a document from the index."""
        try:
            await self._post_json("/api/delete_document", {"document_name": name})
        except TransportError as e:
            return ClientResult.failed(e)
        return ClientResult.ok()

    async def search(self, query: str) -> ClientResult:
        """Search the index; value is a list of SearchResult."""
        query = query.strip()
        if not query:
            return ClientResult.ok([])

        try:
            data = await self._post_json("/api/search", {"query": query})
        except TransportError as e:
            return ClientResult.failed(e)

        if data is not None and not isinstance(data, list):
            return ClientResult.failed(TransportError("/api/search returned an unexpected payload"))

        results: List[SearchResult] = []
        for item in data or []:
            if isinstance(item, dict):
                results.append(SearchResult.from_dict(item))
        return ClientResult.ok(results)

    async def close(self):
        """Close the shared aiohttp session"""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
