"""
Hosted vector store (Supabase PostgREST).

Documents live in a ``documents`` table with ``content``, ``metadata`` and an
``embedding`` column; similarity search goes through the ``match_documents``
RPC function installed alongside it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import httpx
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger
from gorillionaire.providers.base import BaseProvider
from gorillionaire.providers.openai import openai_provider

logger = Logger("VectorStore")


class VectorStoreError(Exception):
    pass


@dataclass
class Document:
    page_content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    similarity: Optional[float] = None


def parse_content_range(value: str) -> int:
    """Total from a PostgREST ``Content-Range`` header like ``0-24/573``."""
    if not value or "/" not in value:
        return 0
    total = value.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class VectorStore:
    def __init__(
        self,
        embedder: BaseProvider = None,
        url: str = None,
        api_key: str = None,
        table: str = None,
        match_function: str = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.embedder = embedder or openai_provider
        self.url = (url or settings.SUPABASE_URL or "").rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_API_KEY
        self.table = table or settings.VECTOR_TABLE
        self.match_function = match_function or settings.VECTOR_MATCH_FUNCTION
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)

    def _headers(self, **extra) -> Dict[str, str]:
        if not self.is_configured():
            raise VectorStoreError("SUPABASE_URL / SUPABASE_API_KEY not configured")
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        headers.update(extra)
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=30.0)

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        try:
            return await self.embedder.embed(texts)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise VectorStoreError(f"Embedding failed: {e}") from e

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with self._client() as client:
            try:
                return await client.request(method, f"{self.url}/rest/v1/{path}", **kwargs)
            except httpx.HTTPError as e:
                raise VectorStoreError(f"{method} {path} failed: {e}") from e

    async def similarity_search(self, query: str, k: int = 4) -> List[Document]:
        headers = self._headers()
        embedding = (await self._embed([query]))[0]
        payload = {"query_embedding": embedding, "match_count": k, "filter": {}}

        response = await self._request("POST", f"rpc/{self.match_function}", json=payload, headers=headers)
        if response.status_code != 200:
            raise VectorStoreError(f"match_documents failed ({response.status_code}): {response.text[:200]}")

        try:
            rows = response.json()
        except ValueError as e:
            raise VectorStoreError(f"match_documents returned invalid JSON: {e}") from e

        return [
            Document(
                page_content=row.get("content") or "",
                metadata=row.get("metadata") or {},
                similarity=row.get("similarity"),
            )
            for row in rows
        ]

    async def add_documents(self, documents: List[Document]) -> int:
        if not documents:
            return 0
        headers = self._headers(Prefer="return=minimal")
        embeddings = await self._embed([doc.page_content for doc in documents])
        rows = [
            {"content": doc.page_content, "metadata": doc.metadata, "embedding": embedding}
            for doc, embedding in zip(documents, embeddings)
        ]

        response = await self._request("POST", self.table, json=rows, headers=headers)
        if response.status_code not in (200, 201, 204):
            raise VectorStoreError(f"Insert failed ({response.status_code}): {response.text[:200]}")
        return len(rows)

    async def count(self) -> int:
        headers = self._headers(Prefer="count=exact")
        response = await self._request("HEAD", self.table, params={"select": "id"}, headers=headers)
        if response.status_code not in (200, 206):
            raise VectorStoreError(f"Count failed ({response.status_code})")
        return parse_content_range(response.headers.get("content-range", ""))

    async def prune(self, keep: int) -> int:
        """Delete everything but the newest ``keep`` documents. Returns rows removed."""
        headers = self._headers()
        response = await self._request(
            "GET", self.table,
            params={"select": "id", "order": "id.desc", "offset": keep, "limit": 1},
            headers=headers,
        )
        if response.status_code != 200:
            raise VectorStoreError(f"Prune lookup failed ({response.status_code})")
        rows = response.json()
        if not rows:
            return 0

        boundary = rows[0]["id"]
        response = await self._request(
            "DELETE", self.table,
            params={"id": f"lte.{boundary}"},
            headers={**headers, "Prefer": "count=exact"},
        )
        if response.status_code not in (200, 204):
            raise VectorStoreError(f"Prune delete failed ({response.status_code})")
        removed = parse_content_range(response.headers.get("content-range", ""))
        logger.info(f"Pruned {removed} old documents (kept {keep})")
        return removed


vector_store = VectorStore()
