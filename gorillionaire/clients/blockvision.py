"""
BlockVision indexer client.

The daily snapshot job walks the tracked tokens and stores the first page of
holders for each; wallet balances are read through on demand for the
``/token/holders/user`` route.
"""

from typing import Any, Dict
import httpx
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger

logger = Logger("BlockVision")


class BlockVisionError(Exception):
    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class BlockVisionClient:
    def __init__(self, api_key: str = None, base_url: str = None, transport: httpx.AsyncBaseTransport = None):
        self.api_key = api_key if api_key is not None else settings.BLOCKVISION_API_KEY
        self.base_url = (base_url or settings.BLOCKVISION_BASE_URL).rstrip("/")
        self._transport = transport

    async def _get(self, path: str, params: Dict[str, str], label: str) -> Dict[str, Any]:
        """GET ``path`` and return the ``result`` object of the envelope."""
        if not self.api_key:
            raise BlockVisionError("BLOCKVISION_API_KEY not configured")

        headers = {"accept": "application/json", "x-api-key": self.api_key}
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            try:
                response = await client.get(f"{self.base_url}{path}", params=params, headers=headers)
            except httpx.HTTPError as e:
                raise BlockVisionError(f"Request for {label} failed: {e}") from e

        if response.status_code != 200:
            raise BlockVisionError(
                f"Request for {label} returned {response.status_code}: {response.text[:200]}",
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BlockVisionError(f"Invalid response for {label}: {e}") from e
        if data.get("code") not in (None, 0):
            raise BlockVisionError(f"BlockVision error for {label}: {data.get('message')}")
        return data.get("result") or {}

    async def retrieve_token_holders(
        self,
        contract_address: str,
        token_name: str,
        page_index: str = "1",
        page_size: str = "20",
    ) -> Dict[str, Any]:
        """Fetch one page of holders for ``contract_address``."""
        params = {
            "contractAddress": contract_address,
            "pageIndex": page_index,
            "pageSize": page_size,
        }
        result = await self._get("/token/holders", params, f"{token_name} holders")
        logger.debug(f"Fetched {len(result.get('data') or [])} holders for {token_name}")
        return result

    async def retrieve_account_tokens(self, address: str) -> Dict[str, Any]:
        """Token balances held by ``address``."""
        result = await self._get("/account/tokens", {"address": address}, f"{address} balances")
        logger.debug(f"Fetched {len(result.get('data') or [])} balances for {address}")
        return result


blockvision_client = BlockVisionClient()
