from typing import List, Dict, Any
import httpx
from gorillionaire.providers.base import BaseProvider
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger

logger = Logger("OpenAI")


class OpenAIProvider(BaseProvider):
    def __init__(self):
        super().__init__("openai", "OPENAI_API_KEY")
        self.default_model = "gpt-4o-mini"
        self.base_url = "https://api.openai.com/v1/chat/completions"
        self.embeddings_url = "https://api.openai.com/v1/embeddings"

    def _headers(self) -> Dict[str, str]:
        api_key = self.get_api_key()
        if not api_key:
            raise ValueError("OpenAI API Key not configured")
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json"
        }

    async def call(
        self,
        prompt: str,
        model: str = None,
        history: List[Dict[str, str]] = None,
        context_prefix: str = "",
        temperature: float = None,
    ) -> Dict[str, Any]:
        headers = self._headers()

        messages = []
        if context_prefix:
            messages.append({"role": "system", "content": context_prefix})
        messages.extend(history or [])
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": model or settings.AI_MODEL or self.default_model,
            "messages": messages,
            "temperature": settings.AI_TEMPERATURE if temperature is None else temperature,
        }

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(self.base_url, json=payload, headers=headers, timeout=60.0)
                response.raise_for_status()
                data = response.json()
                content = data['choices'][0]['message']['content']
                return {
                    "thinking": "",
                    "content": content or ""
                }
            except httpx.HTTPError as e:
                logger.error(f"OpenAI API call failed: {e}")
                raise

    async def embed(self, texts: List[str], model: str = None) -> List[List[float]]:
        if not texts:
            return []
        headers = self._headers()
        payload = {
            "model": model or settings.EMBEDDING_MODEL,
            "input": texts,
        }

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(self.embeddings_url, json=payload, headers=headers, timeout=60.0)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                logger.error(f"OpenAI embeddings call failed: {e}")
                raise

        # API may reorder; the index field is authoritative
        items = sorted(data.get("data", []), key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in items]


openai_provider = OpenAIProvider()
