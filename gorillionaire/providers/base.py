from abc import ABC, abstractmethod
from typing import List, Dict, Any
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger


class BaseProvider(ABC):
    def __init__(self, name: str, api_key_env_name: str):
        self.name = name
        self.api_key_env_name = api_key_env_name
        self.logger = Logger(f"Provider:{name}")
        self.default_model = None

    def get_api_key(self) -> str:
        # Pydantic settings are case-insensitive
        return str(getattr(settings, self.api_key_env_name, "") or "")

    def is_configured(self) -> bool:
        return bool(self.get_api_key())

    @abstractmethod
    async def call(
        self,
        prompt: str,
        model: str = None,
        history: List[Dict[str, str]] = None,
        context_prefix: str = "",
        temperature: float = None,
    ) -> Dict[str, Any]:
        """
        Call the chat model.
        Returns: {"thinking": str, "content": str}
        """
        pass

    @abstractmethod
    async def embed(self, texts: List[str], model: str = None) -> List[List[float]]:
        """Return one embedding vector per input text, in order."""
        pass
