import secrets
import time
from typing import Dict

from gorillionaire.core.config import settings
from gorillionaire.core.database import db
from gorillionaire.core.logger import Logger

logger = Logger("OAuthState")

KEY_PREFIX = "oauth:state:"


class OAuthStateStore:
    """
    One-time ``state`` tokens for the OAuth redirect round-trip.

    Uses redis when connected so any worker can validate the callback,
    otherwise an in-process dict.
    """

    def __init__(self, ttl: int = None):
        self.ttl = ttl or settings.OAUTH_STATE_TTL
        self._local: Dict[str, float] = {}

    def _prune(self, now: float):
        for state, expires in list(self._local.items()):
            if expires <= now:
                del self._local[state]

    async def issue(self, provider: str = "discord") -> str:
        state = secrets.token_urlsafe(24)
        if db.redis:
            await db.redis.setex(f"{KEY_PREFIX}{state}", self.ttl, provider)
        else:
            now = time.monotonic()
            self._prune(now)
            self._local[state] = now + self.ttl
        return state

    async def consume(self, state: str) -> bool:
        """True once for a state issued here and not yet expired."""
        if not state:
            return False
        if db.redis:
            value = await db.redis.getdel(f"{KEY_PREFIX}{state}")
            return value is not None

        now = time.monotonic()
        expires = self._local.pop(state, None)
        if expires is None:
            return False
        if expires <= now:
            logger.debug("Rejected expired OAuth state")
            return False
        return True


oauth_state_store = OAuthStateStore()
