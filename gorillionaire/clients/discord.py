from typing import Any, Dict, List
from urllib.parse import urlencode
import httpx
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger

logger = Logger("DiscordOAuth")

DISCORD_API = "https://discord.com/api"
AUTHORIZE_URL = "https://discord.com/oauth2/authorize"
SCOPE = "identify guilds email"


class DiscordOAuthError(Exception):
    """Discord rejected a request. ``status`` is the upstream HTTP status."""

    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.status = status


class DiscordClient:
    def __init__(self, transport: httpx.AsyncBaseTransport = None):
        self._transport = transport

    def authorize_url(self, state: str, redirect_uri: str = None) -> str:
        params = {
            "response_type": "code",
            "client_id": settings.DISCORD_CLIENT_ID or "",
            "scope": SCOPE,
            "redirect_uri": redirect_uri or settings.discord_callback_uri,
            "state": state,
            "prompt": "consent",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str = None) -> Dict[str, Any]:
        """Trade an authorization code for an access token payload."""
        data = {
            "client_id": settings.DISCORD_CLIENT_ID or "",
            "client_secret": settings.DISCORD_CLIENT_SECRET or "",
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or settings.discord_callback_uri,
        }
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            response = await client.post(
                f"{DISCORD_API}/oauth2/token",
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )

        if response.status_code != 200:
            logger.warn(f"Discord token exchange failed with {response.status_code}")
            raise DiscordOAuthError(f"Token exchange failed: {response.text}", status=500)
        return response.json()

    async def list_guilds(self, access_token: str) -> List[Dict[str, Any]]:
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            response = await client.get(
                f"{DISCORD_API}/v10/users/@me/guilds",
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if response.status_code != 200:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            raise DiscordOAuthError(message or "Failed to retrieve guilds", status=response.status_code)
        return response.json()

    async def is_guild_member(self, access_token: str, guild_id: str) -> bool:
        if not access_token:
            raise DiscordOAuthError("Missing access token", status=401)
        if not guild_id:
            raise DiscordOAuthError("Missing guild ID", status=400)
        guilds = await self.list_guilds(access_token)
        return any(guild.get("id") == guild_id for guild in guilds)


discord_client = DiscordClient()
