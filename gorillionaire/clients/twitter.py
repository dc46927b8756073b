import httpx
from gorillionaire.core.logger import Logger

logger = Logger("TwitterClient")

TWITTER_API = "https://api.twitter.com/2"


class TwitterError(Exception):
    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.status = status


def _error_detail(response: httpx.Response, fallback: str) -> str:
    try:
        return response.json().get("detail") or fallback
    except ValueError:
        return fallback


class TwitterClient:
    def __init__(self, transport: httpx.AsyncBaseTransport = None):
        self._transport = transport

    async def is_following(self, access_token: str, target_username: str) -> bool:
        """Whether the token's owner follows ``target_username``."""
        headers = {"Authorization": f"Bearer {access_token}"}
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            me = await client.get(f"{TWITTER_API}/users/me", headers=headers)
            if me.status_code != 200:
                raise TwitterError(_error_detail(me, "Error fetching userId"), status=me.status_code)

            user_id = (me.json().get("data") or {}).get("id")
            if not user_id:
                raise TwitterError("User ID not found", status=404)

            following = await client.get(f"{TWITTER_API}/users/{user_id}/following", headers=headers)
            if following.status_code != 200:
                raise TwitterError(
                    _error_detail(following, "Error fetching following list"), status=following.status_code
                )

        accounts = following.json().get("data") or []
        return any(account.get("username") == target_username for account in accounts)


twitter_client = TwitterClient()
