from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from gorillionaire.api.auth import bearer_token
from gorillionaire.clients.discord import DiscordOAuthError, discord_client
from gorillionaire.clients.twitter import TwitterError, twitter_client
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger
from gorillionaire.services.oauth_state import oauth_state_store

logger = Logger("SocialAPI")

router = APIRouter(prefix="/social", tags=["Social"])
discord_router = APIRouter(prefix="/discord", tags=["Social"])


class MembershipRequest(BaseModel):
    code: Optional[str] = None
    address: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Discord OAuth
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/discord/connect")
async def discord_connect():
    state = await oauth_state_store.issue("discord")
    return RedirectResponse(discord_client.authorize_url(state), status_code=302)


@router.get("/discord/callback")
async def discord_callback(code: Optional[str] = None, state: Optional[str] = None):
    if not code:
        raise HTTPException(status_code=400, detail="Authorization code is missing")
    if not await oauth_state_store.consume(state):
        logger.warn("Discord callback with missing or unknown state")
        raise HTTPException(status_code=400, detail="Invalid OAuth state")

    try:
        await discord_client.exchange_code(code)
    except DiscordOAuthError as e:
        raise HTTPException(status_code=e.status, detail=str(e))
    return {"message": "Access token retrieved successfully"}


@router.get("/discord/check-guild")
async def discord_check_guild(request: Request, guildId: Optional[str] = None):
    token = bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing access token")
    if not guildId:
        raise HTTPException(status_code=400, detail="Missing guildId")

    try:
        is_member = await discord_client.is_guild_member(token, guildId)
    except DiscordOAuthError as e:
        raise HTTPException(status_code=e.status, detail=str(e))
    return {"isMember": is_member}


@discord_router.post("/membership/verify")
async def verify_membership(body: MembershipRequest):
    if not body.code:
        raise HTTPException(status_code=400, detail="Authorization code is missing")

    try:
        token_data = await discord_client.exchange_code(body.code, redirect_uri=settings.DISCORD_REDIRECT_URI)
        is_member = await discord_client.is_guild_member(
            token_data.get("access_token"), settings.GORILLIONAIRE_GUILD_ID
        )
    except DiscordOAuthError as e:
        raise HTTPException(status_code=e.status, detail=str(e))

    if is_member:
        logger.info(f"✅ Address {body.address} is a Discord member")
    return {"isMember": is_member, "address": body.address}


# ─────────────────────────────────────────────────────────────────────────────
# Twitter
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/twitter")
async def twitter_is_following(request: Request, target: Optional[str] = None):
    token = bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing access token")
    if not target:
        raise HTTPException(status_code=400, detail="Missing target username")

    try:
        is_following = await twitter_client.is_following(token, target)
    except TwitterError as e:
        raise HTTPException(status_code=e.status, detail=str(e))
    return {"isFollowing": is_following}
