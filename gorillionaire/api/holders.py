from fastapi import APIRouter, HTTPException

from gorillionaire.clients.blockvision import BlockVisionError
from gorillionaire.core.logger import Logger
from gorillionaire.services.market import market_service

logger = Logger("HoldersAPI")

router = APIRouter(prefix="/token/holders", tags=["Holders"])


@router.get("/user/{address}")
async def get_user_tokens(address: str):
    try:
        return await market_service.account_tokens(address)
    except BlockVisionError as e:
        logger.warn(f"Balances for {address} unavailable: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch token balances")


@router.get("/{token_address}")
async def get_token_holders(token_address: str):
    return await market_service.latest_holders(token_address)
