from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from gorillionaire.api.auth import verify_admin_key
from gorillionaire.services.daily_quests import daily_quest_service

router = APIRouter(prefix="/activity/daily-quests", tags=["Daily Quests"])


class ClaimRequest(BaseModel):
    address: Optional[str] = None
    questId: Optional[int] = None


class ResetRequest(BaseModel):
    address: Optional[str] = None


@router.post("/claim")
async def claim_daily_quest(body: ClaimRequest):
    if not body.address or body.questId is None:
        raise HTTPException(status_code=400, detail="Missing required fields: address and questId")
    return await daily_quest_service.claim(body.address, body.questId)


@router.post("/reset", dependencies=[Depends(verify_admin_key)])
async def reset_daily_quests(body: ResetRequest):
    if not body.address:
        raise HTTPException(status_code=400, detail="Address is required")
    removed = await daily_quest_service.reset(body.address)
    return {"message": "Daily quests reset successfully", "removed": removed}


@router.get("/{address}/completed")
async def get_completed_daily_quests(address: str, page: int = 1, limit: int = 10):
    return await daily_quest_service.completed(address, page, limit)


@router.get("/{address}")
async def get_daily_quests(address: str):
    return await daily_quest_service.get_daily_quests(address)
