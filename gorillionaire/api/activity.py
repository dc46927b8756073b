from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from gorillionaire.api.auth import bearer_token, require_user_token
from gorillionaire.core.logger import Logger
from gorillionaire.services.activity import activity_service
from gorillionaire.services.weekly_archive import weekly_archive_service

logger = Logger("ActivityAPI")

router = APIRouter(prefix="/activity", tags=["Activity"])


class SignInRequest(BaseModel):
    address: Optional[str] = None


@router.post("/track/signin")
async def track_signin(body: SignInRequest, request: Request):
    if not body.address:
        raise HTTPException(status_code=400, detail="No address provided")
    await require_user_token(body.address, bearer_token(request))
    message = await activity_service.sign_in(body.address)
    return {"message": message}


@router.get("/track/points")
async def get_points(address: Optional[str] = None):
    if not address:
        raise HTTPException(status_code=400, detail="No address provided")
    return await activity_service.get_points(address)


@router.get("/track/leaderboard")
async def get_leaderboard(page: int = 1, limit: int = 10):
    return await activity_service.leaderboard(page, limit)


@router.get("/track/leaderboard/weekly")
async def get_weekly_leaderboard(page: int = 1, limit: int = 10):
    return await activity_service.weekly_leaderboard(page, limit)


@router.get("/track/leaderboard/archived")
async def get_archived_leaderboards(page: int = 1, limit: int = 10):
    return await weekly_archive_service.list_archives(page, limit)


@router.get("/track/leaderboard/archived/{week_number}/{year}")
async def get_archived_leaderboard(week_number: int, year: int):
    return await weekly_archive_service.get_archive(week_number, year)


@router.get("/track/me")
async def get_me(address: Optional[str] = None, page: int = 1, limit: int = 10):
    if not address:
        raise HTTPException(status_code=400, detail="No address provided")
    return await activity_service.get_me(address, page, limit)


@router.get("/quests/{address}")
async def get_quests(address: str):
    return {"quests": await activity_service.get_quests(address)}


@router.get("/badges/{address}")
async def get_badges(address: str):
    return {"badges": await activity_service.get_badges(address)}
