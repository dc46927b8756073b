from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from gorillionaire.services.referral import referral_service

router = APIRouter(prefix="/referral", tags=["Referral"])


class GenerateCodeRequest(BaseModel):
    address: Optional[str] = None


class ProcessReferralRequest(BaseModel):
    referralCode: Optional[str] = None
    newUserAddress: Optional[str] = None


@router.post("/generate-code")
async def generate_code(body: GenerateCodeRequest):
    if not body.address:
        raise HTTPException(status_code=400, detail="Address is required")
    return await referral_service.generate_code(body.address)


@router.get("/stats/{address}")
async def referral_stats(address: str):
    return await referral_service.stats(address)


@router.get("/list/{address}")
async def list_referrals(address: str, page: int = 1, limit: int = 10):
    return await referral_service.list_referrals(address, page, limit)


@router.post("/process")
async def process_referral(body: ProcessReferralRequest):
    if not body.referralCode or not body.newUserAddress:
        raise HTTPException(status_code=400, detail="Referral code and new user address are required")
    return await referral_service.process(body.referralCode, body.newUserAddress)


@router.get("/check-referrer/{address}")
async def check_referrer(address: str):
    return await referral_service.check_referrer(address)


@router.get("/check-eligibility/{address}")
async def check_eligibility(address: str):
    return await referral_service.check_eligibility(address)
