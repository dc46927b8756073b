"""
V2 access routes.

Errors here keep the ``{"success": false, "message": ...}`` body the V2
frontend expects instead of the plain ``{"error": ...}`` used elsewhere.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from gorillionaire.api.auth import verify_admin_key
from gorillionaire.core.errors import NotFoundError, ValidationError
from gorillionaire.models import access_code_to_json
from gorillionaire.services.access import access_service

router = APIRouter(prefix="/access", tags=["Access"])


class VerifyRequest(BaseModel):
    code: Optional[str] = None
    address: Optional[str] = None


class CreateCodeRequest(BaseModel):
    code: Optional[str] = None
    maxRedeems: Optional[int] = None
    expiresAt: Optional[datetime] = None
    createdBy: Optional[str] = None


def _fail(status_code: int, message: str):
    raise HTTPException(status_code=status_code, detail={"success": False, "message": message})


@router.post("/verify")
async def verify_access_code(body: VerifyRequest):
    if body.code is None or not body.address:
        _fail(400, "Code and address are required")
    try:
        return await access_service.verify(body.code, body.address)
    except ValidationError as e:
        _fail(400, str(e))


@router.get("/status/{address}")
async def access_status(address: str):
    return await access_service.status(address)


@router.post("/admin/create", dependencies=[Depends(verify_admin_key)])
async def create_access_code(body: CreateCodeRequest):
    if not body.code or not body.createdBy:
        _fail(400, "Code and createdBy are required")
    try:
        code = await access_service.create_code(body.code, body.createdBy, body.maxRedeems or 1, body.expiresAt)
    except ValidationError as e:
        _fail(400, str(e))
    return {"success": True, "message": "Access code created successfully", "accessCode": access_code_to_json(code)}


@router.get("/admin/codes", dependencies=[Depends(verify_admin_key)])
async def list_access_codes():
    codes = await access_service.list_codes()
    return {"success": True, "accessCodes": [access_code_to_json(code) for code in codes]}


@router.put("/admin/deactivate/{code}", dependencies=[Depends(verify_admin_key)])
async def deactivate_access_code(code: str):
    try:
        access_code = await access_service.deactivate(code)
    except NotFoundError as e:
        _fail(404, str(e))
    return {
        "success": True,
        "message": "Access code deactivated successfully",
        "accessCode": access_code_to_json(access_code),
    }
