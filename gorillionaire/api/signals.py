from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from gorillionaire.api.auth import bearer_token, require_user_token
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger
from gorillionaire.models import ActionType, Choice
from gorillionaire.services.realtime import sse_hub
from gorillionaire.services.signals import signal_service

logger = Logger("SignalsAPI")

router = APIRouter(prefix="/signals", tags=["Signals"])


class UserSignalRequest(BaseModel):
    userAddress: Optional[str] = None
    signalId: Optional[str] = None
    choice: Optional[str] = None


class UserSignalV2Request(BaseModel):
    userAddress: Optional[str] = None
    signalId: Optional[str] = None
    choice: Optional[str] = None
    symbol: Optional[str] = None
    actionType: Optional[str] = None
    priceAtSignal: Optional[float] = None


def _parse_enum(enum_cls, value: str, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise HTTPException(status_code=400, detail=f"Invalid {field}: expected one of {allowed}")


@router.get("/generated-signals")
async def list_generated_signals(page: int = 1, limit: int = 5, userAddress: Optional[str] = None):
    return await signal_service.list_generated(page, limit, userAddress)


@router.post("/generated-signals/user-signal")
async def create_user_signal(body: UserSignalRequest, request: Request):
    missing = [name for name in ("userAddress", "signalId", "choice") if not getattr(body, name)]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

    choice = _parse_enum(Choice, body.choice, "choice")
    await require_user_token(body.userAddress, bearer_token(request))
    return await signal_service.record_user_signal(body.userAddress, body.signalId, choice)


@router.get("/generated-signals/{signal_id}")
async def get_generated_signal(signal_id: str):
    return await signal_service.get_signal(signal_id)


@router.post("/v2/user-signal", status_code=201)
async def create_user_signal_v2(body: UserSignalV2Request):
    fields = ("userAddress", "signalId", "choice", "symbol", "actionType", "priceAtSignal")
    missing = [name for name in fields if getattr(body, name) in (None, "")]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

    choice = _parse_enum(Choice, body.choice, "choice")
    action_type = _parse_enum(ActionType, body.actionType, "actionType")
    return await signal_service.record_user_signal_v2(
        body.userAddress, body.signalId, choice.value, body.symbol, action_type.value, body.priceAtSignal
    )


@router.get("/v2/user-signal/{address}")
async def list_user_signals_v2(address: str):
    return {"userSignals": await signal_service.list_user_signals_v2(address)}


@router.get("/sse")
async def signals_stream():
    """Server-Sent Events feed of newly generated signals."""
    queue = sse_hub.subscribe()
    return StreamingResponse(
        sse_hub.stream(queue, settings.SSE_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
