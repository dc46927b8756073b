from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from gorillionaire.api.auth import verify_indexer_key
from gorillionaire.core.logger import Logger
from gorillionaire.services.events import event_service
from gorillionaire.services.market import market_service

logger = Logger("EventsAPI")

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/transfers", dependencies=[Depends(verify_indexer_key)])
async def store_transfer(payload: Dict[str, Any] = Body(...)):
    transfer, created = await event_service.store_transfer(payload)
    if not created:
        return JSONResponse(status_code=200, content={"message": "Transfer already exists", "transfer": transfer})
    return JSONResponse(status_code=201, content=transfer)


@router.get("/transfers/{token}")
async def list_transfers(token: str, page: int = 1, limit: int = 25):
    return await event_service.list_transfers(token, page, limit)


@router.post("/spike", dependencies=[Depends(verify_indexer_key)])
async def store_spike(payload: Dict[str, Any] = Body(...)):
    spike, created = await event_service.store_spike(payload)
    if not created:
        return JSONResponse(status_code=200, content={"message": "Spike already exists", "spike": spike})
    return JSONResponse(status_code=201, content=spike)


@router.get("/spike/{token}")
async def list_spikes(token: str, page: int = 1, limit: int = 25):
    return await event_service.list_spikes(token, page, limit)


@router.get("/prices/latest")
async def latest_prices():
    return await market_service.latest_prices()


@router.get("/prices")
async def price_history(symbol: Optional[str] = None, limit: int = 100):
    return await market_service.price_history(symbol, limit)
