from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import utc_now
from gorillionaire.services.realtime import ws_hub

logger = Logger("RealtimeAPI")

router = APIRouter(tags=["Realtime"])


async def _serve(websocket: WebSocket):
    try:
        while True:
            raw = await websocket.receive_text()
            await ws_hub.handle_message(websocket, raw)
    except WebSocketDisconnect:
        pass
    finally:
        ws_hub.disconnect(websocket)


@router.websocket("/events/token/{token_name}")
async def token_events(websocket: WebSocket, token_name: str):
    await websocket.accept()
    await ws_hub.subscribe_token(websocket, token_name)
    await _serve(websocket)


@router.websocket("/events/notifications")
async def notifications(websocket: WebSocket):
    await websocket.accept()
    await ws_hub.subscribe_notifications(websocket)
    await _serve(websocket)


@router.websocket("/events/{path:path}")
async def invalid_subscription(websocket: WebSocket, path: str):
    await websocket.accept()
    await websocket.send_json({
        "type": "ERROR",
        "message": "Invalid subscription path",
        "timestamp": utc_now().isoformat(),
    })
    await websocket.close(code=1008)
