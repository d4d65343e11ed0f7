import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    tags=["realtime"],
)


@router.websocket("/ws")
async def realtime_updates(websocket: WebSocket):
    manager = websocket.app.state.notifier
    await manager.connect(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                logger.debug(f"Ignoring non-JSON realtime message: {text[:100]}")
                continue
            if isinstance(message, dict) and message.get("type") == "join" and message.get("userId"):
                room = manager.join(websocket, str(message["userId"]))
                await websocket.send_json({"event": "joined", "room": room})
            else:
                logger.debug(f"Ignoring realtime message: {message}")
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
