# WebSocket endpoint: request/response plus device broadcasts
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/")
@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    context = websocket.app.state.context
    await websocket.accept()

    client = websocket.client
    peer = f"{client.host}:{client.port}" if client else ""
    session = context.hub.register(websocket.send_text, close=websocket.close, peer=peer)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""

            envelope = await context.dispatcher.handle(raw)
            if not await context.hub.send(session, envelope.to_dict()):
                break
    except WebSocketDisconnect:
        pass
    finally:
        context.hub.unregister(session)
