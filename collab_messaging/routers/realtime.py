import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from collab_messaging.services.channel_session import Authenticator, ChannelSession
from collab_messaging.utils.dependencies import get_ws_authenticator


logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

# closes the socket after a failed credential check
AUTH_FAILED_CLOSE_CODE = 4401


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, authenticate: Authenticator = Depends(get_ws_authenticator)):
    await websocket.accept()
    session = ChannelSession(
        websocket.app.state.hub,
        websocket,
        authenticate,
        handshake_token=websocket.query_params.get("token"),
    )
    logger.info("Realtime connection %s opened", session.connection_id)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await session.error("Malformed frame")
                continue
            if not isinstance(frame, dict):
                await session.error("Malformed frame")
                continue
            keep_open = await session.handle(frame.get("event"), frame.get("data"))
            if not keep_open:
                await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
                break
    except WebSocketDisconnect as exc:
        logger.debug("Connection %s dropped with code %s", session.connection_id, exc.code)
    finally:
        session.close()
        logger.info("Realtime connection %s closed", session.connection_id)
