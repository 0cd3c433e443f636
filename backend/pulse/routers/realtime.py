# backend/pulse/routers/realtime.py
import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..auth import AuthError, resolve_principal
from ..progress import WebSocketConnection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def progress_socket(websocket: WebSocket):
    """
    Realtime progress channel.

    Query param 'token' authenticates the socket. The first message is
    {"connectionId": ...}; send {"action": "subscribe", "videoId": ...} (or POST
    /api/videos/{id}/subscribe with the connection id) to receive that
    video's progress events.
    """
    state = websocket.app.state
    try:
        principal = await asyncio.to_thread(
            resolve_principal, websocket.query_params.get("token"), state.settings, state.users
        )
    except AuthError as exc:
        logger.info("rejected websocket: %s", exc)
        await websocket.close(code=1008)
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    hub = state.hub
    hub.register(connection)
    sender = asyncio.create_task(connection.run_sender())
    connection.push({"connectionId": connection.connection_id})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                connection.push({"error": "Invalid message"})
                continue
            if not isinstance(message, dict) or message.get("action") != "subscribe":
                connection.push({"error": "Unsupported action"})
                continue

            video_id = str(message.get("videoId") or "")
            video = await asyncio.to_thread(state.videos.get, video_id, principal.tenant_id)
            if video is None:
                connection.push({"error": "Video not found"})
                continue
            hub.subscribe(connection.connection_id, video_id)
            connection.push({"subscribed": video_id})

    except WebSocketDisconnect:
        pass
    finally:
        hub.unregister(connection.connection_id)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await sender
