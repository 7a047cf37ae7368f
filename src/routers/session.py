"""
Session WebSocket Router

Pushes the reconciled session to the client on connect and on every change,
so the UI can show a loading state until reconciliation settles.
"""

import asyncio

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from auth import ReconciledSession
from core.logger import get_logger
from routers.clients import websocket_client_runtime

logger = get_logger(__name__)

router = APIRouter(tags=["session"])


def _session_message(session: ReconciledSession) -> str:
    return orjson.dumps({"type": "session", "session": session.to_dict()}).decode("utf-8")


async def _receive_loop(websocket: WebSocket) -> None:
    """Answer heartbeats until the client goes away."""
    while True:
        raw = await websocket.receive_text()
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON message from {websocket.client}")
            continue
        if isinstance(data, dict) and data.get("type") == "ping":
            await websocket.send_text(orjson.dumps({"type": "pong"}).decode("utf-8"))


async def _send_loop(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        session = await queue.get()
        await websocket.send_text(_session_message(session))


@router.websocket("/ws/session")
async def session_stream(websocket: WebSocket):
    runtime = websocket_client_runtime(websocket)
    if runtime is None:
        # The stream follows a browser that has already loaded a page
        logger.warning(f"Session stream refused for {websocket.client}: no client cookie")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue(maxsize=32)

    def on_session(session: ReconciledSession) -> None:
        try:
            queue.put_nowait(session)
        except asyncio.QueueFull:
            logger.warning(f"Session stream backlog full for {websocket.client}, dropping update")

    unsubscribe = runtime.publisher.subscribe(on_session)
    logger.info(f"Session stream connected: {websocket.client}")

    tasks: list[asyncio.Task] = []
    try:
        await websocket.send_text(_session_message(runtime.publisher.get_session()))
        tasks = [
            asyncio.create_task(_receive_loop(websocket)),
            asyncio.create_task(_send_loop(websocket, queue)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                logger.error(f"Session stream error for {websocket.client}: {exc}")
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        for task in tasks:
            task.cancel()
        logger.info(f"Session stream disconnected: {websocket.client}")
