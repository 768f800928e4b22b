from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from videojobs.services.realtime import EventHub, Subscriber

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def handle_command(hub: EventHub, subscriber: Subscriber, raw: str) -> dict[str, Any]:
    """
    Apply one client command and return the reply frame.

      {"action": "subscribe", "jobId": "..."}
      {"action": "unsubscribe", "jobId": "..."}
    """
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return {"error": "Invalid message format"}
    if not isinstance(message, dict):
        return {"error": "Invalid message format"}

    action = message.get("action")
    job_id = message.get("jobId")
    if not job_id or not isinstance(job_id, str):
        return {"error": "Unknown action or missing jobId"}

    if action == "subscribe":
        hub.subscribe(job_id, subscriber)
        logger.debug("Client subscribed to job %s", job_id)
        return {"type": "subscribed", "jobId": job_id}
    if action == "unsubscribe":
        hub.unsubscribe(job_id, subscriber)
        logger.debug("Client unsubscribed from job %s", job_id)
        return {"type": "unsubscribed", "jobId": job_id}
    return {"error": "Unknown action or missing jobId"}


@router.websocket("/ws")
async def job_events(websocket: WebSocket) -> None:
    """
    Live job events for this connection's subscriptions.

    Events are published from the poller thread; they hop onto this
    connection's event loop and go out through a single sender task so
    replies and events never interleave mid-frame. No replay: a client that
    reconnects must re-subscribe and read GET /status for anything missed.
    """
    hub: EventHub = websocket.app.state.hub
    await websocket.accept()

    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def deliver(event: dict[str, Any]) -> None:
        loop.call_soon_threadsafe(outbox.put_nowait, event)

    async def pump() -> None:
        try:
            while True:
                frame = await outbox.get()
                await websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError):
            return

    sender = asyncio.create_task(pump())
    outbox.put_nowait({"type": "connected", "message": "WebSocket connected successfully"})
    try:
        while True:
            raw = await websocket.receive_text()
            outbox.put_nowait(handle_command(hub, deliver, raw))
    except WebSocketDisconnect:
        logger.debug("WebSocket connection closed")
    finally:
        hub.unsubscribe_all(deliver)
        sender.cancel()
