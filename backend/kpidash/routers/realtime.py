"""Realtime websocket: streams the caller's row changes.

PROTOCOL:
    1. Client connects to /realtime with the session cookie, or the token in
       query params (/realtime?token=xxx) where cookies are unavailable
    2. Server resolves the user; closes with 4001 when it cannot
    3. Server sends {"type": "connected", ...}
    4. Server pushes {"type": "change", "table", "event_type", "new", "old"}
       for kpi_data, integrations and sync_logs rows owned by the user
    5. Client may send {"type": "ping"}; server answers {"type": "pong"}

Each connection owns its RealtimeManager and closes every channel on
disconnect. Change-feed handlers run on the thread that committed the write,
so they only hand messages to the event loop.

REFERENCES:
    - kpidash/realtime.py (RealtimeManager)
    - kpidash/hosted/channels.py (ChangeFeed)
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Cookie, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import get_change_feed
from ..hosted.channels import ChangeFeed, RealtimePayload
from ..hosted.client import HostedClient
from ..realtime import ENTITY_TYPES, RealtimeManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


def _public_row(table: str, row: Dict[str, Any]) -> Dict[str, Any]:
    """Rows as clients may see them: integration API keys become a flag."""
    if table != "integrations" or not row:
        return row
    row = dict(row)
    row["has_api_key"] = bool(row.pop("api_key", None))
    return row


def _change_message(payload: RealtimePayload) -> Dict[str, Any]:
    message = schemas.RealtimeMessage(
        type="change",
        table=payload.table,
        event_type=payload.event_type,
        new=_public_row(payload.table, payload.new),
        old=_public_row(payload.table, payload.old),
        timestamp=datetime.utcnow(),
    )
    return message.model_dump(mode="json")


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


@router.websocket("/realtime")
async def realtime_stream(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    client = HostedClient(db, feed, access_token=token or access_token)
    user = client.auth.get_user()
    if user is None:
        await websocket.close(code=4001, reason="Not authenticated")
        return

    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def forward(payload: RealtimePayload) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, _change_message(payload))

    manager = RealtimeManager(client)
    for entity_type in ENTITY_TYPES:
        manager.subscribe(entity_type, str(user.id), on_insert=forward, on_update=forward, on_delete=forward)

    await websocket.send_json(
        schemas.RealtimeMessage(type="connected", timestamp=datetime.utcnow()).model_dump(mode="json")
    )
    logger.info("[REALTIME] WebSocket connected for user %s", user.id)

    sender = asyncio.create_task(_pump(websocket, queue))
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except (ValueError, json.JSONDecodeError):
                logger.warning("[REALTIME] Ignoring non-JSON message")
                continue
            if isinstance(data, dict) and data.get("type") == "ping":
                await websocket.send_json({"type": "pong", "timestamp": datetime.utcnow().isoformat()})
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        manager.unsubscribe_all()
        logger.info("[REALTIME] WebSocket disconnected for user %s", user.id)
