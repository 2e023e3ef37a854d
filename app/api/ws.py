"""
WebSocket channel announcing seating changes to open dashboards
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.models import Event

logger = logging.getLogger(__name__)

class WebSocketManager:
    """Tracks dashboard connections per event"""

    def __init__(self):
        # event id -> list of websockets
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, event_key: str):
        await websocket.accept()
        self.active_connections.setdefault(event_key, []).append(websocket)
        logger.info(f"Dashboard connected to event {event_key} ({self.get_connection_count(event_key)} open)")

    def disconnect(self, websocket: WebSocket, event_key: str):
        connections = self.active_connections.get(event_key)
        if not connections or websocket not in connections:
            return
        connections.remove(websocket)
        logger.info(f"Dashboard disconnected from event {event_key} ({len(connections)} open)")
        if not connections:
            del self.active_connections[event_key]

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.error(f"Error sending personal message: {e}")

    async def broadcast_to_event(self, event_key: str, message: dict):
        """Send a message to every dashboard watching an event"""
        if event_key not in self.active_connections:
            logger.debug(f"No dashboards open for event {event_key}")
            return

        disconnected = []
        for websocket in list(self.active_connections[event_key]):
            try:
                await websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket, event_key)

    def get_connection_count(self, event_key: str) -> int:
        return len(self.active_connections.get(event_key, []))

# Global WebSocket manager instance
websocket_manager = WebSocketManager()

async def broadcast_seating_update(event_id: int, action: str, data: Optional[Any] = None):
    """Tell dashboards that the seating of an event changed"""
    await websocket_manager.broadcast_to_event(str(event_id), {
        "type": "seating_update",
        "event_id": event_id,
        "action": action,
        "data": data,
        "timestamp": datetime.utcnow().isoformat(),
    })

# Router for WebSocket endpoints
router = APIRouter()

@router.websocket("/events/{event_id}")
async def websocket_endpoint(
    websocket: WebSocket,
    event_id: int,
    db: Session = Depends(get_db)
):
    """Live seating updates for one event"""
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        await websocket.close(code=4004, reason="Event not found")
        return

    event_key = str(event_id)
    await websocket_manager.connect(websocket, event_key)

    try:
        await websocket_manager.send_personal_message({
            "type": "connection",
            "message": f"Connected to event: {event.name}",
            "event_id": event_id,
            "connection_count": websocket_manager.get_connection_count(event_key)
        }, websocket)

        while True:
            data = await websocket.receive_text()
            try:
                client_message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")
                continue
            if not isinstance(client_message, dict):
                logger.warning(f"Ignoring non-object WebSocket message: {data}")
                continue

            if client_message.get("type") == "ping":
                await websocket_manager.send_personal_message({
                    "type": "pong",
                    "timestamp": client_message.get("timestamp")
                }, websocket)

    except WebSocketDisconnect:
        pass
    finally:
        websocket_manager.disconnect(websocket, event_key)
