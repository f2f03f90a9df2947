"""
WebSocket rooms for the gate and the planner dashboard
"""

import json
import logging
from typing import Dict, List, Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.models import Guest
from app.services.repositories import EventRepo
from app.utils.security import may_watch_event

logger = logging.getLogger(__name__)

class WebSocketManager:
    """Per-event rooms keyed by the event's public code"""
    
    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}
    
    async def connect(self, websocket: WebSocket, event_code: str):
        await websocket.accept()
        self.active_connections.setdefault(event_code, []).append(websocket)
        logger.info(f"WebSocket connected to event {event_code}. Total connections: {len(self.active_connections[event_code])}")
    
    def disconnect(self, websocket: WebSocket, event_code: str):
        room = self.active_connections.get(event_code)
        if not room or websocket not in room:
            return
        room.remove(websocket)
        logger.info(f"WebSocket disconnected from event {event_code}. Remaining connections: {len(room)}")
        if not room:
            del self.active_connections[event_code]
    
    async def send_personal_message(self, message: dict, websocket: WebSocket):
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.error(f"Error sending personal message: {e}")
    
    async def broadcast_to_event(self, event_code: str, message: dict):
        """Send to every socket in the room; sockets that fail are dropped"""
        connections = list(self.active_connections.get(event_code, []))
        if not connections:
            logger.debug(f"No active connections for event {event_code}")
            return
        
        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.append(websocket)
        
        for websocket in disconnected:
            self.disconnect(websocket, event_code)
    
    def get_connection_count(self, event_code: str) -> int:
        return len(self.active_connections.get(event_code, []))

# Global WebSocket manager instance
websocket_manager = WebSocketManager()

router = APIRouter()

@router.websocket("/events/{event_code}")
async def websocket_endpoint(
    websocket: WebSocket,
    event_code: str,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Live check-ins, gate-crasher alerts and seating changes for one event.

    ``token`` is an usher access token for this event or the owning planner's token.
    """
    event = EventRepo.get_by_public_code(db, event_code)
    if not event:
        await websocket.close(code=4004, reason="Event not found")
        return
    if not may_watch_event(db, event, token):
        logger.warning(f"WebSocket for event {event_code} refused: missing or foreign token")
        await websocket.close(code=4401, reason="Not authorized for this event")
        return
    
    event_name = event.name
    checked_in = db.query(func.count(Guest.id)).filter(
        Guest.event_id == event.id,
        Guest.checked_in == True  # noqa: E712
    ).scalar() or 0
    # The socket outlives the request; do not hold a transaction open
    db.close()
    
    await websocket_manager.connect(websocket, event_code)
    try:
        await websocket_manager.send_personal_message({
            "type": "connection",
            "message": f"Connected to event: {event_name}",
            "event_code": event_code,
            "checked_in": checked_in,
            "connection_count": websocket_manager.get_connection_count(event_code)
        }, websocket)
        
        # Only heartbeats come from clients
        while True:
            data = await websocket.receive_text()
            try:
                client_message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")
                continue
            if client_message.get("type") == "ping":
                await websocket_manager.send_personal_message({
                    "type": "pong",
                    "timestamp": client_message.get("timestamp")
                }, websocket)
    except WebSocketDisconnect:
        pass
    finally:
        websocket_manager.disconnect(websocket, event_code)
