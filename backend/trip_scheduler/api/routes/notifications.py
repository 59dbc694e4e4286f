from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from datetime import datetime
from typing import Optional
import jwt

from trip_scheduler.db.session import get_db
from trip_scheduler.api.deps import get_current_email
from trip_scheduler.models.notification import Notification
from trip_scheduler.services.notification_ws import manager
from trip_scheduler.core.security import decode_access_token

router = APIRouter()

class NotificationOut(BaseModel):
    id: int
    booking_id: Optional[str] = None
    type: str
    message: str
    created_at: datetime
    read: bool

    class Config:
        from_attributes = True

@router.get("/", response_model=list[NotificationOut])
def list_notifications(db: Session = Depends(get_db), email: str = Depends(get_current_email)):
    items = db.query(Notification).filter(Notification.user_email == email).order_by(Notification.created_at.desc()).limit(200).all()
    return items

@router.get("/unread-count", response_model=dict)
def unread_count(db: Session = Depends(get_db), email: str = Depends(get_current_email)):
    count = db.query(Notification).filter(Notification.user_email == email, Notification.read.is_(False)).count()
    return {"unread": count}

@router.post("/{notif_id}/read")
async def mark_notification(notif_id: int, db: Session = Depends(get_db), email: str = Depends(get_current_email)):
    n = db.query(Notification).filter(Notification.id == notif_id, Notification.user_email == email).first()
    if not n:
        raise HTTPException(status_code=404, detail="Not found")
    n.read = True
    db.commit()
    await manager.send_to_user(email, {"type": "notification_read", "data": {"id": n.id}})
    return {"status": "ok"}

@router.websocket("/ws/notifications")
async def websocket_notifications(websocket: WebSocket, token: str = Query(...)):
    """Live trip reminders for the My Trips page.
    The client passes its access token as ?token=...; pushes look like
      {"type": "notification", "data": { NotificationOut }}
    """
    try:
        email = (decode_access_token(token).get("sub") or "").lower()
    except jwt.PyJWTError:
        email = ""
    if not email:
        await websocket.close(code=4401)
        return

    await manager.connect(email, websocket)
    try:
        while True:
            # Client pings keep the socket open; their content is ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        await manager.disconnect(email, websocket)
