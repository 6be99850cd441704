from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.common import notifications_page, read_all_notifications, read_notification
from app.core.deps import get_client_actor
from app.db.session import get_db
from app.services.request_status import Actor

router = APIRouter()


@router.get("")
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    return notifications_page(db, actor, unread_only=unread_only, limit=limit, offset=offset)


@router.post("/{notification_id}/read")
def read_single_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    return read_notification(db, actor, notification_id)


@router.post("/read-all")
def read_all(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    return read_all_notifications(db, actor)
