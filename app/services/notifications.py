from __future__ import annotations

import uuid
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.common import utcnow
from app.models.notification import Notification
from app.models.portal_user import PortalUser
from app.models.service_request import ServiceRequest
from app.services.request_status import ROLE_ADMIN, status_label

EVENT_REQUEST_CREATED = "REQUEST_CREATED"
EVENT_PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
EVENT_STATUS = "STATUS"
EVENT_MESSAGE = "MESSAGE"
EVENT_GENERIC = "GENERIC"


class Notifier(Protocol):
    def notify(self, user_id: uuid.UUID, title: str, message: str, **extra: Any) -> None:
        ...


def _as_uuid_or_none(value: Any) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def active_admin_ids(db: Session, *, exclude_user_id: uuid.UUID | None = None) -> list[uuid.UUID]:
    try:
        rows = (
            db.query(PortalUser.id)
            .filter(PortalUser.role == ROLE_ADMIN, PortalUser.is_active.is_(True))
            .order_by(PortalUser.created_at.asc())
            .all()
        )
    except SQLAlchemyError:
        # Some isolated tests bootstrap only a subset of tables.
        return []
    return [admin_id for (admin_id,) in rows if admin_id and admin_id != exclude_user_id]


class SqlNotifier:
    """Stores in-app notifications in the same transaction as the triggering change."""

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: uuid.UUID,
        title: str,
        message: str,
        *,
        request: ServiceRequest | None = None,
        event_type: str = EVENT_GENERIC,
        responsible: str = "Sistema de notificações",
    ) -> Notification | None:
        recipient = _as_uuid_or_none(user_id)
        if recipient is None:
            return None
        payload: dict[str, Any] = {"event_type": event_type}
        if request is not None:
            payload.update(
                {
                    "request_id": str(request.id),
                    "protocol": request.protocol,
                    "status": request.status,
                    "status_label": status_label(request.status),
                }
            )
        row = Notification(
            user_id=recipient,
            request_id=request.id if request is not None else None,
            event_type=str(event_type or EVENT_GENERIC).strip().upper(),
            title=str(title or "").strip() or "Atualização",
            message=str(message or "").strip() or None,
            payload=payload,
            is_read=False,
            read_at=None,
            responsible=str(responsible or "").strip() or "Sistema de notificações",
        )
        self.db.add(row)
        return row


def notify_admins(
    db: Session,
    notifier: Notifier,
    *,
    title: str,
    message: str,
    request: ServiceRequest | None = None,
    event_type: str = EVENT_GENERIC,
    exclude_user_id: uuid.UUID | None = None,
) -> int:
    created = 0
    for admin_id in active_admin_ids(db, exclude_user_id=exclude_user_id):
        notifier.notify(admin_id, title, message, request=request, event_type=event_type)
        created += 1
    return created


def serialize_notification(row: Notification) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "user_id": str(row.user_id),
        "request_id": str(row.request_id) if row.request_id else None,
        "event_type": row.event_type,
        "title": row.title,
        "message": row.message,
        "payload": row.payload or {},
        "is_read": bool(row.is_read),
        "read_at": row.read_at.isoformat() if row.read_at else None,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def list_user_notifications(
    db: Session,
    *,
    user_id: str | uuid.UUID,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Notification], int]:
    user_uuid = _as_uuid_or_none(user_id)
    if user_uuid is None:
        return [], 0
    query = db.query(Notification).filter(Notification.user_id == user_uuid)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    total = query.count()
    rows = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(int(max(offset, 0)))
        .limit(int(min(max(limit, 1), 200)))
        .all()
    )
    return rows, int(total)


def mark_user_notifications_read(
    db: Session,
    *,
    user_id: str | uuid.UUID,
    notification_id: uuid.UUID | None = None,
    responsible: str = "Sistema de notificações",
) -> int:
    user_uuid = _as_uuid_or_none(user_id)
    if user_uuid is None:
        return 0
    query = db.query(Notification).filter(
        Notification.user_id == user_uuid,
        Notification.is_read.is_(False),
    )
    if notification_id is not None:
        query = query.filter(Notification.id == notification_id)
    rows = query.all()
    now = utcnow()
    for row in rows:
        row.is_read = True
        row.read_at = now
        row.responsible = responsible
        db.add(row)
    return len(rows)


def get_user_notification(
    db: Session,
    *,
    user_id: str | uuid.UUID,
    notification_id: uuid.UUID,
) -> Notification | None:
    user_uuid = _as_uuid_or_none(user_id)
    if user_uuid is None:
        return None
    return (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_uuid)
        .first()
    )
