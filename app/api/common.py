from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.models.common import as_utc
from app.models.service_request import ServiceRequest
from app.models.service_request_audit import ServiceRequestAuditEntry
from app.models.service_request_message import ServiceRequestMessage
from app.services.notifications import (
    get_user_notification,
    list_user_notifications,
    mark_user_notifications_read,
    serialize_notification,
)
from app.services.request_status import Actor, payment_status_label, status_label
from app.services.request_store import RequestStore
from app.services.request_workflow import allowed_targets


def _iso(value) -> str | None:
    return as_utc(value).isoformat() if value else None


def serialize_message(row: ServiceRequestMessage) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "request_id": str(row.request_id),
        "sender": row.sender,
        "role": row.role,
        "text": row.text,
        "created_at": _iso(row.created_at),
    }


def serialize_audit_entry(row: ServiceRequestAuditEntry) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "action": row.action,
        "user": row.user,
        "actor_role": row.actor_role,
        "details": row.details or {},
        "created_at": _iso(row.created_at),
    }


def serialize_request(req: ServiceRequest, actor: Actor) -> dict[str, Any]:
    return {
        "id": str(req.id),
        "protocol": req.protocol,
        "title": req.title,
        "type_name": req.type_name,
        "price": f"{Decimal(req.price or 0):.2f}",
        "description": req.description,
        "status": req.status,
        "status_label": status_label(req.status),
        "payment_status": req.payment_status,
        "payment_status_label": payment_status_label(req.payment_status),
        "deleted": bool(req.deleted),
        "txid": req.txid,
        "pix_copia_e_cola": req.pix_copia_e_cola,
        "pix_expiration": _iso(req.pix_expiration),
        "proof_reference": req.proof_reference,
        "paid_at": _iso(req.paid_at),
        "client_id": str(req.client_id),
        "company_id": str(req.company_id),
        "resolution_count": int(req.resolution_count or 0),
        "responsible": req.responsible,
        "allowed_transitions": allowed_targets(req, actor.role),
        "created_at": _iso(req.created_at),
        "updated_at": _iso(req.updated_at),
    }


def serialize_request_detail(store: RequestStore, req: ServiceRequest, actor: Actor) -> dict[str, Any]:
    payload = serialize_request(req, actor)
    payload["messages"] = [serialize_message(row) for row in store.messages(req.id)]
    payload["history"] = [serialize_audit_entry(row) for row in store.audit_entries(req.id)]
    return payload


def optional_uuid_or_400(raw: str | None, field_name: str) -> uuid.UUID | None:
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f'"{field_name}" inválido')


def notifications_page(db: Session, actor: Actor, *, unread_only: bool, limit: int, offset: int) -> dict[str, Any]:
    rows, total = list_user_notifications(db, user_id=actor.user_id, unread_only=unread_only, limit=limit, offset=offset)
    _, unread_total = list_user_notifications(db, user_id=actor.user_id, unread_only=True, limit=1, offset=0)
    return {
        "rows": [serialize_notification(row) for row in rows],
        "total": total,
        "unread_total": int(unread_total),
    }


def read_notification(db: Session, actor: Actor, notification_id: str) -> dict[str, Any]:
    notification_uuid = optional_uuid_or_400(notification_id, "notification_id")
    row = get_user_notification(db, user_id=actor.user_id, notification_id=notification_uuid) if notification_uuid else None
    if row is None:
        raise HTTPException(status_code=404, detail="Notificação não encontrada")
    changed = mark_user_notifications_read(
        db,
        user_id=actor.user_id,
        notification_id=notification_uuid,
        responsible=actor.name,
    )
    db.commit()
    db.refresh(row)
    return {"status": "ok", "changed": int(changed), "notification": serialize_notification(row)}


def read_all_notifications(db: Session, actor: Actor) -> dict[str, Any]:
    changed = mark_user_notifications_read(db, user_id=actor.user_id, responsible=actor.name)
    db.commit()
    return {"status": "ok", "changed": int(changed)}
