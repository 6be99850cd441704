from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.common import optional_uuid_or_400, serialize_message, serialize_request, serialize_request_detail
from app.core.deps import get_admin_actor, get_payment_orchestrator
from app.db.session import get_db
from app.schemas.requests import ChatMessageCreate, StatusChange
from app.services.payment_orchestrator import PaymentOrchestrator
from app.services.request_status import Actor
from app.services.request_store import RequestStore
from app.services.request_workflow import RequestWorkflow

router = APIRouter()


@router.get("")
def list_requests(
    company_id: str | None = Query(default=None),
    view: Literal["active", "bin"] = Query(default="active"),
    q: str | None = Query(default=None, max_length=120),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_admin_actor),
):
    rows = RequestStore(db).list(
        company_id=optional_uuid_or_400(company_id, "company_id"),
        only_deleted=view == "bin",
        search=q,
    )
    return {"rows": [serialize_request(row, actor) for row in rows], "total": len(rows), "view": view}


@router.get("/{request_id}")
def get_request(
    request_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_admin_actor),
):
    workflow = RequestWorkflow(db)
    req = workflow.mark_viewed(request_id, actor)
    return serialize_request_detail(workflow.store, req, actor)


@router.post("/{request_id}/status")
def change_status(
    request_id: str,
    payload: StatusChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_admin_actor),
):
    req = RequestWorkflow(db).transition(request_id, payload.status, actor)
    return serialize_request(req, actor)


@router.post("/{request_id}/confirm-payment")
def confirm_payment(
    request_id: str,
    actor: Actor = Depends(get_admin_actor),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    result = orchestrator.confirm_payment_for_request(request_id, actor)
    return {"confirmed": result.confirmed, "request": serialize_request(result.request, actor)}


@router.delete("/{request_id}")
def delete_request(
    request_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_admin_actor),
):
    store = RequestStore(db)
    changed = store.soft_delete(request_id, actor)
    return {"status": "ok", "changed": changed, "request": serialize_request(store.find(request_id), actor)}


@router.post("/{request_id}/restore")
def restore_request(
    request_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_admin_actor),
):
    store = RequestStore(db)
    changed = store.restore(request_id, actor)
    return {"status": "ok", "changed": changed, "request": serialize_request(store.find(request_id), actor)}


@router.get("/{request_id}/messages")
def list_messages(
    request_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_admin_actor),
):
    store = RequestStore(db)
    req = store.find(request_id)
    return {"rows": [serialize_message(row) for row in store.messages(req.id)]}


@router.post("/{request_id}/messages", status_code=201)
def post_message(
    request_id: str,
    payload: ChatMessageCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_admin_actor),
):
    message = RequestWorkflow(db).add_message(request_id, actor, payload.text)
    return serialize_message(message)
