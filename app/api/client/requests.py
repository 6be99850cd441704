from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.common import serialize_message, serialize_request, serialize_request_detail
from app.core.deps import get_client_actor, get_payment_orchestrator
from app.db.session import get_db
from app.schemas.requests import ChatMessageCreate, PaymentProofCreate, ServiceRequestCreate
from app.services.errors import NotFound
from app.services.payment_orchestrator import PaymentOrchestrator
from app.services.request_status import STATUS_REQUESTED, STATUS_RESOLVED, Actor
from app.services.request_store import RequestStore
from app.services.request_workflow import RequestWorkflow, ensure_actor_can_access

router = APIRouter()


def _owned_request(store: RequestStore, request_id: str, actor: Actor):
    req = store.find(request_id)
    ensure_actor_can_access(req, actor)
    if req.deleted:
        raise NotFound("Solicitação não encontrada")
    return req


@router.post("", status_code=201)
def create_request(
    payload: ServiceRequestCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    workflow = RequestWorkflow(db)
    req = workflow.create_request(
        actor,
        request_type_id=payload.request_type_id,
        title=payload.title,
        description=payload.description,
    )
    return serialize_request_detail(workflow.store, req, actor)


@router.get("")
def list_requests(
    q: str | None = Query(default=None, max_length=120),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    rows = RequestStore(db).list(company_id=actor.company_id, search=q)
    return {"rows": [serialize_request(row, actor) for row in rows], "total": len(rows), "view": "active"}


@router.get("/{request_id}")
def get_request(
    request_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    store = RequestStore(db)
    req = _owned_request(store, request_id, actor)
    return serialize_request_detail(store, req, actor)


@router.get("/{request_id}/messages")
def list_messages(
    request_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    store = RequestStore(db)
    req = _owned_request(store, request_id, actor)
    return {"rows": [serialize_message(row) for row in store.messages(req.id)]}


@router.post("/{request_id}/messages", status_code=201)
def post_message(
    request_id: str,
    payload: ChatMessageCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    message = RequestWorkflow(db).add_message(request_id, actor, payload.text)
    return serialize_message(message)


@router.post("/{request_id}/charge")
def request_charge(
    request_id: str,
    actor: Actor = Depends(get_client_actor),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    req = orchestrator.request_charge(request_id, actor)
    return orchestrator.payment_snapshot(req)


@router.get("/{request_id}/payment")
def get_payment(
    request_id: str,
    actor: Actor = Depends(get_client_actor),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    req = _owned_request(orchestrator.store, request_id, actor)
    return orchestrator.payment_snapshot(req)


@router.post("/{request_id}/payment-proof")
def submit_payment_proof(
    request_id: str,
    payload: PaymentProofCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    req = RequestWorkflow(db).submit_payment_proof(request_id, actor, payload.proof_reference)
    return serialize_request(req, actor)


@router.post("/{request_id}/approve")
def approve_request(
    request_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    req = RequestWorkflow(db).transition(request_id, STATUS_RESOLVED, actor)
    return serialize_request(req, actor)


@router.post("/{request_id}/reopen")
def reopen_request(
    request_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    req = RequestWorkflow(db).transition(request_id, STATUS_REQUESTED, actor)
    return serialize_request(req, actor)
