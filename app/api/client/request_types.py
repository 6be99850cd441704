from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_client_actor
from app.db.session import get_db
from app.models.request_type import RequestType
from app.services.request_status import Actor

router = APIRouter()


@router.get("")
def list_request_types(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_client_actor),
):
    rows = (
        db.query(RequestType)
        .filter(RequestType.enabled.is_(True))
        .order_by(RequestType.sort_order.asc(), RequestType.name.asc())
        .all()
    )
    return {
        "rows": [
            {"id": str(row.id), "name": row.name, "price": f"{Decimal(row.price or 0):.2f}", "billable": Decimal(row.price or 0) > 0}
            for row in rows
        ]
    }
