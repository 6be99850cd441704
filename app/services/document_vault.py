from __future__ import annotations

import uuid
from typing import Protocol

from sqlalchemy.orm import Session

from app.models.document import Document


class DocumentVault(Protocol):
    def create_derived_document(
        self,
        request_id: uuid.UUID,
        title: str,
        category: str,
        company_id: uuid.UUID,
        *,
        dedupe_key: str | None = None,
    ) -> Document:
        ...


class SqlDocumentVault:
    """Writes derived documents straight into the vault's ``documents`` table.

    A repeated ``dedupe_key`` returns the already stored document instead of a copy.
    """

    def __init__(self, db: Session, *, responsible: str = "Sistema"):
        self.db = db
        self.responsible = responsible

    def create_derived_document(
        self,
        request_id: uuid.UUID,
        title: str,
        category: str,
        company_id: uuid.UUID,
        *,
        dedupe_key: str | None = None,
    ) -> Document:
        key = str(dedupe_key or "").strip() or None
        if key:
            existing = self.db.query(Document).filter(Document.dedupe_key == key).first()
            if existing is not None:
                return existing
        row = Document(
            title=str(title or "").strip() or "Documento",
            category=str(category or "").strip(),
            company_id=company_id,
            request_id=request_id,
            status="Enviado",
            dedupe_key=key,
            responsible=self.responsible,
        )
        self.db.add(row)
        self.db.flush()
        return row
