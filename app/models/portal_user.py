import uuid

from sqlalchemy import Boolean, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.models.common import ResponsibleMixin, TimestampMixin, UUIDMixin


class PortalUser(Base, UUIDMixin, TimestampMixin, ResponsibleMixin):
    __tablename__ = "portal_users"

    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # ADMIN|CLIENT
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    company_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
