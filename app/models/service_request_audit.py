import uuid
from sqlalchemy import Integer, String, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID
from app.db.session import Base
from app.models.common import UUIDMixin, TimestampMixin

class ServiceRequestAuditEntry(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "service_request_audit_log"
    __table_args__ = (UniqueConstraint("request_id", "position", name="uq_service_request_audit_position"),)
    request_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(300), nullable=False)
    user: Mapped[str] = mapped_column(String(200), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)  # ADMIN|CLIENT|SYSTEM
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
