"""init
Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _base_columns(with_responsible: bool = True):
    columns = [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]
    if with_responsible:
        columns.append(sa.Column("responsible", sa.String(length=200), nullable=False, server_default="Sistema"))
    return columns


def upgrade():
    op.create_table(
        "companies",
        *_base_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("cnpj", sa.String(length=20), nullable=True, unique=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("contact", sa.String(length=100), nullable=True),
    )

    op.create_table(
        "portal_users",
        *_base_columns(),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_portal_users_role", "portal_users", ["role"])
    op.create_index("ix_portal_users_email", "portal_users", ["email"])
    op.create_index("ix_portal_users_company_id", "portal_users", ["company_id"])

    op.create_table(
        "request_types",
        *_base_columns(),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "service_requests",
        *_base_columns(),
        sa.Column("protocol", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("type_name", sa.String(length=120), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="N/A"),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("txid", sa.String(length=64), nullable=True),
        sa.Column("pix_copia_e_cola", sa.Text(), nullable=True),
        sa.Column("pix_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pix_expiration", sa.DateTime(timezone=True), nullable=True),
        sa.Column("proof_reference", sa.String(length=500), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("resolution_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_service_requests_protocol", "service_requests", ["protocol"])
    op.create_index("ix_service_requests_status", "service_requests", ["status"])
    op.create_index("ix_service_requests_deleted", "service_requests", ["deleted"])
    op.create_index("ix_service_requests_txid", "service_requests", ["txid"], unique=True)
    op.create_index("ix_service_requests_client_id", "service_requests", ["client_id"])
    op.create_index("ix_service_requests_company_id", "service_requests", ["company_id"])

    op.create_table(
        "service_request_audit_log",
        *_base_columns(with_responsible=False),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=300), nullable=False),
        sa.Column("user", sa.String(length=200), nullable=False),
        sa.Column("actor_role", sa.String(length=20), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.UniqueConstraint("request_id", "position", name="uq_service_request_audit_position"),
    )
    op.create_index("ix_service_request_audit_log_request_id", "service_request_audit_log", ["request_id"])

    op.create_table(
        "service_request_messages",
        *_base_columns(with_responsible=False),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("sender", sa.String(length=200), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.UniqueConstraint("request_id", "position", name="uq_service_request_message_position"),
    )
    op.create_index("ix_service_request_messages_request_id", "service_request_messages", ["request_id"])

    op.create_table(
        "notifications",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_request_id", "notifications", ["request_id"])
    op.create_index("ix_notifications_event_type", "notifications", ["event_type"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])

    op.create_table(
        "documents",
        *_base_columns(),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("category", sa.String(length=120), nullable=False),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Enviado"),
        sa.Column("dedupe_key", sa.String(length=255), nullable=True, unique=True),
    )
    op.create_index("ix_documents_category", "documents", ["category"])
    op.create_index("ix_documents_company_id", "documents", ["company_id"])
    op.create_index("ix_documents_request_id", "documents", ["request_id"])


def downgrade():
    op.drop_table("documents")
    op.drop_table("notifications")
    op.drop_table("service_request_messages")
    op.drop_table("service_request_audit_log")
    op.drop_table("service_requests")
    op.drop_table("request_types")
    op.drop_table("portal_users")
    op.drop_table("companies")
