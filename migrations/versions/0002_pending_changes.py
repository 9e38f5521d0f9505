"""Create pending-change tables, idempotency ledger, uploads and admin audit log"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0002_pending_changes"
down_revision = "0001_users_catalog"
branch_labels = None
depends_on = None

CHANGE_TABLES = (
    ("property_pending_changes", "property_id", "properties"),
    ("banner_pending_changes", "banner_id", "banners"),
)


def _create_change_table(table: str, target_column: str, target_table: str) -> None:
    op.create_table(
        table,
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            target_column,
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{target_table}.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "proposer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("proposed_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("diff_summary", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "reviewed_by_admin_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'pending', 'needs_revision', 'approved', 'rejected')",
            name=f"ck_{table}_status",
        ),
    )
    op.create_index(f"ix_{table}_status_created", table, ["status", "created_at"])
    op.create_index(f"ix_{table}_proposer", table, ["proposer_id"])
    # One live (non-draft pending) change per target and proposer.
    op.create_index(
        f"uq_{table}_live",
        table,
        [target_column, "proposer_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending' AND is_draft = false"),
    )


def upgrade() -> None:
    for table, target_column, target_table in CHANGE_TABLES:
        _create_change_table(table, target_column, target_table)

    op.create_table(
        "pending_change_idempotency",
        sa.Column("idempotency_key", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_type", sa.String(length=20), nullable=False),
        sa.Column("change_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="completed"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "entity_type IN ('property', 'banner')",
            name="ck_pending_change_idempotency_entity_type",
        ),
    )
    op.create_index(
        "ix_pending_change_idempotency_change_id", "pending_change_idempotency", ["change_id"]
    )

    op.create_table(
        "uploads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("key", sa.String(length=1024), nullable=False, unique=True),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("purpose", sa.String(length=32), nullable=False),
        sa.Column("client_upload_id", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="created"),
        sa.Column("size", sa.BigInteger(), nullable=True),
        sa.Column("content_type", sa.String(length=100), nullable=True),
        sa.Column("referenced_entity_type", sa.String(length=20), nullable=True),
        sa.Column("referenced_by_change_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.CheckConstraint(
            "purpose IN ('property_image', 'brochure', 'profile', 'banner')",
            name="ck_uploads_purpose",
        ),
        sa.CheckConstraint(
            "status IN ('created', 'uploaded', 'referenced')",
            name="ck_uploads_status",
        ),
        sa.UniqueConstraint("owner_id", "client_upload_id", name="uq_uploads_owner_client_upload"),
    )
    op.create_index("ix_uploads_owner_status", "uploads", ["owner_id", "status"])
    op.create_index("ix_uploads_referenced_by_change_id", "uploads", ["referenced_by_change_id"])

    op.create_table(
        "admin_audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "admin_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action_type", sa.String(length=100), nullable=False),
        sa.Column("target_type", sa.String(length=50), nullable=False),
        sa.Column("target_id", sa.String(length=64), nullable=True),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_admin_audit_logs_target", "admin_audit_logs", ["target_type", "target_id"])


def downgrade() -> None:
    op.drop_index("ix_admin_audit_logs_target", table_name="admin_audit_logs")
    op.drop_table("admin_audit_logs")
    op.drop_index("ix_uploads_referenced_by_change_id", table_name="uploads")
    op.drop_index("ix_uploads_owner_status", table_name="uploads")
    op.drop_table("uploads")
    op.drop_index("ix_pending_change_idempotency_change_id", table_name="pending_change_idempotency")
    op.drop_table("pending_change_idempotency")
    for table, _, _ in reversed(CHANGE_TABLES):
        op.drop_index(f"uq_{table}_live", table_name=table)
        op.drop_index(f"ix_{table}_proposer", table_name=table)
        op.drop_index(f"ix_{table}_status_created", table_name=table)
        op.drop_table(table)
