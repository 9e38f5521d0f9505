"""Create loan request tickets, their histories and SLA configuration"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0003_loan_requests"
down_revision = "0002_pending_changes"
branch_labels = None
depends_on = None


def _ticket_fk() -> sa.Column:
    return sa.Column(
        "loan_request_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("loan_requests.id", ondelete="CASCADE"),
        nullable=False,
    )


def _user_fk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


def upgrade() -> None:
    op.create_table(
        "loan_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("user_id"),
        sa.Column("user_name", sa.String(length=255), nullable=True),
        sa.Column("user_email", sa.String(length=255), nullable=True),
        sa.Column("user_phone", sa.String(length=32), nullable=True),
        sa.Column("user_location", sa.String(length=120), nullable=True),
        sa.Column(
            "user_preferred_categories",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("loan_type", sa.String(length=50), nullable=False),
        sa.Column("property_category", sa.String(length=50), nullable=False),
        sa.Column("property_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("loan_amount_needed", sa.Numeric(14, 2), nullable=False),
        sa.Column("employment_type", sa.String(length=50), nullable=False),
        sa.Column("monthly_income", sa.Numeric(14, 2), nullable=False),
        sa.Column("preferred_tenure", sa.String(length=20), nullable=False),
        sa.Column("existing_loans", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("existing_loan_details", sa.Text(), nullable=True),
        sa.Column("preferred_contact_time", sa.String(length=50), nullable=False),
        sa.Column("additional_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="received"),
        _user_fk("assignee_id"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default="normal"),
        sa.Column("sla_due_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_activity_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("is_escalated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('received', 'under_review', 'contacted', 'closed', 'rejected')",
            name="ck_loan_requests_status",
        ),
        sa.CheckConstraint("priority IN ('low', 'normal', 'high')", name="ck_loan_requests_priority"),
        sa.CheckConstraint(
            "loan_amount_needed <= property_value",
            name="ck_loan_requests_amount_within_value",
        ),
    )
    op.create_index("ix_loan_requests_status_created", "loan_requests", ["status", "created_at"])
    op.create_index("ix_loan_requests_assignee_status", "loan_requests", ["assignee_id", "status"])
    op.create_index("ix_loan_requests_sla_due_at", "loan_requests", ["sla_due_at"])

    op.create_table(
        "loan_request_comments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _ticket_fk(),
        _user_fk("author_id"),
        sa.Column("comment", sa.Text(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "loan_request_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _ticket_fk(),
        _user_fk("assigned_from"),
        _user_fk("assigned_to"),
        _user_fk("assigned_by"),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "loan_request_audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _ticket_fk(),
        _user_fk("actor_id"),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("old_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("new_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    for table in ("loan_request_comments", "loan_request_assignments", "loan_request_audit_logs"):
        op.create_index(f"ix_{table}_loan_request_id", table, ["loan_request_id"])

    op.create_table(
        "admin_sla_configs",
        sa.Column("config_key", sa.String(length=100), primary_key=True),
        sa.Column("config_value", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _user_fk("updated_by"),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("admin_sla_configs")
    for table in ("loan_request_audit_logs", "loan_request_assignments", "loan_request_comments"):
        op.drop_index(f"ix_{table}_loan_request_id", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_loan_requests_sla_due_at", table_name="loan_requests")
    op.drop_index("ix_loan_requests_assignee_status", table_name="loan_requests")
    op.drop_index("ix_loan_requests_status_created", table_name="loan_requests")
    op.drop_table("loan_requests")
