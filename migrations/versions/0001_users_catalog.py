"""Create users, properties, banners and property assignment edges"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_users_catalog"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
    ]


def _user_fk(name: str, *, nullable: bool = True, ondelete: str = "SET NULL") -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("phone", sa.String(length=32), nullable=True, unique=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _user_fk("assigned_employee_id"),
        sa.Column("department", sa.String(length=100), nullable=True),
        sa.Column(
            "preferred_categories",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_login", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('customer', 'agent', 'employee', 'admin', 'super_admin')",
            name="ck_users_role",
        ),
    )
    op.create_index("ix_users_role_department", "users", ["role", "department"])
    op.create_index("ix_users_assigned_employee_id", "users", ["assigned_employee_id"])

    op.create_table(
        "properties",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("price", sa.Numeric(14, 2), nullable=True),
        sa.Column("type", sa.String(length=50), nullable=False, server_default="Featured"),
        sa.Column("description", sa.Text(), nullable=True),
        *[
            sa.Column(
                name,
                postgresql.JSONB(astext_type=sa.Text()),
                nullable=False,
                server_default=sa.text("'[]'::jsonb"),
            )
            for name in ("images", "gallery", "features", "amenities", "categories")
        ],
        sa.Column("brochure_url", sa.String(length=1024), nullable=True),
        sa.Column("map", sa.Text(), nullable=True),
        sa.Column("website", sa.String(length=1024), nullable=True),
        _user_fk("assigned_employee_id"),
        _user_fk("assigned_agent_id"),
        _user_fk("created_by_admin_id"),
        _user_fk("created_by_employee_id"),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _user_fk("deleted_by_admin_id"),
        *_timestamps(),
    )
    op.create_index("ix_properties_deleted_created_at", "properties", ["deleted", "created_at"])
    op.create_index("ix_properties_assigned_employee_id", "properties", ["assigned_employee_id"])

    op.create_table(
        "banners",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("image_url", sa.String(length=1024), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("subtitle", sa.String(length=255), nullable=True),
        sa.Column("target_role", sa.String(length=20), nullable=False, server_default="All"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "target_role IN ('All', 'Agent', 'Customer', 'Employee')",
            name="ck_banners_target_role",
        ),
    )

    op.create_table(
        "property_employee_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "property_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("employee_id", nullable=False, ondelete="CASCADE"),
        _user_fk("assigned_by_admin_id"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("property_id", "employee_id", name="uq_property_employee_assignment"),
    )
    op.create_index(
        "ix_property_employee_assignments_property_id", "property_employee_assignments", ["property_id"]
    )
    op.create_index(
        "ix_property_employee_assignments_employee_id", "property_employee_assignments", ["employee_id"]
    )

    op.create_table(
        "property_agent_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "property_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("agent_id", nullable=False, ondelete="CASCADE"),
        _user_fk("assigned_by_employee_id"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("property_id", "agent_id", name="uq_property_agent_assignment"),
    )
    op.create_index(
        "ix_property_agent_assignments_property_id", "property_agent_assignments", ["property_id"]
    )
    op.create_index("ix_property_agent_assignments_agent_id", "property_agent_assignments", ["agent_id"])


def downgrade() -> None:
    op.drop_index("ix_property_agent_assignments_agent_id", table_name="property_agent_assignments")
    op.drop_index("ix_property_agent_assignments_property_id", table_name="property_agent_assignments")
    op.drop_table("property_agent_assignments")
    op.drop_index("ix_property_employee_assignments_employee_id", table_name="property_employee_assignments")
    op.drop_index("ix_property_employee_assignments_property_id", table_name="property_employee_assignments")
    op.drop_table("property_employee_assignments")
    op.drop_table("banners")
    op.drop_index("ix_properties_assigned_employee_id", table_name="properties")
    op.drop_index("ix_properties_deleted_created_at", table_name="properties")
    op.drop_table("properties")
    op.drop_index("ix_users_assigned_employee_id", table_name="users")
    op.drop_index("ix_users_role_department", table_name="users")
    op.drop_table("users")
