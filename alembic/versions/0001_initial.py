"""initial

Revision ID: 0001
Revises: 
Create Date: 2025-09-01
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum("ADMIN", "STAFF", name="role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_phone", "users", ["phone"], unique=True)

    op.create_table(
        "call_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("phone_call_id", sa.String(length=64)),
        sa.Column("phone_number", sa.String(length=64), nullable=False),
        sa.Column("call_type", sa.String(length=16), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("contact_name", sa.String(length=255)),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("phone_call_id", "staff_id", name="uq_call_logs_call_staff"),
    )
    op.create_index("ix_call_logs_phone_number", "call_logs", ["phone_number"])
    op.create_index("ix_call_logs_timestamp", "call_logs", ["timestamp"])
    op.create_index("ix_call_logs_staff_id", "call_logs", ["staff_id"])

    op.create_table(
        "excluded_contacts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("phone_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("contact_name", sa.String(length=255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "system_config",
        sa.Column("config_key", sa.String(length=64), primary_key=True),
        sa.Column("config_value", sa.String(length=255), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("system_config")
    op.drop_table("excluded_contacts")
    op.drop_table("call_logs")
    op.drop_index("ix_users_phone", table_name="users")
    op.drop_table("users")
