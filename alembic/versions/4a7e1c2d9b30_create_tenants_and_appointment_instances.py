"""create tenants and appointment_instances

Revision ID: 4a7e1c2d9b30
Revises: 
Create Date: 2026-10-17 09:12:44.204518

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4a7e1c2d9b30'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

INSTANCE_STATUSES = (
    "PENDING", "ACTIVE", "SCHEDULED", "SUBMITTED", "REQUESTED",
    "CONFIRMED", "REJECTED", "EXPIRED", "COMPLETED",
)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("tenant_id", sa.String(255), primary_key=True),
        sa.Column("account_id", sa.String(100), nullable=False),
        sa.Column("account_name", sa.String(255), nullable=False),
        sa.Column("company_id", sa.String(100), nullable=False),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("cluster", sa.String(255), nullable=False),
        sa.Column("contact_company_name", sa.String(255), nullable=False),
        sa.Column("contact_full_name", sa.String(255), nullable=False),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("contact_email_address", sa.String(320), nullable=False),
        sa.Column("client_id", sa.String(255), nullable=False),
        sa.Column("encrypted_client_secret", sa.String(), nullable=False),
        sa.Column("valid_from", sa.DateTime(), nullable=False),
        sa.Column("valid_to", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tenants_account_id", "tenants", ["account_id"])

    op.create_table(
        "appointment_instances",
        sa.Column("tenant_id", sa.String(255), sa.ForeignKey("tenants.tenant_id"), nullable=False),
        sa.Column("instance_id", sa.String(64), nullable=False),
        sa.Column("customer_access_token", sa.String(128), nullable=False),
        sa.Column("customer_url", sa.String(2048), nullable=False),
        sa.Column("valid_from", sa.DateTime(), nullable=False),
        sa.Column("valid_until", sa.DateTime(), nullable=False),
        sa.Column("ttl", sa.Integer(), nullable=False),
        sa.Column("status", sa.Enum(*INSTANCE_STATUSES, name="instancestatus"), nullable=False),
        sa.Column("fsm_activity", sa.JSON(), nullable=False),
        sa.Column("customer_booking", sa.JSON(), nullable=True),
        sa.Column("fsm_response", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("tenant_id", "instance_id"),
    )
    op.create_index(
        "ix_appointment_instances_customer_access_token",
        "appointment_instances",
        ["customer_access_token"],
        unique=True,
    )
    op.create_index("ix_appointment_instances_ttl", "appointment_instances", ["ttl"])


def downgrade() -> None:
    op.drop_index("ix_appointment_instances_ttl", table_name="appointment_instances")
    op.drop_index("ix_appointment_instances_customer_access_token", table_name="appointment_instances")
    op.drop_table("appointment_instances")
    sa.Enum(name="instancestatus").drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_tenants_account_id", table_name="tenants")
    op.drop_table("tenants")
