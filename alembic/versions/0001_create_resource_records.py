"""create resource_records

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


RESOURCE_KINDS = (
    "NETWORK", "SECRET", "DATABASE", "FILE_SYSTEM", "ACCESS_POINT",
    "SECURITY_GROUP", "INGRESS_RULE", "CLUSTER", "TASK_DEFINITION",
    "FILE_SYSTEM_GRANT", "SERVICE", "LOAD_BALANCER", "CERTIFICATE",
    "USER_POOL", "USER_POOL_DOMAIN", "USER_POOL_CLIENT", "TARGET_GROUP",
    "LISTENER", "ROLE", "IDENTITY_USER",
)

RESOURCE_STATES = (
    "PENDING", "CREATING", "READY", "UPDATING", "FAILED", "DELETING", "DELETED",
)


def upgrade() -> None:
    op.create_table(
        "resource_records",
        sa.Column("stack_name", sa.String(128), primary_key=True),
        sa.Column("logical_id", sa.String(128), primary_key=True),
        sa.Column("kind", sa.Enum(*RESOURCE_KINDS, name="resource_kind"), nullable=False),
        sa.Column("state", sa.Enum(*RESOURCE_STATES, name="resource_state"), nullable=False),
        sa.Column("physical_id", sa.String(255), nullable=True),
        sa.Column("outputs", sa.JSON(), nullable=False),
        sa.Column("properties_hash", sa.String(64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_resource_records_state", "resource_records", ["state"])


def downgrade() -> None:
    op.drop_index("ix_resource_records_state", table_name="resource_records")
    op.drop_table("resource_records")
    sa.Enum(name="resource_state").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="resource_kind").drop(op.get_bind(), checkfirst=True)
