"""Create users, audit_logs and presence tables."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

USER_ROLE = sa.Enum(
    "super_admin", "admin", "supervisor", "contact_manager", "employee", name="userrole"
)
AUDIT_ENTITY = sa.Enum(
    "user", "command", "recording", "snapshot", "contact_manager", name="auditentity"
)
AUDIT_ACTION = sa.Enum("create", "update", "delete", "role_change", name="auditaction")
PRESENCE_STATUS = sa.Enum("online", "offline", name="presencestatus")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("directory_id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=256), nullable=False),
        sa.Column("role", USER_ROLE, nullable=True),
        sa.Column("role_changed_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("directory_id", name="uq_users_directory_id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_deleted_at", "users", ["deleted_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entity", AUDIT_ENTITY, nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", AUDIT_ACTION, nullable=False),
        sa.Column("changed_by_id", sa.String(length=64), nullable=False),
        sa.Column("data_before", sa.JSON(), nullable=True),
        sa.Column("data_after", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_changed_by_id", "audit_logs", ["changed_by_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index(
        "ix_audit_logs_entity_created", "audit_logs", ["entity", "entity_id", "created_at"]
    )

    op.create_table(
        "presence",
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("status", PRESENCE_STATUS, nullable=False),
        sa.Column("last_activity_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("email", name="pk_presence"),
    )


def downgrade() -> None:
    op.drop_table("presence")
    op.drop_index("ix_audit_logs_entity_created", table_name="audit_logs")
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_changed_by_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_users_deleted_at", table_name="users")
    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_type in (PRESENCE_STATUS, AUDIT_ACTION, AUDIT_ENTITY, USER_ROLE):
            enum_type.drop(bind, checkfirst=True)
