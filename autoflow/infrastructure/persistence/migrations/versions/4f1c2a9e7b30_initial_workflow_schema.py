"""Initial schema: workflows, versions, executions, step log, permissions

Revision ID: 4f1c2a9e7b30
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f1c2a9e7b30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ROLES = "'viewer', 'editor', 'approver', 'admin'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create workflow engine schema."""
    op.create_table(
        "workflow",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("trigger_type", sa.String(), nullable=False),
        sa.Column("trigger_config", sa.JSON(), nullable=False),
        sa.Column("current_version_id", sa.String(), nullable=True),
        sa.Column("published_version_id", sa.String(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_workflow_organization_id"), "workflow", ["organization_id"])
    op.create_index(op.f("ix_workflow_trigger_type"), "workflow", ["trigger_type"])
    op.create_index(
        "ix_workflow_organization_trigger", "workflow", ["organization_id", "trigger_type"]
    )

    op.create_table(
        "workflow_version",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("nodes", sa.JSON(), nullable=False),
        sa.Column("edges", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workflow_id", "version_number", name="uq_workflow_version_number"),
    )
    op.create_index(
        op.f("ix_workflow_version_workflow_id"), "workflow_version", ["workflow_id"]
    )

    op.create_table(
        "workflow_execution",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("version_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'cancelled')",
            name="workflow_execution_status_check",
        ),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["version_id"], ["workflow_version.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_workflow_execution_organization_id"), "workflow_execution", ["organization_id"]
    )
    op.create_index(
        op.f("ix_workflow_execution_workflow_id"), "workflow_execution", ["workflow_id"]
    )
    op.create_index(op.f("ix_workflow_execution_status"), "workflow_execution", ["status"])
    op.create_index(
        "ix_workflow_execution_organization_workflow",
        "workflow_execution",
        ["organization_id", "workflow_id"],
    )

    op.create_table(
        "workflow_execution_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("execution_id", sa.String(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("node_id", sa.String(), nullable=False),
        sa.Column("node_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("branch", sa.String(), nullable=True),
        sa.Column("attempt", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("input_snapshot", sa.JSON(), nullable=False),
        sa.Column("output_snapshot", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('completed', 'failed', 'cancelled')",
            name="workflow_execution_log_status_check",
        ),
        sa.ForeignKeyConstraint(
            ["execution_id"], ["workflow_execution.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("execution_id", "sequence", name="uq_execution_log_sequence"),
    )
    op.create_index(
        op.f("ix_workflow_execution_log_execution_id"),
        "workflow_execution_log",
        ["execution_id"],
    )

    op.create_table(
        "workflow_permission",
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.CheckConstraint(f"role IN ({_ROLES})", name="workflow_permission_role_check"),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("workflow_id", "user_id"),
    )
    op.create_index(
        op.f("ix_workflow_permission_user_id"), "workflow_permission", ["user_id"]
    )

    op.create_table(
        "organization_role",
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.CheckConstraint(f"role IN ({_ROLES})", name="organization_role_role_check"),
        sa.PrimaryKeyConstraint("organization_id", "user_id"),
    )
    op.create_index(op.f("ix_organization_role_user_id"), "organization_role", ["user_id"])


def downgrade() -> None:
    """Drop workflow engine schema."""
    op.drop_table("organization_role")
    op.drop_table("workflow_permission")
    op.drop_table("workflow_execution_log")
    op.drop_table("workflow_execution")
    op.drop_table("workflow_version")
    op.drop_table("workflow")
