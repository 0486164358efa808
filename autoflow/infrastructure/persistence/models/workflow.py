"""Workflow, version, execution and permission ORM models."""

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from autoflow.domain.enums import WorkflowRole
from autoflow.infrastructure.persistence.database import Base
from autoflow.infrastructure.persistence.models.mixins import (
    CuidMixin,
    OrganizationModel,
)
from autoflow.shared.enums import ExecutionStatus, StepStatus


def _in_check(column: str, values: list[str], name: str) -> CheckConstraint:
    return CheckConstraint(
        "{} IN ({})".format(
            column, ", ".join("'{}'".format(v.replace("'", "''")) for v in values)
        ),
        name=name,
    )


class Workflow(OrganizationModel, Base):
    """Workflow definition. Table: workflow.

    trigger_type/trigger_config mirror the published version's trigger node
    so matching is one indexed query. current_version_id and
    published_version_id are plain columns: versions reference the workflow,
    so a foreign key back would make inserts circular.
    """

    __tablename__ = "workflow"

    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa.true()
    )
    trigger_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    trigger_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    current_version_id: Mapped[str | None] = mapped_column(String, nullable=True)
    published_version_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        Index("ix_workflow_organization_trigger", "organization_id", "trigger_type"),
    )


class WorkflowVersion(CuidMixin, Base):
    """Immutable graph snapshot. Table: workflow_version. Rows are never updated."""

    __tablename__ = "workflow_version"

    workflow_id: Mapped[str] = mapped_column(
        String, ForeignKey("workflow.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    nodes: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    edges: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "version_number", name="uq_workflow_version_number"
        ),
    )


class WorkflowExecution(OrganizationModel, Base):
    """Execution instance. Table: workflow_execution."""

    __tablename__ = "workflow_execution"

    workflow_id: Mapped[str] = mapped_column(
        String, ForeignKey("workflow.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_id: Mapped[str] = mapped_column(
        String, ForeignKey("workflow_version.id"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default=ExecutionStatus.PENDING.value,
        index=True,
    )
    context: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index(
            "ix_workflow_execution_organization_workflow",
            "organization_id",
            "workflow_id",
        ),
        _in_check("status", ExecutionStatus.values(), "workflow_execution_status_check"),
    )


class WorkflowExecutionLog(CuidMixin, Base):
    """Append-only step log. Table: workflow_execution_log."""

    __tablename__ = "workflow_execution_log"

    execution_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("workflow_execution.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    node_id: Mapped[str] = mapped_column(String, nullable=False)
    node_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    branch: Mapped[str | None] = mapped_column(String, nullable=True)
    attempt: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=sa.text("1")
    )
    input_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    output_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("execution_id", "sequence", name="uq_execution_log_sequence"),
        _in_check("status", StepStatus.values(), "workflow_execution_log_status_check"),
    )


class WorkflowPermission(Base):
    """Per-workflow role grant. Table: workflow_permission."""

    __tablename__ = "workflow_permission"

    workflow_id: Mapped[str] = mapped_column(
        String, ForeignKey("workflow.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String, primary_key=True, index=True)
    role: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        _in_check("role", WorkflowRole.values(), "workflow_permission_role_check"),
    )


class OrganizationRole(Base):
    """Organization-wide workflow role. Table: organization_role."""

    __tablename__ = "organization_role"

    organization_id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, primary_key=True, index=True)
    role: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        _in_check("role", WorkflowRole.values(), "organization_role_role_check"),
    )
