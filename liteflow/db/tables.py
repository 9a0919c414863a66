from __future__ import annotations

from typing import Optional

from sqlalchemy import Column, ForeignKey, String, Text
from sqlmodel import Field, SQLModel


class WorkflowRow(SQLModel, table=True):
    """A tracked workflow."""

    __tablename__ = "workflow"

    id: str = Field(sa_column=Column(String(36), primary_key=True))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    identifiers: Optional[str] = Field(default=None, sa_column=Column(Text))
    status: str = Field(
        default="pending",
        sa_column=Column(String(16), nullable=False, server_default="pending"),
    )
    started_at: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    ended_at: Optional[str] = Field(default=None, sa_column=Column(String(32)))


class WorkflowStepRow(SQLModel, table=True):
    """A single step recorded against a workflow."""

    __tablename__ = "workflow_step"

    id: str = Field(sa_column=Column(String(36), primary_key=True))
    workflow_id: str = Field(
        sa_column=Column(
            String(36), ForeignKey("workflow.id"), nullable=False, index=True
        )
    )
    step: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    data: Optional[str] = Field(default=None, sa_column=Column(Text))
    created_at: str = Field(sa_column=Column(String(32), nullable=False))


workflow_table = WorkflowRow.__table__
step_table = WorkflowStepRow.__table__
