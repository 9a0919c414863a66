"""Data models for tracked workflow state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

WorkflowStatus = Literal["pending", "completed", "failed"]


class Identifier(BaseModel):
    """Alternate lookup key attached to a workflow."""

    model_config = ConfigDict(coerce_numbers_to_str=True, frozen=True)

    key: str
    value: str


class Workflow(BaseModel):
    """Persisted workflow row."""

    id: str
    name: str
    identifiers: list[Identifier] = Field(default_factory=list)
    status: WorkflowStatus = "pending"
    started_at: datetime
    ended_at: Optional[datetime] = None


class WorkflowStep(BaseModel):
    """Persisted step row."""

    id: str
    workflow_id: str
    step: str
    data: Any = None
    created_at: datetime


class StepRecord(BaseModel):
    """Fully formed step waiting in the write buffer."""

    id: str
    workflow_id: str
    step: str
    data: Any = None
    created_at: datetime


class StepInput(BaseModel):
    """Step accepted by ``Liteflow.add_steps``."""

    step: str = Field(min_length=1)
    data: Any = None


class WorkflowStats(BaseModel):
    total: int = 0
    completed: int = 0
    pending: int = 0
    avg_steps: float = 0.0

    @property
    def failed(self) -> int:
        return self.total - self.completed - self.pending


class StepFrequency(BaseModel):
    step: str
    count: int


class StepDuration(BaseModel):
    """Step count and span between the first and last step of a workflow."""

    workflow_id: str
    step_count: int
    total_duration: float = Field(description="Milliseconds")


class WorkflowPage(BaseModel):
    """One page of ``get_workflows`` results."""

    workflows: list[Workflow] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10
    total_pages: int = 0
