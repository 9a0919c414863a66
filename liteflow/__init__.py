"""Liteflow: lightweight workflow tracking on SQLite, PostgreSQL or MySQL."""

from .config import DatabaseConfig, LiteflowConfig, load_config
from .dialects import Dialect, get_dialect, register_dialect
from .events import StepAdded, WorkflowCompleted, WorkflowFailed, WorkflowStarted
from .handle import WorkflowHandle
from .models import (
    Identifier,
    StepDuration,
    StepFrequency,
    StepInput,
    Workflow,
    WorkflowPage,
    WorkflowStats,
    WorkflowStep,
)
from .query import WorkflowFilter
from .store import Liteflow, LiteflowError

__version__ = "1.1.0"
__all__ = [
    "DatabaseConfig",
    "Dialect",
    "Identifier",
    "Liteflow",
    "LiteflowConfig",
    "LiteflowError",
    "StepAdded",
    "StepDuration",
    "StepFrequency",
    "StepInput",
    "Workflow",
    "WorkflowCompleted",
    "WorkflowFailed",
    "WorkflowFilter",
    "WorkflowHandle",
    "WorkflowPage",
    "WorkflowStarted",
    "WorkflowStats",
    "WorkflowStep",
    "get_dialect",
    "load_config",
    "register_dialect",
]
