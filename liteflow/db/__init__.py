from .database import Database
from .tables import WorkflowRow, WorkflowStepRow, step_table, workflow_table

__all__ = [
    "Database",
    "WorkflowRow",
    "WorkflowStepRow",
    "step_table",
    "workflow_table",
]
