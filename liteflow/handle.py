from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Optional

if TYPE_CHECKING:
    from .models import Workflow, WorkflowStep
    from .store import Liteflow, StepLike


class WorkflowHandle:
    """Instance-style access to one workflow, delegating to its tracker."""

    def __init__(self, tracker: Liteflow, workflow_id: str) -> None:
        self._tracker = tracker
        self.id = workflow_id

    def __str__(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return f"WorkflowHandle(id={self.id!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, WorkflowHandle):
            return self.id == other.id
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.id)

    async def add_step(self, step: str, data: Any = None) -> None:
        await self._tracker.add_step(self.id, step, data)

    async def add_steps(self, steps: Iterable[StepLike]) -> bool:
        return await self._tracker.add_steps(self.id, steps)

    async def complete(self) -> None:
        await self._tracker.complete_workflow(self.id)

    async def fail(self, reason: Optional[str] = None) -> None:
        await self._tracker.fail_workflow(self.id, reason)

    async def get(self) -> Optional[Workflow]:
        return await self._tracker.get_workflow(self.id)

    async def get_steps(self) -> list[WorkflowStep]:
        return await self._tracker.get_steps(self.id)

    async def delete(self) -> bool:
        return await self._tracker.delete_workflow(self.id)
