"""Error taxonomy for the task DAG engine.

Structural errors are raised synchronously by the mutating call that caused
them. ``DagConsistencyError`` is reserved for a read-side algorithm observing
a graph that should have been impossible to build.
"""

from typing import Any, Dict, List, Optional
from enum import Enum


class DagErrorCode(str, Enum):
    """Machine-readable error codes."""
    DUPLICATE_TASK = "DUPLICATE_TASK"
    MISSING_NODE = "MISSING_NODE"
    SELF_DEPENDENCY = "SELF_DEPENDENCY"
    DUPLICATE_EDGE = "DUPLICATE_EDGE"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    INCONSISTENT_ADJACENCY = "INCONSISTENT_ADJACENCY"
    INCONSISTENT_DEGREE = "INCONSISTENT_DEGREE"
    STALE_READINESS = "STALE_READINESS"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"


class DagError(ValueError):
    """Base class for DAG errors.

    Attributes:
        message: Human-readable message
        code: Error code
        task_ids: Task ids involved in the error
    """

    code = DagErrorCode.MISSING_NODE

    def __init__(self, message: str, task_ids: Optional[List[str]] = None):
        self.message = message
        self.task_ids = list(task_ids or [])
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error": self.code.value,
            "message": self.message,
            "task_ids": list(self.task_ids),
        }


class DuplicateTaskError(DagError):
    """Task id already present in the DAG."""

    code = DagErrorCode.DUPLICATE_TASK

    def __init__(self, task_id: str):
        super().__init__(f"Task '{task_id}' already exists", [task_id])


class UnknownTaskError(DagError):
    """Task id not present in the DAG."""

    code = DagErrorCode.MISSING_NODE

    def __init__(self, task_id: str):
        super().__init__(f"Task '{task_id}' not found", [task_id])


class SelfDependencyError(DagError):
    """A task was declared as depending on itself."""

    code = DagErrorCode.SELF_DEPENDENCY

    def __init__(self, task_id: str):
        super().__init__(f"Task '{task_id}' cannot depend on itself", [task_id])


class DuplicateEdgeError(DagError):
    """The dependency already exists."""

    code = DagErrorCode.DUPLICATE_EDGE

    def __init__(self, from_task_id: str, to_task_id: str):
        super().__init__(
            f"Dependency {from_task_id}->{to_task_id} already exists",
            [from_task_id, to_task_id],
        )


class CycleError(DagError):
    """Committing the dependency would close a cycle."""

    code = DagErrorCode.CYCLE_DETECTED

    def __init__(self, from_task_id: str, to_task_id: str, cycle_path: Optional[List[str]] = None):
        self.cycle_path = list(cycle_path or [])
        detail = " -> ".join(self.cycle_path) if self.cycle_path else f"{to_task_id} -> ... -> {from_task_id}"
        super().__init__(
            f"Adding dependency {from_task_id}->{to_task_id} creates a cycle: {detail}",
            [from_task_id, to_task_id],
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["cycle_path"] = list(self.cycle_path)
        return data


class DagCapacityError(DagError):
    """Configured node or edge ceiling would be exceeded."""

    code = DagErrorCode.CAPACITY_EXCEEDED


class DagConsistencyError(DagError):
    """A read-side algorithm found a cycle or torn bookkeeping.

    This is never a caller mistake; it means the write serialization was
    bypassed and must be escalated, not retried.
    """

    code = DagErrorCode.CYCLE_DETECTED
