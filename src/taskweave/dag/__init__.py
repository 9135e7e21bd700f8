"""Task dependency DAG engine: acyclic dependency tracking and scheduling queries."""

from .models import (
    TaskStatus,
    TaskDag,
    TaskDagNode,
    TaskDagEdge,
    TopologicalResult,
    CycleDetectionResult,
    DagStats,
    DagLimits,
)
from .exceptions import (
    DagErrorCode,
    DagError,
    DuplicateTaskError,
    UnknownTaskError,
    SelfDependencyError,
    DuplicateEdgeError,
    CycleError,
    DagCapacityError,
    DagConsistencyError,
)
from .events import DagEvent, DagEventType
from .readiness import is_task_ready, get_blocking_tasks, get_tasks_to_unblock, get_ready_tasks
from .validator import (
    would_create_cycle,
    find_cycle_path,
    detect_cycle,
    validate_dag,
    ValidationThresholds,
    DagValidationResult,
)
from .scheduler import topological_sort, get_execution_order
from .parallelism import find_parallel_groups
from .critical_path import find_critical_path, compute_depths
from .stats import compute_dag_stats
from .store import TaskDagStore, TaskSpec
from .registry import TaskDagRegistry

__all__ = [
    "TaskStatus",
    "TaskDag",
    "TaskDagNode",
    "TaskDagEdge",
    "TopologicalResult",
    "CycleDetectionResult",
    "DagStats",
    "DagLimits",
    "DagErrorCode",
    "DagError",
    "DuplicateTaskError",
    "UnknownTaskError",
    "SelfDependencyError",
    "DuplicateEdgeError",
    "CycleError",
    "DagCapacityError",
    "DagConsistencyError",
    "DagEvent",
    "DagEventType",
    "is_task_ready",
    "get_blocking_tasks",
    "get_tasks_to_unblock",
    "get_ready_tasks",
    "would_create_cycle",
    "find_cycle_path",
    "detect_cycle",
    "validate_dag",
    "ValidationThresholds",
    "DagValidationResult",
    "topological_sort",
    "get_execution_order",
    "find_parallel_groups",
    "find_critical_path",
    "compute_depths",
    "compute_dag_stats",
    "TaskDagStore",
    "TaskSpec",
    "TaskDagRegistry",
]
