"""Data model for the task dependency DAG."""

from typing import Dict, List, Optional, Set, Tuple, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TaskStatus(str, Enum):
    """Status of a task node in the DAG."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def edge_id_for(from_task_id: str, to_task_id: str) -> str:
    """Build the display id for a dependency pair.

    Task ids may contain ``->`` themselves, so this is not unique per pair;
    ``TaskDag.edges`` is keyed by :attr:`TaskDagEdge.key` instead.
    """
    return f"{from_task_id}->{to_task_id}"


@dataclass
class TaskDagEdge:
    """Dependency edge: ``to_task_id`` depends on ``from_task_id``."""
    from_task_id: str
    to_task_id: str
    label: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def id(self) -> str:
        return edge_id_for(self.from_task_id, self.to_task_id)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.from_task_id, self.to_task_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "from_task_id": self.from_task_id,
            "to_task_id": self.to_task_id,
            "label": self.label,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TaskDagNode:
    """A task in the DAG with its cached dependency bookkeeping."""
    task_id: str
    status: TaskStatus = TaskStatus.PENDING
    depends_on: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    in_degree: int = 0
    out_degree: int = 0
    is_ready: bool = False
    added_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def copy(self) -> "TaskDagNode":
        return TaskDagNode(
            task_id=self.task_id,
            status=self.status,
            depends_on=list(self.depends_on),
            blocked_by=list(self.blocked_by),
            in_degree=self.in_degree,
            out_degree=self.out_degree,
            is_ready=self.is_ready,
            added_at=self.added_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "depends_on": list(self.depends_on),
            "blocked_by": list(self.blocked_by),
            "in_degree": self.in_degree,
            "out_degree": self.out_degree,
            "is_ready": self.is_ready,
            "added_at": self.added_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class TaskDag:
    """Dependency graph for one channel.

    ``edges`` is keyed by ``(from_task_id, to_task_id)``.
    ``adjacency_list`` maps a task to the tasks that depend on it and
    ``reverse_adjacency_list`` maps a task to its dependencies. Both are
    keyed by every node, including nodes without edges.
    """
    channel_id: str
    nodes: Dict[str, TaskDagNode] = field(default_factory=dict)
    edges: Dict[Tuple[str, str], TaskDagEdge] = field(default_factory=dict)
    adjacency_list: Dict[str, Set[str]] = field(default_factory=dict)
    reverse_adjacency_list: Dict[str, Set[str]] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    version: int = 0

    def dependents_of(self, task_id: str) -> Set[str]:
        return self.adjacency_list.get(task_id, set())

    def dependencies_of(self, task_id: str) -> Set[str]:
        return self.reverse_adjacency_list.get(task_id, set())

    def copy(self) -> "TaskDag":
        """Return an independent snapshot of the graph."""
        return TaskDag(
            channel_id=self.channel_id,
            nodes={task_id: node.copy() for task_id, node in self.nodes.items()},
            edges=dict(self.edges),
            adjacency_list={k: set(v) for k, v in self.adjacency_list.items()},
            reverse_adjacency_list={k: set(v) for k, v in self.reverse_adjacency_list.items()},
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    def __repr__(self) -> str:
        return (
            f"TaskDag(channel={self.channel_id!r}, nodes={len(self.nodes)}, "
            f"edges={len(self.edges)}, version={self.version})"
        )


@dataclass
class TopologicalResult:
    """Result of a topological sort with the ready/blocked/completed partition."""
    success: bool
    order: List[str] = field(default_factory=list)
    ready_tasks: List[str] = field(default_factory=list)
    blocked_tasks: List[str] = field(default_factory=list)
    completed_tasks: List[str] = field(default_factory=list)
    levels: List[List[str]] = field(default_factory=list)
    cycle_task_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "order": list(self.order),
            "ready_tasks": list(self.ready_tasks),
            "blocked_tasks": list(self.blocked_tasks),
            "completed_tasks": list(self.completed_tasks),
            "levels": [list(level) for level in self.levels],
            "cycle_task_ids": list(self.cycle_task_ids),
            "error": self.error,
            "version": self.version,
        }


@dataclass
class CycleDetectionResult:
    """Result of a full-graph cycle check."""
    has_cycle: bool
    cycle_path: Optional[List[str]] = None

    @property
    def description(self) -> str:
        if not self.has_cycle:
            return "No cycle"
        if self.cycle_path:
            return "Cycle: " + " -> ".join(self.cycle_path)
        return "Cycle detected but path could not be reconstructed"


@dataclass
class DagStats:
    """Aggregate health metrics for a DAG."""
    node_count: int = 0
    edge_count: int = 0
    root_count: int = 0
    leaf_count: int = 0
    max_depth: int = 0
    average_in_degree: float = 0.0
    average_out_degree: float = 0.0
    ready_task_count: int = 0
    blocked_task_count: int = 0
    completed_task_count: int = 0
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "root_count": self.root_count,
            "leaf_count": self.leaf_count,
            "max_depth": self.max_depth,
            "average_in_degree": round(self.average_in_degree, 3),
            "average_out_degree": round(self.average_out_degree, 3),
            "ready_task_count": self.ready_task_count,
            "blocked_task_count": self.blocked_task_count,
            "completed_task_count": self.completed_task_count,
            "version": self.version,
        }


@dataclass(frozen=True)
class DagLimits:
    """Resource-safety ceiling for an append-only DAG.

    The store only reports against these limits; refusing work is left to
    the caller.
    """
    max_nodes: int = 10000
    max_edges: int = 50000
