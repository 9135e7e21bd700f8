"""Mutable, per-channel owner of a task dependency DAG."""

from typing import Dict, Iterable, List, Optional, Union
from datetime import datetime
import threading

from loguru import logger
from pydantic import BaseModel, Field

from ..telemetry import DagTracer, trace_method
from .critical_path import find_critical_path
from .events import DagEvent, DagEventListener, DagEventType
from .exceptions import (
    CycleError,
    DagCapacityError,
    DuplicateEdgeError,
    DuplicateTaskError,
    SelfDependencyError,
    UnknownTaskError,
)
from .models import (
    DagLimits,
    DagStats,
    TaskDag,
    TaskDagEdge,
    TaskDagNode,
    TaskStatus,
    TopologicalResult,
)
from .parallelism import find_parallel_groups
from .readiness import (
    get_blocking_tasks,
    get_ready_tasks,
    get_tasks_to_unblock,
    is_task_ready,
    refresh_node,
)
from .scheduler import get_execution_order, topological_sort
from .stats import compute_dag_stats
from .validator import DagValidationResult, ValidationThresholds, find_cycle_path, validate_dag


class TaskSpec(BaseModel):
    """A task as handed over by the orchestrator for bulk loading."""

    task_id: str = Field(..., min_length=1, description="Unique task identifier")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current task status")
    depends_on: List[str] = Field(default_factory=list, description="Task ids this task waits for")


class TaskDagStore:
    """Sole owner of structural mutation for one channel's DAG.

    Every mutating call either commits completely or raises before touching
    anything. Mutations are serialized with a per-instance lock; queries
    work on a snapshot taken under the same lock so long computations never
    hold it.
    """

    def __init__(
        self,
        channel_id: str,
        limits: Optional[DagLimits] = None,
        emit_events: bool = True,
        tracer: Optional[DagTracer] = None
    ):
        """Initialize an empty DAG.

        Args:
            channel_id: Channel or workspace owning this DAG
            limits: Node/edge ceiling, enforced only by mutations called with ``enforce_limits=True``
            emit_events: Whether to notify subscribed listeners
            tracer: Tracer for spans (process-wide tracer if None)
        """
        self.channel_id = channel_id
        self.limits = limits or DagLimits()
        self.emit_events = emit_events
        self.tracer = tracer
        self._dag = TaskDag(channel_id=channel_id)
        self._lock = threading.RLock()
        self._listeners: List[DagEventListener] = []

    @classmethod
    def from_tasks(
        cls,
        channel_id: str,
        tasks: Iterable[Union[TaskSpec, Dict]],
        **kwargs
    ) -> "TaskDagStore":
        """Build a store from a batch of task specs.

        Nodes are created first, then dependencies in the order given.
        Dependencies on task ids that are not in the batch are skipped.

        Raises:
            DuplicateTaskError: If a task id repeats
            CycleError: If the declared dependencies contain a cycle
        """
        store = cls(channel_id, **kwargs)
        items = [t if isinstance(t, TaskSpec) else TaskSpec.model_validate(t) for t in tasks]

        for item in items:
            store.add_task(item.task_id, item.status)

        for item in items:
            for dep_id in item.depends_on:
                if not store.has_task(dep_id):
                    logger.warning(
                        f"[DAG:{channel_id}] Skipping dependency of '{item.task_id}' on unknown task '{dep_id}'"
                    )
                    continue
                if store.has_dependency(dep_id, item.task_id):
                    continue
                store.add_dependency(dep_id, item.task_id)

        logger.info(
            f"[DAG:{channel_id}] Built DAG with {store.node_count} tasks and {store.edge_count} dependencies"
        )
        return store

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        return self._dag.version

    @property
    def node_count(self) -> int:
        return len(self._dag.nodes)

    @property
    def edge_count(self) -> int:
        return len(self._dag.edges)

    def has_task(self, task_id: str) -> bool:
        return task_id in self._dag.nodes

    def has_dependency(self, from_task_id: str, to_task_id: str) -> bool:
        return (from_task_id, to_task_id) in self._dag.edges

    def get_node(self, task_id: str) -> TaskDagNode:
        """Get a copy of a node.

        Raises:
            UnknownTaskError: If the task is not in the DAG
        """
        with self._lock:
            node = self._dag.nodes.get(task_id)
            if node is None:
                raise UnknownTaskError(task_id)
            return node.copy()

    def snapshot(self) -> TaskDag:
        """Return an independent copy of the graph for read-only work."""
        with self._lock:
            return self._dag.copy()

    def is_stale(self, version: int) -> bool:
        """Check whether the DAG changed since ``version`` was observed."""
        return self._dag.version != version

    def would_exceed_limits(self, extra_nodes: int = 0, extra_edges: int = 0) -> bool:
        """Check whether growing the DAG would pass the configured limits.

        Mutations only refuse work on this basis when called with
        ``enforce_limits=True``.
        """
        with self._lock:
            return self._exceeds_limits(extra_nodes, extra_edges)

    def _exceeds_limits(self, extra_nodes: int = 0, extra_edges: int = 0) -> bool:
        return (
            self.node_count + extra_nodes > self.limits.max_nodes
            or self.edge_count + extra_edges > self.limits.max_edges
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: DagEventListener) -> None:
        """Register a listener for DAG change events."""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: DagEventListener) -> None:
        """Remove a previously registered listener."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, events: List[DagEvent]) -> None:
        if not self.emit_events or not events:
            return
        with self._lock:
            listeners = list(self._listeners)
        for event in events:
            for listener in listeners:
                try:
                    listener(event)
                except Exception as e:
                    logger.exception(f"[DAG:{self.channel_id}] Listener failed on {event.type.value}: {e}")

    def _event(self, event_type: DagEventType, task_ids: List[str], **details) -> DagEvent:
        return DagEvent(
            type=event_type,
            channel_id=self.channel_id,
            task_ids=task_ids,
            version=self._dag.version,
            details=details
        )

    def _bump(self) -> None:
        self._dag.version += 1
        self._dag.updated_at = datetime.now()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @trace_method("dag.add_task")
    def add_task(
        self,
        task_id: str,
        initial_status: Union[TaskStatus, str] = TaskStatus.PENDING,
        enforce_limits: bool = False
    ) -> TaskDagNode:
        """Add a task with no dependencies.

        Args:
            task_id: Unique task id
            initial_status: Starting status (pending by default)
            enforce_limits: Refuse the task if it would pass ``limits.max_nodes``

        Returns:
            Copy of the new node

        Raises:
            DuplicateTaskError: If the task already exists
            DagCapacityError: If limits are enforced and the node ceiling is reached
        """
        status = TaskStatus(initial_status)

        with self._lock:
            dag = self._dag
            if task_id in dag.nodes:
                logger.warning(f"[DAG:{self.channel_id}] Rejected duplicate task '{task_id}'")
                raise DuplicateTaskError(task_id)
            if enforce_limits and self._exceeds_limits(extra_nodes=1):
                logger.warning(f"[DAG:{self.channel_id}] Rejected '{task_id}', at task limit ({self.limits.max_nodes})")
                raise DagCapacityError(
                    f"Channel '{self.channel_id}' reached the limit of {self.limits.max_nodes} tasks", [task_id]
                )

            node = TaskDagNode(task_id=task_id, status=status)
            node.is_ready = status == TaskStatus.PENDING
            dag.nodes[task_id] = node
            dag.adjacency_list[task_id] = set()
            dag.reverse_adjacency_list[task_id] = set()
            self._bump()

            logger.debug(f"[DAG:{self.channel_id}] Added task '{task_id}' ({status.value}), v{dag.version}")
            events = [self._event(DagEventType.NODE_ADDED, [task_id], status=status.value)]
            created = node.copy()

        self._emit(events)
        return created

    @trace_method("dag.add_dependency")
    def add_dependency(
        self,
        from_task_id: str,
        to_task_id: str,
        label: Optional[str] = None,
        enforce_limits: bool = False
    ) -> TaskDagEdge:
        """Declare that ``to_task_id`` depends on ``from_task_id``.

        Args:
            from_task_id: Task that must complete first
            to_task_id: Task that waits for it
            label: Optional description of the dependency
            enforce_limits: Refuse the edge if it would pass ``limits.max_edges``

        Returns:
            The committed edge

        Raises:
            UnknownTaskError: If either task is missing
            SelfDependencyError: If both ids are the same
            DuplicateEdgeError: If the dependency already exists
            CycleError: If the dependency would close a cycle
            DagCapacityError: If limits are enforced and the edge ceiling is reached
        """
        with self._lock:
            dag = self._dag
            for task_id in (from_task_id, to_task_id):
                if task_id not in dag.nodes:
                    logger.warning(f"[DAG:{self.channel_id}] Dependency references unknown task '{task_id}'")
                    raise UnknownTaskError(task_id)
            if from_task_id == to_task_id:
                raise SelfDependencyError(from_task_id)
            if (from_task_id, to_task_id) in dag.edges:
                raise DuplicateEdgeError(from_task_id, to_task_id)
            if enforce_limits and self._exceeds_limits(extra_edges=1):
                logger.warning(f"[DAG:{self.channel_id}] At dependency limit ({self.limits.max_edges})")
                raise DagCapacityError(
                    f"Channel '{self.channel_id}' reached the limit of {self.limits.max_edges} dependencies",
                    [from_task_id, to_task_id],
                )

            cycle_path = find_cycle_path(dag, from_task_id, to_task_id)
            if cycle_path is not None:
                logger.warning(
                    f"[DAG:{self.channel_id}] Rejected {from_task_id}->{to_task_id}: "
                    f"cycle {' -> '.join(cycle_path)}"
                )
                rejected = self._event(
                    DagEventType.CYCLE_REJECTED, [from_task_id, to_task_id], cycle_path=cycle_path
                )
                error = CycleError(from_task_id, to_task_id, cycle_path)
            else:
                rejected = None
                edge = TaskDagEdge(from_task_id=from_task_id, to_task_id=to_task_id, label=label)
                dag.edges[edge.key] = edge
                dag.adjacency_list[from_task_id].add(to_task_id)
                dag.reverse_adjacency_list[to_task_id].add(from_task_id)

                dependency, dependent = dag.nodes[from_task_id], dag.nodes[to_task_id]
                dependency.out_degree += 1
                dependency.touch()
                dependent.depends_on.append(from_task_id)
                dependent.in_degree += 1
                dependent.touch()
                refresh_node(dag, to_task_id)
                self._bump()

                logger.debug(f"[DAG:{self.channel_id}] Added dependency {edge.id}, v{dag.version}")
                events = [self._event(DagEventType.DEPENDENCY_ADDED, [from_task_id, to_task_id], label=label)]

        if rejected is not None:
            self._emit([rejected])
            raise error

        self._emit(events)
        return edge

    @trace_method("dag.set_status")
    def set_status(self, task_id: str, new_status: Union[TaskStatus, str]) -> TaskDagNode:
        """Record a status transition.

        Only the task itself and, when its completion state flips, its direct
        dependents have their readiness recomputed.

        Args:
            task_id: Task whose status changed
            new_status: New status

        Returns:
            Copy of the updated node

        Raises:
            UnknownTaskError: If the task is missing
            ValueError: If ``new_status`` is not a valid status
        """
        status = TaskStatus(new_status)

        with self._lock:
            dag = self._dag
            node = dag.nodes.get(task_id)
            if node is None:
                raise UnknownTaskError(task_id)

            old_status = node.status
            node.status = status
            node.touch()
            refresh_node(dag, task_id)

            resolved = []
            if (old_status == TaskStatus.COMPLETED) != (status == TaskStatus.COMPLETED):
                for dependent_id in sorted(dag.adjacency_list[task_id]):
                    changed = refresh_node(dag, dependent_id)
                    dag.nodes[dependent_id].touch()
                    if changed and dag.nodes[dependent_id].is_ready:
                        resolved.append(dependent_id)
            self._bump()

            logger.debug(
                f"[DAG:{self.channel_id}] Task '{task_id}' {old_status.value} -> {status.value}, v{dag.version}"
            )
            events = [self._event(
                DagEventType.STATUS_CHANGED, [task_id], old_status=old_status.value, new_status=status.value
            )]
            for dependent_id in resolved:
                logger.info(f"[DAG:{self.channel_id}] Task '{dependent_id}' unblocked by '{task_id}'")
                events.append(self._event(
                    DagEventType.DEPENDENCIES_RESOLVED, [dependent_id], resolved_by=task_id
                ))
            updated = node.copy()

        self._emit(events)
        return updated

    # ------------------------------------------------------------------
    # Queries (run on snapshots)
    # ------------------------------------------------------------------

    def is_task_ready(self, task_id: str) -> bool:
        with self._lock:
            return is_task_ready(self._dag, task_id)

    def get_blocking_tasks(self, task_id: str) -> List[str]:
        with self._lock:
            return get_blocking_tasks(self._dag, task_id)

    def get_tasks_to_unblock(self, task_id: str) -> List[str]:
        with self._lock:
            return get_tasks_to_unblock(self._dag, task_id)

    def get_ready_tasks(self, task_ids: Optional[Iterable[str]] = None, limit: Optional[int] = None) -> List[str]:
        return get_ready_tasks(self.snapshot(), task_ids=task_ids, limit=limit)

    @trace_method("dag.sort")
    def sort(self) -> TopologicalResult:
        return topological_sort(self.snapshot())

    def get_execution_order(self, **options) -> List[str]:
        return get_execution_order(self.snapshot(), **options)

    @trace_method("dag.parallel_groups")
    def find_parallel_groups(self) -> List[List[str]]:
        return find_parallel_groups(self.snapshot())

    @trace_method("dag.critical_path")
    def find_critical_path(self) -> List[str]:
        return find_critical_path(self.snapshot())

    @trace_method("dag.stats")
    def compute_stats(self) -> DagStats:
        return compute_dag_stats(self.snapshot())

    @trace_method("dag.validate")
    def validate(self, thresholds: Optional[ValidationThresholds] = None) -> DagValidationResult:
        return validate_dag(self.snapshot(), thresholds)

    def visualize(self) -> str:
        """Generate a text visualization of the DAG.

        Returns:
            String representation of the DAG
        """
        dag = self.snapshot()
        lines = [f"DAG: {self.channel_id} (v{dag.version})", "=" * 50]

        lines.append("\nTasks:")
        for task_id, node in dag.nodes.items():
            status_symbol = {
                TaskStatus.PENDING: "⏸",
                TaskStatus.IN_PROGRESS: "▶",
                TaskStatus.COMPLETED: "✓",
                TaskStatus.FAILED: "✗",
            }.get(node.status, "?")
            ready = " [ready]" if is_task_ready(dag, task_id) else ""
            lines.append(f"  {status_symbol} {task_id}{ready}")

        lines.append("\nDependencies:")
        for edge in dag.edges.values():
            label = f" [{edge.label}]" if edge.label else ""
            lines.append(f"  {edge.from_task_id} -> {edge.to_task_id}{label}")

        result = topological_sort(dag)
        lines.append("\nExecution Order:")
        if result.success:
            for i, level in enumerate(result.levels):
                lines.append(f"  Level {i + 1}: {', '.join(level)}")
        else:
            lines.append(f"  unavailable: {result.error}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"TaskDagStore(channel={self.channel_id!r}, tasks={self.node_count}, version={self.version})"
