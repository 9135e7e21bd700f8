"""Orchestrator-facing registry of per-channel task DAGs.

The registry is an explicitly constructed object; nothing here is a module
global. It adapts the orchestration layer's calls (task created, dependency
declared, status changed) onto the owning :class:`TaskDagStore` and answers
planning queries with topological results cached per DAG version.
"""

from typing import Dict, List, Optional, Union
from dataclasses import dataclass
import threading

from loguru import logger

from ..settings.settings import Settings
from ..telemetry import DagTracer, trace_method
from .critical_path import find_critical_path
from .exceptions import DagConsistencyError, UnknownTaskError
from .models import DagLimits, DagStats, TaskDag, TaskDagEdge, TaskDagNode, TaskStatus, TopologicalResult
from .parallelism import find_parallel_groups
from .scheduler import get_execution_order, topological_sort
from .stats import compute_dag_stats
from .store import TaskDagStore
from .validator import DagValidationResult, ValidationThresholds, validate_dag


@dataclass
class _CachedSort:
    version: int
    snapshot: TaskDag
    result: TopologicalResult


class TaskDagRegistry:
    """One :class:`TaskDagStore` per channel, plus cached planning queries."""

    def __init__(self, settings: Optional[Settings] = None, tracer: Optional[DagTracer] = None):
        """Initialize the registry.

        Args:
            settings: Engine settings (loaded from the environment if None)
            tracer: Tracer handed to every store and used for registry spans
        """
        self.settings = settings or Settings()
        self.tracer = tracer
        self._stores: Dict[str, TaskDagStore] = {}
        self._sort_cache: Dict[str, _CachedSort] = {}
        self._lock = threading.RLock()

    def _limits(self) -> DagLimits:
        return DagLimits(max_nodes=self.settings.dag_max_nodes, max_edges=self.settings.dag_max_edges)

    def _thresholds(self) -> ValidationThresholds:
        return ValidationThresholds(
            max_in_degree=self.settings.dag_max_in_degree_warning,
            max_out_degree=self.settings.dag_max_out_degree_warning,
            max_chain_length=self.settings.dag_max_chain_length_warning,
        )

    # ------------------------------------------------------------------
    # Store lifecycle
    # ------------------------------------------------------------------

    def get_or_create(self, channel_id: str) -> TaskDagStore:
        """Get the channel's store, creating an empty one on first use."""
        with self._lock:
            store = self._stores.get(channel_id)
            if store is None:
                store = TaskDagStore(
                    channel_id,
                    limits=self._limits(),
                    emit_events=self.settings.dag_emit_events,
                    tracer=self.tracer
                )
                self._stores[channel_id] = store
                logger.info(f"[REGISTRY] Created DAG for channel '{channel_id}'")
            return store

    def get(self, channel_id: str) -> Optional[TaskDagStore]:
        with self._lock:
            return self._stores.get(channel_id)

    def require(self, channel_id: str) -> TaskDagStore:
        """Get the channel's store.

        Raises:
            KeyError: If the channel has no DAG
        """
        store = self.get(channel_id)
        if store is None:
            raise KeyError(f"No DAG for channel '{channel_id}'")
        return store

    def drop(self, channel_id: str) -> bool:
        """Forget a channel's DAG (the channel owner tore it down).

        Returns:
            True if a DAG was removed
        """
        with self._lock:
            self._sort_cache.pop(channel_id, None)
            removed = self._stores.pop(channel_id, None) is not None
        if removed:
            logger.info(f"[REGISTRY] Dropped DAG for channel '{channel_id}'")
        return removed

    def channels(self) -> List[str]:
        with self._lock:
            return list(self._stores)

    # ------------------------------------------------------------------
    # Inbound: orchestrator -> DAG
    # ------------------------------------------------------------------

    @trace_method("registry.create")
    def create(self, channel_id: str, task_id: str,
               initial_status: Union[TaskStatus, str] = TaskStatus.PENDING) -> TaskDagNode:
        """Register a newly created task.

        Raises:
            DuplicateTaskError: If the task already exists
            DagCapacityError: If limits are enforced and the node ceiling is reached
        """
        store = self.get_or_create(channel_id)
        return store.add_task(task_id, initial_status, enforce_limits=self.settings.dag_enforce_limits)

    @trace_method("registry.declare_dependency")
    def declare_dependency(self, channel_id: str, from_task_id: str, to_task_id: str,
                           label: Optional[str] = None) -> TaskDagEdge:
        """Declare that ``to_task_id`` depends on ``from_task_id``.

        Structural errors propagate unchanged so the caller can reject the
        originating request.

        Raises:
            UnknownTaskError, SelfDependencyError, DuplicateEdgeError, CycleError,
            DagCapacityError
        """
        store = self._store_for_task(channel_id, from_task_id)
        return store.add_dependency(
            from_task_id, to_task_id, label=label, enforce_limits=self.settings.dag_enforce_limits
        )

    @trace_method("registry.on_status_change")
    def on_status_change(self, channel_id: str, task_id: str, new_status: Union[TaskStatus, str]) -> TaskDagNode:
        """Push a task status transition into the channel's DAG.

        Raises:
            UnknownTaskError: If the channel or task is unknown
        """
        return self._store_for_task(channel_id, task_id).set_status(task_id, new_status)

    def _store_for_task(self, channel_id: str, task_id: str) -> TaskDagStore:
        store = self.get(channel_id)
        if store is None:
            raise UnknownTaskError(task_id)
        return store

    # ------------------------------------------------------------------
    # Outbound: DAG -> orchestration / observability
    # ------------------------------------------------------------------

    def _sorted(self, channel_id: str) -> _CachedSort:
        """Return a snapshot and its sort, reusing the cache while the version holds.

        Raises:
            DagConsistencyError: If the sort reports a cycle
        """
        store = self.require(channel_id)
        with self._lock:
            cached = self._sort_cache.get(channel_id)
        if cached is not None and not store.is_stale(cached.version):
            return cached

        snapshot = store.snapshot()
        result = topological_sort(snapshot)
        if not result.success:
            logger.critical(
                f"[REGISTRY] Channel '{channel_id}' DAG v{snapshot.version} is inconsistent: {result.error}"
            )
            raise DagConsistencyError(
                f"Channel '{channel_id}' DAG failed to sort: {result.error}", result.cycle_task_ids
            )

        cached = _CachedSort(version=snapshot.version, snapshot=snapshot, result=result)
        with self._lock:
            self._sort_cache[channel_id] = cached
        return cached

    def sort(self, channel_id: str) -> TopologicalResult:
        return self._sorted(channel_id).result

    @trace_method("registry.next_assignable_tasks")
    def next_assignable_tasks(self, channel_id: str, limit: Optional[int] = None) -> List[str]:
        """Tasks that may be handed to agents now, in topological order.

        Args:
            channel_id: Channel to query
            limit: Optional maximum number of tasks, capped at
                ``dag_max_ready_tasks_limit``; None or <= 0 returns every
                ready task

        Returns:
            Ready task ids
        """
        ready = self._sorted(channel_id).result.ready_tasks
        if limit is None or limit <= 0:
            return list(ready)
        return ready[:min(limit, self.settings.dag_max_ready_tasks_limit)]

    def execution_order(self, channel_id: str, **options) -> List[str]:
        """Topological order filtered as in :func:`get_execution_order`."""
        cached = self._sorted(channel_id)
        return get_execution_order(cached.snapshot, sort_result=cached.result, **options)

    @trace_method("registry.execution_plan")
    def execution_plan(self, channel_id: str) -> List[List[str]]:
        """Batches of tasks for concurrent dispatch."""
        return find_parallel_groups(self._sorted(channel_id).snapshot)

    @trace_method("registry.bottleneck")
    def bottleneck(self, channel_id: str) -> List[str]:
        """Longest dependency chain (minimum completion span)."""
        cached = self._sorted(channel_id)
        return find_critical_path(cached.snapshot, sort_result=cached.result)

    @trace_method("registry.health")
    def health(self, channel_id: str) -> DagStats:
        """Aggregate metrics for telemetry."""
        cached = self._sorted(channel_id)
        return compute_dag_stats(cached.snapshot, sort_result=cached.result)

    @trace_method("registry.validate")
    def validate(self, channel_id: str) -> DagValidationResult:
        """Full structural audit of a channel's DAG."""
        return validate_dag(self.require(channel_id).snapshot(), self._thresholds())
