"""Topological scheduling for task DAGs (Kahn's algorithm)."""

from typing import Iterable, List, Optional
from collections import deque
import time

from loguru import logger

from .models import TaskDag, TaskStatus, TopologicalResult
from .readiness import is_task_ready


def topological_sort(dag: TaskDag) -> TopologicalResult:
    """Order every task so dependencies come first, and partition by state.

    Kahn's algorithm over the full edge set: the frontier is seeded with the
    tasks that have no dependencies (in insertion order) and processed one
    level at a time, so ``levels`` holds the breadth-first layering.

    The partition is computed from statuses:

    - ``ready_tasks``: pending tasks whose dependencies have all completed
    - ``completed_tasks``: completed tasks
    - ``blocked_tasks``: every other task (pending with an open dependency,
      in progress, or failed)

    Adjacency entries naming tasks that are not in ``dag.nodes`` are
    skipped; :func:`validate_dag` reports them.

    Args:
        dag: The task DAG

    Returns:
        TopologicalResult. ``success`` is False only if the graph holds a
        cycle, which the store makes impossible; callers must treat that as
        an internal-consistency fault.
    """
    start = time.perf_counter()
    result = TopologicalResult(success=False, version=dag.version)

    in_degree = {
        task_id: sum(1 for dep in dag.dependencies_of(task_id) if dep in dag.nodes)
        for task_id in dag.nodes
    }
    queue = deque(task_id for task_id, degree in in_degree.items() if degree == 0)

    while queue:
        level = []
        for _ in range(len(queue)):
            task_id = queue.popleft()
            result.order.append(task_id)
            level.append(task_id)

            for dependent in sorted(dag.dependents_of(task_id)):
                if dependent not in in_degree:
                    continue
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)
        result.levels.append(level)

    processed = set(result.order)
    _partition(dag, result.order if len(processed) == len(dag.nodes) else dag.nodes, result)

    if len(processed) != len(dag.nodes):
        result.cycle_task_ids = [task_id for task_id in dag.nodes if task_id not in processed]
        result.error = (
            f"Cycle detected: only processed {len(processed)} of {len(dag.nodes)} tasks"
        )
        logger.error(
            f"[DAG:{dag.channel_id}] Topological sort failed, tasks stuck in a cycle: "
            f"{result.cycle_task_ids}"
        )
        return result

    result.success = True
    logger.debug(
        f"[DAG:{dag.channel_id}] Topological sort of {len(dag.nodes)} tasks in "
        f"{(time.perf_counter() - start) * 1000:.2f}ms"
    )
    return result


def _partition(dag: TaskDag, task_ids: Iterable[str], result: TopologicalResult) -> None:
    for task_id in task_ids:
        node = dag.nodes[task_id]
        if node.status == TaskStatus.COMPLETED:
            result.completed_tasks.append(task_id)
        elif is_task_ready(dag, task_id):
            result.ready_tasks.append(task_id)
        else:
            result.blocked_tasks.append(task_id)


def get_execution_order(
    dag: TaskDag,
    include_completed: bool = False,
    include_blocked: bool = True,
    statuses: Optional[Iterable[TaskStatus]] = None,
    sort_result: Optional[TopologicalResult] = None
) -> List[str]:
    """Get the topological order filtered for dispatch.

    Args:
        dag: The task DAG
        include_completed: Keep completed tasks in the order
        include_blocked: Keep tasks that are not ready yet
        statuses: Optional whitelist of statuses
        sort_result: Precomputed sort for this DAG version

    Returns:
        Filtered task ids in topological order (empty if the sort failed)
    """
    result = sort_result or topological_sort(dag)
    if not result.success:
        logger.warning(f"[DAG:{dag.channel_id}] Cannot get execution order: {result.error}")
        return []

    allowed = {TaskStatus(s) for s in statuses} if statuses else None
    order = []
    for task_id in result.order:
        node = dag.nodes[task_id]
        if not include_completed and node.status == TaskStatus.COMPLETED:
            continue
        if not include_blocked and not is_task_ready(dag, task_id):
            continue
        if allowed is not None and node.status not in allowed:
            continue
        order.append(task_id)
    return order
