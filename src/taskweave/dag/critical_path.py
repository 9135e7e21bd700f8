"""Critical path: the longest dependency chain in a task DAG."""

from typing import Dict, List, Optional

from loguru import logger

from .exceptions import DagConsistencyError
from .models import TaskDag, TopologicalResult
from .scheduler import topological_sort


def _sorted_order(dag: TaskDag, sort_result: Optional[TopologicalResult]) -> List[str]:
    result = sort_result or topological_sort(dag)
    if not result.success:
        raise DagConsistencyError(
            f"Cannot compute dependency depths: {result.error}", result.cycle_task_ids
        )
    return result.order


def compute_depths(dag: TaskDag, sort_result: Optional[TopologicalResult] = None) -> Dict[str, int]:
    """Length of the longest chain ending at each task (a root has depth 1).

    Raises:
        DagConsistencyError: If the DAG contains a cycle
    """
    depth: Dict[str, int] = {}
    for task_id in _sorted_order(dag, sort_result):
        deps = dag.nodes[task_id].depends_on
        depth[task_id] = 1 + max((depth[d] for d in deps if d in depth), default=0)
    return depth


def find_critical_path(dag: TaskDag, sort_result: Optional[TopologicalResult] = None) -> List[str]:
    """Find the longest chain of dependent tasks.

    Dynamic program over topological order: ``depth(n) = 1`` for a task
    without dependencies, otherwise ``1 + max(depth(p))`` over its
    dependencies. The maximizing dependency is remembered so the chain can
    be walked back. Ties go to the first candidate in topological or
    declaration order. ``depends_on`` entries that the sort did not place
    (missing tasks) are ignored.

    Args:
        dag: The task DAG
        sort_result: Precomputed sort for this DAG version

    Returns:
        Task ids from the chain's first task to its last (empty for an
        empty DAG)

    Raises:
        DagConsistencyError: If the DAG contains a cycle
    """
    order = _sorted_order(dag, sort_result)
    if not order:
        return []

    depth: Dict[str, int] = {}
    predecessor: Dict[str, Optional[str]] = {}
    end, best = order[0], 0

    for task_id in order:
        depth[task_id], predecessor[task_id] = 1, None
        for dep in dag.nodes[task_id].depends_on:
            if dep not in depth:
                continue
            if depth[dep] + 1 > depth[task_id]:
                depth[task_id], predecessor[task_id] = depth[dep] + 1, dep
        if depth[task_id] > best:
            end, best = task_id, depth[task_id]

    path = []
    step: Optional[str] = end
    while step is not None:
        path.append(step)
        step = predecessor[step]
    path.reverse()

    logger.debug(f"[DAG:{dag.channel_id}] Critical path length {len(path)}: {' -> '.join(path)}")
    return path
