"""Aggregate health metrics for task DAGs."""

from typing import Optional

from .critical_path import find_critical_path
from .models import DagStats, TaskDag, TaskStatus, TopologicalResult
from .readiness import is_task_ready


def compute_dag_stats(dag: TaskDag, sort_result: Optional[TopologicalResult] = None) -> DagStats:
    """Compute DAG statistics.

    ``max_depth`` is the length of :func:`find_critical_path`, and the
    ready/blocked/completed counts use the same partition rule as
    :func:`topological_sort`, so the three always sum to ``node_count``.

    Args:
        dag: The task DAG
        sort_result: Precomputed sort for this DAG version

    Returns:
        DagStats

    Raises:
        DagConsistencyError: If the DAG contains a cycle
    """
    stats = DagStats(node_count=len(dag.nodes), edge_count=len(dag.edges), version=dag.version)
    total_in = total_out = 0

    for task_id, node in dag.nodes.items():
        total_in += node.in_degree
        total_out += node.out_degree
        if node.in_degree == 0:
            stats.root_count += 1
        if node.out_degree == 0:
            stats.leaf_count += 1

        if node.status == TaskStatus.COMPLETED:
            stats.completed_task_count += 1
        elif is_task_ready(dag, task_id):
            stats.ready_task_count += 1
        else:
            stats.blocked_task_count += 1

    if stats.node_count:
        stats.average_in_degree = total_in / stats.node_count
        stats.average_out_degree = total_out / stats.node_count

    stats.max_depth = len(find_critical_path(dag, sort_result))
    return stats
