"""Readiness and blocking queries over a DAG.

A task is ready when it is pending and every task it depends on has
completed. These helpers read statuses directly, so they are always in step
with the last ``set_status`` call even when a cached flag is not.
"""

from typing import Iterable, List, Optional

from .models import TaskDag, TaskStatus


def is_task_ready(dag: TaskDag, task_id: str) -> bool:
    """Check whether a task can be handed to an agent now.

    Args:
        dag: The task DAG
        task_id: Task to check

    Returns:
        True if the task is pending and all its dependencies are completed.
        Unknown tasks are never ready.
    """
    node = dag.nodes.get(task_id)
    if node is None or node.status != TaskStatus.PENDING:
        return False

    for dep_id in node.depends_on:
        dep = dag.nodes.get(dep_id)
        if dep is None or dep.status != TaskStatus.COMPLETED:
            return False
    return True


def get_blocking_tasks(dag: TaskDag, task_id: str) -> List[str]:
    """Get the dependencies of a task that have not completed yet.

    Args:
        dag: The task DAG
        task_id: Task to check

    Returns:
        Blocking task ids in declaration order (empty for unknown tasks)
    """
    node = dag.nodes.get(task_id)
    if node is None:
        return []

    return [
        dep_id for dep_id in node.depends_on
        if dep_id in dag.nodes and dag.nodes[dep_id].status != TaskStatus.COMPLETED
    ]


def get_tasks_to_unblock(dag: TaskDag, task_id: str) -> List[str]:
    """Get dependents that become ready once ``task_id`` completes.

    Args:
        dag: The task DAG
        task_id: Task that is about to complete (or just completed)

    Returns:
        Dependent task ids, sorted, whose only remaining blocker is ``task_id``
    """
    to_unblock = []
    for dependent_id in sorted(dag.dependents_of(task_id)):
        dependent = dag.nodes[dependent_id]
        if dependent.status != TaskStatus.PENDING:
            continue
        remaining = [b for b in get_blocking_tasks(dag, dependent_id) if b != task_id]
        if not remaining:
            to_unblock.append(dependent_id)
    return to_unblock


def get_ready_tasks(
    dag: TaskDag,
    task_ids: Optional[Iterable[str]] = None,
    limit: Optional[int] = None
) -> List[str]:
    """List ready tasks in insertion order.

    Args:
        dag: The task DAG
        task_ids: Optional filter restricting the candidates
        limit: Optional maximum number of results (ignored when <= 0)

    Returns:
        Ready task ids
    """
    wanted = set(task_ids) if task_ids is not None else None
    ready = [
        task_id for task_id in dag.nodes
        if (wanted is None or task_id in wanted) and is_task_ready(dag, task_id)
    ]
    if limit is not None and limit > 0:
        ready = ready[:limit]
    return ready


def refresh_node(dag: TaskDag, task_id: str) -> bool:
    """Recompute ``blocked_by`` and ``is_ready`` for one node.

    Returns:
        True if the node's ready flag changed
    """
    node = dag.nodes[task_id]
    was_ready = node.is_ready
    node.blocked_by = get_blocking_tasks(dag, task_id)
    node.is_ready = node.status == TaskStatus.PENDING and not node.blocked_by
    return node.is_ready != was_ready
