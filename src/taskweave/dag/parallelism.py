"""Execution waves: groups of tasks that can be dispatched together."""

from typing import List

from loguru import logger

from .exceptions import DagConsistencyError
from .models import TaskDag, TaskStatus


def find_parallel_groups(dag: TaskDag) -> List[List[str]]:
    """Partition every non-completed task into ordered execution waves.

    A task joins the current wave once each of its dependencies is either
    completed or placed in an earlier wave. Members of one wave therefore
    never depend on each other, and finishing wave ``n`` is what can unblock
    wave ``n + 1``. In-progress and failed tasks are placed like pending
    ones so that every open task appears exactly once.

    Args:
        dag: The task DAG

    Returns:
        List of waves, each a list of task ids in insertion order

    Raises:
        DagConsistencyError: If some tasks can never be placed (cycle)
    """
    satisfied = {task_id for task_id, node in dag.nodes.items() if node.status == TaskStatus.COMPLETED}
    remaining = [task_id for task_id in dag.nodes if task_id not in satisfied]
    groups: List[List[str]] = []

    while remaining:
        wave = [
            task_id for task_id in remaining
            if all(dep in satisfied for dep in dag.nodes[task_id].depends_on)
        ]
        if not wave:
            logger.error(f"[DAG:{dag.channel_id}] Cannot build parallel groups, stuck tasks: {remaining}")
            raise DagConsistencyError(
                f"Parallel grouping stalled on {len(remaining)} task(s); the DAG contains a cycle",
                remaining,
            )

        groups.append(wave)
        satisfied.update(wave)
        placed = set(wave)
        remaining = [task_id for task_id in remaining if task_id not in placed]

    logger.debug(f"[DAG:{dag.channel_id}] Built {len(groups)} parallel group(s)")
    return groups
