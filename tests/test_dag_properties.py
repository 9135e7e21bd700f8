"""Property checks over randomly generated DAGs.

Each seed builds a DAG purely through the store's public mutations, with a
mix of forward edges, rejected back edges and random status changes, then
checks the structural guarantees the scheduler relies on.
"""

import sys
import os
import random
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from taskweave.dag import (
    CycleError,
    DuplicateEdgeError,
    TaskDagEdge,
    TaskDagStore,
    TaskStatus,
    compute_dag_stats,
    detect_cycle,
    find_critical_path,
    find_parallel_groups,
    get_blocking_tasks,
    topological_sort,
    would_create_cycle,
)

SEEDS = list(range(40))
STATUSES = list(TaskStatus)


def random_store(seed: int) -> TaskDagStore:
    rng = random.Random(seed)
    store = TaskDagStore(f"random-{seed}")
    task_ids = [f"t{i:03d}" for i in range(rng.randint(1, 30))]
    rng.shuffle(task_ids)

    for task_id in task_ids:
        store.add_task(task_id)

    for _ in range(rng.randint(0, len(task_ids) * 3)):
        from_id, to_id = rng.sample(task_ids, 2) if len(task_ids) > 1 else (task_ids[0], task_ids[0])
        if from_id == to_id:
            continue
        try:
            store.add_dependency(from_id, to_id)
        except (CycleError, DuplicateEdgeError):
            pass

    for task_id in task_ids:
        if rng.random() < 0.4:
            store.set_status(task_id, rng.choice(STATUSES))
    return store


@pytest.mark.parametrize("seed", SEEDS)
def test_dag_stays_acyclic(seed):
    store = random_store(seed)
    dag = store.snapshot()

    assert not detect_cycle(dag).has_cycle
    assert store.validate().is_valid


@pytest.mark.parametrize("seed", SEEDS)
def test_sort_is_a_valid_topological_order(seed):
    dag = random_store(seed).snapshot()
    result = topological_sort(dag)

    assert result.success
    assert sorted(result.order) == sorted(dag.nodes)
    assert len(set(result.order)) == len(result.order)

    position = {task_id: i for i, task_id in enumerate(result.order)}
    for edge in dag.edges.values():
        assert position[edge.from_task_id] < position[edge.to_task_id]

    assert [t for level in result.levels for t in level] == result.order


@pytest.mark.parametrize("seed", SEEDS)
def test_sort_partitions_every_task(seed):
    dag = random_store(seed).snapshot()
    result = topological_sort(dag)

    assert len(result.ready_tasks) + len(result.blocked_tasks) + len(result.completed_tasks) == len(dag.nodes)
    assert set(result.ready_tasks) | set(result.blocked_tasks) | set(result.completed_tasks) == set(dag.nodes)
    for task_id in result.completed_tasks:
        assert dag.nodes[task_id].status == TaskStatus.COMPLETED
    for task_id in result.ready_tasks:
        assert dag.nodes[task_id].is_ready


@pytest.mark.parametrize("seed", SEEDS)
def test_reversed_edges_close_cycles(seed):
    store = random_store(seed)
    dag = store.snapshot()
    version = store.version

    for edge in dag.edges.values():
        back_edge = TaskDagEdge(from_task_id=edge.to_task_id, to_task_id=edge.from_task_id)
        assert would_create_cycle(dag, back_edge)

        with pytest.raises(CycleError) as exc_info:
            store.add_dependency(edge.to_task_id, edge.from_task_id)
        path = exc_info.value.cycle_path
        assert path[0] == path[-1] == edge.from_task_id

    assert store.version == version


@pytest.mark.parametrize("seed", SEEDS)
def test_parallel_groups_are_independent_and_complete(seed):
    dag = random_store(seed).snapshot()
    groups = find_parallel_groups(dag)

    flattened = [task_id for group in groups for task_id in group]
    open_tasks = [t for t, node in dag.nodes.items() if node.status != TaskStatus.COMPLETED]
    assert len(flattened) == len(set(flattened))
    assert set(flattened) == set(open_tasks)

    placed = set()
    for group in groups:
        members = set(group)
        for task_id in group:
            deps = set(dag.nodes[task_id].depends_on)
            assert not deps & members
            for dep in deps:
                assert dep in placed or dag.nodes[dep].status == TaskStatus.COMPLETED
        placed |= members


@pytest.mark.parametrize("seed", SEEDS)
def test_critical_path_matches_max_depth(seed):
    dag = random_store(seed).snapshot()
    path = find_critical_path(dag)
    stats = compute_dag_stats(dag)

    assert len(path) == stats.max_depth
    assert len(path) <= len(dag.nodes)
    for from_id, to_id in zip(path, path[1:]):
        assert (from_id, to_id) in dag.edges


@pytest.mark.parametrize("seed", SEEDS)
def test_stats_counts_are_exact(seed):
    dag = random_store(seed).snapshot()
    stats = compute_dag_stats(dag)

    assert stats.node_count == len(dag.nodes)
    assert stats.edge_count == len(dag.edges)
    assert stats.average_in_degree >= 0
    assert stats.average_out_degree >= 0
    assert stats.ready_task_count + stats.blocked_task_count + stats.completed_task_count == stats.node_count


@pytest.mark.parametrize("seed", SEEDS)
def test_blocking_tasks_are_open_dependencies(seed):
    dag = random_store(seed).snapshot()

    for task_id, node in dag.nodes.items():
        blocking = get_blocking_tasks(dag, task_id)
        assert set(blocking) <= set(node.depends_on)
        for blocker in blocking:
            assert dag.nodes[blocker].status != TaskStatus.COMPLETED
        assert node.blocked_by == blocking
