"""Test the per-channel DAG registry used by the orchestration layer."""

import sys
import os
import threading
from concurrent.futures import ThreadPoolExecutor
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from taskweave.dag import (
    CycleError,
    DagCapacityError,
    DagConsistencyError,
    DagStats,
    TaskDag,
    TaskDagNode,
    TaskDagRegistry,
    TaskStatus,
    UnknownTaskError,
)
from taskweave.settings import Settings


def make_registry(**overrides) -> TaskDagRegistry:
    return TaskDagRegistry(Settings(_env_file=None, **overrides))


def build_pipeline(registry: TaskDagRegistry, channel_id: str = "chan"):
    for task_id in ("ingest", "clean", "train", "docs"):
        registry.create(channel_id, task_id)
    registry.declare_dependency(channel_id, "ingest", "clean")
    registry.declare_dependency(channel_id, "clean", "train", label="needs clean data")


def test_lifecycle():
    registry = make_registry()
    store = registry.get_or_create("chan")
    assert registry.get_or_create("chan") is store
    assert registry.require("chan") is store
    assert registry.channels() == ["chan"]
    assert store.limits.max_nodes == 10000

    assert registry.get("other") is None
    with pytest.raises(KeyError):
        registry.require("other")

    assert registry.drop("chan")
    assert not registry.drop("chan")
    assert registry.channels() == []


def test_inbound_calls_drive_the_store():
    registry = make_registry()
    build_pipeline(registry)

    assert registry.next_assignable_tasks("chan") == ["ingest", "docs"]
    node = registry.on_status_change("chan", "ingest", "completed")
    assert node.status == TaskStatus.COMPLETED
    assert registry.next_assignable_tasks("chan") == ["docs", "clean"]

    with pytest.raises(CycleError):
        registry.declare_dependency("chan", "train", "ingest")


def test_unknown_channel_is_rejected():
    registry = make_registry()
    with pytest.raises(UnknownTaskError):
        registry.declare_dependency("nowhere", "a", "b")
    with pytest.raises(UnknownTaskError):
        registry.on_status_change("nowhere", "a", TaskStatus.COMPLETED)


def test_sort_is_cached_per_version():
    registry = make_registry()
    build_pipeline(registry)

    first = registry.sort("chan")
    assert registry.sort("chan") is first

    registry.on_status_change("chan", "docs", TaskStatus.IN_PROGRESS)
    second = registry.sort("chan")
    assert second is not first
    assert second.version == registry.require("chan").version
    assert "docs" in second.blocked_tasks


def test_next_assignable_tasks_limits():
    registry = make_registry(dag_max_ready_tasks_limit=3)
    for i in range(5):
        registry.create("chan", f"task-{i}")

    everything = [f"task-{i}" for i in range(5)]
    assert registry.next_assignable_tasks("chan") == everything
    assert registry.next_assignable_tasks("chan") == registry.sort("chan").ready_tasks
    assert registry.next_assignable_tasks("chan", limit=10) == ["task-0", "task-1", "task-2"]
    assert registry.next_assignable_tasks("chan", limit=1) == ["task-0"]
    assert registry.next_assignable_tasks("chan", limit=0) == everything


def test_planning_queries():
    registry = make_registry()
    build_pipeline(registry)

    assert registry.execution_plan("chan") == [["ingest", "docs"], ["clean"], ["train"]]
    assert registry.bottleneck("chan") == ["ingest", "clean", "train"]
    assert registry.execution_order("chan", include_blocked=False) == ["ingest", "docs"]

    stats = registry.health("chan")
    assert isinstance(stats, DagStats)
    assert stats.max_depth == 3
    assert stats.edge_count == 2

    result = registry.validate("chan")
    assert result.is_valid


def test_validation_uses_configured_thresholds():
    registry = make_registry(dag_max_chain_length_warning=2)
    build_pipeline(registry)

    codes = [w.code for w in registry.validate("chan").warnings]
    assert "LONG_CHAIN" in codes


def test_limits_enforced_when_configured():
    registry = make_registry(dag_enforce_limits=True, dag_max_nodes=2, dag_max_edges=1)
    registry.create("chan", "a")
    registry.create("chan", "b")
    with pytest.raises(DagCapacityError) as exc_info:
        registry.create("chan", "c")
    assert exc_info.value.to_dict()["error"] == "CAPACITY_EXCEEDED"

    registry.declare_dependency("chan", "a", "b")
    with pytest.raises(DagCapacityError):
        registry.declare_dependency("chan", "b", "a")
    assert registry.require("chan").edge_count == 1


def test_limits_advisory_by_default():
    registry = make_registry(dag_max_nodes=1)
    registry.create("chan", "a")
    registry.create("chan", "b")
    assert registry.require("chan").node_count == 2


def test_inconsistent_dag_is_escalated():
    registry = make_registry()
    store = registry.get_or_create("broken")

    dag = TaskDag(channel_id="broken", version=99)
    for task_id in ("x", "y"):
        dag.nodes[task_id] = TaskDagNode(task_id=task_id)
    dag.adjacency_list = {"x": {"y"}, "y": {"x"}}
    dag.reverse_adjacency_list = {"x": {"y"}, "y": {"x"}}
    dag.nodes["x"].depends_on = ["y"]
    dag.nodes["y"].depends_on = ["x"]
    store._dag = dag

    with pytest.raises(DagConsistencyError) as exc_info:
        registry.next_assignable_tasks("broken")
    assert exc_info.value.task_ids == ["x", "y"]


def test_enforced_limits_hold_for_concurrent_creates():
    registry = make_registry(dag_enforce_limits=True, dag_max_nodes=6)
    registry.get_or_create("chan")
    start = threading.Barrier(6)

    def create_many(worker):
        start.wait()
        created = 0
        for i in range(4):
            try:
                registry.create("chan", f"w{worker}-{i}")
                created += 1
            except DagCapacityError:
                pass
        return created

    with ThreadPoolExecutor(max_workers=6) as pool:
        created = sum(pool.map(create_many, range(6)))

    assert created == 6
    assert registry.require("chan").node_count == 6
