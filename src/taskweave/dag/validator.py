"""Cycle checks and structural validation for task DAGs."""

from typing import Dict, List, Optional
from collections import deque
from dataclasses import dataclass, field
import time

from loguru import logger

from .exceptions import DagErrorCode
from .models import CycleDetectionResult, DagStats, TaskDag, TaskDagEdge
from .readiness import get_blocking_tasks, is_task_ready
from .stats import compute_dag_stats


def find_cycle_path(dag: TaskDag, from_task_id: str, to_task_id: str) -> Optional[List[str]]:
    """Find the cycle a new ``from -> to`` edge would close.

    Searches breadth-first from ``to_task_id`` over existing edges. If
    ``from_task_id`` is reachable, the new edge closes the loop
    ``to -> ... -> from -> to``.

    Args:
        dag: An acyclic task DAG
        from_task_id: Dependency side of the candidate edge
        to_task_id: Dependent side of the candidate edge

    Returns:
        The cycle as a list of task ids (first and last equal), or None
    """
    if from_task_id == to_task_id:
        return [from_task_id, to_task_id]

    parent: Dict[str, Optional[str]] = {to_task_id: None}
    queue = deque([to_task_id])

    while queue:
        current = queue.popleft()
        if current == from_task_id:
            path = []
            step: Optional[str] = current
            while step is not None:
                path.append(step)
                step = parent[step]
            path.reverse()
            path.append(to_task_id)
            return path

        for neighbor in dag.dependents_of(current):
            if neighbor not in parent:
                parent[neighbor] = current
                queue.append(neighbor)

    return None


def would_create_cycle(dag: TaskDag, candidate_edge: TaskDagEdge) -> bool:
    """Check, without mutating, whether committing an edge closes a cycle.

    Args:
        dag: An acyclic task DAG
        candidate_edge: Edge not yet added to the DAG

    Returns:
        True if ``from_task_id`` is reachable from ``to_task_id``
    """
    return find_cycle_path(dag, candidate_edge.from_task_id, candidate_edge.to_task_id) is not None


def detect_cycle(dag: TaskDag) -> CycleDetectionResult:
    """Scan the whole graph for a cycle using three-colour DFS.

    Used for audits; normal insertion relies on :func:`would_create_cycle`.
    """
    start = time.perf_counter()
    white, gray, black = 0, 1, 2
    color = {task_id: white for task_id in dag.nodes}
    parent: Dict[str, Optional[str]] = {}

    for root in dag.nodes:
        if color[root] != white:
            continue

        color[root] = gray
        parent[root] = None
        stack = [(root, iter(sorted(dag.dependents_of(root))))]

        while stack:
            node, neighbors = stack[-1]
            advanced = False
            for neighbor in neighbors:
                state = color.get(neighbor, white)
                if state == gray:
                    path = [neighbor]
                    step: Optional[str] = node
                    while step is not None and step != neighbor:
                        path.append(step)
                        step = parent.get(step)
                    path.append(neighbor)
                    path.reverse()
                    logger.debug(
                        f"[DAG:{dag.channel_id}] Cycle scan found cycle in "
                        f"{(time.perf_counter() - start) * 1000:.2f}ms"
                    )
                    return CycleDetectionResult(has_cycle=True, cycle_path=path)
                if state == white:
                    color[neighbor] = gray
                    parent[neighbor] = node
                    stack.append((neighbor, iter(sorted(dag.dependents_of(neighbor)))))
                    advanced = True
                    break
            if not advanced:
                color[node] = black
                stack.pop()

    logger.debug(
        f"[DAG:{dag.channel_id}] Cycle scan clean in {(time.perf_counter() - start) * 1000:.2f}ms"
    )
    return CycleDetectionResult(has_cycle=False)


@dataclass
class ValidationThresholds:
    """Warning thresholds for :func:`validate_dag`."""
    max_in_degree: int = 10
    max_out_degree: int = 10
    max_chain_length: int = 20


@dataclass
class DagIssue:
    """A single validation error or warning."""
    code: str
    message: str
    task_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"code": self.code, "message": self.message, "task_ids": list(self.task_ids)}


@dataclass
class DagValidationResult:
    """Outcome of a full structural audit."""
    is_valid: bool
    errors: List[DagIssue] = field(default_factory=list)
    warnings: List[DagIssue] = field(default_factory=list)
    stats: Optional[DagStats] = None

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary."""
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "stats": self.stats.to_dict() if self.stats else None,
        }


HIGH_IN_DEGREE = "HIGH_IN_DEGREE"
HIGH_OUT_DEGREE = "HIGH_OUT_DEGREE"
ORPHANED_NODE = "ORPHANED_NODE"
LONG_CHAIN = "LONG_CHAIN"


def validate_dag(dag: TaskDag, thresholds: Optional[ValidationThresholds] = None) -> DagValidationResult:
    """Audit a DAG's invariants and flag unhealthy shapes.

    Errors cover cycles, edges pointing at missing nodes, adjacency maps
    that disagree with the edge table, degree counters that disagree with
    adjacency, and stale ready flags. Warnings cover high fan-in/fan-out,
    orphaned nodes and long chains.

    Args:
        dag: The task DAG
        thresholds: Warning thresholds (defaults if None)

    Returns:
        DagValidationResult with errors, warnings and stats
    """
    thresholds = thresholds or ValidationThresholds()
    result = DagValidationResult(is_valid=True)

    def error(code: DagErrorCode, message: str, task_ids: List[str]) -> None:
        result.is_valid = False
        result.errors.append(DagIssue(code.value, message, task_ids))

    cycle = detect_cycle(dag)
    if cycle.has_cycle:
        error(DagErrorCode.CYCLE_DETECTED, cycle.description, cycle.cycle_path or [])

    for edge in dag.edges.values():
        missing = [t for t in (edge.from_task_id, edge.to_task_id) if t not in dag.nodes]
        if missing:
            error(DagErrorCode.MISSING_NODE, f"Edge {edge.id} references missing task(s): {missing}", missing)
            continue
        to_node = dag.nodes[edge.to_task_id]
        if (edge.to_task_id not in dag.dependents_of(edge.from_task_id)
                or edge.from_task_id not in dag.dependencies_of(edge.to_task_id)
                or edge.from_task_id not in to_node.depends_on):
            error(
                DagErrorCode.INCONSISTENT_ADJACENCY,
                f"Edge {edge.id} is not reflected in adjacency or depends_on",
                [edge.from_task_id, edge.to_task_id],
            )

    for task_id, node in dag.nodes.items():
        dangling = sorted(
            (set(dag.dependents_of(task_id)) | dag.dependencies_of(task_id) | set(node.depends_on))
            - set(dag.nodes)
        )
        if dangling:
            error(
                DagErrorCode.MISSING_NODE,
                f"Task {task_id} references missing task(s): {dangling}",
                [task_id] + dangling,
            )
        if set(node.depends_on) != dag.dependencies_of(task_id):
            error(
                DagErrorCode.INCONSISTENT_ADJACENCY,
                f"Task {task_id} depends_on {node.depends_on} disagrees with reverse adjacency",
                [task_id],
            )

        in_degree = len(dag.dependencies_of(task_id))
        out_degree = len(dag.dependents_of(task_id))
        if node.in_degree != in_degree or node.out_degree != out_degree:
            error(
                DagErrorCode.INCONSISTENT_DEGREE,
                f"Task {task_id} degrees ({node.in_degree}, {node.out_degree}) "
                f"disagree with adjacency ({in_degree}, {out_degree})",
                [task_id],
            )
        if node.is_ready != is_task_ready(dag, task_id) or node.blocked_by != get_blocking_tasks(dag, task_id):
            error(DagErrorCode.STALE_READINESS, f"Task {task_id} has a stale ready/blocked cache", [task_id])

        if node.in_degree > thresholds.max_in_degree:
            result.warnings.append(DagIssue(
                HIGH_IN_DEGREE,
                f"Task {task_id} has {node.in_degree} dependencies (threshold: {thresholds.max_in_degree})",
                [task_id],
            ))
        if node.out_degree > thresholds.max_out_degree:
            result.warnings.append(DagIssue(
                HIGH_OUT_DEGREE,
                f"Task {task_id} blocks {node.out_degree} tasks (threshold: {thresholds.max_out_degree})",
                [task_id],
            ))
        if in_degree == 0 and out_degree == 0 and len(dag.nodes) > 1:
            result.warnings.append(DagIssue(
                ORPHANED_NODE, f"Task {task_id} has no dependencies and no dependents", [task_id]
            ))

    # Stats walk the graph, so only compute them on a structurally sound one
    if result.is_valid:
        result.stats = compute_dag_stats(dag)
        if result.stats.max_depth > thresholds.max_chain_length:
            result.warnings.append(DagIssue(
                LONG_CHAIN,
                f"DAG has a chain of length {result.stats.max_depth} "
                f"(threshold: {thresholds.max_chain_length})",
            ))

    if result.is_valid:
        logger.debug(f"[DAG:{dag.channel_id}] Validation passed with {len(result.warnings)} warning(s)")
    else:
        logger.warning(f"[DAG:{dag.channel_id}] Validation failed: {[e.code for e in result.errors]}")
    return result
