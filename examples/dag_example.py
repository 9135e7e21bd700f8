"""Example: Tracking task dependencies for a multi-agent release pipeline."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from loguru import logger

from taskweave.dag import CycleError, TaskDagRegistry, TaskStatus
from taskweave.logging_config import (
    log_dag_stats,
    log_execution_plan,
    log_validation_result,
    log_with_panel,
    setup_logging_from_settings,
)
from taskweave.settings import Settings
from taskweave.telemetry import initialize_telemetry_from_settings


def example_release_pipeline(registry: TaskDagRegistry, console):
    """
    Example: Release pipeline worked on by several agents.

    Pipeline:
    1. Design - Write the feature design
    2. Work in parallel
       a. Backend implementation
       b. Frontend implementation
       c. Docs
    3. Integration tests - Needs backend and frontend
    4. Release - Needs tests and docs
    """
    channel = "release-42"

    print("=" * 80)
    print("RELEASE PIPELINE")
    print("=" * 80)

    for task_id in ("design", "backend", "frontend", "docs", "integration", "release"):
        registry.create(channel, task_id)

    registry.declare_dependency(channel, "design", "backend")
    registry.declare_dependency(channel, "design", "frontend")
    registry.declare_dependency(channel, "design", "docs")
    registry.declare_dependency(channel, "backend", "integration", label="API ready")
    registry.declare_dependency(channel, "frontend", "integration")
    registry.declare_dependency(channel, "integration", "release")
    registry.declare_dependency(channel, "docs", "release")

    store = registry.require(channel)
    store.subscribe(lambda event: logger.info(f"[EVENT] {event.type.value} {event.task_ids}"))

    print("\n" + store.visualize())
    log_execution_plan(registry.execution_plan(channel), console=console)
    print(f"\n🔗 Critical path: {' -> '.join(registry.bottleneck(channel))}")

    # An agent tries to make the design wait for the release
    try:
        registry.declare_dependency(channel, "release", "design")
    except CycleError as e:
        print(f"\n❌ Rejected: {e}")

    # Agents work through the pipeline
    while True:
        assignable = registry.next_assignable_tasks(channel, limit=2)
        if not assignable:
            break
        print(f"\n▶ Assigning: {assignable}")
        for task_id in assignable:
            registry.on_status_change(channel, task_id, TaskStatus.IN_PROGRESS)
        for task_id in assignable:
            registry.on_status_change(channel, task_id, TaskStatus.COMPLETED)

    log_dag_stats(registry.health(channel), console=console)
    log_validation_result(registry.validate(channel), console=console)


def example_blocked_work(registry: TaskDagRegistry):
    """
    Example: Inspecting what blocks a task after a failure.
    """
    channel = "incident-7"

    print("\n\n" + "=" * 80)
    print("BLOCKED WORK")
    print("=" * 80)

    store = registry.get_or_create(channel)
    for task_id in ("triage", "patch", "hotfix", "postmortem"):
        store.add_task(task_id)
    store.add_dependency("triage", "patch")
    store.add_dependency("patch", "hotfix")
    store.add_dependency("triage", "postmortem")

    store.set_status("triage", TaskStatus.COMPLETED)
    store.set_status("patch", TaskStatus.FAILED)

    result = registry.sort(channel)
    print(f"Ready:     {result.ready_tasks}")
    print(f"Blocked:   {result.blocked_tasks}")
    print(f"Completed: {result.completed_tasks}")
    print(f"'hotfix' is waiting on: {store.get_blocking_tasks('hotfix')}")
    print(f"Completing 'patch' would unblock: {store.get_tasks_to_unblock('patch')}")


if __name__ == "__main__":
    settings = Settings()
    console = setup_logging_from_settings(settings)
    initialize_telemetry_from_settings(settings)

    log_with_panel(
        "[bold green]taskweave[/bold green]\nTask dependency DAG examples",
        title="🚀 Welcome",
        border_style="green",
        console=console
    )

    registry = TaskDagRegistry(settings)

    example_release_pipeline(registry, console)
    example_blocked_work(registry)

    print("\n" + "=" * 80)
    print("EXAMPLES COMPLETE")
    print("=" * 80)
