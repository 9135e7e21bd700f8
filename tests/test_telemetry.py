"""Test OpenTelemetry spans around DAG operations."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from taskweave.dag import CycleError, TaskDagRegistry, TaskDagStore
from taskweave.settings import Settings
from taskweave.telemetry import (
    DagTracer,
    TelemetryConfig,
    get_tracer,
    initialize_telemetry_from_settings,
    setup_telemetry,
)


def make_tracer():
    exporter = InMemorySpanExporter()
    tracer = DagTracer(setup_telemetry(TelemetryConfig(span_exporter=exporter)))
    return tracer, exporter


def test_store_mutations_emit_spans():
    tracer, exporter = make_tracer()
    store = TaskDagStore("traced", tracer=tracer)

    store.add_task("A")
    store.add_task("B")
    store.add_dependency("A", "B")
    store.sort()

    spans = exporter.get_finished_spans()
    assert [s.name for s in spans] == ["dag.add_task", "dag.add_task", "dag.add_dependency", "dag.sort"]
    assert all(s.attributes["dag.channel_id"] == "traced" for s in spans)
    assert all(s.status.status_code == StatusCode.OK for s in spans)


def test_rejected_mutation_marks_span_as_error():
    tracer, exporter = make_tracer()
    store = TaskDagStore("traced", tracer=tracer)
    store.add_task("A")
    store.add_task("B")
    store.add_dependency("A", "B")
    exporter.clear()

    with pytest.raises(CycleError):
        store.add_dependency("B", "A")

    span = exporter.get_finished_spans()[-1]
    assert span.name == "dag.add_dependency"
    assert span.status.status_code == StatusCode.ERROR
    assert any(event.name == "exception" for event in span.events)


def test_registry_spans_wrap_store_spans():
    tracer, exporter = make_tracer()
    registry = TaskDagRegistry(Settings(_env_file=None), tracer=tracer)
    registry.create("chan", "A")
    registry.next_assignable_tasks("chan")

    spans = {s.name: s for s in exporter.get_finished_spans()}
    assert spans["dag.add_task"].parent.span_id == spans["registry.create"].context.span_id
    assert "registry.next_assignable_tasks" in spans


def test_disabled_telemetry_is_pass_through():
    assert setup_telemetry(TelemetryConfig(enabled=False)) is None

    tracer = DagTracer()
    assert not tracer.enabled
    with tracer.span("anything") as span:
        assert span is None

    store = TaskDagStore("quiet", tracer=tracer)
    store.add_task("A")
    assert store.has_task("A")


def test_unknown_exporter_rejected():
    with pytest.raises(ValueError):
        setup_telemetry(TelemetryConfig(exporter_type="carrier-pigeon"))


def test_initialize_from_settings_disabled():
    tracer = initialize_telemetry_from_settings(Settings(_env_file=None, telemetry_enabled=False))
    assert not tracer.enabled
    assert get_tracer() is tracer
