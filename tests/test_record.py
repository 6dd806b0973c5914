import os
import sys

import torch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import matplan  # noqa: E402


def _shared_sigmoid_plan():
    x = matplan.Plan.input(2, 2, "x")
    hidden = x.sigmoid()
    return (hidden + hidden.scale(2.0)).output("y")


def test_record_trace_counts_evaluations():
    executor = matplan.CPUExecutor()
    plan = _shared_sigmoid_plan()
    inputs = {"x": torch.zeros(2, 2)}

    with matplan.record(executor) as trace:
        executor.execute(plan, inputs)
        executor.execute(plan, inputs)

    assert trace.executions == 2
    assert trace.evaluations("sigmoid") == 2
    assert trace.evaluations("add") == 2

    summary = trace.summary()
    assert summary["executions"] == 2
    assert summary["events"] == len(trace.events)
    assert summary["kinds"]["sigmoid"] == 2
    assert summary["cache_hits"] == 2
    assert summary["taps"] == [("y",), ("y",)]

    cached = [event for event in trace.events if event.cached]
    assert all(event.kind == "sigmoid" for event in cached)
    assert {event.execution for event in trace.events} == {0, 1}
    assert all(event.shape == (2, 2) for event in cached)


def test_record_detaches_after_block():
    executor = matplan.CPUExecutor()
    plan = _shared_sigmoid_plan()
    with matplan.record(executor) as trace:
        executor.execute(plan, {"x": torch.zeros(2, 2)})
    executor.execute(plan, {"x": torch.zeros(2, 2)})
    assert trace.executions == 1


def test_trace_restart_clears_previous_events():
    executor = matplan.CPUExecutor()
    plan = _shared_sigmoid_plan()
    trace = matplan.Trace(executor)
    trace.start()
    executor.execute(plan, {"x": torch.zeros(2, 2)})
    trace.stop()
    assert trace.executions == 1

    trace.start()
    trace.stop()
    assert trace.executions == 0
    assert trace.events == ()


def test_backprop_forward_values_are_computed_once():
    torch.manual_seed(3)
    net = (
        matplan.NeuralNetwork()
        .input(3)
        .add_dense_layer_weighted(torch.randn(4, 3), "sigmoid")
        .add_dense_layer_weighted(torch.randn(2, 4), "sigmoid")
    )
    plan = net.plan_backprop(5)
    bindings = {"inputs": torch.randn(3, 5), "targets": torch.randn(2, 5)}
    net.fill_plan_weights(bindings)

    executor = matplan.CPUExecutor()
    with matplan.record(executor) as trace:
        executor.execute(plan, bindings)

    assert trace.evaluations("sigmoid") == 2
