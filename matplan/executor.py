# matplan/executor.py

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import torch

from . import matrix as mx
from .errors import InternalShapeViolation, InvalidInput, MissingInput
from .plan import (
    Add,
    Combine,
    Constant,
    HadamardMul,
    Input,
    Max,
    Mul,
    Neg,
    Output,
    Plan,
    Scale,
    Sigmoid,
    Sign,
    Sub,
    Transpose,
)
from .program import Program

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]
Taps = Dict[str, torch.Tensor]


class CPUExecutor:
    """
    Evaluates plans on the CPU, one node at a time.

    Evaluation walks the plan's program in post-order without recursion, so
    graph depth is not bounded by the interpreter stack. Each value is held
    until its last parent has read it; a node shared by several parents is
    computed once per ``execute`` call and every read after the first counts
    as a cache hit. Named taps are collected into a side mapping returned
    next to the root value.

    An executor is not thread-safe; use one per thread. Plans themselves are
    read-only and can be shared.
    """

    def __init__(self) -> None:
        self._handlers = self._build_operation_handlers()
        self._listeners: List[Listener] = []

        self.stats: Dict[str, Any] = {
            "total_executions": 0,
            "ops_executed": {},  # kind -> count
            "cache_hits": 0,
        }

        # Per-call state
        self._program: Optional[Program] = None
        self._inputs: Mapping[str, torch.Tensor] = {}
        self._taps: Taps = {}
        self._values: Dict[int, torch.Tensor] = {}
        self._remaining: List[int] = []

    def _build_operation_handlers(self) -> Dict[type, Callable[..., torch.Tensor]]:
        return {
            Input: self._execute_input,
            Output: self._execute_output,
            Constant: self._execute_constant,
            Scale: lambda node, value: mx.scale(value, node.op.scalar),
            Max: lambda node, value: mx.maximum(value, node.op.scalar),
            Neg: lambda node, value: -value,
            Transpose: lambda node, value: mx.transpose(value),
            Sign: lambda node, value: mx.sign(value),
            Sigmoid: lambda node, value: mx.sigmoid(value),
            Mul: lambda node, left, right: mx.matmul(left, right),
            HadamardMul: lambda node, left, right: mx.hadamard_mul(left, right),
            Add: lambda node, left, right: mx.add(left, right),
            Sub: lambda node, left, right: mx.sub(left, right),
            Combine: self._execute_combine,
        }

    # ----------------------------------------------------------------- events
    def register_event_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unregister_event_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            listener(payload)

    # -------------------------------------------------------------- execution
    def execute(
        self,
        plan: Plan,
        inputs: Mapping[str, torch.Tensor],
    ) -> Tuple[torch.Tensor, Taps]:
        """
        Evaluate ``plan`` against concrete ``inputs``.

        Returns the root value and the mapping of tap name to captured value.
        When the root is a ``merge_outputs`` bundle its value is an empty 0x0
        matrix; the real results live in the taps mapping.
        """
        if not isinstance(plan, Plan):
            raise TypeError(f"execute expects a Plan, got {type(plan).__name__}")
        program = plan.program()
        self._program = program
        self._inputs = inputs
        self._taps = {}
        self._values = {}
        self._remaining = list(program.indegree)
        hits_before = self.stats["cache_hits"]
        self._emit({"event": "execute_start", "nodes": len(program)})
        try:
            value = self._run(program)
            taps = self._taps
        finally:
            self._program = None
            self._inputs = {}
            self._taps = {}
            self._values = {}
            self._remaining = []
        self.stats["total_executions"] += 1
        logger.debug(
            "executed plan with %d nodes, %d cache hits, %d taps",
            len(program),
            self.stats["cache_hits"] - hits_before,
            len(taps),
        )
        self._emit({"event": "execute_end", "taps": sorted(taps)})
        return value, taps

    def _run(self, program: Program) -> torch.Tensor:
        # Nodes are in post-order, so every child is ready before its parents.
        for index, node in enumerate(program.nodes):
            child_values = [self._read(child) for child in program.children[index]]
            self._values[index] = self._evaluate(index, node, child_values)
        return self._values.pop(program.root)

    def _read(self, index: int) -> torch.Tensor:
        """Hand a child value to one parent; dropped after its last parent."""
        assert self._program is not None
        value = self._values[index]
        if self._remaining[index] < self._program.indegree[index]:
            node = self._program.nodes[index]
            self.stats["cache_hits"] += 1
            self._emit(
                {"event": "node_eval", "index": index, "kind": node.kind, "shape": node.shape, "cached": True}
            )
        self._remaining[index] -= 1
        if self._remaining[index] == 0:
            del self._values[index]
        return value

    def _evaluate(self, index: int, node: Plan, child_values: List[torch.Tensor]) -> torch.Tensor:
        op = node.op
        handler = self._handlers.get(type(op))
        if handler is None:
            raise TypeError(f"no CPU handler for operation {type(op).__name__}")
        value = handler(node, *child_values)

        computed = mx.shape_of(value)
        if computed != node.shape:
            raise InternalShapeViolation(node.kind, node.shape, computed)

        ops_executed = self.stats["ops_executed"]
        ops_executed[node.kind] = ops_executed.get(node.kind, 0) + 1
        self._emit(
            {"event": "node_eval", "index": index, "kind": node.kind, "shape": node.shape, "cached": False}
        )
        return value

    # --------------------------------------------------------------- handlers
    def _execute_input(self, node: Plan) -> torch.Tensor:
        op = node.op
        if op.name not in self._inputs:
            raise MissingInput(op.name)
        value = self._inputs[op.name]
        if not mx.is_matrix(value):
            actual = tuple(value.shape) if isinstance(value, torch.Tensor) else ()
            raise InvalidInput(op.name, node.shape, actual)
        if mx.shape_of(value) != node.shape:
            raise InvalidInput(op.name, node.shape, mx.shape_of(value))
        return value.clone()

    def _execute_output(self, node: Plan, value: torch.Tensor) -> torch.Tensor:
        self._taps[node.op.name] = value.clone()
        return value

    def _execute_constant(self, node: Plan) -> torch.Tensor:
        return node.op.matrix.clone()

    def _execute_combine(self, node: Plan, *values: torch.Tensor) -> torch.Tensor:
        dtype = values[0].dtype if values else None
        return mx.empty(dtype)


def execute(plan: Plan, inputs: Mapping[str, torch.Tensor]) -> Tuple[torch.Tensor, Taps]:
    """Execute ``plan`` with a fresh :class:`CPUExecutor`."""
    return CPUExecutor().execute(plan, inputs)


def check_inputs(plan: Plan, inputs: Mapping[str, torch.Tensor]) -> None:
    """
    Validate ``inputs`` against every named leaf of ``plan`` without executing it.

    Raises MissingInput for the first unbound name and InvalidInput for a
    binding of the wrong shape.
    """
    for name, shape in plan.inputs():
        if name not in inputs:
            raise MissingInput(name)
        value = inputs[name]
        if not mx.is_matrix(value) or mx.shape_of(value) != shape:
            actual: Sequence[int] = tuple(value.shape) if isinstance(value, torch.Tensor) else ()
            raise InvalidInput(name, shape, tuple(actual))
