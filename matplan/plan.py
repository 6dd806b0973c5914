# matplan/plan.py

"""
Deferred matrix computations.

A :class:`Plan` describes how to compute a matrix without computing it. Plans
are immutable and freely shared: reusing the same plan object as the child of
several parents makes it one node, which the executor evaluates once per call.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Iterable, Iterator, Mapping, Optional, Set, Tuple

import torch

from . import matrix as mx
from .errors import DuplicateOutput, ShapeMismatch

if TYPE_CHECKING:
    from .program import Program

Shape = Tuple[int, int]


# --------------------------------------------------------------------------- ops
@dataclass(frozen=True, eq=False)
class Input:
    name: str
    kind: ClassVar[str] = "input"

    def children(self) -> Tuple["Plan", ...]:
        return ()


@dataclass(frozen=True, eq=False)
class Output:
    name: str
    child: "Plan"
    kind: ClassVar[str] = "output"

    def children(self) -> Tuple["Plan", ...]:
        return (self.child,)


@dataclass(frozen=True, eq=False)
class Constant:
    matrix: torch.Tensor
    kind: ClassVar[str] = "constant"

    def children(self) -> Tuple["Plan", ...]:
        return ()


@dataclass(frozen=True, eq=False)
class Scale:
    child: "Plan"
    scalar: float
    kind: ClassVar[str] = "scale"

    def children(self) -> Tuple["Plan", ...]:
        return (self.child,)


@dataclass(frozen=True, eq=False)
class Max:
    child: "Plan"
    scalar: float
    kind: ClassVar[str] = "max"

    def children(self) -> Tuple["Plan", ...]:
        return (self.child,)


@dataclass(frozen=True, eq=False)
class _Unary:
    child: "Plan"

    def children(self) -> Tuple["Plan", ...]:
        return (self.child,)


class Neg(_Unary):
    kind: ClassVar[str] = "neg"


class Transpose(_Unary):
    kind: ClassVar[str] = "transpose"


class Sign(_Unary):
    kind: ClassVar[str] = "sign"


class Sigmoid(_Unary):
    """Element-wise logistic op. The activation strategy is ``matplan.activation.Sigmoid``."""

    kind: ClassVar[str] = "sigmoid"


@dataclass(frozen=True, eq=False)
class _Binary:
    left: "Plan"
    right: "Plan"

    def children(self) -> Tuple["Plan", ...]:
        return (self.left, self.right)


class Mul(_Binary):
    kind: ClassVar[str] = "mul"


class HadamardMul(_Binary):
    kind: ClassVar[str] = "hadamard_mul"


class Add(_Binary):
    kind: ClassVar[str] = "add"


class Sub(_Binary):
    kind: ClassVar[str] = "sub"


@dataclass(frozen=True, eq=False)
class Combine:
    nodes: Tuple["Plan", ...]
    kind: ClassVar[str] = "combine"

    def children(self) -> Tuple["Plan", ...]:
        return self.nodes


_EMPTY_TAPS: Mapping[str, "Plan"] = {}


def _merge_taps(maps: Iterable[Mapping[str, "Plan"]]) -> Mapping[str, "Plan"]:
    merged: Optional[Dict[str, Plan]] = None
    first: Mapping[str, Plan] = _EMPTY_TAPS
    for taps in maps:
        if not taps or taps is first:
            continue
        if not first:
            first = taps
            continue
        if merged is None:
            merged = dict(first)
        for name, node in taps.items():
            existing = merged.get(name)
            if existing is not None and existing is not node:
                raise DuplicateOutput(name)
            merged[name] = node
    return merged if merged is not None else first


# -------------------------------------------------------------------------- plan
class Plan:
    """
    Immutable description of a matrix-valued computation.

    Shapes are resolved when the plan is built; any incompatibility raises
    :class:`ShapeMismatch` right away, never during execution.
    """

    __slots__ = ("_rows", "_cols", "_op", "_taps", "_program")

    def __init__(self, rows: int, cols: int, op: Any) -> None:
        self._rows = int(rows)
        self._cols = int(cols)
        self._op = op
        self._program: Optional["Program"] = None
        taps = _merge_taps(child._taps for child in op.children())
        if isinstance(op, Output):
            if op.name in taps:
                raise DuplicateOutput(op.name)
            taps = dict(taps)
            taps[op.name] = self
        self._taps = taps

    # ----------------------------------------------------------------- leaves
    @classmethod
    def input(cls, rows: int, cols: int, name: str) -> "Plan":
        """Leaf read from the input mapping under ``name`` at execution time."""
        if not isinstance(name, str) or not name:
            raise ValueError("input name must be a non-empty string")
        if rows < 0 or cols < 0:
            raise ValueError(f"input {name!r} has negative dimensions {rows}x{cols}")
        return cls(rows, cols, Input(name))

    @classmethod
    def constant(cls, matrix: torch.Tensor) -> "Plan":
        if not mx.is_matrix(matrix):
            raise TypeError("constant plans require a 2-D torch.Tensor")
        value = matrix.detach().clone()
        return cls(value.shape[0], value.shape[1], Constant(value))

    @classmethod
    def merge_outputs(cls, nodes: Iterable["Plan"]) -> "Plan":
        """
        Bundle plans under one root so all of their taps are reachable from a
        single execution. The root's own value is an empty 0x0 matrix.
        """
        inner = tuple(nodes)
        for node in inner:
            if not isinstance(node, Plan):
                raise TypeError(f"merge_outputs expects plans, got {type(node).__name__}")
        return cls(0, 0, Combine(inner))

    # ------------------------------------------------------------- properties
    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def shape(self) -> Shape:
        return (self._rows, self._cols)

    @property
    def op(self) -> Any:
        return self._op

    @property
    def kind(self) -> str:
        return self._op.kind

    def children(self) -> Tuple["Plan", ...]:
        return self._op.children()

    def __repr__(self) -> str:
        label = self.kind
        if isinstance(self._op, (Input, Output)):
            label = f"{label} {self._op.name!r}"
        return f"Plan({label}, {self._rows}x{self._cols})"

    # ------------------------------------------------------------ combinators
    def output(self, name: str) -> "Plan":
        """Tap this plan: its value is captured under ``name`` during execution."""
        if not isinstance(name, str) or not name:
            raise ValueError("output name must be a non-empty string")
        return Plan(self._rows, self._cols, Output(name, self))

    def scale(self, scalar: float) -> "Plan":
        return Plan(self._rows, self._cols, Scale(self, float(scalar)))

    def max(self, scalar: float) -> "Plan":
        return Plan(self._rows, self._cols, Max(self, float(scalar)))

    def neg(self) -> "Plan":
        return Plan(self._rows, self._cols, Neg(self))

    def transpose(self) -> "Plan":
        return Plan(self._cols, self._rows, Transpose(self))

    @property
    def T(self) -> "Plan":
        return self.transpose()

    def sign(self) -> "Plan":
        return Plan(self._rows, self._cols, Sign(self))

    def sigmoid(self) -> "Plan":
        return Plan(self._rows, self._cols, Sigmoid(self))

    def mul(self, other: "Plan") -> "Plan":
        """Matrix product ``self @ other``."""
        _require_plan("mul", other)
        if self._cols != other._rows:
            raise ShapeMismatch(
                "mul",
                self.shape,
                other.shape,
                f"cannot multiply _x{self._cols} by {other._rows}x_ matrix",
            )
        return Plan(self._rows, other._cols, Mul(self, other))

    def hadamard_mul(self, other: "Plan") -> "Plan":
        self._require_same_shape("hadamard_mul", other)
        return Plan(self._rows, self._cols, HadamardMul(self, other))

    def add(self, other: "Plan") -> "Plan":
        self._require_same_shape("add", other)
        return Plan(self._rows, self._cols, Add(self, other))

    def sub(self, other: "Plan") -> "Plan":
        self._require_same_shape("sub", other)
        return Plan(self._rows, self._cols, Sub(self, other))

    def _require_same_shape(self, op: str, other: "Plan") -> None:
        _require_plan(op, other)
        if self.shape != other.shape:
            raise ShapeMismatch(op, self.shape, other.shape)

    # -------------------------------------------------------------- operators
    def __matmul__(self, other: Any) -> "Plan":
        if not isinstance(other, Plan):
            return NotImplemented
        return self.mul(other)

    def __mul__(self, other: Any) -> "Plan":
        if isinstance(other, Plan):
            return self.hadamard_mul(other)
        if isinstance(other, numbers.Real) and not isinstance(other, bool):
            return self.scale(other)
        return NotImplemented

    def __rmul__(self, other: Any) -> "Plan":
        if isinstance(other, numbers.Real) and not isinstance(other, bool):
            return self.scale(other)
        return NotImplemented

    def __add__(self, other: Any) -> "Plan":
        if not isinstance(other, Plan):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other: Any) -> "Plan":
        if not isinstance(other, Plan):
            return NotImplemented
        return self.sub(other)

    def __neg__(self) -> "Plan":
        return self.neg()

    # ---------------------------------------------------------- introspection
    def inputs(self) -> Iterator[Tuple[str, Shape]]:
        """
        Lazily yield ``(name, (rows, cols))`` for every distinct named leaf
        reachable from this plan, in depth-first, left-to-right order.
        """
        seen_nodes: Set[int] = set()
        seen_inputs: Set[Tuple[str, Shape]] = set()
        stack = [self]
        while stack:
            node = stack.pop()
            if id(node) in seen_nodes:
                continue
            seen_nodes.add(id(node))
            if isinstance(node._op, Input):
                key = (node._op.name, node.shape)
                if key not in seen_inputs:
                    seen_inputs.add(key)
                    yield key
                continue
            stack.extend(reversed(node.children()))

    def outputs(self) -> Tuple[str, ...]:
        """Names of every tap reachable from this plan."""
        return tuple(self._taps)

    def program(self) -> "Program":
        """The arena form of this plan, built on first use."""
        if self._program is None:
            from .program import Program

            self._program = Program.from_plan(self)
        return self._program

    def execute_cpu(
        self,
        inputs: Mapping[str, torch.Tensor],
    ) -> Tuple[torch.Tensor, Dict[str, torch.Tensor]]:
        from .executor import CPUExecutor

        return CPUExecutor().execute(self, inputs)


def _require_plan(op: str, other: Any) -> None:
    if not isinstance(other, Plan):
        raise TypeError(f"{op} expects a Plan operand, got {type(other).__name__}")


def output(node: Plan, name: str) -> Plan:
    """Functional form of :meth:`Plan.output`."""
    _require_plan("output", node)
    return node.output(name)
