# matplan/errors.py

from __future__ import annotations

from typing import Optional, Tuple

Shape = Tuple[int, ...]


class PlanError(Exception):
    """Base class for fatal errors raised while building or executing a plan."""


class ShapeMismatch(PlanError, ValueError):
    """Operands of a plan operation have incompatible shapes."""

    def __init__(self, op: str, left: Shape, right: Optional[Shape] = None, detail: str = "") -> None:
        self.op = op
        self.left = tuple(left)
        self.right = tuple(right) if right is not None else None
        if self.right is None:
            message = f"{op}: incompatible shape {self.left}"
        else:
            message = f"{op}: incompatible shapes {self.left} and {self.right}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class DuplicateOutput(PlanError, ValueError):
    """Two distinct taps with the same name would be reachable from one plan."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"output name {name!r} is already used by another tap in this plan")


class MissingInput(PlanError, LookupError):
    """A named input leaf has no binding in the supplied mapping."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"missing input for {name!r}")


class InvalidInput(PlanError, ValueError):
    """A bound input is not a 2-D matrix of the declared shape."""

    def __init__(self, name: str, expected: Shape, actual: Shape) -> None:
        self.name = name
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(
            f"input {name!r} declared with shape {self.expected} but bound to a matrix of shape {self.actual}"
        )


class InternalShapeViolation(PlanError, RuntimeError):
    """A computed value disagrees with the shape its node declared."""

    def __init__(self, kind: str, declared: Shape, computed: Shape) -> None:
        self.kind = kind
        self.declared = tuple(declared)
        self.computed = tuple(computed)
        super().__init__(
            f"{kind} node declared shape {self.declared} but computed {self.computed}"
        )


class NumericInstability(RuntimeWarning):
    """An optimizer update was skipped because the scaled gradient contained NaN."""
