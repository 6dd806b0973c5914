# matplan/matrix.py

"""
Dense matrix helpers.

A matrix is a 2-D ``torch.Tensor``; its dtype is the scalar type. Every helper
returns fresh storage so values never alias between matrices.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

import torch

from .errors import ShapeMismatch


def is_matrix(value: object) -> bool:
    return isinstance(value, torch.Tensor) and value.dim() == 2


def shape_of(matrix: torch.Tensor) -> Tuple[int, ...]:
    return tuple(int(dim) for dim in matrix.shape)


def filled(rows: int, cols: int, value: float, dtype: Optional[torch.dtype] = None) -> torch.Tensor:
    return torch.full((rows, cols), float(value), dtype=dtype or torch.get_default_dtype())


def empty(dtype: Optional[torch.dtype] = None) -> torch.Tensor:
    """The degenerate 0x0 matrix."""
    return torch.zeros(0, 0, dtype=dtype)


def from_col(values: Iterable[float], dtype: Optional[torch.dtype] = None) -> torch.Tensor:
    """Single-column matrix holding ``values`` top to bottom."""
    data = [float(v) for v in values]
    return torch.tensor(data, dtype=dtype or torch.get_default_dtype()).reshape(len(data), 1)


def col(matrix: torch.Tensor, index: int) -> List[float]:
    return [float(v) for v in matrix[:, index].tolist()]


def scale(matrix: torch.Tensor, scalar: float) -> torch.Tensor:
    return matrix * scalar


def maximum(matrix: torch.Tensor, scalar: float) -> torch.Tensor:
    """Element-wise ``max(x, scalar)``."""
    return torch.clamp(matrix, min=scalar)


def minimum(matrix: torch.Tensor, scalar: float) -> torch.Tensor:
    """Element-wise ``min(x, scalar)``."""
    return torch.clamp(matrix, max=scalar)


def sign(matrix: torch.Tensor) -> torch.Tensor:
    """Sets each component to -1, 0 or 1."""
    return torch.sign(matrix)


def sigmoid(matrix: torch.Tensor) -> torch.Tensor:
    return torch.sigmoid(matrix)


def transpose(matrix: torch.Tensor) -> torch.Tensor:
    return matrix.t().clone()


def _require_same_shape(op: str, left: torch.Tensor, right: torch.Tensor) -> None:
    if left.shape != right.shape:
        raise ShapeMismatch(op, shape_of(left), shape_of(right))


def _aligned(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    # the left operand decides the scalar type of the result
    return right if right.dtype == left.dtype else right.to(left.dtype)


def hadamard_mul(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    _require_same_shape("hadamard_mul", left, right)
    return left * _aligned(left, right)


def add(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    _require_same_shape("add", left, right)
    return left + _aligned(left, right)


def sub(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    _require_same_shape("sub", left, right)
    return left - _aligned(left, right)


def matmul(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    if left.shape[1] != right.shape[0]:
        raise ShapeMismatch(
            "mul",
            shape_of(left),
            shape_of(right),
            f"cannot multiply _x{left.shape[1]} by {right.shape[0]}x_ matrix",
        )
    return left @ _aligned(left, right)


def has_nan(matrix: torch.Tensor) -> bool:
    return bool(torch.isnan(matrix).any().item())
