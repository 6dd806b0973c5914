"""
Lightweight dataset container for column-per-example training data.

Each column of ``inputs`` is one example and the same column of ``targets``
is its expected output, matching the layout backprop plans are built for.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple, Union

import torch

from . import matrix as mx


@dataclass
class MatrixDataset:
    """
    Paired ``[input_width, N]`` inputs and ``[target_width, N]`` targets.
    """

    inputs: torch.Tensor
    targets: torch.Tensor

    def __post_init__(self) -> None:
        if not mx.is_matrix(self.inputs) or not mx.is_matrix(self.targets):
            raise ValueError("MatrixDataset expects 2-D inputs and targets.")
        if self.inputs.shape[1] != self.targets.shape[1]:
            raise ValueError(
                f"inputs and targets disagree on example count: "
                f"{self.inputs.shape[1]} vs {self.targets.shape[1]}"
            )
        self.inputs = self.inputs.contiguous()
        self.targets = self.targets.contiguous()

    @property
    def num_examples(self) -> int:
        return int(self.inputs.shape[1])

    @property
    def input_width(self) -> int:
        return int(self.inputs.shape[0])

    @property
    def target_width(self) -> int:
        return int(self.targets.shape[0])

    def batches_per_epoch(self, batch_size: int) -> int:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        return self.num_examples // batch_size

    def iter_batches(
        self,
        batch_size: int,
        *,
        shuffle: bool = False,
        generator: Optional[torch.Generator] = None,
    ) -> Iterator[Tuple[torch.Tensor, torch.Tensor]]:
        """
        Yield ``(inputs, targets)`` slices of exactly ``batch_size`` columns.

        A trailing remainder smaller than ``batch_size`` is dropped since a
        backprop plan is built for one fixed batch width.
        """
        count = self.batches_per_epoch(batch_size)
        indices = (
            torch.randperm(self.num_examples, generator=generator)
            if shuffle
            else torch.arange(self.num_examples)
        )
        for batch in range(count):
            batch_idx = indices[batch * batch_size : (batch + 1) * batch_size]
            yield self.inputs[:, batch_idx], self.targets[:, batch_idx]

    def metadata(self) -> Dict[str, Union[int, str]]:
        return {
            "num_examples": self.num_examples,
            "input_width": self.input_width,
            "target_width": self.target_width,
            "dtype": str(self.inputs.dtype),
        }

    def summary(self) -> str:
        meta = self.metadata()
        return (
            f"{meta['num_examples']} examples: "
            f"{meta['input_width']} inputs -> {meta['target_width']} targets ({meta['dtype']})"
        )


def line_dataset(
    slope: float,
    base: float,
    count: int,
    dtype: Optional[torch.dtype] = None,
) -> MatrixDataset:
    """
    Points on ``y = slope * x + base`` with inputs ``[x, 1]`` so a bias-free
    linear layer can learn the intercept through the constant row.
    """
    if count < 1:
        raise ValueError("count must be >= 1")
    dtype = dtype or torch.get_default_dtype()
    xs = torch.arange(count, dtype=dtype) - (count - 0.5)
    inputs = torch.stack([xs, torch.ones(count, dtype=dtype)], dim=0)
    targets = (xs * slope + base).reshape(1, count)
    return MatrixDataset(inputs=inputs, targets=targets)
