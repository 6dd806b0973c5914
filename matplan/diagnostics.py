from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import torch

from .backprop import gradient_name


@dataclass
class StatRecord:
    name: str
    l2: float
    max_abs: float
    mean_abs: float
    zero_frac: float

    @classmethod
    def from_tensor(cls, name: str, tensor: torch.Tensor) -> "StatRecord":
        data = tensor.detach()
        if data.numel() == 0:
            return cls(name=name, l2=0.0, max_abs=0.0, mean_abs=0.0, zero_frac=0.0)
        abs_val = data.abs()
        zeros = int((abs_val <= 1e-9).sum().item())
        return cls(
            name=name,
            l2=float(data.norm().item()),
            max_abs=float(abs_val.max().item()),
            mean_abs=float(abs_val.mean().item()),
            zero_frac=zeros / data.numel(),
        )


@dataclass
class GradientSummary:
    layers: List[StatRecord]

    def to_text(self, top_k: Optional[int] = None) -> str:
        if not self.layers:
            return ""
        rows = sorted(self.layers, key=lambda rec: -rec.l2)
        limit = rows if top_k is None else rows[:top_k]
        lines = ["Layer gradients:"]
        for rec in limit:
            lines.append(
                f"  {rec.name:<16} |l2|={rec.l2:.4e} "
                f"|max|={rec.max_abs:.4e} mean|g|={rec.mean_abs:.4e} "
                f"zero%={rec.zero_frac * 100:5.2f}"
            )
        return "\n".join(lines)


def summarize_gradients(gradients: Sequence[torch.Tensor]) -> GradientSummary:
    """One StatRecord per layer gradient, named like its tap."""
    return GradientSummary(
        layers=[StatRecord.from_tensor(gradient_name(k), grad) for k, grad in enumerate(gradients)]
    )
