# matplan/optimizer.py

from __future__ import annotations

import logging
import numbers
import warnings
from typing import Optional, Union

import torch

from . import matrix as mx
from .errors import NumericInstability, ShapeMismatch

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ learning rate
class LearningRate:
    """Learning-rate schedule keyed by the training step index."""

    def rate(self, step: int) -> float:
        raise NotImplementedError("LearningRate.rate requires implementation")


class ConstantLearningRate(LearningRate):
    def __init__(self, rate: float) -> None:
        self._rate = float(rate)

    def rate(self, step: int) -> float:
        return self._rate

    def __repr__(self) -> str:
        return f"ConstantLearningRate({self._rate})"


class ExponentialLearningRate(LearningRate):
    """
    ``initial * decay_rate ** (step / decay_steps)``.
    """

    def __init__(self, initial: float, decay_steps: float, decay_rate: float) -> None:
        if decay_steps <= 0:
            raise ValueError("decay_steps must be > 0")
        self.initial = float(initial)
        self.decay_steps = float(decay_steps)
        self.decay_rate = float(decay_rate)

    def rate(self, step: int) -> float:
        return self.initial * self.decay_rate ** (step / self.decay_steps)

    def __repr__(self) -> str:
        return (
            f"ExponentialLearningRate(initial={self.initial}, "
            f"decay_steps={self.decay_steps}, decay_rate={self.decay_rate})"
        )


def as_learning_rate(value: Union[float, LearningRate]) -> LearningRate:
    if isinstance(value, LearningRate):
        return value
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return ConstantLearningRate(float(value))
    raise TypeError(f"Expected a number or LearningRate, got {type(value).__name__}")


# ---------------------------------------------------------------------- optimizer
class Optimizer:
    def optimize(self, weights: torch.Tensor, gradient: torch.Tensor, step: int) -> torch.Tensor:
        raise NotImplementedError("Optimizer.optimize requires implementation")


class StochasticGradientDescent(Optimizer):
    """
    Plain gradient descent with optional clamping of the updated weights.

    A gradient that turns into NaN after scaling is not applied: the weights
    come back unchanged and a :class:`NumericInstability` warning is issued.
    """

    def __init__(
        self,
        learning_rate: Union[float, LearningRate],
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
    ) -> None:
        self.learning_rate = as_learning_rate(learning_rate)
        self.minimum = minimum
        self.maximum = maximum
        self.skipped_steps = 0

    def set_minimum(self, minimum: float) -> "StochasticGradientDescent":
        self.minimum = float(minimum)
        return self

    def set_maximum(self, maximum: float) -> "StochasticGradientDescent":
        self.maximum = float(maximum)
        return self

    def norm(self) -> "StochasticGradientDescent":
        """Clamp weights into [-1, 1]."""
        self.minimum = -1.0
        self.maximum = 1.0
        return self

    def optimize(self, weights: torch.Tensor, gradient: torch.Tensor, step: int) -> torch.Tensor:
        if weights.shape != gradient.shape:
            raise ShapeMismatch("optimize", mx.shape_of(weights), mx.shape_of(gradient))
        scaled = mx.scale(gradient, self.learning_rate.rate(step))
        if mx.has_nan(scaled):
            self.skipped_steps += 1
            logger.warning("NaN in gradients at step %d, skipping SGD application", step)
            warnings.warn(
                f"NaN in gradients at step {step}; weights left unchanged",
                NumericInstability,
                stacklevel=2,
            )
            return weights
        out = mx.sub(weights, scaled)
        if self.maximum is not None:
            out = mx.minimum(out, self.maximum)
        if self.minimum is not None:
            out = mx.maximum(out, self.minimum)
        return out
