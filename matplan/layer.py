# matplan/layer.py

from __future__ import annotations

from typing import MutableMapping, Optional, Tuple, Union

import torch

from . import matrix as mx
from .activation import Activation, get_activation
from .errors import ShapeMismatch
from .plan import Plan


def weights_name(layer_id: int) -> str:
    return f"weights_{layer_id}"


class Layer:
    """
    A network layer as seen by the backprop assembler.

    Responsibilities:
      - Report its static input/output shapes (one instance per column).
      - Expose its weights behind a named input placeholder, ``weights_<id>``.
      - Build its forward plan and its hand-written backward rule.
    """

    def input_shape(self) -> Tuple[int, int]:
        raise NotImplementedError()

    def output_shape(self) -> Tuple[int, int]:
        raise NotImplementedError()

    def prepare(self, layer_id: int) -> None:
        raise NotImplementedError()

    def assign_weights(self, output: MutableMapping[str, torch.Tensor]) -> None:
        raise NotImplementedError()

    def set_weights(self, weights: torch.Tensor) -> None:
        raise NotImplementedError()

    def get_weights(self) -> Optional[torch.Tensor]:
        raise NotImplementedError()

    def forward(self, matrix: torch.Tensor) -> torch.Tensor:
        raise NotImplementedError()

    def forward_plan(self, node: Plan) -> Plan:
        raise NotImplementedError()

    def backward_plan(self, prior: Plan, layer_value: Plan, lower_layer_value: Plan) -> Tuple[Plan, Plan]:
        """
        Return ``(downstream_signal, weight_gradient)`` for this layer.

        Args:
          prior: Error signal arriving from the layer above.
          layer_value: This layer's forward output (post-activation).
          lower_layer_value: Output of the layer below, i.e. this layer's input.
        """
        raise NotImplementedError()


class DenseLayer(Layer):
    """
    Fully connected layer computing ``activation(W @ x)``.
    """

    def __init__(self, weights: torch.Tensor, activation: Union[str, Activation]) -> None:
        if not mx.is_matrix(weights):
            raise ValueError("DenseLayer weights must be a 2-D tensor.")
        self._weights = weights.detach().clone()
        self.activation = get_activation(activation)
        self._id: Optional[int] = None
        self._placeholder: Optional[Plan] = None

    def __repr__(self) -> str:
        rows, cols = mx.shape_of(self._weights)
        return f"DenseLayer({cols}->{rows}, {self.activation!r}, id={self._id})"

    @property
    def id(self) -> Optional[int]:
        return self._id

    @property
    def weights_name(self) -> str:
        return weights_name(self._require_id())

    @property
    def placeholder(self) -> Plan:
        if self._placeholder is None:
            raise RuntimeError("DenseLayer.prepare() must be called before building plans.")
        return self._placeholder

    def _require_id(self) -> int:
        if self._id is None:
            raise RuntimeError("DenseLayer.prepare() must be called before use.")
        return self._id

    def input_shape(self) -> Tuple[int, int]:
        return (int(self._weights.shape[1]), 1)

    def output_shape(self) -> Tuple[int, int]:
        return (int(self._weights.shape[0]), 1)

    def prepare(self, layer_id: int) -> None:
        if self._id is not None:
            raise RuntimeError(f"DenseLayer already prepared with id {self._id}.")
        self._id = int(layer_id)
        rows, cols = mx.shape_of(self._weights)
        self._placeholder = Plan.input(rows, cols, weights_name(self._id))

    def assign_weights(self, output: MutableMapping[str, torch.Tensor]) -> None:
        output[self.weights_name] = self._weights.clone()

    def set_weights(self, weights: torch.Tensor) -> None:
        if not mx.is_matrix(weights) or weights.shape != self._weights.shape:
            actual = tuple(weights.shape) if isinstance(weights, torch.Tensor) else ()
            raise ShapeMismatch("set_weights", mx.shape_of(self._weights), actual)
        self._weights = weights.detach().clone()

    def get_weights(self) -> Optional[torch.Tensor]:
        """A copy of the current weights; the layer keeps sole ownership."""
        return self._weights.clone()

    def forward(self, matrix: torch.Tensor) -> torch.Tensor:
        plan = self.activation.forward_plan(Plan.constant(self._weights) @ Plan.constant(matrix))
        value, _ = plan.execute_cpu({})
        return value

    def forward_plan(self, node: Plan) -> Plan:
        return self.activation.forward_plan(self.placeholder @ node)

    def backward_plan(self, prior: Plan, layer_value: Plan, lower_layer_value: Plan) -> Tuple[Plan, Plan]:
        sigma = prior.hadamard_mul(self.activation.derivative(layer_value))
        downstream = self.placeholder.transpose() @ sigma
        gradient = sigma @ lower_layer_value.transpose()
        return downstream, gradient
