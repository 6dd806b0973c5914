# matplan/network.py

from __future__ import annotations

from typing import Dict, List, MutableMapping, Optional, Sequence, Union

import torch

from . import matrix as mx
from .activation import Activation
from .backprop import plan_backprop
from .layer import DenseLayer, Layer
from .optimizer import Optimizer
from .plan import Plan

INPUT = "input"


class NeuralNetwork:
    """
    Linear stack of layers with a single-instance forward plan.

    Responsibilities:
      - Assign each layer its stable id (insertion order) at build time.
      - Keep the single-column forward plan used by ``eval``.
      - Hand the layer stack to the backprop assembler and apply optimizer
        updates to the layer weights.
    """

    def __init__(self) -> None:
        self._plan: Optional[Plan] = None
        self._layers: List[Layer] = []
        self._inputs = 0
        self.trained_steps = 0

    # --- Construction APIs ---

    def input(self, count: int) -> "NeuralNetwork":
        if self._plan is not None:
            raise RuntimeError("NeuralNetwork.input() may only be called once.")
        if count < 1:
            raise ValueError("input count must be >= 1")
        self._plan = Plan.input(count, 1, INPUT)
        self._inputs = int(count)
        return self

    def add_dense_layer(
        self,
        count: int,
        activation: Union[str, Activation],
        fill: float = 0.5,
        dtype: Optional[torch.dtype] = None,
    ) -> "NeuralNetwork":
        """
        Append a dense layer of ``count`` units whose weights all start at ``fill``.
        """
        if count < 1:
            raise ValueError("layer size must be >= 1")
        weights = mx.filled(count, self.output_width, fill, dtype=dtype)
        return self.add_dense_layer_weighted(weights, activation)

    def add_dense_layer_weighted(
        self,
        weights: torch.Tensor,
        activation: Union[str, Activation],
    ) -> "NeuralNetwork":
        return self.add_layer(DenseLayer(weights, activation))

    def add_layer(self, layer: Layer) -> "NeuralNetwork":
        if self._plan is None:
            raise RuntimeError("NeuralNetwork.input() must be called before adding layers.")
        layer.prepare(len(self._layers))
        self._plan = layer.forward_plan(self._plan)
        self._layers.append(layer)
        return self

    # --- Introspection ---

    @property
    def layers(self) -> Sequence[Layer]:
        return tuple(self._layers)

    @property
    def hidden_layers(self) -> int:
        return len(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    @property
    def input_width(self) -> int:
        return self._inputs

    @property
    def output_width(self) -> int:
        if self._plan is None:
            raise RuntimeError("NeuralNetwork.input() must be called first.")
        return self._plan.rows

    @property
    def plan(self) -> Plan:
        if self._plan is None:
            raise RuntimeError("NeuralNetwork.input() must be called first.")
        return self._plan

    # --- Evaluation ---

    def fill_plan_weights(self, output: MutableMapping[str, torch.Tensor]) -> None:
        for layer in self._layers:
            layer.assign_weights(output)

    def eval(self, inputs: Sequence[float]) -> List[float]:
        """Run one instance through the network and return its outputs."""
        plan = self.plan
        reference = self._layers[0].get_weights() if self._layers else None
        dtype = reference.dtype if reference is not None else None
        bindings: Dict[str, torch.Tensor] = {INPUT: mx.from_col(inputs, dtype=dtype)}
        self.fill_plan_weights(bindings)
        outputs, _ = plan.execute_cpu(bindings)
        return mx.col(outputs, 0)

    def predict(self, inputs: torch.Tensor) -> torch.Tensor:
        """Run a column-per-instance batch through the layers eagerly."""
        value = inputs
        for layer in self._layers:
            value = layer.forward(value)
        return value

    # --- Training ---

    def plan_backprop(self, batch_size: int) -> Plan:
        return plan_backprop(self._layers, batch_size)

    def apply_backprop(self, optimizer: Optimizer, gradients: Sequence[torch.Tensor]) -> None:
        if len(gradients) != len(self._layers):
            raise ValueError(
                f"Expected {len(self._layers)} gradients, got {len(gradients)}."
            )
        for layer, gradient in zip(self._layers, gradients):
            weights = layer.get_weights()
            if weights is None:
                continue
            layer.set_weights(optimizer.optimize(weights, gradient, self.trained_steps))
        self.trained_steps += 1
