# matplan/activation.py

from __future__ import annotations

from typing import Dict, Type, Union

import torch

from . import matrix as mx
from .plan import Plan


class Activation:
    """
    Element-wise activation expressed as plan construction.

    ``derivative`` is given the activation's *output* plan, not its input.
    Only activations whose derivative can be written in terms of their own
    output fit this contract (identity, ReLU and the logistic curve do; e.g.
    softplus or GELU would not).
    """

    name: str = ""

    def forward(self, matrix: torch.Tensor) -> torch.Tensor:
        """Apply the activation to a concrete matrix."""
        value, _ = self.forward_plan(Plan.constant(matrix)).execute_cpu({})
        return value

    def forward_plan(self, node: Plan) -> Plan:
        raise NotImplementedError("Activation forward_plan requires implementation")

    def derivative(self, output: Plan) -> Plan:
        raise NotImplementedError("Activation derivative requires implementation")

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Linear(Activation):
    name = "linear"

    def forward_plan(self, node: Plan) -> Plan:
        return node

    def derivative(self, output: Plan) -> Plan:
        return Plan.constant(mx.filled(output.rows, output.cols, 1.0))


class Relu(Activation):
    name = "relu"

    def forward_plan(self, node: Plan) -> Plan:
        return node.max(0.0)

    def derivative(self, output: Plan) -> Plan:
        # y > 0 exactly where the input was positive
        return output.sign().max(0.0)


class Sigmoid(Activation):
    """Logistic activation. Not to be confused with the plan op ``matplan.plan.Sigmoid``."""

    name = "sigmoid"

    def forward_plan(self, node: Plan) -> Plan:
        return node.sigmoid()

    def derivative(self, output: Plan) -> Plan:
        # y * (1 - y), written without a constant
        return output - output.hadamard_mul(output)


_ACTIVATIONS: Dict[str, Type[Activation]] = {
    cls.name: cls for cls in (Linear, Relu, Sigmoid)
}


def get_activation(activation: Union[str, Activation]) -> Activation:
    """Resolve an activation instance or one of ``linear``, ``relu``, ``sigmoid``."""
    if isinstance(activation, Activation):
        return activation
    if isinstance(activation, str):
        cls = _ACTIVATIONS.get(activation.lower())
        if cls is not None:
            return cls()
    raise ValueError(f"Unsupported activation {activation!r}")
