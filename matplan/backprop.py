# matplan/backprop.py

"""
Compile a linear stack of layers into one plan that yields predictions and
every layer's weight gradient in a single execution.

Bindings the plan expects:
  - ``inputs``: input width x batch size
  - ``targets``: output width x batch size
  - ``weights_<id>`` for every layer (see ``Layer.assign_weights``)

Taps it produces:
  - ``outputs``: the network's predictions
  - ``gradient_<k>``: the weight gradient of the k-th layer, forward order
"""

from __future__ import annotations

import logging
from typing import List, MutableMapping, Sequence

import torch

from .layer import Layer
from .plan import Plan

logger = logging.getLogger(__name__)

INPUTS = "inputs"
TARGETS = "targets"
OUTPUTS = "outputs"


def gradient_name(index: int) -> str:
    return f"gradient_{index}"


def plan_backprop(layers: Sequence[Layer], batch_size: int) -> Plan:
    """
    Build the combined forward/backward plan for ``layers``.

    The initial error signal is ``outputs - targets``, the gradient of a
    squared-error objective up to a constant factor; the optimizer's learning
    rate absorbs that factor. Forward values are shared between the
    ``outputs`` tap and the backward pass, so each is computed once.
    """
    if not layers:
        raise ValueError("plan_backprop requires at least one layer.")
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    input_width = layers[0].input_shape()[0]
    output_width = layers[-1].output_shape()[0]
    inputs = Plan.input(input_width, batch_size, INPUTS)
    targets = Plan.input(output_width, batch_size, TARGETS)

    state = inputs
    layer_values: List[Plan] = [state]
    for layer in layers:
        state = layer.forward_plan(state)
        layer_values.append(state)

    final = layer_values[-1]
    outputs = final.output(OUTPUTS)
    prior = final - targets

    gradients: List[Plan] = []
    for index in range(len(layers) - 1, -1, -1):
        prior, gradient = layers[index].backward_plan(
            prior,
            layer_values[index + 1],
            layer_values[index],
        )
        gradients.append(gradient)
    gradients.reverse()

    tapped = [gradient.output(gradient_name(k)) for k, gradient in enumerate(gradients)]
    plan = Plan.merge_outputs(tapped + [outputs])
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "assembled backprop plan: layers=%d batch_size=%d nodes=%d taps=%s",
            len(layers),
            batch_size,
            len(plan.program()),
            ", ".join(plan.outputs()),
        )
    return plan


def collect_gradients(taps: MutableMapping[str, torch.Tensor], count: int) -> List[torch.Tensor]:
    """
    Pop ``gradient_0`` .. ``gradient_<count-1>`` out of ``taps`` in layer order.
    """
    gradients: List[torch.Tensor] = []
    for index in range(count):
        name = gradient_name(index)
        if name not in taps:
            raise KeyError(f"Execution result missing {name!r}")
        gradients.append(taps.pop(name))
    return gradients
