"""
Demo: fit ``y = 1.5 x + 5`` with a single bias-free linear layer.

The inputs carry a constant ``1`` row so the intercept is learned as the
second weight. A second run trains a small relu/linear stack on the same
points with a decaying learning rate.
"""

from __future__ import annotations

import logging
import os
import sys

import torch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import matplan
from matplan.optimizer import ExponentialLearningRate


DATA = {
    "slope": 1.5,
    "base": 5.0,
    "count": 10,
}

TRAINING = {
    "steps": 2000,
    "batch_size": 10,
    "log_every": 250,
    "seed": 7,
    "lr": 0.002,
}


def build_line_network() -> matplan.NeuralNetwork:
    return matplan.NeuralNetwork().input(2).add_dense_layer(1, "linear", fill=0.0, dtype=torch.float64)


def build_deep_network() -> matplan.NeuralNetwork:
    torch.manual_seed(TRAINING["seed"])
    return (
        matplan.NeuralNetwork()
        .input(2)
        .add_dense_layer_weighted(torch.rand(4, 2, dtype=torch.float64), "relu")
        .add_dense_layer_weighted(torch.rand(1, 4, dtype=torch.float64) * 0.1, "linear")
    )


def run() -> None:
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    dataset = matplan.line_dataset(DATA["slope"], DATA["base"], DATA["count"], dtype=torch.float64)
    print(dataset.summary())

    train_kwargs = matplan.trainer_kwargs_from_config(TRAINING)

    network = build_line_network()
    history = matplan.train_network(
        network,
        dataset,
        matplan.StochasticGradientDescent(TRAINING["lr"]),
        **train_kwargs,
    )
    weights = network.layers[0].get_weights()
    print(f"line fit: loss {history[0]:.4f} -> {history[-1]:.6f}, weights {weights.flatten().tolist()}")

    deep = build_deep_network()
    schedule = ExponentialLearningRate(TRAINING["lr"] / 4, decay_steps=1000, decay_rate=0.5)
    history = matplan.train_network(
        deep,
        dataset,
        matplan.StochasticGradientDescent(schedule),
        **train_kwargs,
    )
    print(f"relu stack: loss {history[0]:.4f} -> {history[-1]:.6f}")
    print(f"prediction at x=0: {deep.eval([0.0, 1.0])[0]:.4f} (expected {DATA['base']})")

    print("Done.")


if __name__ == "__main__":
    run()
