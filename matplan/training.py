from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import torch

from .backprop import INPUTS, OUTPUTS, TARGETS, collect_gradients
from .data_helper import MatrixDataset
from .diagnostics import summarize_gradients
from .executor import CPUExecutor, check_inputs
from .network import NeuralNetwork
from .optimizer import Optimizer
from .plan import Plan

Batch = Tuple[torch.Tensor, torch.Tensor]


@dataclass(frozen=True)
class TrainLoopConfig:
    steps: int
    batch_size: int
    log_every: int = 100
    shuffle: bool = False
    seed: Optional[int] = None
    grad_summary_top_k: Optional[int] = 5

    def __post_init__(self) -> None:
        if self.steps < 0:
            raise ValueError("steps must be >= 0")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.log_every < 1:
            raise ValueError("log_every must be >= 1")


@dataclass
class StepStats:
    step: int
    loss: float
    outputs: torch.Tensor
    gradients: List[torch.Tensor]


class Trainer:
    """
    Runs training steps for a NeuralNetwork.

    Each step is atomic: the current weights are bound into the input
    mapping, the backprop plan is executed once, and the optimizer updates
    every layer from the captured gradients before the next step starts.
    """

    def __init__(
        self,
        network: NeuralNetwork,
        dataset: MatrixDataset,
        optimizer: Optimizer,
        config: TrainLoopConfig,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if dataset.input_width != network.input_width:
            raise ValueError(
                f"Dataset input width {dataset.input_width} does not match network input {network.input_width}."
            )
        if dataset.target_width != network.output_width:
            raise ValueError(
                f"Dataset target width {dataset.target_width} does not match network output {network.output_width}."
            )
        if dataset.batches_per_epoch(config.batch_size) == 0:
            raise ValueError(
                f"Dataset has {dataset.num_examples} examples, fewer than batch_size={config.batch_size}."
            )
        self.network = network
        self.dataset = dataset
        self.optimizer = optimizer
        self.config = config
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.executor = CPUExecutor()
        self._plan: Optional[Plan] = None
        self._generator: Optional[torch.Generator] = None
        self._inputs_checked = False

    @property
    def plan(self) -> Plan:
        if self._plan is None:
            self._plan = self.network.plan_backprop(self.config.batch_size)
        return self._plan

    def run(self) -> List[float]:
        if self.config.seed is not None:
            torch.manual_seed(self.config.seed)
            self._generator = torch.Generator().manual_seed(self.config.seed)
        history: List[float] = []
        batches = self._iter_forever()
        for step in range(1, self.config.steps + 1):
            stats = self.train_step(next(batches))
            history.append(stats.loss)
            if step % self.config.log_every == 0 or step == self.config.steps:
                self.logger.info(
                    "[step %d/%d] loss=%.6f", step, self.config.steps, stats.loss
                )
                self._log_gradient_summary(stats.gradients)
        return history

    def train_step(self, batch: Batch) -> StepStats:
        inputs, targets = batch
        bindings: Dict[str, torch.Tensor] = {INPUTS: inputs, TARGETS: targets}
        self.network.fill_plan_weights(bindings)
        if not self._inputs_checked:
            check_inputs(self.plan, bindings)
            self._inputs_checked = True

        _, taps = self.executor.execute(self.plan, bindings)
        gradients = collect_gradients(taps, self.network.hidden_layers)
        outputs = taps[OUTPUTS]
        step = self.network.trained_steps
        self.network.apply_backprop(self.optimizer, gradients)

        loss = float(torch.mean((outputs - targets) ** 2).item())
        return StepStats(step=step, loss=loss, outputs=outputs, gradients=gradients)

    def _iter_forever(self) -> Iterator[Batch]:
        while True:
            yield from self.dataset.iter_batches(
                self.config.batch_size,
                shuffle=self.config.shuffle,
                generator=self._generator,
            )

    def _log_gradient_summary(self, gradients: List[torch.Tensor]) -> None:
        text = summarize_gradients(gradients).to_text(top_k=self.config.grad_summary_top_k)
        for line in text.splitlines():
            self.logger.debug("    %s", line)


def train_network(
    network: NeuralNetwork,
    dataset: MatrixDataset,
    optimizer: Optimizer,
    *,
    steps: int,
    batch_size: int,
    log_every: int = 100,
    shuffle: bool = False,
    seed: Optional[int] = None,
    grad_summary_top_k: Optional[int] = 5,
    logger: Optional[logging.Logger] = None,
) -> List[float]:
    """
    Train ``network`` on ``dataset`` for ``steps`` optimizer updates.

    Returns the mean squared error of every step's predictions.
    """
    config = TrainLoopConfig(
        steps=steps,
        batch_size=batch_size,
        log_every=log_every,
        shuffle=shuffle,
        seed=seed,
        grad_summary_top_k=grad_summary_top_k,
    )
    trainer = Trainer(network, dataset, optimizer, config, logger=logger)
    return trainer.run()


def trainer_kwargs_from_config(cfg: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Extract the standard train_network kwargs from a plain config dict.
    """
    required = ("steps", "batch_size")
    missing = [key for key in required if key not in cfg]
    if missing:
        raise KeyError(f"Trainer config missing required keys: {', '.join(missing)}")
    train_kwargs = {key: cfg[key] for key in required}
    optional = ("log_every", "shuffle", "seed", "grad_summary_top_k")
    for key in optional:
        if key in cfg:
            train_kwargs[key] = cfg[key]
    return train_kwargs
