# matplan/__init__.py

from .errors import (
    PlanError,
    ShapeMismatch,
    DuplicateOutput,
    MissingInput,
    InvalidInput,
    InternalShapeViolation,
    NumericInstability,
)
from .plan import Plan, output
from .program import Program
from .executor import CPUExecutor, execute, check_inputs
from .record import record, Trace, EvaluationEvent
# Sigmoid here is the activation strategy; the plan op lives in matplan.plan
from .activation import Activation, Linear, Relu, Sigmoid, get_activation
from .layer import Layer, DenseLayer
from .backprop import plan_backprop, collect_gradients, gradient_name
from .optimizer import (
    LearningRate,
    ConstantLearningRate,
    ExponentialLearningRate,
    Optimizer,
    StochasticGradientDescent,
)
from .network import NeuralNetwork
from .data_helper import MatrixDataset, line_dataset
from .training import Trainer, TrainLoopConfig, train_network, trainer_kwargs_from_config
from .diagnostics import GradientSummary, StatRecord, summarize_gradients
from . import activation
from . import matrix
from . import optimizer

__all__ = [
    "PlanError",
    "ShapeMismatch",
    "DuplicateOutput",
    "MissingInput",
    "InvalidInput",
    "InternalShapeViolation",
    "NumericInstability",
    "Plan",
    "output",
    "Program",
    "CPUExecutor",
    "execute",
    "check_inputs",
    "record",
    "Trace",
    "EvaluationEvent",
    "Activation",
    "Linear",
    "Relu",
    "Sigmoid",
    "get_activation",
    "Layer",
    "DenseLayer",
    "plan_backprop",
    "collect_gradients",
    "gradient_name",
    "LearningRate",
    "ConstantLearningRate",
    "ExponentialLearningRate",
    "Optimizer",
    "StochasticGradientDescent",
    "NeuralNetwork",
    "MatrixDataset",
    "line_dataset",
    "Trainer",
    "TrainLoopConfig",
    "train_network",
    "trainer_kwargs_from_config",
    "GradientSummary",
    "StatRecord",
    "summarize_gradients",
    "activation",
    "matrix",
    "optimizer",
]
