import logging
import os
import sys

import pytest
import torch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import matplan  # noqa: E402
from matplan import (  # noqa: E402
    MatrixDataset,
    NeuralNetwork,
    StochasticGradientDescent,
    Trainer,
    TrainLoopConfig,
    line_dataset,
    train_network,
    trainer_kwargs_from_config,
)


def _line_network():
    return NeuralNetwork().input(2).add_dense_layer(1, "linear", fill=0.0, dtype=torch.float64)


def test_builder_and_eval():
    net = NeuralNetwork().input(2).add_dense_layer(3, "linear").add_dense_layer(1, "linear")
    assert len(net) == 2
    assert net.hidden_layers == 2
    assert net.input_width == 2
    assert net.output_width == 1
    assert [layer.weights_name for layer in net.layers] == ["weights_0", "weights_1"]
    assert net.eval([1.0, 1.0]) == pytest.approx([1.5])
    assert net.plan.shape == (1, 1)


def test_predict_matches_eval():
    torch.manual_seed(2)
    net = (
        NeuralNetwork()
        .input(3)
        .add_dense_layer_weighted(torch.randn(4, 3), "relu")
        .add_dense_layer_weighted(torch.randn(2, 4), "sigmoid")
    )
    batch = torch.randn(3, 5)
    predicted = net.predict(batch)
    assert predicted.shape == (2, 5)
    for column in range(5):
        expected = net.eval(batch[:, column].tolist())
        torch.testing.assert_close(predicted[:, column], torch.tensor(expected))


def test_builder_misuse():
    with pytest.raises(RuntimeError):
        NeuralNetwork().add_dense_layer(2, "linear")
    net = NeuralNetwork().input(2)
    with pytest.raises(RuntimeError):
        net.input(3)
    with pytest.raises(ValueError):
        net.add_dense_layer(0, "linear")
    with pytest.raises(ValueError):
        net.add_dense_layer(2, "softmax")


def test_apply_backprop_updates_weights():
    net = _line_network()
    sgd = StochasticGradientDescent(0.5)
    net.apply_backprop(sgd, [torch.tensor([[2.0, -4.0]], dtype=torch.float64)])
    assert net.trained_steps == 1
    assert torch.equal(net.layers[0].get_weights(), torch.tensor([[-1.0, 2.0]], dtype=torch.float64))
    with pytest.raises(ValueError):
        net.apply_backprop(sgd, [])


def test_line_fit_converges():
    net = _line_network()
    dataset = line_dataset(1.5, 5.0, 10, dtype=torch.float64)
    history = train_network(
        net,
        dataset,
        StochasticGradientDescent(0.002),
        steps=2000,
        batch_size=10,
        log_every=500,
    )
    assert len(history) == 2000
    assert history[-1] < history[0] * 1e-3
    torch.testing.assert_close(
        net.layers[0].get_weights(),
        torch.tensor([[1.5, 5.0]], dtype=torch.float64),
        atol=1e-2,
        rtol=0.0,
    )
    assert net.trained_steps == 2000


def test_trainer_rejects_mismatched_data():
    net = _line_network()
    sgd = StochasticGradientDescent(0.01)
    config = TrainLoopConfig(steps=1, batch_size=4)
    wide = MatrixDataset(inputs=torch.zeros(3, 8), targets=torch.zeros(1, 8))
    with pytest.raises(ValueError):
        Trainer(net, wide, sgd, config)
    two_targets = MatrixDataset(inputs=torch.zeros(2, 8), targets=torch.zeros(2, 8))
    with pytest.raises(ValueError):
        Trainer(net, two_targets, sgd, config)
    tiny = line_dataset(1.0, 0.0, 3, dtype=torch.float64)
    with pytest.raises(ValueError):
        Trainer(net, tiny, sgd, config)


def test_train_loop_config_validation():
    with pytest.raises(ValueError):
        TrainLoopConfig(steps=-1, batch_size=1)
    with pytest.raises(ValueError):
        TrainLoopConfig(steps=1, batch_size=0)
    with pytest.raises(ValueError):
        TrainLoopConfig(steps=1, batch_size=1, log_every=0)


def test_trainer_kwargs_from_config():
    kwargs = trainer_kwargs_from_config({"steps": 10, "batch_size": 2, "seed": 1, "lr": 0.1})
    assert kwargs == {"steps": 10, "batch_size": 2, "seed": 1}
    with pytest.raises(KeyError):
        trainer_kwargs_from_config({"steps": 10})


def test_trainer_logs_progress(caplog):
    net = _line_network()
    dataset = line_dataset(1.5, 5.0, 6, dtype=torch.float64)
    with caplog.at_level(logging.DEBUG, logger="matplan.training"):
        train_network(net, dataset, StochasticGradientDescent(0.001), steps=3, batch_size=3, log_every=2)
    messages = [record.getMessage() for record in caplog.records if record.name == "matplan.training"]
    assert any(message.startswith("[step 2/3] loss=") for message in messages)
    assert any(message.startswith("[step 3/3] loss=") for message in messages)
    assert not any(message.startswith("[step 1/3]") for message in messages)
    assert any("Layer gradients:" in message for message in messages)


def test_trainer_uses_injected_logger(caplog):
    logger = logging.getLogger("tests.trainer")
    net = _line_network()
    dataset = line_dataset(1.5, 5.0, 4, dtype=torch.float64)
    config = TrainLoopConfig(steps=1, batch_size=4, seed=0, shuffle=True)
    with caplog.at_level(logging.INFO, logger="tests.trainer"):
        trainer = Trainer(net, dataset, StochasticGradientDescent(0.001), config, logger=logger)
        history = trainer.run()
    assert len(history) == 1
    assert any(record.name == "tests.trainer" for record in caplog.records)
    assert trainer.plan is trainer.plan


def test_train_step_reports_pre_update_loss():
    net = _line_network()
    dataset = line_dataset(2.0, 0.0, 2, dtype=torch.float64)
    trainer = Trainer(net, dataset, StochasticGradientDescent(0.01), TrainLoopConfig(steps=1, batch_size=2))
    batch = next(dataset.iter_batches(2))
    stats = trainer.train_step(batch)
    # zero weights predict zero everywhere
    assert stats.loss == pytest.approx(float((batch[1] ** 2).mean()))
    assert stats.step == 0
    assert len(stats.gradients) == 1
    assert not torch.equal(net.layers[0].get_weights(), torch.zeros(1, 2, dtype=torch.float64))


def test_package_exports():
    for name in matplan.__all__:
        assert hasattr(matplan, name)
