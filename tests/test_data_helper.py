import os
import sys

import pytest
import torch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from matplan import MatrixDataset, line_dataset, summarize_gradients  # noqa: E402


def test_batches_drop_the_remainder():
    data = MatrixDataset(inputs=torch.arange(20.0).reshape(2, 10), targets=torch.arange(10.0).reshape(1, 10))
    assert data.num_examples == 10
    assert data.batches_per_epoch(4) == 2

    batches = list(data.iter_batches(4))
    assert len(batches) == 2
    inputs, targets = batches[1]
    assert inputs.shape == (2, 4)
    assert targets.tolist() == [[4.0, 5.0, 6.0, 7.0]]


def test_shuffled_batches_keep_pairs_aligned():
    data = MatrixDataset(inputs=torch.arange(8.0).reshape(1, 8), targets=torch.arange(8.0).reshape(1, 8) * 10)
    generator = torch.Generator().manual_seed(0)
    seen = []
    for inputs, targets in data.iter_batches(2, shuffle=True, generator=generator):
        assert torch.equal(targets, inputs * 10)
        seen.extend(inputs.flatten().tolist())
    assert sorted(seen) == [float(i) for i in range(8)]


def test_dataset_validation():
    with pytest.raises(ValueError):
        MatrixDataset(inputs=torch.zeros(2, 5), targets=torch.zeros(1, 4))
    with pytest.raises(ValueError):
        MatrixDataset(inputs=torch.zeros(5), targets=torch.zeros(1, 5))
    data = MatrixDataset(inputs=torch.zeros(2, 5), targets=torch.zeros(1, 5))
    with pytest.raises(ValueError):
        data.batches_per_epoch(0)


def test_line_dataset():
    data = line_dataset(1.5, 5.0, 10, dtype=torch.float64)
    assert data.input_width == 2
    assert data.target_width == 1
    assert data.metadata()["dtype"] == "torch.float64"
    assert data.inputs[0, 0].item() == -9.5
    assert torch.equal(data.inputs[1], torch.ones(10, dtype=torch.float64))
    torch.testing.assert_close(data.targets, data.inputs[:1] * 1.5 + 5.0)
    assert "10 examples" in data.summary()


def test_gradient_summary_text():
    summary = summarize_gradients([torch.zeros(2, 2), torch.tensor([[3.0, 4.0]])])
    assert [rec.name for rec in summary.layers] == ["gradient_0", "gradient_1"]
    assert summary.layers[0].zero_frac == 1.0
    assert summary.layers[1].l2 == pytest.approx(5.0)

    text = summary.to_text(top_k=1)
    lines = text.splitlines()
    assert lines[0] == "Layer gradients:"
    assert len(lines) == 2
    assert "gradient_1" in lines[1]
    assert summarize_gradients([]).to_text() == ""
