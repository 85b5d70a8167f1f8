import numpy as np
import pytest

from cvp.exceptions import EmptyDatasetError
from cvp.models.random_forest.sampling.bagging import BootstrapSampler, bootstrap_sample


@pytest.mark.parametrize("n_samples", [1, 2, 7, 100])
def test_bootstrap_keeps_size_and_draws_from_input(n_samples):
    rng = np.random.default_rng(n_samples)
    data = np.arange(n_samples * 2, dtype=float).reshape(n_samples, 2)
    labels = np.arange(n_samples, dtype=float) * 10

    x_bag, y_bag = BootstrapSampler(data, labels, rng=rng).sample()

    assert x_bag.shape == data.shape
    assert y_bag.shape == labels.shape
    source_rows = {tuple(row) for row in data}
    assert all(tuple(row) in source_rows for row in x_bag)
    # rows and labels stay paired
    assert np.array_equal(y_bag, x_bag[:, 0] * 5)


def test_bootstrap_draws_with_replacement():
    indices = bootstrap_sample(1000, np.random.default_rng(0))

    assert indices.min() >= 0 and indices.max() < 1000
    assert len(np.unique(indices)) < 1000


def test_bootstrap_is_reproducible_for_a_seed():
    first = bootstrap_sample(50, np.random.default_rng(42))
    second = bootstrap_sample(50, np.random.default_rng(42))

    assert np.array_equal(first, second)


def test_bootstrap_rejects_empty_dataset():
    with pytest.raises(EmptyDatasetError):
        BootstrapSampler(np.empty((0, 3)), np.empty(0))
