import numpy as np
import pytest

from cvp.exceptions import EmptyDatasetError, UntrainedModelError
from cvp.models.random_forest.tree.node import InternalNode, LeafNode, iter_nodes, tree_depth
from cvp.models.random_forest.tree.tree import RegressionTree, resolve_max_features
from cvp.models.random_forest.tree.variance import variance, variance_reduction


def make_tree(feature_names=("f",), **kwargs) -> RegressionTree:
    kwargs.setdefault("rng", np.random.default_rng(0))
    return RegressionTree(feature_names=feature_names, **kwargs)


def test_variance_is_population_variance():
    assert variance(np.array([10.0, 20.0])) == pytest.approx(25.0)
    assert variance(np.array([])) == 0.0


def test_variance_reduction_of_a_perfect_split():
    parent = np.array([1.0, 1.0, 5.0, 5.0])
    assert variance_reduction(parent, parent[:2], parent[2:]) == pytest.approx(4.0)


def test_three_point_split_reaches_single_value_leaves():
    x = np.array([[1.0], [2.0], [3.0]])
    y = np.array([10.0, 20.0, 30.0])

    tree = make_tree(min_samples_split=2, max_depth=15)
    root = tree.fit(x, y)

    assert isinstance(root, InternalNode)
    assert root.feature == "f"
    assert [tree.predict({"f": v}) for v in (1, 2, 3)] == [10.0, 20.0, 30.0]
    assert sum(node.is_leaf for node in iter_nodes(root)) == 3


def test_max_depth_limits_growth():
    x = np.arange(50, dtype=float).reshape(-1, 1)
    y = np.arange(50, dtype=float) ** 2

    root = make_tree(min_samples_split=2, max_depth=3).fit(x, y)

    assert tree_depth(root) <= 3


def test_max_depth_zero_gives_mean_leaf():
    x = np.array([[1.0], [2.0], [3.0], [4.0], [5.0]])
    y = np.array([1.0, 2.0, 3.0, 4.0, 5.0])

    root = make_tree(max_depth=0).fit(x, y)

    assert root == LeafNode(3.0)


def test_small_nodes_are_not_split():
    x = np.array([[1.0], [2.0], [3.0], [4.0]])
    y = np.array([1.0, 2.0, 3.0, 10.0])

    root = make_tree(min_samples_split=5).fit(x, y)

    assert root == LeafNode(4.0)


def test_constant_target_gives_leaf():
    x = np.arange(10, dtype=float).reshape(-1, 1)
    y = np.full(10, 7.0)

    assert make_tree().fit(x, y) == LeafNode(7.0)


def test_no_valid_partition_gives_leaf():
    # every candidate threshold leaves the right side empty
    x = np.ones((6, 1))
    y = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])

    assert make_tree(min_samples_split=2).fit(x, y) == LeafNode(3.5)


def test_internal_and_leaf_nodes_are_well_formed():
    rng = np.random.default_rng(3)
    x = rng.normal(size=(80, 3))
    y = x[:, 0] * 3 + rng.normal(size=80)

    root = make_tree(feature_names=("a", "b", "c"), min_samples_split=2).fit(x, y)

    for node in iter_nodes(root):
        if isinstance(node, LeafNode):
            assert np.isfinite(node.value)
            assert not hasattr(node, "threshold")
        else:
            assert node.feature in ("a", "b", "c")
            assert node.left is not None and node.right is not None
            assert not hasattr(node, "value")


def test_same_seed_gives_same_tree():
    rng = np.random.default_rng(5)
    x = rng.integers(0, 100, size=(60, 5)).astype(float)
    y = rng.normal(size=60)
    names = ("a", "b", "c", "d", "e")

    first = make_tree(feature_names=names, rng=np.random.default_rng(11)).fit(x, y)
    second = make_tree(feature_names=names, rng=np.random.default_rng(11)).fit(x, y)

    assert first == second


def test_threshold_candidates_are_capped():
    tree = make_tree(max_thresholds=4)
    column = np.arange(100, dtype=float)

    candidates = tree._candidate_thresholds(column)

    assert len(candidates) == 4
    assert len(set(candidates.tolist())) == 4
    assert set(candidates.tolist()) <= set(column.tolist())


@pytest.mark.parametrize(
    "max_features, n_features, expected",
    [(0.7, 5, 4), (0.7, 1, 1), (1.0, 3, 3), (2, 5, 2), (10, 3, 3)],
)
def test_resolve_max_features(max_features, n_features, expected):
    assert resolve_max_features(max_features, n_features) == expected


def test_resolve_max_features_rejects_invalid_fraction():
    with pytest.raises(ValueError):
        resolve_max_features(1.5, 4)


def test_fit_rejects_empty_data():
    with pytest.raises(EmptyDatasetError):
        make_tree().fit(np.empty((0, 1)), np.empty(0))


def test_predict_before_fit_raises():
    with pytest.raises(UntrainedModelError):
        make_tree().predict({"f": 1.0})
