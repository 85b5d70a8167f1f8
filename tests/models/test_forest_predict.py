import numpy as np
import pandas as pd
import pytest

from cvp.exceptions import UntrainedModelError
from cvp.models.random_forest.forest.forest import Forest, PredictionResult, predict, predict_frame
from cvp.models.random_forest.tree.node import InternalNode, LeafNode


def stump(threshold: float, low: float, high: float) -> InternalNode:
    return InternalNode(feature="x", threshold=threshold, left=LeafNode(low), right=LeafNode(high))


def test_identical_leaves_collapse_the_interval():
    forest = Forest(trees=tuple(LeafNode(5.0) for _ in range(200)))

    assert predict(forest, {"x": 123.0}) == PredictionResult(mean=5.0, lower_bound=5.0, upper_bound=5.0)


def test_bounds_are_sorted_votes_at_percentile_indices():
    # ten trees voting 9, 8, ..., 0
    forest = Forest(trees=tuple(LeafNode(float(v)) for v in range(9, -1, -1)))

    result = predict(forest, {})

    assert result.mean == pytest.approx(4.5)
    assert result.lower_bound == 1.0  # index floor(10 * 0.1)
    assert result.upper_bound == 9.0  # index floor(10 * 0.9)


def test_percentile_indices_are_clamped():
    forest = Forest(trees=(LeafNode(3.0),))

    result = predict(forest, {}, lower_percentile=0.0, upper_percentile=1.0)

    assert result == PredictionResult(3.0, 3.0, 3.0)


def test_trees_route_rows_independently():
    forest = Forest(trees=(stump(1.0, 0.0, 10.0), stump(5.0, 0.0, 10.0)), feature_names=("x",))

    assert forest.tree_predictions({"x": 3.0}).tolist() == [10.0, 0.0]
    assert predict(forest, {"x": 3.0}).mean == 5.0


def test_mean_lies_between_extreme_votes():
    rng = np.random.default_rng(0)
    forest = Forest(trees=tuple(stump(t, lo, hi) for t, lo, hi in rng.normal(size=(50, 3))))

    for x in rng.normal(size=20):
        votes = forest.tree_predictions({"x": x})
        result = predict(forest, {"x": x})
        assert votes.min() <= result.mean <= votes.max()
        assert result.lower_bound <= result.upper_bound


@pytest.mark.parametrize("forest", [None, Forest(trees=())])
def test_predict_without_trees_raises(forest):
    with pytest.raises(UntrainedModelError):
        predict(forest, {"x": 1.0})


def test_invalid_percentiles_are_rejected():
    with pytest.raises(ValueError):
        Forest(trees=(LeafNode(1.0),), lower_percentile=0.9, upper_percentile=0.1)

    forest = Forest(trees=(LeafNode(1.0),))
    with pytest.raises(ValueError):
        predict(forest, {}, lower_percentile=-0.1)


def test_predict_frame_keeps_index():
    forest = Forest(trees=(stump(1.0, 0.0, 10.0),), feature_names=("x",))
    df = pd.DataFrame({"x": [0.0, 2.0]}, index=[7, 9])

    results = predict_frame(forest, df)

    assert list(results.columns) == ["mean", "lower_bound", "upper_bound"]
    assert results.index.tolist() == [7, 9]
    assert results["mean"].tolist() == [0.0, 10.0]


def test_forest_dict_form_round_trips():
    forest = Forest(trees=(stump(1.0, 0.0, 10.0), LeafNode(2.0)), feature_names=("x",))

    assert Forest.from_dicts(forest.to_dicts(), feature_names=("x",)) == forest
