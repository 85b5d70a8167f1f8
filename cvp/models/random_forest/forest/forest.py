import math
import numpy as np
import pandas as pd

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from cvp.constants import CVP_RF_LOWER_PERCENTILE, CVP_RF_UPPER_PERCENTILE
from cvp.exceptions import UntrainedModelError
from cvp.models.random_forest.tree.node import (
    TreeNode,
    node_from_dict,
    node_to_dict,
    predict_node,
    tree_depth,
)


@dataclass(frozen=True)
class PredictionResult:
    mean: float
    lower_bound: float
    upper_bound: float

    def to_dict(self) -> dict[str, float]:
        return {"mean": self.mean, "lower_bound": self.lower_bound, "upper_bound": self.upper_bound}


@dataclass(frozen=True)
class Forest:
    """
    Immutable ensemble of independently grown regression trees.

    The percentiles are the default bounds of the prediction interval, taken from the per-tree votes.
    """
    trees: tuple[TreeNode, ...]
    feature_names: tuple[str, ...] = ()
    lower_percentile: float = CVP_RF_LOWER_PERCENTILE
    upper_percentile: float = CVP_RF_UPPER_PERCENTILE

    def __post_init__(self):
        object.__setattr__(self, "trees", tuple(self.trees))
        object.__setattr__(self, "feature_names", tuple(self.feature_names))
        _check_percentiles(self.lower_percentile, self.upper_percentile)

    def __len__(self) -> int:
        return len(self.trees)

    @property
    def n_estimators(self) -> int:
        return len(self.trees)

    @property
    def max_depth(self) -> int:
        return max((tree_depth(tree) for tree in self.trees), default=0)

    def tree_predictions(self, row: Mapping[str, Any]) -> np.ndarray:
        return np.array([predict_node(tree, row) for tree in self.trees], dtype=float)

    def to_dicts(self) -> list[dict[str, Any]]:
        return [node_to_dict(tree) for tree in self.trees]

    @classmethod
    def from_dicts(cls,
                   trees: Iterable[Mapping[str, Any]],
                   feature_names: Sequence[str] = (),
                   lower_percentile: float = CVP_RF_LOWER_PERCENTILE,
                   upper_percentile: float = CVP_RF_UPPER_PERCENTILE) -> "Forest":
        return cls(
            trees=tuple(node_from_dict(tree) for tree in trees),
            feature_names=tuple(feature_names),
            lower_percentile=lower_percentile,
            upper_percentile=upper_percentile,
        )


def _check_percentiles(lower: float, upper: float) -> None:
    if not (0.0 <= lower <= 1.0 and 0.0 <= upper <= 1.0):
        raise ValueError("percentiles must be between 0 and 1")
    if lower > upper:
        raise ValueError(f"lower_percentile ({lower}) cannot exceed upper_percentile ({upper})")


def _quantile_index(n: int, percentile: float) -> int:
    return min(max(math.floor(n * percentile), 0), n - 1)


def predict(forest: Optional[Forest],
            row: Mapping[str, Any],
            lower_percentile: Optional[float] = None,
            upper_percentile: Optional[float] = None) -> PredictionResult:
    """
    Evaluates every tree of the forest on `row` and aggregates the votes.

    The mean is the average vote. The bounds are the sorted votes at index floor(n * percentile),
    clamped into the valid range. They describe the spread of the ensemble and are not a calibrated
    prediction interval.

    :param Forest forest: the trained forest
    :param Mapping row: feature name to numeric value
    :param float lower_percentile: overrides the forest's lower percentile
    :param float upper_percentile: overrides the forest's upper percentile
    :return PredictionResult: mean and bounds for the row
    :raises UntrainedModelError: if there is no forest or it has no trees
    """
    if forest is None or len(forest.trees) == 0:
        raise UntrainedModelError("The forest must be trained before prediction")

    lower_percentile = forest.lower_percentile if lower_percentile is None else lower_percentile
    upper_percentile = forest.upper_percentile if upper_percentile is None else upper_percentile
    _check_percentiles(lower_percentile, upper_percentile)

    votes = np.sort(forest.tree_predictions(row))
    n = votes.shape[0]

    return PredictionResult(
        mean=float(np.mean(votes)),
        lower_bound=float(votes[_quantile_index(n, lower_percentile)]),
        upper_bound=float(votes[_quantile_index(n, upper_percentile)]),
    )


def predict_frame(forest: Optional[Forest],
                  df: pd.DataFrame,
                  lower_percentile: Optional[float] = None,
                  upper_percentile: Optional[float] = None) -> pd.DataFrame:
    """
    Row by row prediction over a DataFrame, returning `mean`, `lower_bound` and `upper_bound` columns
    aligned on the input index.
    """
    if forest is None or len(forest.trees) == 0:
        raise UntrainedModelError("The forest must be trained before prediction")

    results = [
        predict(forest, row, lower_percentile, upper_percentile).to_dict()
        for row in df.to_dict(orient="records")
    ]
    return pd.DataFrame(results, index=df.index, columns=["mean", "lower_bound", "upper_bound"])
