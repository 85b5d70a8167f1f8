import math
import numpy as np

from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from cvp.constants import (
    CVP_RF_MAX_DEPTH,
    CVP_RF_MAX_FEATURES,
    CVP_RF_MAX_THRESHOLDS,
    CVP_RF_MIN_SAMPLES_SPLIT,
)
from cvp.exceptions import EmptyDatasetError, UntrainedModelError
from .node import InternalNode, LeafNode, TreeNode, predict_node
from .variance import variance, variance_reduction


def resolve_max_features(max_features: Union[int, float], n_features: int) -> int:
    """
    Number of candidate features drawn at each split.

    A float is a fraction of the feature list, rounded up; an int is an absolute count.
    The result is clamped to [1, n_features].
    """
    if isinstance(max_features, bool):
        raise TypeError("max_features must be an int or a float")
    if isinstance(max_features, (int, np.integer)):
        k = int(max_features)
    elif isinstance(max_features, (float, np.floating)):
        if not (0.0 < max_features <= 1.0):
            raise ValueError("max_features as a float must be in (0, 1]")
        k = math.ceil(n_features * max_features)
    else:
        raise TypeError(f"max_features type unsupported: {type(max_features)}")
    return max(1, min(k, n_features))


class RegressionTree:
    """
    Regression tree grown by recursive binary splits that maximize the variance reduction of the target.

    Designed as the base estimator of the random forest: at every node only a random subset of the
    features is considered, and when a feature has many distinct values only a random subset of them
    is tried as thresholds. All randomness comes from the generator passed at construction.
    """
    def __init__(self,
                 feature_names: Sequence[str],
                 max_depth: int = CVP_RF_MAX_DEPTH,
                 min_samples_split: int = CVP_RF_MIN_SAMPLES_SPLIT,
                 max_features: Union[int, float] = CVP_RF_MAX_FEATURES,
                 max_thresholds: int = CVP_RF_MAX_THRESHOLDS,
                 rng: Optional[np.random.Generator] = None):
        assert len(feature_names) > 0, "At least one feature is required"
        assert max_depth >= 0, "max_depth must be non-negative"
        assert min_samples_split >= 1, "min_samples_split must be at least 1"
        assert max_thresholds >= 1, "max_thresholds must be at least 1"

        self.root: Optional[TreeNode] = None
        self.is_fitted_ = False

        self.feature_names = tuple(feature_names)
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.max_features = max_features
        self.max_thresholds = max_thresholds
        self.n_candidate_features = resolve_max_features(max_features, len(self.feature_names))

        self.rng = rng if rng is not None else np.random.default_rng()

    def fit(self, x: np.ndarray, y: np.ndarray) -> TreeNode:
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float).ravel()

        assert x.ndim == 2, "Training data must be of shape (n_samples, n_features)"
        assert x.shape[0] == y.shape[0], "Number of samples in training data and targets must be the same"
        assert x.shape[1] == len(self.feature_names), "Number of columns must match the number of feature names"
        if y.shape[0] == 0:
            raise EmptyDatasetError("Cannot grow a tree from an empty dataset")

        self.root = self.build(x, y, depth=0)
        self.is_fitted_ = True
        return self.root

    def build(self, x: np.ndarray, y: np.ndarray, depth: int = 0) -> TreeNode:
        """
        Recursively partitions (x, y) into a regression tree.

        A node becomes a leaf holding the mean target when the maximum depth is reached, when it holds fewer
        than `min_samples_split` samples, when all of its targets are equal or when no candidate split leaves
        both sides non-empty.
        """
        mean_value = float(np.mean(y))

        if depth >= self.max_depth or y.shape[0] < self.min_samples_split or np.all(y == y[0]):
            return LeafNode(value=mean_value)

        split_dim, split_threshold = self._find_best_split(x, y)
        if split_dim is None:
            return LeafNode(value=mean_value)

        left_mask = x[:, split_dim] <= split_threshold
        right_mask = ~left_mask

        return InternalNode(
            feature=self.feature_names[split_dim],
            threshold=float(split_threshold),
            left=self.build(x[left_mask], y[left_mask], depth + 1),
            right=self.build(x[right_mask], y[right_mask], depth + 1),
        )

    def _find_best_split(self, x: np.ndarray, y: np.ndarray) -> Tuple[Optional[int], Optional[float]]:
        n = y.shape[0]
        parent_variance = variance(y)

        best_reduction = -np.inf
        best_dimension = None
        best_threshold = None

        # fresh feature subset at every node
        candidate_dims = self.rng.permutation(x.shape[1])[:self.n_candidate_features]

        for dim in candidate_dims:
            column = x[:, dim]
            for threshold in self._candidate_thresholds(column):
                left_mask = column <= threshold
                n_left = int(np.count_nonzero(left_mask))
                if n_left == 0 or n_left == n:
                    continue

                reduction = variance_reduction(y, y[left_mask], y[~left_mask], parent_variance=parent_variance)
                # strict comparison: the first candidate wins ties
                if reduction > best_reduction:
                    best_reduction = reduction
                    best_dimension = int(dim)
                    best_threshold = float(threshold)

        return best_dimension, best_threshold

    def _candidate_thresholds(self, column: np.ndarray) -> np.ndarray:
        values = np.unique(column)
        if values.shape[0] > self.max_thresholds:
            values = self.rng.choice(values, size=self.max_thresholds, replace=False)
        return values

    def predict(self, row: Mapping[str, Any]) -> float:
        if not self.is_fitted_ or self.root is None:
            raise UntrainedModelError("The tree must be trained before prediction")
        return predict_node(self.root, row)
