import threading
import numpy as np
import pandas as pd

from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from joblib import Parallel, delayed

import cvp.constants as cconst
from cvp.decorators import time_func
from cvp.exceptions import EmptyDatasetError, TrainingCancelledError
from cvp.models.eval.metrics import TrainingMetrics
from cvp.models.random_forest.forest.forest import Forest, predict
from cvp.models.random_forest.sampling.bagging import BootstrapSampler
from cvp.models.random_forest.tree.node import TreeNode
from cvp.models.random_forest.tree.tree import RegressionTree, resolve_max_features
from cvp.utils import get_logger

ProgressCallback = Callable[[int, int], None]

_PREDICTION_KEYS = ("lower_percentile", "upper_percentile")


def _grow_tree(x: np.ndarray,
               y: np.ndarray,
               feature_names: Tuple[str, ...],
               tree_params: Dict[str, Any],
               rng: np.random.Generator) -> TreeNode:
    # one bootstrap draw per tree, the same generator then drives the feature and threshold sampling
    x_bag, y_bag = BootstrapSampler(x, y, rng=rng).sample()
    tree = RegressionTree(feature_names=feature_names, rng=rng, **tree_params)
    return tree.fit(x_bag, y_bag)


class ForestTrainer(object):
    def __init__(self, **kwargs) -> None:
        self.init(**kwargs)

    def init(self, **kwargs) -> None:
        self.logger = get_logger(self.__class__.__name__)

        unknown = set(kwargs) - (set(cconst.CVP_RF_DEFAULT_CONFIG) - set(_PREDICTION_KEYS))
        if unknown:
            raise ValueError(f"Unknown forest trainer parameters: {sorted(unknown)}")

        self.n_estimators = kwargs.get("n_estimators", cconst.CVP_RF_N_ESTIMATORS)
        assert isinstance(self.n_estimators, int) and self.n_estimators >= 1, "n_estimators must be a positive integer"

        self.max_depth = kwargs.get("max_depth", cconst.CVP_RF_MAX_DEPTH)
        assert isinstance(self.max_depth, int) and self.max_depth >= 0, "max_depth must be a non-negative integer"

        self.min_samples_split = kwargs.get("min_samples_split", cconst.CVP_RF_MIN_SAMPLES_SPLIT)
        assert (
            isinstance(self.min_samples_split, int) and self.min_samples_split >= 1
        ), "min_samples_split must be a positive integer"

        self.max_features = kwargs.get("max_features", cconst.CVP_RF_MAX_FEATURES)
        assert isinstance(self.max_features, (int, float)), "max_features must be an int or a float"

        self.max_thresholds = kwargs.get("max_thresholds", cconst.CVP_RF_MAX_THRESHOLDS)
        assert (
            isinstance(self.max_thresholds, int) and self.max_thresholds >= 1
        ), "max_thresholds must be a positive integer"

        # Number of trees built between two progress reports / cancellation checks
        self.batch_size = kwargs.get("batch_size", cconst.CVP_RF_BATCH_SIZE)
        assert isinstance(self.batch_size, int) and self.batch_size >= 1, "batch_size must be a positive integer"

        self.n_jobs = kwargs.get("n_jobs", cconst.CVP_RF_N_JOBS)
        assert isinstance(self.n_jobs, int) and self.n_jobs != 0, "n_jobs must be a non-zero integer"

        # int seed, numpy Generator or None
        self.random_state = kwargs.get("random_state", None)

    @property
    def tree_params(self) -> Dict[str, Any]:
        return {
            "max_depth": self.max_depth,
            "min_samples_split": self.min_samples_split,
            "max_features": self.max_features,
            "max_thresholds": self.max_thresholds,
        }

    @time_func
    def train(self,
              x: np.ndarray,
              y: np.ndarray,
              feature_names: Sequence[str],
              on_progress: Optional[ProgressCallback] = None,
              cancel_event: Optional[threading.Event] = None) -> Forest:
        """
        Grows `n_estimators` independent trees, each on its own bootstrap resample of (x, y).

        Trees are dispatched in batches of `batch_size` through joblib (sequentially when n_jobs == 1).
        Between batches the progress callback receives (trees_built, n_estimators) and the cancel
        signal is checked. Every tree owns a generator spawned from `random_state`, so results only
        depend on the seed and not on n_jobs.

        :raises EmptyDatasetError: if there are no samples
        :raises TrainingCancelledError: if `cancel_event` is set before all trees are built
        """
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float).ravel()

        if x.ndim != 2 or x.shape[0] == 0:
            self.logger.error("Training requested on an empty dataset")
            raise EmptyDatasetError("Training data is empty")

        assert x.shape[0] == y.shape[0], "Number of samples in training data and targets must be the same"
        feature_names = tuple(feature_names)
        assert x.shape[1] == len(feature_names), "Number of columns must match the number of feature names"
        # fails early on an invalid max_features instead of inside a worker
        resolve_max_features(self.max_features, len(feature_names))

        self.logger.info(
            f"Training {self.n_estimators} trees on {x.shape[0]} samples with {x.shape[1]} features (n_jobs={self.n_jobs})"
        )

        tree_rngs = np.random.default_rng(self.random_state).spawn(self.n_estimators)
        tree_params = self.tree_params
        trees: list[TreeNode] = []

        with Parallel(n_jobs=self.n_jobs) as parallel:
            for start in range(0, self.n_estimators, self.batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    self.logger.warning(f"Training cancelled after {len(trees)}/{self.n_estimators} trees")
                    raise TrainingCancelledError(f"Training cancelled after {len(trees)} trees")

                stop = min(start + self.batch_size, self.n_estimators)
                trees.extend(
                    parallel(
                        delayed(_grow_tree)(x, y, feature_names, tree_params, tree_rngs[i]) for i in range(start, stop)
                    )
                )

                self.logger.debug(f"Built {len(trees)}/{self.n_estimators} trees")
                if on_progress is not None:
                    on_progress(len(trees), self.n_estimators)

        return Forest(trees=tuple(trees), feature_names=feature_names)


def resolve_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merges user overrides into the default forest configuration.

    :raises ValueError: on keys that are not forest parameters
    """
    config = dict(config or {})
    unknown = set(config) - set(cconst.CVP_RF_DEFAULT_CONFIG)
    if unknown:
        raise ValueError(
            f"Unknown forest parameters: {sorted(unknown)}. Supported: {sorted(cconst.CVP_RF_DEFAULT_CONFIG)}"
        )
    return {**cconst.CVP_RF_DEFAULT_CONFIG, **config}


def train(dataset: pd.DataFrame,
          config: Optional[Dict[str, Any]] = None,
          on_progress: Optional[ProgressCallback] = None,
          cancel_event: Optional[threading.Event] = None,
          feature_names: Sequence[str] = cconst.CVP_FEATURES,
          target: str = cconst.CVP_TARGET) -> Tuple[Forest, TrainingMetrics]:
    """
    Trains a forest on `dataset` and evaluates it on the same rows.

    The returned metrics are in-sample: R² and MAE of the forest's mean prediction over the training set.

    :param pd.DataFrame dataset: one row per sample, with every feature column and the target column
    :param dict config: overrides of the forest defaults (see CVP_RF_DEFAULT_CONFIG)
    :param on_progress: called with (trees_built, n_estimators) after every batch
    :param cancel_event: checked before each batch of `batch_size` trees, `batch_size=1` checks before every tree
    :param feature_names: ordered feature columns
    :param target: target column
    :return: the trained forest and its metrics
    """
    if dataset is None or len(dataset) == 0:
        raise EmptyDatasetError("Training data is empty")

    config = resolve_config(config)
    feature_names = tuple(feature_names)

    x = dataset.loc[:, list(feature_names)].to_numpy(dtype=float)
    y = dataset[target].to_numpy(dtype=float)

    trainer_kwargs = {key: value for key, value in config.items() if key not in _PREDICTION_KEYS}
    forest = ForestTrainer(**trainer_kwargs).train(x, y, feature_names, on_progress=on_progress, cancel_event=cancel_event)
    forest = Forest(
        trees=forest.trees,
        feature_names=forest.feature_names,
        lower_percentile=config["lower_percentile"],
        upper_percentile=config["upper_percentile"],
    )

    y_pred = [predict(forest, dict(zip(feature_names, row))).mean for row in x]
    return forest, TrainingMetrics.from_predictions(y, y_pred)
