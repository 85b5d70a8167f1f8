import threading
import numpy as np
import pandas as pd

from typing import Any, Optional, Union
from sklearn.base import BaseEstimator, RegressorMixin

import cvp.constants as cconst
from cvp.exceptions import UntrainedModelError
from cvp.models.random_forest.forest.forest import Forest, predict
from cvp.models.random_forest.forest.trainer import ForestTrainer, ProgressCallback


class RandomForestRegressor(BaseEstimator, RegressorMixin):
    """
    Random forest regressor with ensemble-spread prediction intervals, compatible with the Sklearn API.

    - __init__() stores only hyperparameters
    - fit(X, y) grows the forest and sets the learned attributes
    - predict(X) returns the mean vote of the trees
    - predict_interval(X) returns the mean vote together with the lower and upper percentile votes
    """

    def __init__(self,
                 n_estimators: int = cconst.CVP_RF_N_ESTIMATORS,
                 max_depth: int = cconst.CVP_RF_MAX_DEPTH,
                 min_samples_split: int = cconst.CVP_RF_MIN_SAMPLES_SPLIT,
                 max_features: Union[int, float] = cconst.CVP_RF_MAX_FEATURES,
                 max_thresholds: int = cconst.CVP_RF_MAX_THRESHOLDS,
                 lower_percentile: float = cconst.CVP_RF_LOWER_PERCENTILE,
                 upper_percentile: float = cconst.CVP_RF_UPPER_PERCENTILE,
                 n_jobs: int = cconst.CVP_RF_N_JOBS,
                 random_state: Optional[Union[int, np.random.Generator]] = None):
        self.n_estimators = n_estimators
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.max_features = max_features
        self.max_thresholds = max_thresholds

        self.lower_percentile = lower_percentile
        self.upper_percentile = upper_percentile

        self.n_jobs = n_jobs
        self.random_state = random_state

    def fit(self,
            X: Any,
            y: Any,
            on_progress: Optional[ProgressCallback] = None,
            cancel_event: Optional[threading.Event] = None) -> "RandomForestRegressor":
        if isinstance(X, pd.DataFrame):
            feature_names = tuple(str(col) for col in X.columns)
            X = X.to_numpy(dtype=float)
        else:
            X = np.asarray(X, dtype=float)
            assert X.ndim == 2, "Input data must be a 2D array (n_samples, n_features)"
            feature_names = tuple(f"Feature_{i}" for i in range(X.shape[1]))

        y = np.asarray(y, dtype=float)
        # allow y to be passed as batched (n,1) or unbatched (n, ) input shape
        if y.ndim == 2 and y.shape[1] == 1:
            y = y[:, 0]
        elif y.ndim != 1:
            raise ValueError(f"Target data must be of shape (n,) or (n,1). Got {y.shape}")

        trainer = ForestTrainer(
            n_estimators=self.n_estimators,
            max_depth=self.max_depth,
            min_samples_split=self.min_samples_split,
            max_features=self.max_features,
            max_thresholds=self.max_thresholds,
            n_jobs=self.n_jobs,
            random_state=self.random_state,
        )
        forest = trainer.train(X, y, feature_names, on_progress=on_progress, cancel_event=cancel_event)

        self.forest_ = Forest(
            trees=forest.trees,
            feature_names=feature_names,
            lower_percentile=self.lower_percentile,
            upper_percentile=self.upper_percentile,
        )
        self.feature_names_ = feature_names
        self.n_features_in_ = len(feature_names)

        return self

    def predict(self, X: Any) -> np.ndarray:
        return self.predict_interval(X)[:, 0]

    def predict_interval(self, X: Any) -> np.ndarray:
        """
        :return np.ndarray: array of shape (n_samples, 3) holding mean, lower bound and upper bound
        """
        self._check_fitted()

        results = [predict(self.forest_, row) for row in self._rows(X)]
        return np.array([[r.mean, r.lower_bound, r.upper_bound] for r in results], dtype=float).reshape(-1, 3)

    def _rows(self, X: Any) -> list[dict[str, float]]:
        if isinstance(X, pd.DataFrame):
            missing = [name for name in self.feature_names_ if name not in X.columns]
            if missing:
                raise ValueError(f"X is missing the features {missing} seen during fit")
            values = X.loc[:, list(self.feature_names_)].to_numpy(dtype=float)
        else:
            values = np.asarray(X, dtype=float)
            if values.ndim == 1:
                values = values.reshape(1, -1)
            if values.shape[1] != self.n_features_in_:
                raise ValueError(
                    f"X has {values.shape[1]} features, but this model was fitted with {self.n_features_in_} features")

        return [dict(zip(self.feature_names_, row)) for row in values]

    def _check_fitted(self):
        if not hasattr(self, "forest_") or self.forest_ is None or len(self.forest_) == 0:
            raise UntrainedModelError("Estimator not fitted. "
                                      "Call fit with appropriate input data before using this estimator.")
