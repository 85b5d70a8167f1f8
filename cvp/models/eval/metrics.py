from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

import numpy as np
from numpy.typing import ArrayLike


def _as_pair(y_true: ArrayLike, y_pred: ArrayLike) -> tuple[np.ndarray, np.ndarray]:
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()
    if y_true.shape != y_pred.shape:
        raise ValueError(f"y_true and y_pred must have the same length, got {y_true.shape[0]} and {y_pred.shape[0]}")
    return y_true, y_pred


def mean_absolute_error(y_true: ArrayLike, y_pred: ArrayLike) -> float:
    """
    Computes the mean absolute error between true and predicted values.

    :param ArrayLike y_true: The true values.
    :param ArrayLike y_pred: The predicted values.
    :return float: The mean absolute error, 0 for empty inputs.
    """
    y_true, y_pred = _as_pair(y_true, y_pred)
    if y_true.shape[0] == 0:
        return 0.0
    return float(np.mean(np.abs(y_true - y_pred)))


def r2_score(y_true: ArrayLike, y_pred: ArrayLike) -> float:
    """
    Computes the R-squared (coefficient of determination) score.

    A constant target has no variance to explain, in which case the score is 0 instead of undefined.

    :param ArrayLike y_true: The true values.
    :param ArrayLike y_pred: The predicted values.
    :return float: The R-squared score.
    """
    y_true, y_pred = _as_pair(y_true, y_pred)
    if y_true.shape[0] == 0:
        return 0.0

    numerator = np.sum((y_true - y_pred) ** 2)
    denominator = np.sum((y_true - np.mean(y_true)) ** 2)

    return 0.0 if denominator == 0 else float(1 - numerator / denominator)


def evaluate(y_true: ArrayLike, y_pred: ArrayLike) -> dict[str, float]:
    return {
        "r2": r2_score(y_true, y_pred),
        "mae": mean_absolute_error(y_true, y_pred),
    }


def _now() -> str:
    return datetime.now().isoformat(sep=" ", timespec="seconds")


@dataclass(frozen=True)
class TrainingMetrics:
    """Fit quality and provenance of one trained forest."""
    r2: float
    mae: float
    sample_size: int
    last_updated: str = field(default_factory=_now)

    @classmethod
    def from_predictions(cls, y_true: ArrayLike, y_pred: ArrayLike) -> "TrainingMetrics":
        scores = evaluate(y_true, y_pred)
        return cls(r2=scores["r2"], mae=scores["mae"], sample_size=int(np.asarray(y_true).shape[0]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "r2": self.r2,
            "mae": self.mae,
            "sampleSize": self.sample_size,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TrainingMetrics":
        return cls(
            r2=float(payload["r2"]),
            mae=float(payload["mae"]),
            sample_size=int(payload["sampleSize"]),
            last_updated=str(payload.get("lastUpdated", "")),
        )
