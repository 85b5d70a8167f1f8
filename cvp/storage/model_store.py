import pathlib
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import joblib
import pandas as pd

import cvp.constants as cconst
from cvp.decorators import time_func
from cvp.models.eval.metrics import TrainingMetrics
from cvp.models.random_forest.forest.forest import Forest
from cvp.utils import ensure_dir, get_logger


@dataclass(frozen=True)
class StoredModel:
    """A trained forest paired with the metrics computed when it was trained."""
    type: cconst.ModelType
    forest: Forest
    metrics: TrainingMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": cconst.ModelType(self.type).value,
            "trees": self.forest.to_dicts(),
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], model_type: Optional[cconst.ModelType] = None) -> "StoredModel":
        if "trees" not in payload or "metrics" not in payload:
            raise ValueError("Stored model payload must contain 'trees' and 'metrics'")

        return cls(
            type=cconst.ModelType(payload.get("type", model_type)),
            forest=Forest.from_dicts(payload["trees"], feature_names=cconst.CVP_FEATURES),
            metrics=TrainingMetrics.from_dict(payload["metrics"]),
        )


class ModelStore(object):
    """
    Persistent key-value storage with one store for trained models and one for accumulated training data.

    Every value is a joblib file named after its key.
    """
    MODELS = "models"
    DATASETS = "datasets"

    def __init__(self, root: str | pathlib.Path = cconst.CVP_DEFAULT_STORE_DIR) -> None:
        self.logger = get_logger(self.__class__.__name__)
        self.root = pathlib.Path(root)

    def _path(self, store: str, key: str) -> pathlib.Path:
        if not key or any(sep in key for sep in ("/", "\\")):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / store / f"{key}.pkl"

    def _put(self, store: str, key: str, value: Any) -> None:
        path = self._path(store, key)
        ensure_dir(path.parent, self.logger)
        try:
            joblib.dump(value, path)
            self.logger.info(f"Saved '{key}' to {path}")
        except Exception as e:
            self.logger.error(f"Failed to save '{key}' to {path}: {e}")
            raise

    def _get(self, store: str, key: str) -> Any:
        path = self._path(store, key)
        if not path.exists():
            return None
        try:
            return joblib.load(path)
        except Exception as e:
            self.logger.error(f"Failed to load '{key}' from {path}: {e}")
            raise

    def _delete(self, store: str, key: str) -> None:
        path = self._path(store, key)
        if path.exists():
            path.unlink()
            self.logger.info(f"Deleted '{key}' from {path.parent}")

    @time_func
    def save_model(self, key: str, model: Optional[StoredModel]) -> None:
        # saving None clears the key
        if model is None:
            self._delete(self.MODELS, key)
            return
        self._put(self.MODELS, key, model)

    def get_model(self, key: str) -> Optional[StoredModel]:
        return self._get(self.MODELS, key)

    def delete_model(self, key: str) -> None:
        self._delete(self.MODELS, key)

    @time_func
    def save_data(self, key: str, data: pd.DataFrame) -> None:
        self._put(self.DATASETS, key, data.reset_index(drop=True))

    def get_data(self, key: str) -> pd.DataFrame:
        data = self._get(self.DATASETS, key)
        return data if data is not None else pd.DataFrame()

    def delete_data(self, key: str) -> None:
        self._delete(self.DATASETS, key)
