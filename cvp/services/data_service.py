import json
import pathlib
import threading
from typing import Any, Callable, Dict, Optional

import numpy as np
import pandas as pd
import requests

import cvp.constants as cconst
from cvp.data.loader.cvp_loader import CVPDataLoader, coerce_numeric
from cvp.decorators import time_func
from cvp.exceptions import EmptyDatasetError, RemoteSyncError, UntrainedModelError
from cvp.models.eval.metrics import TrainingMetrics
from cvp.models.random_forest.forest.forest import predict_frame
from cvp.models.random_forest.forest.trainer import resolve_config, train
from cvp.storage.model_store import ModelStore, StoredModel
from cvp.sync.github import GitHubConfig, fetch_from_github, upload_to_github
from cvp.utils import ensure_dir, get_logger

ProgressReporter = Callable[[str], None]


def _noop(_: str) -> None:
    return None


def _round_half_up(values: pd.Series) -> pd.Series:
    # spreadsheet rounding, 2.5 -> 3 (Python's round() would give 2)
    return np.floor(values + 0.5).astype("int64")


def _to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    # pandas handles numpy scalars and NaN (-> null)
    return json.loads(df.to_json(orient="records", force_ascii=False))


class DataService(object):
    """
    Application operations around the forest: training with accumulated history, batch prediction from
    spreadsheets, spreadsheet templates and exports, and remote synchronization of models and data.
    """
    def __init__(self,
                 store: Optional[ModelStore] = None,
                 output_dir: str | pathlib.Path = cconst.CVP_DEFAULT_OUTPUT_DIR,
                 forest_config: Optional[Dict[str, Any]] = None) -> None:
        self.logger = get_logger(self.__class__.__name__)

        self.store = store if store is not None else ModelStore()
        self.output_dir = pathlib.Path(output_dir)
        # validated eagerly so a typo fails before the first (long) training run
        self.forest_config = resolve_config(forest_config)

        self.features = cconst.CVP_FEATURES
        self.target = cconst.CVP_TARGET

    def _output_path(self, file_name: str) -> pathlib.Path:
        return ensure_dir(self.output_dir, self.logger) / file_name

    def get_stored_metrics(self, model_type: cconst.ModelType) -> Optional[TrainingMetrics]:
        model = self.store.get_model(cconst.model_storage_key(model_type))
        return model.metrics if model is not None else None

    def clear_model_data(self, model_type: cconst.ModelType) -> None:
        self.logger.info(f"Clearing model and training data of {cconst.ModelType(model_type).value}")
        self.store.delete_model(cconst.model_storage_key(model_type))
        self.store.delete_data(cconst.data_storage_key(model_type))

    def export_training_data(self, model_type: cconst.ModelType) -> pathlib.Path:
        data = self.store.get_data(cconst.data_storage_key(model_type))
        if data.empty:
            raise EmptyDatasetError("No accumulated training data for this model")

        path = self._output_path(cconst.CVP_MODEL_CONFIGS[cconst.ModelType(model_type)]["train_file"])
        data.to_excel(path, sheet_name=cconst.CVP_TRAINING_SHEET_NAME, index=False)
        self.logger.info(f"Training data exported to {path}")
        return path

    def generate_train_template(self) -> pathlib.Path:
        path = self._output_path(cconst.CVP_TRAIN_TEMPLATE_FILE)
        pd.DataFrame(columns=[*self.features, self.target]).to_excel(
            path, sheet_name=cconst.CVP_TRAIN_TEMPLATE_SHEET_NAME, index=False
        )
        return path

    def generate_prediction_template(self) -> pathlib.Path:
        path = self._output_path(cconst.CVP_PREDICT_TEMPLATE_FILE)
        pd.DataFrame(columns=list(self.features)).to_excel(
            path, sheet_name=cconst.CVP_PREDICT_TEMPLATE_SHEET_NAME, index=False
        )
        return path

    def export_summary(self, model_type: cconst.ModelType) -> pathlib.Path:
        metrics = self.get_stored_metrics(model_type)
        if metrics is None:
            raise UntrainedModelError("This model has no training data yet")

        model_config = cconst.CVP_MODEL_CONFIGS[cconst.ModelType(model_type)]
        content = {
            "模型类型": model_config["name"],
            "样本量": metrics.sample_size,
            "R²": f"{metrics.r2:.4f}",
            "MAE": f"{metrics.mae:.4f}",
            "更新时间": metrics.last_updated,
        }

        path = self._output_path(model_config["summary_file"].replace(".json", ".txt"))
        path.write_text(json.dumps(content, ensure_ascii=False, indent=2), encoding="utf-8")
        return path

    @time_func
    def train_from_data(self,
                        data: pd.DataFrame,
                        model_type: cconst.ModelType,
                        on_progress: ProgressReporter = _noop,
                        cancel_event: Optional[threading.Event] = None) -> TrainingMetrics:
        """
        Trains a new forest on `data`, then persists both the data and the model for `model_type`.

        The stored model is replaced wholesale; the stored data becomes `data` (cleaned).

        :raises EmptyDatasetError: if no usable rows remain
        """
        model_type = cconst.ModelType(model_type)
        data = coerce_numeric(data, [*self.features, self.target], logger=self.logger)
        if data.empty:
            raise EmptyDatasetError("Training data is empty")

        on_progress(f"Training (samples: {len(data)}, trees: {self.forest_config['n_estimators']})...")
        forest, metrics = train(
            data,
            self.forest_config,
            on_progress=lambda done, total: on_progress(f"Built {done}/{total} trees"),
            cancel_event=cancel_event,
            feature_names=self.features,
            target=self.target,
        )
        self.logger.info(f"Trained {model_type.value}: r2={metrics.r2:.4f}, mae={metrics.mae:.4f}, n={metrics.sample_size}")

        on_progress("Saving model...")
        self.store.save_data(cconst.data_storage_key(model_type), data)
        self.store.save_model(
            cconst.model_storage_key(model_type),
            StoredModel(type=model_type, forest=forest, metrics=metrics),
        )

        return metrics

    def handle_train(self,
                     file_path: str | pathlib.Path,
                     model_type: cconst.ModelType,
                     on_progress: ProgressReporter = _noop,
                     cancel_event: Optional[threading.Event] = None) -> TrainingMetrics:
        """
        Reads a training sheet, appends it to the accumulated history of `model_type` and retrains on the whole.
        """
        on_progress("Reading file...")
        new_data = CVPDataLoader(dataset_path=file_path, is_training=True).load()

        on_progress("Reading historical data...")
        old_data = self.store.get_data(cconst.data_storage_key(model_type))
        merged = pd.concat([old_data, new_data], ignore_index=True) if not old_data.empty else new_data
        self.logger.info(f"Merged {len(old_data)} historical rows with {len(new_data)} new rows")

        return self.train_from_data(merged, model_type, on_progress, cancel_event)

    def handle_predict(self,
                       file_path: str | pathlib.Path,
                       model_type: cconst.ModelType,
                       on_progress: ProgressReporter = _noop) -> pd.DataFrame:
        """
        Predicts every row of a prediction sheet with the stored model of `model_type`.

        :return pd.DataFrame: the input rows with the rounded prediction, lower and upper bound columns appended
        :raises UntrainedModelError: if no model was trained for `model_type`
        """
        on_progress("Loading model...")
        model = self.store.get_model(cconst.model_storage_key(model_type))
        if model is None:
            raise UntrainedModelError("This model has not been trained yet, train it first.")

        on_progress("Reading prediction file...")
        loader = CVPDataLoader(dataset_path=file_path, is_training=False)
        data = loader.clean(loader.load())
        if data.empty:
            raise EmptyDatasetError("No usable rows in the prediction file")

        on_progress("Predicting...")
        predictions = predict_frame(model.forest, data.loc[:, list(self.features)])

        results = data.copy()
        results[cconst.CVP_PREDICTION_COLUMN] = _round_half_up(predictions["mean"])
        results[cconst.CVP_LOWER_BOUND_COLUMN] = _round_half_up(predictions["lower_bound"])
        results[cconst.CVP_UPPER_BOUND_COLUMN] = _round_half_up(predictions["upper_bound"])
        return results

    def export_prediction_results(self,
                                  results: pd.DataFrame,
                                  original_file_name: str,
                                  model_type: cconst.ModelType) -> pathlib.Path:
        original_name = pathlib.Path(original_file_name).stem
        model_suffix = cconst.ModelType(model_type).value.replace("rf_model_", "")

        path = self._output_path(f"{original_name}_{model_suffix}_predicted.xlsx")
        results.to_excel(path, sheet_name=cconst.CVP_PREDICTION_SHEET_NAME, index=False)
        self.logger.info(f"Predictions exported to {path}")
        return path

    def get_model_export_data(self, model_type: cconst.ModelType) -> Optional[dict[str, Any]]:
        """
        Builds the remote file entry of `model_type`: {model_type: {"model": ..., "data": [...]}}.

        :return: the entry, or None when neither a model nor training data exists
        """
        model_type = cconst.ModelType(model_type)
        model = self.store.get_model(cconst.model_storage_key(model_type))
        data = self.store.get_data(cconst.data_storage_key(model_type))

        if model is None and data.empty:
            return None

        return {
            model_type.value: {
                "model": model.to_dict() if model is not None else None,
                "data": _to_records(data) if not data.empty else [],
            }
        }

    def restore_model_from_remote(self,
                                  model_type: cconst.ModelType,
                                  remote_data: Dict[str, Any],
                                  on_progress: ProgressReporter = _noop) -> Optional[TrainingMetrics]:
        """
        Restores the model and training data of `model_type` from the parsed remote file.

        Accepts the {"model", "data"} entry format as well as the older format where the entry is the bare
        model. When the entry has data but no model, a model is trained from that data.

        :return: the metrics of the restored or trained model, None when nothing could be restored
        :raises RemoteSyncError: if the remote file or its entry is not a JSON object
        """
        model_type = cconst.ModelType(model_type)
        if remote_data is None:
            return None
        if not isinstance(remote_data, dict):
            raise RemoteSyncError("Cloud file is not a JSON object.")

        target = remote_data.get(model_type.value)
        if not target:
            return None
        if not isinstance(target, dict):
            raise RemoteSyncError(f"Cloud entry '{model_type.value}' is not a JSON object.")

        on_progress("Parsing remote data...")
        model_payload: Optional[Dict[str, Any]] = None
        records: list = []

        if "model" in target or "data" in target:
            model_payload = target.get("model")
            records = target.get("data") or []
        elif "trees" in target:
            model_payload = target

        data = pd.DataFrame(records)
        if not data.empty:
            on_progress(f"Restoring training data ({len(data)} rows)...")
            self.store.save_data(cconst.data_storage_key(model_type), data)

        if model_payload:
            on_progress("Restoring model parameters...")
            model = StoredModel.from_dict(model_payload, model_type=model_type)
            self.store.save_model(cconst.model_storage_key(model_type), model)
            return model.metrics

        if not data.empty:
            on_progress("No pretrained model found, training on the remote data...")
            return self.train_from_data(data, model_type, on_progress)

        return None

    def push_to_remote(self,
                       model_type: cconst.ModelType,
                       config: GitHubConfig,
                       session: Optional[requests.Session] = None) -> Optional[dict[str, Any]]:
        model_type = cconst.ModelType(model_type)
        content = self.get_model_export_data(model_type)
        if content is None:
            self.logger.warning(f"Nothing to upload for {model_type.value}")
            return None

        model_name = cconst.CVP_MODEL_CONFIGS[model_type]["name"]
        return upload_to_github(config, content, f"Update {model_name} ({model_type.value})", session=session)

    def pull_from_remote(self,
                         model_type: cconst.ModelType,
                         config: GitHubConfig,
                         on_progress: ProgressReporter = _noop,
                         session: Optional[requests.Session] = None) -> Optional[TrainingMetrics]:
        on_progress("Fetching remote file...")
        remote_data = fetch_from_github(config, session=session)
        if remote_data is None:
            self.logger.info("Remote file does not exist or is empty")
            return None
        return self.restore_model_from_remote(model_type, remote_data, on_progress)
