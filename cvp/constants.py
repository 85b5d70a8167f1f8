import logging
import pathlib
from enum import Enum
from typing import Any

##############################
# GENERAL CONSTANTS
##############################

CVP_SUPPORTED_EXT_FTYPE: dict[str, str] = {
    "csv": "csv",
    "xlsx": "excel",
    "xls": "excel",
    "json": "json",
    "parquet": "parquet",
}

CVP_DEFAULT_OUTPUT_DIR: pathlib.Path = pathlib.Path().cwd() / "output"
CVP_DEFAULT_STORE_DIR: pathlib.Path = pathlib.Path().cwd() / ".cvp_store"

##############################
# LOGGING CONSTANTS
##############################

CVP_LOGGING_LOG_LEVEL: int = logging.INFO
CVP_LOGGING_FORMAT: str = "[%(asctime)s] - %(name)s - [%(levelname)s] - %(message)s"
CVP_LOGGING_MAX_BYTES: int = 10 * (1 << 20)  # 10 MB
CVP_LOGGING_BACKUP_COUNT: int = 3

##############################
# DATASET CONSTANTS
##############################

CVP_FEATURES: tuple[str, ...] = (
    "采集天数",
    "笔记数",
    "点赞数",
    "收藏数",
    "评论数",
)
CVP_TARGET: str = "采集量"

CVP_PREDICTION_COLUMN: str = "预测采集量"
CVP_LOWER_BOUND_COLUMN: str = "预测下限"
CVP_UPPER_BOUND_COLUMN: str = "预测上限"

CVP_TRAINING_SHEET_NAME: str = "TrainingData"
CVP_PREDICTION_SHEET_NAME: str = "Predictions"
CVP_TRAIN_TEMPLATE_SHEET_NAME: str = "Training_Template"
CVP_PREDICT_TEMPLATE_SHEET_NAME: str = "Prediction_Template"
CVP_TRAIN_TEMPLATE_FILE: str = "train_template.xlsx"
CVP_PREDICT_TEMPLATE_FILE: str = "predict_template.xlsx"

##############################
# RANDOM FOREST CONSTANTS
##############################

CVP_RF_N_ESTIMATORS: int = 200
CVP_RF_MIN_SAMPLES_SPLIT: int = 5
CVP_RF_MAX_DEPTH: int = 15
CVP_RF_MAX_FEATURES: float = 0.7  # fraction of features considered at each split
CVP_RF_MAX_THRESHOLDS: int = 20
CVP_RF_LOWER_PERCENTILE: float = 0.1
CVP_RF_UPPER_PERCENTILE: float = 0.9
CVP_RF_BATCH_SIZE: int = 10
CVP_RF_N_JOBS: int = 1

CVP_RF_DEFAULT_CONFIG: dict[str, Any] = {
    "n_estimators": CVP_RF_N_ESTIMATORS,
    "min_samples_split": CVP_RF_MIN_SAMPLES_SPLIT,
    "max_depth": CVP_RF_MAX_DEPTH,
    "max_features": CVP_RF_MAX_FEATURES,
    "max_thresholds": CVP_RF_MAX_THRESHOLDS,
    "lower_percentile": CVP_RF_LOWER_PERCENTILE,
    "upper_percentile": CVP_RF_UPPER_PERCENTILE,
    "batch_size": CVP_RF_BATCH_SIZE,
    "n_jobs": CVP_RF_N_JOBS,
    "random_state": None,
}

##############################
# MODEL CONSTANTS
##############################


class ModelType(str, Enum):
    ONLINE = "rf_model_online"
    RECALL = "rf_model_recall"
    MIX = "rf_model_mix"


CVP_MODEL_CONFIGS: dict[ModelType, dict[str, str]] = {
    ModelType.ONLINE: {
        "name": "移动在线模型",
        "train_file": "train_data_online.xlsx",
        "summary_file": "formula_info_online.json",
    },
    ModelType.RECALL: {
        "name": "移动回溯模型",
        "train_file": "train_data_recall.xlsx",
        "summary_file": "formula_info_recall.json",
    },
    ModelType.MIX: {
        "name": "移动混合模型",
        "train_file": "train_data_mix.xlsx",
        "summary_file": "formula_info_mix.json",
    },
}


def data_storage_key(model_type: ModelType) -> str:
    return f"TRAIN_DATA_{ModelType(model_type).value}"


def model_storage_key(model_type: ModelType) -> str:
    return f"SAVED_MODEL_{ModelType(model_type).value}"


##############################
# REMOTE SYNC CONSTANTS
##############################

CVP_GITHUB_API_URL: str = "https://api.github.com"
CVP_GITHUB_DEFAULT_PATH: str = "public/data/model_result.json"
CVP_GITHUB_CONFIG_PATH: pathlib.Path = CVP_DEFAULT_STORE_DIR / "github_config.json"
CVP_GITHUB_RAW_ACCEPT: str = "application/vnd.github.v3.raw"
CVP_GITHUB_JSON_ACCEPT: str = "application/vnd.github.v3+json"
CVP_GITHUB_TIMEOUT: float = 30.0
