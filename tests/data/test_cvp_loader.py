import numpy as np
import pandas as pd
import pytest

import cvp.constants as cconst
from cvp.data.loader.cvp_loader import CVPDataLoader, coerce_numeric, validate_columns
from cvp.exceptions import EmptyDatasetError, MissingColumnsError


def test_loads_excel_training_sheet(tmp_path, training_frame):
    path = tmp_path / "train.xlsx"
    training_frame.to_excel(path, index=False)

    df = CVPDataLoader(dataset_path=str(path)).load()

    assert len(df) == len(training_frame)
    assert list(df.columns) == [*cconst.CVP_FEATURES, cconst.CVP_TARGET]


def test_loads_csv_and_drops_unnamed_and_blank_rows(tmp_path, training_frame):
    path = tmp_path / "train.csv"
    frame = training_frame.copy()
    frame["Unnamed: 9"] = np.nan
    frame.loc[len(frame)] = [np.nan] * frame.shape[1]
    frame.to_csv(path, index=False)

    df = CVPDataLoader(dataset_path=path).load()

    assert "Unnamed: 9" not in df.columns
    assert len(df) == len(training_frame)


def test_missing_target_is_reported(tmp_path, prediction_frame):
    path = tmp_path / "train.csv"
    prediction_frame.to_csv(path, index=False)

    with pytest.raises(MissingColumnsError) as exc_info:
        CVPDataLoader(dataset_path=path, is_training=True).load()

    assert exc_info.value.missing == [cconst.CVP_TARGET]


def test_prediction_sheet_does_not_need_target(tmp_path, prediction_frame):
    path = tmp_path / "predict.csv"
    prediction_frame.to_csv(path, index=False)

    df = CVPDataLoader(dataset_path=path, is_training=False).load()

    assert len(df) == len(prediction_frame)


def test_header_only_sheet_is_empty(tmp_path):
    path = tmp_path / "template.csv"
    pd.DataFrame(columns=[*cconst.CVP_FEATURES, cconst.CVP_TARGET]).to_csv(path, index=False)

    with pytest.raises(EmptyDatasetError):
        CVPDataLoader(dataset_path=path).load()


def test_missing_path_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        CVPDataLoader(dataset_path=tmp_path / "nope.xlsx")


def test_validate_columns_checks_first_row(training_frame):
    frame = training_frame.copy()
    frame["笔记数"] = frame["笔记数"].astype(float)
    frame.loc[0, "笔记数"] = np.nan

    assert validate_columns(frame, is_training=True) == ["笔记数"]
    assert validate_columns(training_frame, is_training=True) == []
    assert validate_columns(training_frame.drop(columns=["评论数"]), is_training=False) == ["评论数"]


def test_coerce_numeric_drops_unusable_rows():
    frame = pd.DataFrame({"a": ["1", "x", "3", None], "b": [1, 2, 3, 4], "note": ["k", "l", "m", "n"]})

    cleaned = coerce_numeric(frame, ["a", "b"])

    assert cleaned["a"].tolist() == [1.0, 3.0]
    assert cleaned["note"].tolist() == ["k", "m"]
    assert cleaned.index.tolist() == [0, 1]
