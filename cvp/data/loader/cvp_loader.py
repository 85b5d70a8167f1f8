import logging
from typing import Sequence

import pandas as pd

import cvp.constants as cconst
from cvp.data.loader._base import DataLoader
from cvp.exceptions import EmptyDatasetError, MissingColumnsError


def validate_columns(df: pd.DataFrame,
                     is_training: bool,
                     features: Sequence[str] = cconst.CVP_FEATURES,
                     target: str = cconst.CVP_TARGET) -> list[str]:
    """
    Lists the required columns that are absent, or empty on the first row of the sheet.

    The target is only required for training data.

    :return list[str]: the missing column names, empty when the sheet is usable
    """
    required = list(features) + ([target] if is_training else [])
    if df.empty:
        return [col for col in required if col not in df.columns]

    first_row = df.iloc[0]
    missing = []
    for col in required:
        if col not in df.columns:
            missing.append(col)
            continue
        value = first_row[col]
        if pd.isna(value) or (isinstance(value, str) and not value.strip()):
            missing.append(col)
    return missing


def coerce_numeric(df: pd.DataFrame, columns: Sequence[str], logger: logging.Logger | None = None) -> pd.DataFrame:
    """
    Coerces `columns` to numbers and drops the rows where any of them is missing or not numeric.

    :param pd.DataFrame df: The sheet to clean, left untouched
    :param Sequence[str] columns: The required columns
    :param logging.Logger | None logger: The logger to report dropped rows to, defaults to None
    :return pd.DataFrame: The cleaned copy, with a fresh index
    """
    reporter_warning = logger.warning if logger else print

    df = df.copy()
    for col in columns:
        df[col] = pd.to_numeric(df[col], errors="coerce")

    invalid = df[list(columns)].isna().any(axis=1)
    if invalid.any():
        reporter_warning(f"Dropping {int(invalid.sum())} rows with missing or non-numeric required values")
        df = df.loc[~invalid]

    return df.reset_index(drop=True)


class CVPDataLoader(DataLoader):
    """
    Loader for the collection volume sheets: fixed feature columns, plus the target column for training sheets.
    """
    def __init__(self, **kwargs):
        super().__init__(**kwargs)

    def init(self, **kwargs) -> None:
        super().init(**kwargs)

        self.features = tuple(kwargs.get("features", cconst.CVP_FEATURES))
        assert len(self.features) > 0 and all(isinstance(f, str) for f in self.features), \
            "features must be a non-empty sequence of strings"

        self.target = kwargs.get("target", cconst.CVP_TARGET)
        assert isinstance(self.target, str), "target must be a string"

        self.is_training = kwargs.get("is_training", True)
        assert isinstance(self.is_training, bool), "is_training must be a boolean"

    @property
    def required_columns(self) -> list[str]:
        return list(self.features) + ([self.target] if self.is_training else [])

    def load(self) -> pd.DataFrame:
        """
        Loads the sheet and checks it against the expected schema.

        :raises EmptyDatasetError: if the sheet has no rows
        :raises MissingColumnsError: if a required column is absent or empty
        """
        df = super().load()

        if df.empty:
            self.logger.error(f"No rows found in {self.dataset_path}")
            raise EmptyDatasetError(f"File is empty: {self.dataset_path.name}")

        missing = validate_columns(df, self.is_training, self.features, self.target)
        if missing:
            self.logger.error(f"Missing columns in {self.dataset_path}: {missing}")
            raise MissingColumnsError(missing)

        return df

    def clean(self, df: pd.DataFrame) -> pd.DataFrame:
        return coerce_numeric(df, self.required_columns, logger=self.logger)
