import pathlib
from typing import Any

import numpy as np
import pandas as pd

import cvp.constants as cconst
from cvp.decorators import time_func
from cvp.utils import get_filetype, get_logger


class DataLoader(object):
    def __init__(self, **kwargs) -> None:
        self.init(**kwargs)

    def _process_dataset_path(self, dataset_path: Any) -> pathlib.Path:
        """
        Processes the dataset path such that:
        * the dataset path is set and not None
        * the dataset path is str or pathlib.Path
        * the dataset path is converted to absolute pathlib.Path and validated to exist

        :param Any dataset_path: The dataset path to process
        :return pathlib.Path: The processed dataset path
        :raises ValueError: If the dataset path is not set or does not exist
        """
        if dataset_path is None:
            self.logger.error("No dataset path provided.")
            raise ValueError("dataset_path is required")

        if not isinstance(dataset_path, (str, pathlib.Path)):
            self.logger.error("dataset_path must be a string or pathlib.Path.")
            raise TypeError("dataset_path must be a string or pathlib.Path")

        dataset_path = pathlib.Path(dataset_path).resolve()

        if not dataset_path.exists():
            self.logger.error(f"Dataset path does not exist: {dataset_path}")
            raise ValueError(f"Dataset path does not exist: {dataset_path}")

        return dataset_path

    def init(self, **kwargs) -> None:
        self.logger = get_logger(self.__class__.__name__)

        self.dataset_path = self._process_dataset_path(kwargs.get("dataset_path", None))

        # Separator between columns and instances
        self.separator = kwargs.get("separator", ",")
        assert isinstance(self.separator, str), "separator must be a string"

        # The decimal marker
        self.decimal = kwargs.get("decimal", ".")
        assert isinstance(self.decimal, str), "decimal must be a string"

        # Markers used to indicate missing values in the dataset
        self.missing_markers = kwargs.get("missing_markers", [""])
        assert isinstance(self.missing_markers, list), "missing_markers must be a list"
        self.missing_markers = list(set(self.missing_markers))

        # Whether to remove unnamed columns from the dataset
        self.remove_unnamed = kwargs.get("remove_unnamed", True)
        assert isinstance(self.remove_unnamed, bool), "remove_unnamed must be a boolean"

    def _load_dataset(self) -> pd.DataFrame:
        """
        Internal method used to load the dataset from its path,
        considering the filetype.

        Falls back to reading CSV if the filetype is not supported.

        :return pd.DataFrame: The read dataset.
        """
        ftype = get_filetype(self.dataset_path)
        if not ftype:
            self.logger.warning(f"Could not determine filetype for {self.dataset_path}, falling back to CSV reader!")
            self.logger.info(f"Supported filetypes are: {set(cconst.CVP_SUPPORTED_EXT_FTYPE.values())}")
            ftype = "csv"

        try:
            match ftype:
                case "excel":
                    # Only the first sheet holds the data, templates and exports have a single sheet
                    df = pd.read_excel(
                        self.dataset_path,
                        sheet_name=0,
                        na_values=self.missing_markers,
                        decimal=self.decimal,
                    )
                case "json":
                    df = pd.read_json(self.dataset_path)
                case "parquet":
                    df = pd.read_parquet(self.dataset_path)
                case _:
                    df = pd.read_csv(
                        self.dataset_path,
                        sep=self.separator,
                        decimal=self.decimal,
                        na_values=self.missing_markers,
                    )

            return df
        except Exception as e:
            self.logger.error(f"An error occurred while loading the dataset: {e}")
            raise RuntimeError(f"Failed to load dataset from {self.dataset_path}: {e}") from e

    @time_func
    def load(self) -> pd.DataFrame:
        """
        Loads the dataset from the specified path.

        Only accepts a limited number of filetypes, the ones spreadsheets are usually exported to.

        :return pd.DataFrame: The loaded dataset.
        :raises RuntimeError: if something wrong happens when loading the data.
        """
        self.logger.info(f"Loading dataset from path: {self.dataset_path}")
        df = self._load_dataset()

        if self.remove_unnamed:
            unnamed_cols = df.columns[df.columns.astype(str).str.contains("^Unnamed")]
            if not unnamed_cols.empty:
                self.logger.info(f"Removing unnamed columns from the dataset: {list(unnamed_cols)}")
                df = df.drop(columns=list(unnamed_cols))

        if self.missing_markers:
            df = df.replace(self.missing_markers, np.nan)

        initial_shape = df.shape
        df = df.dropna(axis=0, how="all")
        if df.shape != initial_shape:
            self.logger.info(f"Dropped {initial_shape[0] - df.shape[0]} rows with all NaN values")
            df = df.reset_index(drop=True)

        return df
