import json

import numpy as np
import pandas as pd
import pytest

import cvp.constants as cconst
from cvp.services.data_service import DataService
from cvp.storage.model_store import ModelStore

SMALL_FOREST = {"n_estimators": 10, "random_state": 0}


def make_frame(n_rows: int, seed: int = 0, with_target: bool = True) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    data = {
        "采集天数": rng.integers(1, 30, size=n_rows),
        "笔记数": rng.integers(0, 200, size=n_rows),
        "点赞数": rng.integers(0, 5000, size=n_rows),
        "收藏数": rng.integers(0, 2000, size=n_rows),
        "评论数": rng.integers(0, 500, size=n_rows),
    }
    df = pd.DataFrame(data, columns=list(cconst.CVP_FEATURES))
    if with_target:
        df[cconst.CVP_TARGET] = 40 * df["采集天数"] + 3 * df["笔记数"] + 0.1 * df["点赞数"]
    return df


class FakeResponse:
    def __init__(self, status_code=200, text="", payload=None, reason="OK"):
        self.status_code = status_code
        self.text = text if payload is None else json.dumps(payload)
        self.reason = reason
        self._payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


class FakeSession:
    """Replays queued responses and records every request."""
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def put(self, url, **kwargs):
        return self._next("PUT", url, **kwargs)


@pytest.fixture
def training_frame() -> pd.DataFrame:
    return make_frame(40, seed=1)


@pytest.fixture
def prediction_frame() -> pd.DataFrame:
    return make_frame(8, seed=2, with_target=False)


@pytest.fixture
def store(tmp_path) -> ModelStore:
    return ModelStore(tmp_path / "store")


@pytest.fixture
def service(tmp_path, store) -> DataService:
    return DataService(store=store, output_dir=tmp_path / "output", forest_config=SMALL_FOREST)
