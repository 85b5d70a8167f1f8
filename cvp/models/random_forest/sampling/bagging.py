import numpy as np

from typing import Optional, Tuple

from cvp.exceptions import EmptyDatasetError


def bootstrap_sample(n_samples: int, rng: np.random.Generator) -> np.ndarray:
    """
    Draws `n_samples` row indices uniformly and independently, with replacement, from range(n_samples).
    """
    if n_samples <= 0:
        raise EmptyDatasetError("Cannot draw a bootstrap sample from an empty dataset")
    return rng.integers(0, n_samples, size=n_samples)


class BootstrapSampler:
    def __init__(self,
                 data: np.ndarray,
                 labels: np.ndarray,
                 rng: Optional[np.random.Generator] = None):
        data = np.asarray(data)
        labels = np.asarray(labels)

        assert data.ndim == 2, "Data must be a 2D array"
        assert labels.shape[0] == data.shape[0], "Number of samples in data and labels must be the same"

        self.data = data
        self.labels = labels
        self.n = data.shape[0]

        if self.n == 0:
            raise EmptyDatasetError("Cannot bootstrap an empty dataset")

        self.rng = rng if rng is not None else np.random.default_rng()

    def sample(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Draws a bootstrap resample of the same size as the source dataset.

        :return: the resampled rows and their labels
        """
        indices = bootstrap_sample(self.n, self.rng)
        return self.data[indices], self.labels[indices]
