from typing import Optional

import numpy as np


def variance(targets: np.ndarray) -> float:
    # population variance, divisor is the number of samples
    n = targets.shape[0]
    if n == 0:
        return 0.0
    return float(np.mean(np.square(targets - np.mean(targets))))


def variance_reduction(parent: np.ndarray,
                       left: np.ndarray,
                       right: np.ndarray,
                       parent_variance: Optional[float] = None) -> float:
    """
    Decrease of the size-weighted target variance obtained by splitting `parent` into `left` and `right`.

    :param parent: targets of all samples reaching the node
    :param left: targets routed to the left child
    :param right: targets routed to the right child
    :param parent_variance: precomputed variance of `parent`, computed when not given
    """
    n = parent.shape[0]
    if n == 0:
        return 0.0

    if parent_variance is None:
        parent_variance = variance(parent)

    weighted = (left.shape[0] / n) * variance(left) + (right.shape[0] / n) * variance(right)
    return parent_variance - weighted
