from .forest.estimator import RandomForestRegressor
from .forest.forest import Forest, PredictionResult, predict, predict_frame
from .forest.trainer import ForestTrainer, train
from .tree.node import InternalNode, LeafNode, TreeNode
from .tree.tree import RegressionTree
from .sampling.bagging import BootstrapSampler, bootstrap_sample

__all__ = [
    "RandomForestRegressor",
    "Forest",
    "PredictionResult",
    "predict",
    "predict_frame",
    "ForestTrainer",
    "train",
    "InternalNode",
    "LeafNode",
    "TreeNode",
    "RegressionTree",
    "BootstrapSampler",
    "bootstrap_sample",
]
