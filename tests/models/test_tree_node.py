import dataclasses

import pytest

from cvp.models.random_forest.tree.node import (
    InternalNode,
    LeafNode,
    iter_nodes,
    node_from_dict,
    node_to_dict,
    predict_node,
    tree_depth,
)


@pytest.fixture
def small_tree() -> InternalNode:
    # f <= 1.5 -> 10, else (f <= 2.5 -> 20, else 30)
    return InternalNode(
        feature="f",
        threshold=1.5,
        left=LeafNode(10.0),
        right=InternalNode(feature="f", threshold=2.5, left=LeafNode(20.0), right=LeafNode(30.0)),
    )


def test_predict_node_routes_by_threshold(small_tree):
    assert predict_node(small_tree, {"f": 1.0}) == 10.0
    assert predict_node(small_tree, {"f": 1.5}) == 10.0  # equality goes left
    assert predict_node(small_tree, {"f": 2.0}) == 20.0
    assert predict_node(small_tree, {"f": 7.0}) == 30.0


def test_depth_and_iteration(small_tree):
    assert tree_depth(LeafNode(1.0)) == 0
    assert tree_depth(small_tree) == 2

    nodes = list(iter_nodes(small_tree))
    assert len(nodes) == 5
    assert sum(node.is_leaf for node in nodes) == 3


def test_nodes_are_immutable(small_tree):
    with pytest.raises(dataclasses.FrozenInstanceError):
        small_tree.threshold = 0.0


def test_dict_form_matches_remote_file_layout(small_tree):
    payload = node_to_dict(small_tree)

    assert payload["isLeaf"] is False
    assert payload["feature"] == "f"
    assert payload["left"] == {"isLeaf": True, "value": 10.0}
    assert node_from_dict(payload) == small_tree


@pytest.mark.parametrize(
    "payload",
    [
        {"isLeaf": True},
        {"isLeaf": False, "feature": "f", "threshold": 1.0, "left": {"isLeaf": True, "value": 1}},
    ],
)
def test_node_from_dict_rejects_incomplete_payloads(payload):
    with pytest.raises(ValueError):
        node_from_dict(payload)
