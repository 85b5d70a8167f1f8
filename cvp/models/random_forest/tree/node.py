from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Union


@dataclass(frozen=True)
class LeafNode:
    """
    Terminal node of a regression tree, holding the mean target of the samples that reached it.
    """
    value: float

    @property
    def is_leaf(self) -> bool:
        return True


@dataclass(frozen=True)
class InternalNode:
    """
    Decision node of a regression tree.

    Samples with `row[feature] <= threshold` are routed to the left child, the rest to the right child.
    Children are owned exclusively by this node, nodes are never shared between trees.
    """
    feature: str
    threshold: float
    left: "TreeNode"
    right: "TreeNode"

    @property
    def is_leaf(self) -> bool:
        return False


TreeNode = Union[LeafNode, InternalNode]


def predict_node(node: TreeNode, row: Mapping[str, Any]) -> float:
    """
    Routes a single row from `node` down to a leaf and returns the leaf value.

    :param TreeNode node: the root of the (sub)tree to evaluate
    :param Mapping[str, Any] row: feature name to numeric value
    :return float: the prediction of the reached leaf
    """
    current = node
    while isinstance(current, InternalNode):
        if float(row[current.feature]) <= current.threshold:
            current = current.left
        else:
            current = current.right

    return current.value


def tree_depth(node: TreeNode) -> int:
    # a single leaf has depth 0
    if isinstance(node, LeafNode):
        return 0
    return 1 + max(tree_depth(node.left), tree_depth(node.right))


def iter_nodes(node: TreeNode) -> Iterator[TreeNode]:
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if isinstance(current, InternalNode):
            stack.append(current.right)
            stack.append(current.left)


def node_to_dict(node: TreeNode) -> dict[str, Any]:
    """
    Serializes a tree into the nested JSON-compatible form used by the remote model file.
    """
    if isinstance(node, LeafNode):
        return {"isLeaf": True, "value": node.value}

    return {
        "isLeaf": False,
        "feature": node.feature,
        "threshold": node.threshold,
        "left": node_to_dict(node.left),
        "right": node_to_dict(node.right),
    }


def node_from_dict(payload: Mapping[str, Any]) -> TreeNode:
    if not isinstance(payload, Mapping):
        raise TypeError(f"Tree node payload must be a mapping, got {type(payload).__name__}")

    if payload.get("isLeaf"):
        if payload.get("value") is None:
            raise ValueError("Leaf node payload is missing 'value'")
        return LeafNode(value=float(payload["value"]))

    missing = [key for key in ("feature", "threshold", "left", "right") if payload.get(key) is None]
    if missing:
        raise ValueError(f"Internal node payload is missing {missing}")

    return InternalNode(
        feature=str(payload["feature"]),
        threshold=float(payload["threshold"]),
        left=node_from_dict(payload["left"]),
        right=node_from_dict(payload["right"]),
    )
