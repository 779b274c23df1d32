"""
Decision tree induction and inference for the random forest.

Trees are stored as an arena: a tuple of frozen nodes addressed by index.
A node is either a Leaf (a class prediction) or a Split (a threshold test on
one feature whose children are arena indices). Every child index is written
exactly once, by its parent, so the tree is acyclic by construction.

Split search follows the classic random-forest recipe:
- random subspace: floor(sqrt(num_features)) features per node
- a few random candidate thresholds per feature, drawn from observed values
- candidates scored by information gain (log2 entropy)

All randomness comes from the numpy Generator passed in by the caller, so a
fixed seed gives a fixed tree.
"""

from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

DEFAULT_MAX_DEPTH = 10
DEFAULT_THRESHOLDS_PER_FEATURE = 5


@dataclass(frozen=True)
class Leaf:
    """Terminal node predicting `value`; `distribution` maps label -> count (read-only)."""
    value: int
    count: int
    distribution: Mapping[int, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'distribution', MappingProxyType(dict(self.distribution)))


@dataclass(frozen=True)
class Split:
    """Internal node: go to `left` when x[feature_index] <= threshold, else `right`."""
    feature_index: int
    threshold: float
    left: int
    right: int


TreeNode = Union[Leaf, Split]


@dataclass(frozen=True)
class SplitCandidate:
    feature_index: int
    threshold: float
    gain: float


@dataclass(frozen=True)
class DecisionTree:
    """
    Immutable decision tree.

    Attributes:
        nodes: Node arena
        root: Index of the root node in `nodes`
        depth: Depth of the deepest leaf (a single leaf has depth 0)
    """
    nodes: Tuple[TreeNode, ...]
    root: int
    depth: int

    @property
    def num_nodes(self) -> int:
        return len(self.nodes)

    @property
    def num_leaves(self) -> int:
        return sum(1 for node in self.nodes if isinstance(node, Leaf))

    def leaf_values(self) -> List[int]:
        return [node.value for node in self.nodes if isinstance(node, Leaf)]


def entropy(labels: np.ndarray) -> float:
    """
    Shannon entropy (base 2) of a label array.

    Empty arrays have entropy 0; empty classes contribute 0 (0 * log 0 = 0).
    """
    if labels.size == 0:
        return 0.0

    counts = np.bincount(labels)
    probabilities = counts[counts > 0] / labels.size
    return float(-np.sum(probabilities * np.log2(probabilities)))


def information_gain(
    column: np.ndarray,
    labels: np.ndarray,
    threshold: float,
    parent_entropy: Optional[float] = None
) -> float:
    """Entropy reduction of splitting `labels` on column <= threshold."""
    if parent_entropy is None:
        parent_entropy = entropy(labels)

    mask = column <= threshold
    left = labels[mask]
    right = labels[~mask]
    total = labels.size

    return (
        parent_entropy
        - (left.size / total) * entropy(left)
        - (right.size / total) * entropy(right)
    )


def label_distribution(labels: np.ndarray) -> Dict[int, int]:
    """Label -> count, in ascending label order."""
    counts = Counter(int(label) for label in labels)
    return {label: counts[label] for label in sorted(counts)}


def majority_label(distribution: Mapping[int, int], fallback: int = 0) -> int:
    """Most frequent label, lowest label on ties; `fallback` when empty."""
    if not distribution:
        return fallback

    best_label = fallback
    best_count = -1
    for label in sorted(distribution):
        if distribution[label] > best_count:
            best_label = label
            best_count = distribution[label]

    return best_label


def find_best_split(
    features: np.ndarray,
    labels: np.ndarray,
    rng: np.random.Generator,
    thresholds_per_feature: int = DEFAULT_THRESHOLDS_PER_FEATURE
) -> Optional[SplitCandidate]:
    """
    Search a random feature subspace for the split with the highest gain.

    Features are visited in the order they were drawn and thresholds in the
    order they were drawn; a candidate replaces the current best only with a
    strictly larger gain, so the first-found wins ties.

    Returns:
        Best candidate, or None when every sampled feature is constant
    """
    num_features = features.shape[1]
    num_to_try = max(1, int(np.floor(np.sqrt(num_features))))
    feature_indices = rng.choice(num_features, size=num_to_try, replace=False)

    parent_entropy = entropy(labels)
    best: Optional[SplitCandidate] = None
    best_gain = -1.0

    for feature_index in feature_indices:
        column = features[:, feature_index]
        unique_values = np.unique(column)

        if unique_values.size <= 1:
            continue

        num_thresholds = min(thresholds_per_feature, unique_values.size)
        thresholds = rng.choice(unique_values, size=num_thresholds, replace=False)

        for threshold in thresholds:
            gain = information_gain(column, labels, threshold, parent_entropy)

            if gain > best_gain:
                best_gain = gain
                best = SplitCandidate(int(feature_index), float(threshold), float(gain))

    return best


def induce(
    features: np.ndarray,
    labels: np.ndarray,
    rng: np.random.Generator,
    max_depth: int = DEFAULT_MAX_DEPTH,
    thresholds_per_feature: int = DEFAULT_THRESHOLDS_PER_FEATURE
) -> DecisionTree:
    """
    Grow a decision tree on the given samples.

    Args:
        features: Feature matrix (n_samples, n_features)
        labels: Integer labels (n_samples,)
        rng: Random source for feature and threshold selection
        max_depth: Nodes at this depth become leaves
        thresholds_per_feature: Candidate thresholds drawn per sampled feature

    Returns:
        The grown tree

    Example:
        >>> rng = np.random.default_rng(0)
        >>> tree = induce(X, y, rng)
        >>> classify(tree, X[0])
    """
    features = np.asarray(features, dtype=np.float64)
    labels = np.asarray(labels, dtype=np.int64)

    nodes: List[Optional[TreeNode]] = []
    deepest = 0

    def grow(sample_index: np.ndarray, depth: int, fallback: int) -> int:
        nonlocal deepest
        deepest = max(deepest, depth)

        node_labels = labels[sample_index]
        distribution = label_distribution(node_labels)
        majority = majority_label(distribution, fallback)

        slot = len(nodes)
        nodes.append(None)

        if sample_index.size == 0 or depth >= max_depth or len(distribution) == 1:
            nodes[slot] = Leaf(majority, int(sample_index.size), distribution)
            return slot

        split = find_best_split(
            features[sample_index], node_labels, rng, thresholds_per_feature
        )
        if split is None:
            nodes[slot] = Leaf(majority, int(sample_index.size), distribution)
            return slot

        goes_left = features[sample_index, split.feature_index] <= split.threshold
        left = grow(sample_index[goes_left], depth + 1, majority)
        right = grow(sample_index[~goes_left], depth + 1, majority)

        nodes[slot] = Split(split.feature_index, split.threshold, left, right)
        return slot

    root = grow(np.arange(labels.size), 0, 0)

    return DecisionTree(nodes=tuple(nodes), root=root, depth=deepest)


def classify(tree: DecisionTree, features: np.ndarray) -> int:
    """Descend from the root to a leaf and return its label."""
    node = tree.nodes[tree.root]

    while isinstance(node, Split):
        if features[node.feature_index] <= node.threshold:
            node = tree.nodes[node.left]
        else:
            node = tree.nodes[node.right]

    return node.value
