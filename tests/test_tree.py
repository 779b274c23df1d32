"""
Tests for decision tree induction and inference.
"""

import numpy as np
import pytest

from teachable.classification.tree import (
    Leaf,
    Split,
    classify,
    entropy,
    find_best_split,
    induce,
    information_gain,
    label_distribution,
    majority_label
)


@pytest.fixture
def separable_data():
    """Two classes separated on feature 1; features 0 and 2 are noise."""
    rng = np.random.default_rng(11)
    features = rng.random((40, 3))
    labels = np.zeros(40, dtype=np.int64)
    features[20:, 1] += 2.0
    labels[20:] = 1
    return features, labels


class TestImpurity:
    """Test entropy and information gain."""

    def test_entropy_values(self):
        assert entropy(np.array([], dtype=np.int64)) == 0.0
        assert entropy(np.array([2, 2, 2])) == 0.0
        assert entropy(np.array([0, 1, 0, 1])) == pytest.approx(1.0)
        assert entropy(np.array([0, 1, 2, 3])) == pytest.approx(2.0)

    def test_perfect_split_gain(self):
        column = np.array([0.1, 0.2, 0.8, 0.9])
        labels = np.array([0, 0, 1, 1])

        assert information_gain(column, labels, 0.2) == pytest.approx(1.0)

    def test_useless_split_gain(self):
        column = np.array([0.1, 0.2, 0.8, 0.9])
        labels = np.array([0, 1, 0, 1])

        assert information_gain(column, labels, 0.9) == pytest.approx(0.0)


class TestMajority:
    """Test leaf label selection."""

    def test_distribution_sorted(self):
        assert label_distribution(np.array([2, 0, 2, 1])) == {0: 1, 1: 1, 2: 2}

    def test_majority(self):
        assert majority_label({0: 1, 1: 4, 2: 2}) == 1

    def test_tie_goes_to_lowest_label(self):
        assert majority_label({3: 2, 1: 2, 2: 1}) == 1

    def test_empty_uses_fallback(self):
        assert majority_label({}, fallback=4) == 4


class TestInduction:
    """Test tree growing."""

    def test_pure_labels_give_single_leaf(self):
        features = np.random.default_rng(0).random((6, 4))
        labels = np.full(6, 3)

        tree = induce(features, labels, np.random.default_rng(0))

        assert tree.num_nodes == 1
        assert tree.depth == 0
        assert tree.nodes[tree.root] == Leaf(3, 6, {3: 6})

    def test_max_depth_zero_gives_majority_leaf(self, separable_data):
        features, labels = separable_data
        labels = labels.copy()
        labels[:25] = 0

        tree = induce(features, labels, np.random.default_rng(0), max_depth=0)

        assert tree.num_nodes == 1
        assert tree.nodes[tree.root].value == 0

    def test_constant_features_give_leaf(self):
        features = np.ones((4, 4))
        labels = np.array([0, 1, 1, 0])

        tree = induce(features, labels, np.random.default_rng(0))

        assert tree.num_nodes == 1
        # Tie between 0 and 1 goes to 0
        assert tree.nodes[tree.root].value == 0

    def test_depth_limit_respected(self, separable_data):
        features, labels = separable_data
        noisy_labels = np.random.default_rng(5).integers(0, 3, size=labels.size)

        tree = induce(features, noisy_labels, np.random.default_rng(1), max_depth=3)

        assert tree.depth <= 3

    def test_same_seed_same_tree(self, separable_data):
        features, labels = separable_data

        first = induce(features, labels, np.random.default_rng(99))
        second = induce(features, labels, np.random.default_rng(99))

        assert first == second

    def test_arena_is_a_tree(self, separable_data):
        """Every non-root node has exactly one parent and children point forward."""
        features, labels = separable_data
        tree = induce(features, labels, np.random.default_rng(3))

        children = []
        for index, node in enumerate(tree.nodes):
            if isinstance(node, Split):
                assert index < node.left < tree.num_nodes
                assert index < node.right < tree.num_nodes
                children.extend([node.left, node.right])

        assert sorted(children) == [i for i in range(tree.num_nodes) if i != tree.root]
        assert tree.num_leaves == tree.num_nodes - len(children) // 2

    def test_leaf_values_are_known_labels(self, separable_data):
        features, labels = separable_data
        tree = induce(features, labels, np.random.default_rng(4))

        assert set(tree.leaf_values()) <= {0, 1}

    def test_fully_separable_data_splits_once(self):
        """With every threshold tried, the root finds the perfect split."""
        features = np.random.default_rng(12).random((40, 3))
        features[20:] += 2.0
        labels = np.array([0] * 20 + [1] * 20)

        tree = induce(features, labels, np.random.default_rng(8), thresholds_per_feature=64)

        assert tree.depth == 1
        assert tree.num_leaves == 2
        assert [classify(tree, row) for row in features] == labels.tolist()
        assert classify(tree, np.array([0.0, 0.0, 0.0])) == 0
        assert classify(tree, np.array([3.5, 3.5, 3.5])) == 1


class TestBestSplit:
    """Test the random split search."""

    def test_constant_features_have_no_split(self):
        features = np.zeros((5, 4))
        labels = np.array([0, 1, 0, 1, 0])

        assert find_best_split(features, labels, np.random.default_rng(0)) is None

    def test_single_feature_split_found(self):
        features = np.array([[0.0], [0.1], [0.9], [1.0]])
        labels = np.array([0, 0, 1, 1])

        split = find_best_split(features, labels, np.random.default_rng(0), thresholds_per_feature=4)

        assert split.feature_index == 0
        assert split.threshold == pytest.approx(0.1)
        assert split.gain == pytest.approx(1.0)

    def test_first_drawn_threshold_wins_equal_gain(self):
        """Thresholds 0.0 and 2.0 give the same gain; the one drawn first is kept."""
        features = np.array([[0.0], [1.0], [2.0], [3.0]])
        labels = np.array([0, 1, 1, 0])

        for seed in range(6):
            replay = np.random.default_rng(seed)
            replay.choice(1, size=1, replace=False)
            drawn = replay.choice(np.unique(features[:, 0]), size=4, replace=False)
            first_tied = next(t for t in drawn if t in (0.0, 2.0))

            split = find_best_split(features, labels, np.random.default_rng(seed), thresholds_per_feature=4)

            assert split.threshold == first_tied


class TestImmutability:
    """Test that grown trees cannot be changed."""

    def test_leaf_distribution_is_read_only(self):
        source = {1: 2}
        leaf = Leaf(1, 2, source)
        source[5] = 1000

        assert dict(leaf.distribution) == {1: 2}
        with pytest.raises(TypeError):
            leaf.distribution[5] = 1000

    def test_grown_leaves_are_read_only(self, separable_data):
        features, labels = separable_data
        tree = induce(features, labels, np.random.default_rng(3))

        for node in tree.nodes:
            if isinstance(node, Leaf):
                with pytest.raises(TypeError):
                    node.distribution[5] = 1000


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
