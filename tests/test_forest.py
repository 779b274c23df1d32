"""
Tests for random forest training and ensemble inference.
"""

import threading

import numpy as np
import pytest

from teachable.classification.dataset import Dataset
from teachable.classification.forest import (
    Forest,
    ForestPredictor,
    ForestTrainer,
    TrainingProgress
)
from teachable.classification.tree import DecisionTree, Leaf
from teachable.errors import StateError, ValidationError
from teachable.image_processing.features import FeatureExtractor


@pytest.fixture
def trainer(rng):
    return ForestTrainer(num_trees=10, rng=rng)


class TestForestTrainer:
    """Test ForestTrainer."""

    def test_red_blue_forest(self, trainer, red_blue_dataset, red_image):
        """A solid red query is voted red by most trees."""
        forest = trainer.train(red_blue_dataset)

        assert forest.tree_count == 10
        assert forest.num_classes == 2
        assert forest.num_features == 15

        probabilities = ForestPredictor(forest).predict_probabilities(
            FeatureExtractor().extract(red_image)
        )
        assert probabilities.shape == (2,)
        assert probabilities[0] >= 0.5
        assert probabilities.sum() == pytest.approx(1.0)

    def test_training_accuracy_reported(self, trainer, red_blue_dataset):
        forest = trainer.train(red_blue_dataset)

        assert 0.0 <= forest.training_accuracy <= 1.0
        assert forest.oob_accuracy is None or 0.0 <= forest.oob_accuracy <= 1.0
        assert trainer.forest is forest

    def test_empty_dataset_rejected(self, trainer):
        with pytest.raises(ValidationError, match="No training data available"):
            trainer.train(None)

    def test_invalid_tree_count(self, trainer, red_blue_dataset):
        with pytest.raises(ValidationError):
            trainer.train(red_blue_dataset, num_trees=0)

        with pytest.raises(ValueError):
            ForestTrainer(num_trees=-1)

    @pytest.mark.parametrize('kwargs', [
        {'num_trees': 0},
        {'thresholds_per_feature': 0},
        {'log_interval': 0},
        {'max_depth': -1},
    ])
    def test_explicit_zero_settings_rejected(self, kwargs):
        """Explicit zeros are validated, not replaced by config defaults."""
        with pytest.raises(ValidationError):
            ForestTrainer(**kwargs)

    def test_zero_depth_kept(self, rng):
        assert ForestTrainer(max_depth=0, rng=rng).max_depth == 0

    def test_progress_callback(self, trainer, red_blue_dataset):
        events = []
        trainer.train(red_blue_dataset, num_trees=4, progress=lambda pct, stage: events.append((pct, stage)))

        assert [pct for pct, _ in events] == [25.0, 50.0, 75.0, 100.0]
        assert events[-1][1] == {'stage': 'tree-building', 'current': 4, 'total': 4}

    def test_iter_train_yields_per_tree(self, trainer, red_blue_dataset):
        events = list(trainer.iter_train(red_blue_dataset, num_trees=3))

        assert events == [
            TrainingProgress('tree-building', 1, 3),
            TrainingProgress('tree-building', 2, 3),
            TrainingProgress('tree-building', 3, 3),
        ]
        assert trainer.forest.tree_count == 3
        assert not trainer.is_training

    def test_single_class_dataset(self, rng):
        dataset = Dataset([[0.1, 0.2], [0.3, 0.4], [0.5, 0.6]], [0, 0, 0])
        forest = ForestTrainer(num_trees=3, rng=rng).train(dataset)

        predictor = ForestPredictor(forest)
        assert predictor.predict_probabilities([0.9, 0.9]).tolist() == [1.0]
        assert forest.training_accuracy == 1.0

    def test_same_seed_same_forest(self, red_blue_dataset):
        first = ForestTrainer(num_trees=5, rng=np.random.default_rng(1)).train(red_blue_dataset)
        second = ForestTrainer(num_trees=5, rng=np.random.default_rng(1)).train(red_blue_dataset)

        assert first.trees == second.trees

    def test_concurrent_training_rejected(self, trainer, red_blue_dataset):
        """A second run on the same trainer fails while the first is mid-way."""
        running = trainer.iter_train(red_blue_dataset, num_trees=3)
        next(running)

        assert trainer.is_training
        with pytest.raises(StateError, match="Training already in progress"):
            trainer.train(red_blue_dataset)

        list(running)
        assert not trainer.is_training
        assert trainer.forest.tree_count == 3

    def test_training_from_another_thread_rejected(self, trainer, red_blue_dataset):
        started = threading.Event()
        gate = threading.Event()
        errors = []

        def hold_first_tree():
            started.set()
            gate.wait(timeout=10)
            return False

        first = threading.Thread(
            target=lambda: trainer.train(red_blue_dataset, num_trees=2, should_stop=hold_first_tree)
        )
        first.start()
        assert started.wait(timeout=10)

        try:
            trainer.train(red_blue_dataset)
        except StateError as e:
            errors.append(e)
        finally:
            gate.set()

        first.join(timeout=10)

        assert len(errors) == 1
        assert trainer.forest.tree_count == 2

    def test_cancellation(self, trainer, red_blue_dataset):
        calls = []

        def should_stop():
            calls.append(1)
            return len(calls) > 2

        with pytest.raises(StateError, match="cancelled after 2 of 10 trees"):
            trainer.train(red_blue_dataset, should_stop=should_stop)

        assert trainer.forest is None
        assert not trainer.is_training

    def test_deadline(self, rng, red_blue_dataset):
        trainer = ForestTrainer(num_trees=5, rng=rng, deadline_seconds=-1)

        with pytest.raises(StateError, match="deadline"):
            trainer.train(red_blue_dataset)

        assert not trainer.is_training

    def test_bootstrap_indices(self, trainer):
        indices = trainer.bootstrap_indices(7)

        assert indices.shape == (7,)
        assert indices.min() >= 0 and indices.max() < 7


class TestForestPredictor:
    """Test ForestPredictor."""

    @pytest.fixture
    def forest(self, rng, red_blue_dataset):
        return ForestTrainer(num_trees=10, rng=rng).train(red_blue_dataset)

    def test_untrained_rejected(self):
        with pytest.raises(StateError):
            ForestPredictor(None)

        with pytest.raises(StateError):
            ForestPredictor(Forest(trees=(), num_classes=2, num_features=15, training_accuracy=0.0))

    def test_probabilities_are_vote_shares(self, forest, red_blue_dataset):
        predictor = ForestPredictor(forest)

        for row in red_blue_dataset.features:
            votes = predictor.vote_counts(row)
            probabilities = predictor.predict_probabilities(row)

            assert votes.sum() == forest.tree_count
            assert np.allclose(probabilities, votes / forest.tree_count)
            assert probabilities.sum() == pytest.approx(1.0)
            assert np.all((probabilities >= 0) & (probabilities <= 1))

    def test_prediction_is_deterministic(self, forest, red_blue_dataset):
        predictor = ForestPredictor(forest)
        row = red_blue_dataset.features[0]

        assert np.array_equal(predictor.predict_probabilities(row), predictor.predict_probabilities(row))

    def test_wrong_feature_length(self, forest):
        with pytest.raises(ValidationError):
            ForestPredictor(forest).predict_probabilities(np.zeros(4))

    def test_predict_class_and_accuracy(self, forest, red_blue_dataset):
        predictor = ForestPredictor(forest)

        predicted = predictor.predict_many(red_blue_dataset.features)
        assert set(predicted.tolist()) <= {0, 1}

        expected = float(np.mean(predicted == red_blue_dataset.labels))
        assert predictor.accuracy(red_blue_dataset.features, red_blue_dataset.labels) == expected
        assert forest.training_accuracy == pytest.approx(expected)

    def test_vote_tie_goes_to_lowest_class(self):
        """One tree votes 1, one votes 0: the tie resolves to class 0."""
        trees = (
            DecisionTree(nodes=(Leaf(1, 1, {1: 1}),), root=0, depth=0),
            DecisionTree(nodes=(Leaf(0, 1, {0: 1}),), root=0, depth=0),
        )
        forest = Forest(trees=trees, num_classes=2, num_features=1, training_accuracy=0.5)
        predictor = ForestPredictor(forest)

        assert predictor.vote_counts([0.3]).tolist() == [1, 1]
        assert predictor.predict_class([0.3]) == 0

    def test_accuracy_requires_samples(self, forest):
        with pytest.raises(ValidationError):
            ForestPredictor(forest).accuracy(np.zeros((0, 15)), [])


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
