"""
Random forest training and inference.

ForestTrainer grows an ensemble of decision trees, each on a bootstrap
sample of the training set (sampling with replacement, same size as the
original). ForestPredictor turns the trees' votes into class probabilities.

A Forest is frozen once built, so any number of predictors may read it
concurrently. The trainer itself is single-flight: a second train() on the
same instance while one is running raises StateError.

Example:
    >>> trainer = ForestTrainer(num_trees=50, rng=np.random.default_rng(42))
    >>> forest = trainer.train(dataset, progress=lambda pct, stage: print(pct))
    >>> predictor = ForestPredictor(forest)
    >>> predictor.predict_probabilities(features)
    array([0.86, 0.14])
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from teachable.classification.dataset import Dataset
from teachable.classification.tree import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_THRESHOLDS_PER_FEATURE,
    DecisionTree,
    classify,
    induce
)
from teachable.config import config
from teachable.errors import StateError, ValidationError
from teachable.utils.logging_config import LogContext, ProgressLogger, get_logger

logger = get_logger(__name__)

DEFAULT_NUM_TREES = 50

ProgressCallback = Callable[[float, Dict[str, Any]], None]


@dataclass(frozen=True)
class Forest:
    """
    Trained random forest.

    Attributes:
        trees: Decision trees, in training order
        num_classes: Length of every probability vector this forest produces
        num_features: Expected feature vector length
        training_accuracy: Majority-vote accuracy on the training set itself
            (optimistic, the trees have seen these samples)
        oob_accuracy: Out-of-bag accuracy, or None if no sample was ever out of bag
        created_at: ISO timestamp of training completion
    """
    trees: Tuple[DecisionTree, ...]
    num_classes: int
    num_features: int
    training_accuracy: float
    oob_accuracy: Optional[float] = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def tree_count(self) -> int:
        return len(self.trees)


@dataclass(frozen=True)
class TrainingProgress:
    """One progress report emitted after a tree has been grown."""
    stage: str
    current: int
    total: int

    @property
    def percent(self) -> float:
        return self.current / self.total * 100 if self.total > 0 else 100.0

    def as_stage(self) -> Dict[str, Any]:
        return {'stage': self.stage, 'current': self.current, 'total': self.total}


def tally_votes(
    trees: Sequence[DecisionTree],
    features: np.ndarray,
    num_classes: int
) -> np.ndarray:
    """Vote count per class for one feature vector."""
    votes = np.zeros(num_classes, dtype=np.int64)
    for tree in trees:
        votes[classify(tree, features)] += 1
    return votes


class ForestTrainer:
    """
    Grow a random forest by bootstrap aggregation.

    Cancellation (`should_stop`) and the optional deadline are checked only
    between trees; a tree that has started is always finished.

    Example:
        >>> trainer = ForestTrainer(num_trees=10, rng=np.random.default_rng(0))
        >>> for event in trainer.iter_train(dataset):
        ...     print(f"{event.percent:.0f}%")
        >>> forest = trainer.forest
    """

    def __init__(
        self,
        num_trees: Optional[int] = None,
        max_depth: Optional[int] = None,
        thresholds_per_feature: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        deadline_seconds: Optional[float] = None,
        log_interval: Optional[int] = None
    ):
        """
        Initialize forest trainer.

        Args:
            num_trees: Trees per forest (default: from config, 50)
            max_depth: Maximum tree depth (default: from config, 10)
            thresholds_per_feature: Candidate thresholds per sampled feature
            rng: Random source for bootstrapping and split search. If None,
                one is seeded from config `forest.seed` (None = fresh entropy).
            deadline_seconds: Abort training once this much time has passed
            log_interval: Log progress every N trees
        """
        if num_trees is None:
            num_trees = config.get('forest.num_trees', DEFAULT_NUM_TREES)
        if max_depth is None:
            max_depth = config.get('forest.max_depth', DEFAULT_MAX_DEPTH)
        if thresholds_per_feature is None:
            thresholds_per_feature = config.get(
                'forest.thresholds_per_feature', DEFAULT_THRESHOLDS_PER_FEATURE
            )
        if deadline_seconds is None:
            deadline_seconds = config.get('forest.deadline_seconds')
        if log_interval is None:
            log_interval = config.get('forest.progress_log_interval', 10)

        self.num_trees = int(num_trees)
        self.max_depth = int(max_depth)
        self.thresholds_per_feature = int(thresholds_per_feature)
        self.deadline_seconds = deadline_seconds
        self.log_interval = int(log_interval)

        if rng is None:
            rng = np.random.default_rng(config.get('forest.seed'))
        self.rng = rng

        for name in ('num_trees', 'thresholds_per_feature', 'log_interval'):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be at least 1, got {getattr(self, name)}")
        if self.max_depth < 0:
            raise ValidationError(f"max_depth must not be negative, got {self.max_depth}")

        self.forest: Optional[Forest] = None
        self._in_flight = threading.Lock()

    @property
    def is_training(self) -> bool:
        return self._in_flight.locked()

    def bootstrap_indices(self, num_samples: int) -> np.ndarray:
        """Draw `num_samples` row indices with replacement."""
        return self.rng.integers(0, num_samples, size=num_samples)

    def iter_train(
        self,
        dataset: Dataset,
        num_trees: Optional[int] = None,
        should_stop: Optional[Callable[[], bool]] = None
    ) -> Iterator[TrainingProgress]:
        """
        Train step by step, yielding progress after every tree.

        The finished forest is stored in `self.forest` once the iterator is
        exhausted.

        Raises:
            ValidationError: If the dataset is empty
            StateError: If training is already running, was cancelled or
                ran past its deadline
        """
        if dataset is None or len(dataset) == 0:
            raise ValidationError("No training data available")

        num_trees = self.num_trees if num_trees is None else int(num_trees)
        if num_trees < 1:
            raise ValidationError(f"num_trees must be at least 1, got {num_trees}")

        return self._grow_forest(dataset, num_trees, should_stop)

    def _grow_forest(
        self,
        dataset: Dataset,
        num_trees: int,
        should_stop: Optional[Callable[[], bool]]
    ) -> Iterator[TrainingProgress]:
        if not self._in_flight.acquire(blocking=False):
            raise StateError("Training already in progress")

        try:
            features = dataset.features
            labels = dataset.labels
            num_samples = len(dataset)
            num_classes = dataset.num_classes

            logger.info(
                f"Training random forest: {num_samples} samples, "
                f"{num_classes} classes, {num_trees} trees"
            )

            trees: List[DecisionTree] = []
            oob_votes = np.zeros((num_samples, num_classes), dtype=np.int64)
            started = time.monotonic()

            progress = ProgressLogger(
                total=num_trees,
                name='tree building',
                log_interval=self.log_interval,
                logger=logger
            )

            for i in range(num_trees):
                if should_stop is not None and should_stop():
                    raise StateError(f"Training cancelled after {i} of {num_trees} trees")

                if self.deadline_seconds is not None and \
                        time.monotonic() - started > self.deadline_seconds:
                    raise StateError(
                        f"Training deadline of {self.deadline_seconds}s exceeded "
                        f"after {i} of {num_trees} trees"
                    )

                indices = self.bootstrap_indices(num_samples)
                tree = induce(
                    features[indices],
                    labels[indices],
                    self.rng,
                    max_depth=self.max_depth,
                    thresholds_per_feature=self.thresholds_per_feature
                )
                trees.append(tree)

                in_bag = np.zeros(num_samples, dtype=bool)
                in_bag[indices] = True
                for row in np.flatnonzero(~in_bag):
                    oob_votes[row, classify(tree, features[row])] += 1

                progress.update()
                yield TrainingProgress('tree-building', i + 1, num_trees)

            progress.finish()

            training_accuracy = self._majority_vote_accuracy(
                trees, features, labels, num_classes
            )
            oob_accuracy = self._oob_accuracy(oob_votes, labels)

            self.forest = Forest(
                trees=tuple(trees),
                num_classes=num_classes,
                num_features=dataset.num_features,
                training_accuracy=training_accuracy,
                oob_accuracy=oob_accuracy
            )

            oob_text = f"{oob_accuracy:.3f}" if oob_accuracy is not None else "n/a"
            logger.info(
                f"Random forest trained: training accuracy={training_accuracy:.3f}, "
                f"oob accuracy={oob_text}"
            )

        finally:
            self._in_flight.release()

    def train(
        self,
        dataset: Dataset,
        num_trees: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
        should_stop: Optional[Callable[[], bool]] = None
    ) -> Forest:
        """
        Train a forest.

        Args:
            dataset: Training samples
            num_trees: Override the configured number of trees
            progress: Called with (percent, stage) after every tree, where
                stage = {'stage': 'tree-building', 'current': i, 'total': n}
            should_stop: Polled before every tree; returning True cancels

        Returns:
            The trained, immutable forest

        Raises:
            ValidationError: If the dataset is empty
            StateError: If training is already running, was cancelled or
                ran past its deadline
        """
        with LogContext('Random forest training', logger=logger):
            for event in self.iter_train(dataset, num_trees, should_stop):
                if progress is not None:
                    progress(event.percent, event.as_stage())

        return self.forest

    @staticmethod
    def _majority_vote_accuracy(
        trees: Sequence[DecisionTree],
        features: np.ndarray,
        labels: np.ndarray,
        num_classes: int
    ) -> float:
        correct = 0
        for row, label in zip(features, labels):
            votes = tally_votes(trees, row, num_classes)
            if int(np.argmax(votes)) == int(label):
                correct += 1
        return correct / len(labels)

    @staticmethod
    def _oob_accuracy(oob_votes: np.ndarray, labels: np.ndarray) -> Optional[float]:
        voted = oob_votes.sum(axis=1) > 0
        if not np.any(voted):
            return None
        predicted = np.argmax(oob_votes[voted], axis=1)
        return float(np.mean(predicted == labels[voted]))


class ForestPredictor:
    """
    Ensemble inference over a trained forest.

    Inference is deterministic: no randomness is used after training.
    """

    def __init__(self, forest: Forest):
        if forest is None or forest.tree_count == 0:
            raise StateError("Model not trained yet")
        self.forest = forest

    def _as_vector(self, features) -> np.ndarray:
        try:
            vector = np.asarray(features, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Feature vector must be numeric: {e}")

        if vector.ndim != 1 or vector.shape[0] != self.forest.num_features:
            raise ValidationError(
                f"Expected a feature vector of length {self.forest.num_features}, "
                f"got shape {vector.shape}"
            )
        return vector

    def vote_counts(self, features) -> np.ndarray:
        """Votes per class, indexed by class id."""
        return tally_votes(self.forest.trees, self._as_vector(features), self.forest.num_classes)

    def predict_probabilities(self, features) -> np.ndarray:
        """
        Class probabilities as vote share.

        Returns:
            Array of length num_classes in ascending class order, summing to 1
        """
        return self.vote_counts(features) / self.forest.tree_count

    def predict_class(self, features) -> int:
        """Majority vote; the lowest class id wins ties."""
        return int(np.argmax(self.vote_counts(features)))

    def predict_many(self, features) -> np.ndarray:
        """Majority-vote class for every row of a feature matrix."""
        return np.array([self.predict_class(row) for row in features], dtype=np.int64)

    def accuracy(self, features, labels) -> float:
        """Fraction of rows whose predicted class equals the label."""
        labels = np.asarray(labels, dtype=np.int64)
        if labels.size == 0:
            raise ValidationError("No evaluation data available")
        return float(np.mean(self.predict_many(features) == labels))
