"""
Classifier backends and the contract they share.

Every backend the registry can hold answers four questions:
    is_trained   -- can it predict yet?
    predict      -- class probabilities for one image
    evaluate     -- accuracy on labelled images
    summarize    -- small descriptor record for the saved-model ledger

Only the random forest is implemented here. The logistic-regression and
CNN slots are filled by external framework-backed objects that follow the
same contract.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from teachable.classification.dataset import Dataset
from teachable.classification.forest import Forest, ForestPredictor, ForestTrainer
from teachable.errors import StateError, ValidationError
from teachable.image_processing.features import FeatureExtractor
from teachable.utils.logging_config import LogContext, get_logger

logger = get_logger(__name__)

NOT_TRAINED_MESSAGE = 'Model not trained yet'


class ModelKind(Enum):
    """Closed set of backend kinds, in the order results are reported."""
    LOGISTIC_REGRESSION = 'logistic_regression'
    RANDOM_FOREST = 'random_forest'
    CNN = 'cnn'

    @classmethod
    def parse(cls, value) -> 'ModelKind':
        """
        Accept a ModelKind or its string value.

        Raises:
            ValidationError: For anything else
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ', '.join(kind.value for kind in cls)
            raise ValidationError(f"Invalid model type: {value!r} (expected one of: {valid})")


class ClassifierBackend(ABC):
    """Base class for backends held by the ModelRegistry."""

    kind: ModelKind

    @property
    @abstractmethod
    def is_trained(self) -> bool:
        ...

    @abstractmethod
    def predict(self, image) -> np.ndarray:
        ...

    @abstractmethod
    def evaluate(self, images: Sequence, labels: Sequence[int]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def summarize(self) -> Dict[str, Any]:
        ...

    def dispose(self):
        """Release resources held by the backend."""


class UntrainedModel(ClassifierBackend):
    """Placeholder reported for an empty registry slot."""

    def __init__(self, kind: ModelKind):
        self.kind = kind

    @property
    def is_trained(self) -> bool:
        return False

    def predict(self, image) -> np.ndarray:
        raise StateError(NOT_TRAINED_MESSAGE)

    def evaluate(self, images: Sequence, labels: Sequence[int]) -> Dict[str, Any]:
        raise StateError(NOT_TRAINED_MESSAGE)

    def summarize(self) -> Dict[str, Any]:
        raise StateError(NOT_TRAINED_MESSAGE)

    def __repr__(self) -> str:
        return f"UntrainedModel(kind={self.kind.value})"


class RandomForestBackend(ClassifierBackend):
    """
    Random forest over color-histogram features.

    Images may be RGBA pixel arrays, image paths or encoded bytes; they are
    turned into feature vectors by the FeatureExtractor.

    Example:
        >>> backend = RandomForestBackend(trainer=ForestTrainer(num_trees=20))
        >>> backend.train(images, labels)
        {'accuracy': 1.0, 'oob_accuracy': 0.95, 'trees': 20}
        >>> backend.predict(query_image)
        array([0.9, 0.1])
    """

    kind = ModelKind.RANDOM_FOREST

    def __init__(
        self,
        trainer: Optional[ForestTrainer] = None,
        extractor: Optional[FeatureExtractor] = None
    ):
        self.trainer = trainer or ForestTrainer()
        self.extractor = extractor or FeatureExtractor()
        self.forest: Optional[Forest] = None
        self._predictor: Optional[ForestPredictor] = None

    @property
    def is_trained(self) -> bool:
        return self.forest is not None

    @property
    def num_classes(self) -> int:
        self._require_trained()
        return self.forest.num_classes

    def _require_trained(self):
        if not self.is_trained:
            raise StateError(NOT_TRAINED_MESSAGE)

    def set_forest(self, forest: Forest):
        """Install an already trained forest."""
        self.forest = forest
        self._predictor = ForestPredictor(forest)

    def train(
        self,
        images: Sequence,
        labels: Sequence[int],
        progress: Optional[Callable[[float, Dict[str, Any]], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None
    ) -> Dict[str, Any]:
        """
        Extract features and grow the forest.

        Progress runs 0-50 during feature extraction and 50-100 while trees
        are grown.

        Returns:
            Dictionary with accuracy, oob_accuracy and trees

        Raises:
            ValidationError: If there are no images or labels mismatch
        """
        if images is None or len(images) == 0:
            raise ValidationError("No training data available")

        def extraction_progress(done: int, total: int):
            if progress is not None:
                progress(done / total * 50, {
                    'stage': 'feature-extraction', 'current': done, 'total': total
                })

        def tree_progress(percent: float, stage: Dict[str, Any]):
            if progress is not None:
                progress(50 + percent / 2, stage)

        with LogContext(f'Training {self.kind.value} on {len(images)} images', logger=logger):
            features = self.extractor.extract_batch(images, progress=extraction_progress)
            dataset = Dataset(features, labels)
            forest = self.trainer.train(dataset, progress=tree_progress, should_stop=should_stop)
            self.set_forest(forest)

        return {
            'accuracy': forest.training_accuracy,
            'oob_accuracy': forest.oob_accuracy,
            'trees': forest.tree_count
        }

    def predict_features(self, features) -> np.ndarray:
        """Class probabilities for an already extracted feature vector."""
        self._require_trained()
        return self._predictor.predict_probabilities(features)

    def predict(self, image) -> np.ndarray:
        """
        Class probabilities for one image.

        Raises:
            StateError: If the forest has not been trained
            DecodeError: If the image cannot be decoded
        """
        self._require_trained()
        return self.predict_features(self.extractor.extract_any(image))

    def predict_batch(self, images: Sequence) -> List[np.ndarray]:
        """Probability vectors for many images (failed images get zero features)."""
        self._require_trained()
        features = self.extractor.extract_batch(images)
        return [self.predict_features(row) for row in features]

    def evaluate(self, images: Sequence, labels: Sequence[int]) -> Dict[str, Any]:
        """
        Majority-vote accuracy on labelled images.

        Returns:
            Dictionary with accuracy and trees
        """
        self._require_trained()

        if images is None or len(images) == 0:
            raise ValidationError("No evaluation data available")
        if len(images) != len(labels):
            raise ValidationError(f"Got {len(images)} images but {len(labels)} labels")

        features = self.extractor.extract_batch(images)
        accuracy = self._predictor.accuracy(features, labels)

        return {
            'accuracy': accuracy,
            'trees': self.forest.tree_count
        }

    def summarize(self) -> Dict[str, Any]:
        """Descriptor record for the saved-model ledger."""
        self._require_trained()
        return {
            'kind': self.kind.value,
            'timestamp': datetime.now().isoformat(),
            'trained_at': self.forest.created_at,
            'accuracy': self.forest.training_accuracy,
            'tree_count': self.forest.tree_count
        }

    def dispose(self):
        self.forest = None
        self._predictor = None

    def __repr__(self) -> str:
        trees = self.forest.tree_count if self.forest else 0
        return f"RandomForestBackend(trained={self.is_trained}, trees={trees})"
