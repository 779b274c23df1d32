"""
Training data model and folder-based dataset supplier.

A Dataset is an immutable collection of labelled feature vectors used for a
single training run. ImageFolderSupplier reads a directory with one
sub-directory per class and hands out (image path, label) pairs; it is the
only place that touches the file system.

Example:
    >>> supplier = ImageFolderSupplier(Path('./data/datasets/fruit'))
    >>> paths, labels, class_names = supplier.load()
    >>> train, test = train_test_split(paths, labels, test_ratio=0.2, rng=rng)
"""

from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from teachable.errors import ValidationError
from teachable.utils.logging_config import get_logger
from teachable.utils.validation import (
    is_image_file,
    validate_directory_exists,
    validate_feature_matrix,
    validate_labels
)

logger = get_logger(__name__)


class LabeledSample(NamedTuple):
    features: np.ndarray
    label: int


class Dataset:
    """
    Immutable set of labelled feature vectors.

    The feature matrix and label vector are stored as read-only arrays, so
    neither the trainer nor callers can modify a dataset after it is built.

    Example:
        >>> dataset = Dataset([[0.1, 0.9], [0.8, 0.2]], [0, 1])
        >>> len(dataset), dataset.num_classes, dataset.num_features
        (2, 2, 2)
    """

    def __init__(self, features, labels):
        """
        Build a dataset.

        Args:
            features: Sequence of equal-length numeric feature vectors
            labels: One non-negative integer label per feature vector

        Raises:
            ValidationError: On empty, ragged or mislabelled input
        """
        matrix = validate_feature_matrix(features)
        label_array = validate_labels(labels, matrix.shape[0])

        matrix = matrix.copy()
        label_array = label_array.copy()
        matrix.flags.writeable = False
        label_array.flags.writeable = False

        self._features = matrix
        self._labels = label_array

    @classmethod
    def from_samples(cls, samples: Sequence[LabeledSample]) -> 'Dataset':
        """Build a dataset from (features, label) pairs."""
        if not samples:
            raise ValidationError("No training data available")
        return cls([s.features for s in samples], [s.label for s in samples])

    @property
    def features(self) -> np.ndarray:
        return self._features

    @property
    def labels(self) -> np.ndarray:
        return self._labels

    @property
    def num_classes(self) -> int:
        """Number of classes, i.e. the highest label plus one."""
        return int(self._labels.max()) + 1

    @property
    def num_features(self) -> int:
        return int(self._features.shape[1])

    def class_counts(self) -> List[int]:
        """Number of samples per class id."""
        return np.bincount(self._labels, minlength=self.num_classes).tolist()

    def samples(self) -> List[LabeledSample]:
        return list(self)

    def __len__(self) -> int:
        return int(self._labels.shape[0])

    def __iter__(self) -> Iterator[LabeledSample]:
        for row, label in zip(self._features, self._labels):
            yield LabeledSample(row, int(label))

    def __repr__(self) -> str:
        return (
            f"Dataset(samples={len(self)}, features={self.num_features}, "
            f"classes={self.num_classes})"
        )


class ImageFolderSupplier:
    """
    Supply labelled image paths from a class-per-directory layout.

        root/
            apples/  img1.png img2.jpg ...
            pears/   img3.png ...

    Class ids follow the sorted directory names.
    """

    def __init__(self, root: Path):
        self.root = validate_directory_exists(root)

    def class_names(self) -> List[str]:
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def load(self) -> Tuple[List[Path], List[int], List[str]]:
        """
        List every image with its class id.

        Returns:
            Tuple of (image_paths, labels, class_names)

        Raises:
            ValidationError: If the root has no class directories or no images
        """
        class_names = self.class_names()
        if not class_names:
            raise ValidationError(f"No class directories found in {self.root}")

        paths: List[Path] = []
        labels: List[int] = []

        for label, class_name in enumerate(class_names):
            class_images = sorted(
                p for p in (self.root / class_name).iterdir()
                if p.is_file() and is_image_file(p)
            )

            if not class_images:
                logger.warning(f"Class '{class_name}' has no images")

            paths.extend(class_images)
            labels.extend([label] * len(class_images))

        if not paths:
            raise ValidationError("No training data available")

        logger.info(
            f"Loaded {len(paths)} images in {len(class_names)} classes from {self.root}"
        )

        return paths, labels, class_names


def train_test_split(
    items: Sequence,
    labels: Sequence[int],
    test_ratio: float = 0.2,
    rng: Optional[np.random.Generator] = None
) -> Tuple[Tuple[list, List[int]], Tuple[list, List[int]]]:
    """
    Shuffle each class separately and hold out `test_ratio` of it.

    Every class keeps at least one training item.

    Returns:
        ((train_items, train_labels), (test_items, test_labels))
    """
    if not 0.0 <= test_ratio < 1.0:
        raise ValidationError(f"test_ratio must be in [0, 1), got {test_ratio}")
    if len(items) != len(labels):
        raise ValidationError(f"Got {len(items)} items but {len(labels)} labels")

    if rng is None:
        rng = np.random.default_rng()

    train_items, train_labels, test_items, test_labels = [], [], [], []

    for label in sorted(set(labels)):
        indices = [i for i, lab in enumerate(labels) if lab == label]
        order = rng.permutation(len(indices))
        shuffled = [indices[i] for i in order]

        test_count = int(round(len(shuffled) * test_ratio))
        test_count = min(test_count, len(shuffled) - 1)

        for position, index in enumerate(shuffled):
            if position < test_count:
                test_items.append(items[index])
                test_labels.append(labels[index])
            else:
                train_items.append(items[index])
                train_labels.append(labels[index])

    return (train_items, train_labels), (test_items, test_labels)
