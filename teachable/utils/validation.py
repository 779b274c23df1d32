"""
Validation utilities.

Functions for validating inputs, files, and data.
"""

from pathlib import Path
from typing import Union

import numpy as np

from teachable.errors import ValidationError


def validate_file_exists(file_path: Union[str, Path], description: str = "File") -> Path:
    """
    Validate that file exists.

    Args:
        file_path: Path to file
        description: Description for error message

    Returns:
        Path object

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"{description} not found: {file_path}")

    if not file_path.is_file():
        raise ValidationError(f"{description} is not a file: {file_path}")

    return file_path


def validate_directory_exists(dir_path: Union[str, Path], create: bool = False) -> Path:
    """
    Validate that directory exists.

    Args:
        dir_path: Path to directory
        create: If True, create directory if it doesn't exist

    Returns:
        Path object

    Raises:
        FileNotFoundError: If directory doesn't exist and create=False
    """
    dir_path = Path(dir_path)

    if not dir_path.exists():
        if create:
            dir_path.mkdir(parents=True, exist_ok=True)
        else:
            raise FileNotFoundError(f"Directory not found: {dir_path}")

    if not dir_path.is_dir():
        raise ValidationError(f"Path is not a directory: {dir_path}")

    return dir_path


IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.tif', '.tiff'}


def is_image_file(file_path: Union[str, Path]) -> bool:
    """Check the file extension against the supported image formats."""
    return Path(file_path).suffix.lower() in IMAGE_EXTENSIONS


def validate_image_file(file_path: Union[str, Path]) -> Path:
    """
    Validate that file is an image.

    Raises:
        ValidationError: If file is not a supported image format
    """
    file_path = validate_file_exists(file_path, "Image file")

    if not is_image_file(file_path):
        raise ValidationError(
            f"Invalid image format: {file_path.suffix}. "
            f"Supported: {', '.join(sorted(IMAGE_EXTENSIONS))}"
        )

    return file_path


def validate_feature_matrix(features) -> np.ndarray:
    """
    Validate a feature matrix.

    Args:
        features: Sequence of equal-length numeric rows

    Returns:
        2-D float64 array

    Raises:
        ValidationError: If empty, ragged, non-numeric or non-finite
    """
    if features is None or len(features) == 0:
        raise ValidationError("No training data available")

    try:
        lengths = {len(row) for row in features}
    except TypeError:
        raise ValidationError("Each feature vector must be a sequence of numbers")

    if len(lengths) != 1:
        raise ValidationError(
            f"Feature vectors must all have the same length, got lengths {sorted(lengths)}"
        )

    try:
        matrix = np.asarray(features, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Feature vectors must be numeric: {e}")

    if matrix.ndim != 2 or matrix.shape[1] == 0:
        raise ValidationError(f"Feature matrix must be 2-D and non-empty, got shape {matrix.shape}")

    if not np.all(np.isfinite(matrix)):
        raise ValidationError("Feature vectors contain NaN or infinite values")

    return matrix


def validate_labels(labels, num_samples: int) -> np.ndarray:
    """
    Validate class labels.

    Args:
        labels: Sequence of non-negative integer labels
        num_samples: Expected number of labels

    Returns:
        1-D int64 array

    Raises:
        ValidationError: If lengths differ or a label is negative or non-integer
    """
    if labels is None or len(labels) != num_samples:
        count = 0 if labels is None else len(labels)
        raise ValidationError(f"Expected {num_samples} labels, got {count}")

    label_array = np.asarray(labels)

    if label_array.ndim != 1:
        raise ValidationError(f"Labels must be 1-D, got shape {label_array.shape}")

    if not np.issubdtype(label_array.dtype, np.integer):
        if not np.issubdtype(label_array.dtype, np.floating) or \
                not np.all(np.mod(label_array, 1) == 0):
            raise ValidationError("Labels must be integers")

    label_array = label_array.astype(np.int64)

    if np.any(label_array < 0):
        raise ValidationError("Labels must be non-negative")

    return label_array

