"""
Feature Extraction Module

Turns a decoded image into a fixed-length color feature vector for the
random forest: a per-channel color histogram plus per-channel mean intensity,
computed on a small downsampled copy of the image.
"""

from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from teachable.config import config
from teachable.errors import DecodeError
from teachable.utils.image_utils import (
    decode_image_bytes,
    load_image_rgba,
    resize_image,
    to_rgba
)
from teachable.utils.logging_config import get_logger

logger = get_logger(__name__)

NUM_CHANNELS = 3
DEFAULT_IMAGE_SIZE = 16
DEFAULT_BINS = 4

# 3 channels x 4 histogram bins + 3 channel means
FEATURE_LENGTH = NUM_CHANNELS * DEFAULT_BINS + NUM_CHANNELS


class FeatureExtractor:
    """
    Extracts color features from RGBA pixel buffers.

    Feature layout (default settings, 15 values, all in [0, 1]):
        [0:4]   red histogram, normalized by pixel count
        [4:8]   green histogram
        [8:12]  blue histogram
        [12:15] mean red, green, blue intensity divided by 255

    The alpha channel is ignored.

    Example:
        >>> extractor = FeatureExtractor()
        >>> vector = extractor.extract(rgba_pixels)
        >>> len(vector)
        15
    """

    def __init__(
        self,
        image_size: Optional[int] = None,
        bins: Optional[int] = None
    ):
        """
        Initialize feature extractor.

        Args:
            image_size: Side length of the downsampled image. If None, uses config.
            bins: Histogram bins per channel (must divide 256). If None, uses config.
        """
        if image_size is None:
            image_size = config.get('features.image_size', DEFAULT_IMAGE_SIZE)
        if bins is None:
            bins = config.get('features.histogram_bins', DEFAULT_BINS)

        if image_size < 1:
            raise ValueError(f"image_size must be positive, got {image_size}")
        if bins < 1 or 256 % bins != 0:
            raise ValueError(f"bins must be a positive divisor of 256, got {bins}")

        self.image_size = int(image_size)
        self.bins = int(bins)
        self.bin_width = 256 // self.bins

    @property
    def feature_length(self) -> int:
        """Length of every vector this extractor produces."""
        return NUM_CHANNELS * self.bins + NUM_CHANNELS

    def zero_vector(self) -> np.ndarray:
        """Fallback vector substituted for images that fail to extract."""
        return np.zeros(self.feature_length, dtype=np.float64)

    def extract(self, pixels: np.ndarray) -> np.ndarray:
        """
        Compute the feature vector of a decoded image.

        Args:
            pixels: uint8 pixel buffer (RGBA, RGB or grayscale)

        Returns:
            Feature vector of length `feature_length`

        Raises:
            DecodeError: If no usable pixels were supplied
        """
        rgba = to_rgba(pixels)
        small = resize_image(rgba, (self.image_size, self.image_size))

        rgb = small[:, :, :NUM_CHANNELS].reshape(-1, NUM_CHANNELS)
        total_pixels = rgb.shape[0]

        bin_index = rgb // self.bin_width
        histograms = [
            np.bincount(bin_index[:, channel], minlength=self.bins) / total_pixels
            for channel in range(NUM_CHANNELS)
        ]
        means = rgb.mean(axis=0) / 255.0

        return np.concatenate(histograms + [means]).astype(np.float64)

    def extract_from_file(self, image_path: Union[str, Path]) -> np.ndarray:
        """Decode an image file and extract its features."""
        return self.extract(load_image_rgba(image_path))

    def extract_from_bytes(self, data: bytes) -> np.ndarray:
        """Decode encoded image bytes and extract their features."""
        return self.extract(decode_image_bytes(data))

    def extract_any(self, image) -> np.ndarray:
        """
        Extract features from a pixel array, an image path or encoded bytes.

        Raises:
            DecodeError: If the image cannot be decoded
        """
        if isinstance(image, (bytes, bytearray)):
            return self.extract_from_bytes(bytes(image))
        if isinstance(image, (str, Path)):
            return self.extract_from_file(image)
        return self.extract(image)

    def extract_batch(
        self,
        images: Sequence,
        progress: Optional[Callable[[int, int], None]] = None
    ) -> np.ndarray:
        """
        Extract features for many images.

        A failure on one image is logged and replaced by a zero vector of the
        canonical length, so one bad sample never aborts the batch.

        Args:
            images: Pixel arrays, image paths or encoded bytes
            progress: Called with (done, total) after every image

        Returns:
            Feature matrix of shape (len(images), feature_length)
        """
        total = len(images)
        rows: List[np.ndarray] = []

        for i, image in enumerate(images):
            try:
                rows.append(self.extract_any(image))
            except DecodeError as e:
                logger.error(f"Error extracting features from image {i}: {e}")
                rows.append(self.zero_vector())

            if progress is not None:
                progress(i + 1, total)

        if not rows:
            return np.zeros((0, self.feature_length), dtype=np.float64)

        return np.vstack(rows)
