"""
Pytest configuration and shared fixtures.

This file provides common fixtures and configuration for all tests.
"""

import io
import threading

import matplotlib
matplotlib.use('Agg')

import numpy as np
import pytest
from PIL import Image

from teachable.classification.dataset import Dataset
from teachable.image_processing.features import FeatureExtractor


RED = (255, 0, 0)
BLUE = (0, 0, 255)


def make_rgba(color, size=8, noise=0, rng=None):
    """Solid-color RGBA image, optionally with uniform per-pixel noise."""
    pixels = np.zeros((size, size, 4), dtype=np.int16)
    pixels[:, :, :3] = color
    pixels[:, :, 3] = 255

    if noise and rng is not None:
        pixels[:, :, :3] += rng.integers(-noise, noise + 1, size=(size, size, 3))

    return np.clip(pixels, 0, 255).astype(np.uint8)


def encode_png(pixels) -> bytes:
    """Encode an RGBA array as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def rng():
    """Seeded random generator for reproducible training."""
    return np.random.default_rng(42)


@pytest.fixture
def red_image():
    """8x8 solid red RGBA image."""
    return make_rgba(RED)


@pytest.fixture
def blue_image():
    """8x8 solid blue RGBA image."""
    return make_rgba(BLUE)


@pytest.fixture
def red_blue_images():
    """Five noisy red (label 0) and five noisy blue (label 1) images."""
    noise_rng = np.random.default_rng(7)
    images = [make_rgba(RED, noise=20, rng=noise_rng) for _ in range(5)]
    images += [make_rgba(BLUE, noise=20, rng=noise_rng) for _ in range(5)]
    labels = [0] * 5 + [1] * 5
    return images, labels


@pytest.fixture
def red_blue_dataset(red_blue_images):
    """Feature dataset built from the red/blue images."""
    images, labels = red_blue_images
    features = FeatureExtractor().extract_batch(images)
    return Dataset(features, labels)


@pytest.fixture
def image_folder(tmp_path):
    """
    Class-per-directory dataset on disk:

        dataset/
            blue/   6 PNG images
            red/    6 PNG images
            notes.txt  (ignored, not a directory)
    """
    root = tmp_path / "dataset"
    noise_rng = np.random.default_rng(3)

    for class_name, color in [('red', RED), ('blue', BLUE)]:
        class_dir = root / class_name
        class_dir.mkdir(parents=True)
        for i in range(6):
            pixels = make_rgba(color, size=12, noise=15, rng=noise_rng)
            Image.fromarray(pixels).save(class_dir / f"{class_name}_{i}.png")
        (class_dir / "README.txt").write_text("not an image")

    (root / "notes.txt").write_text("ignored")
    return root


@pytest.fixture
def temp_output_dir(tmp_path):
    """Create temporary output directory for each test."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(exist_ok=True)
    return output_dir


class StaticBackend:
    """Backend stand-in that always returns the same probabilities."""

    def __init__(self, probabilities, accuracy=0.75):
        self.probabilities = np.asarray(probabilities, dtype=float)
        self.accuracy = accuracy
        self.disposed = False
        self.calls = 0

    @property
    def is_trained(self):
        return True

    def predict(self, image):
        self.calls += 1
        return self.probabilities

    def evaluate(self, images, labels):
        return {'accuracy': self.accuracy}

    def summarize(self):
        return {'kind': 'static', 'accuracy': self.accuracy}

    def dispose(self):
        self.disposed = True


class FailingBackend(StaticBackend):
    """Trained backend whose predict and evaluate always fail."""

    def __init__(self, message='backend exploded'):
        super().__init__([1.0])
        self.message = message

    def predict(self, image):
        raise RuntimeError(self.message)

    def evaluate(self, images, labels):
        raise RuntimeError(self.message)


class BlockingBackend(StaticBackend):
    """Backend whose predict waits until `release` is set."""

    def __init__(self, probabilities):
        super().__init__(probabilities)
        self.entered = threading.Event()
        self.release = threading.Event()

    def predict(self, image):
        self.entered.set()
        self.release.wait(timeout=10)
        return super().predict(image)


@pytest.fixture
def static_backend():
    return StaticBackend([0.1, 0.7, 0.2])


@pytest.fixture
def failing_backend():
    return FailingBackend()


@pytest.fixture
def blocking_backend():
    return BlockingBackend([0.6, 0.4])


@pytest.fixture
def make_image():
    """Factory for solid-color RGBA test images."""
    return make_rgba


@pytest.fixture
def png_bytes(red_image):
    """The red test image encoded as PNG."""
    return encode_png(red_image)
