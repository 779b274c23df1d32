"""
Image utility functions.

This is the image source used by the feature extractor: it decodes files or
in-memory bytes into RGBA pixel buffers and resizes them.
"""

import io

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError
from pathlib import Path
from typing import Tuple, Union

from teachable.errors import DecodeError


def to_rgba(image: np.ndarray) -> np.ndarray:
    """
    Promote a grayscale, RGB or RGBA array to RGBA.

    Args:
        image: Array of shape (H, W), (H, W, 1), (H, W, 3) or (H, W, 4)

    Returns:
        uint8 array of shape (H, W, 4)

    Raises:
        DecodeError: If the array is empty or has an unsupported shape
    """
    if image is None:
        raise DecodeError("No pixel data supplied")

    image = np.asarray(image)

    if image.size == 0:
        raise DecodeError("Empty pixel buffer")

    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)

    if image.ndim != 3:
        raise DecodeError(f"Unsupported pixel buffer shape: {image.shape}")

    channels = image.shape[2]
    if channels == 1:
        return cv2.cvtColor(np.ascontiguousarray(image[:, :, 0]), cv2.COLOR_GRAY2RGBA)
    if channels == 3:
        return cv2.cvtColor(np.ascontiguousarray(image), cv2.COLOR_RGB2RGBA)
    if channels == 4:
        return image

    raise DecodeError(f"Unsupported number of channels: {channels}")


def load_image_rgba(image_path: Union[str, Path]) -> np.ndarray:
    """
    Load image as numpy array (RGBA format).

    Args:
        image_path: Path to image file

    Returns:
        Image as numpy array in RGBA format

    Raises:
        DecodeError: If the image doesn't exist or cannot be decoded
    """
    image_path = Path(image_path)

    if not image_path.exists():
        raise DecodeError(f"Image not found: {image_path}")

    # Try OpenCV first (faster)
    img = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)

    if img is None:
        # Fallback to PIL (handles more formats, e.g. GIF)
        try:
            with Image.open(image_path) as pil_img:
                return np.array(pil_img.convert('RGBA'))
        except (OSError, UnidentifiedImageError) as e:
            raise DecodeError(f"Could not load image {image_path}: {e}")

    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    return cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)


def decode_image_bytes(data: bytes) -> np.ndarray:
    """
    Decode an encoded image (PNG, JPEG, GIF, WebP) held in memory.

    Args:
        data: Encoded image bytes

    Returns:
        Image as numpy array in RGBA format

    Raises:
        DecodeError: If the bytes are empty or not a decodable image
    """
    if not data:
        raise DecodeError("Empty image data")

    try:
        with Image.open(io.BytesIO(data)) as pil_img:
            return np.array(pil_img.convert('RGBA'))
    except (OSError, UnidentifiedImageError) as e:
        raise DecodeError(f"Could not decode image data: {e}")


def resize_image(
    image: np.ndarray,
    target_size: Tuple[int, int],
    interpolation: int = cv2.INTER_AREA
) -> np.ndarray:
    """
    Resize image.

    Args:
        image: Input image
        target_size: Target (width, height)
        interpolation: OpenCV interpolation method (area averaging by default,
            which suits downsampling)

    Returns:
        Resized image

    Example:
        >>> img = load_image_rgba('sample.png')
        >>> small = resize_image(img, target_size=(16, 16))
    """
    if image.shape[1] == target_size[0] and image.shape[0] == target_size[1]:
        return image

    return cv2.resize(image, target_size, interpolation=interpolation)

