"""
Image loading utilities for the fast ellipse extractor.
"""

import os

import cv2
import numpy as np

from fastellipse.tracer import get_tracer, trace


SUPPORTED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".tiff", ".tif", ".bmp", ".pgm")


@trace(label="load_image")
def load_image(path):
    """
    Load an image from disk as grayscale.

    Returns a tuple of (image, metadata) where:
    - image: uint8 array (H, W)
    - metadata: dict with width, height, source_path

    Raises FileNotFoundError if path does not exist.
    Raises ValueError if the format is unsupported or the image cannot be loaded.
    """
    tracer = get_tracer()

    if not os.path.exists(path):
        raise FileNotFoundError(f"Image not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported image format: {path}")

    img = cv2.imread(path, cv2.IMREAD_GRAYSCALE)
    if img is None:
        raise ValueError(f"Failed to load image: {path}")

    height, width = img.shape
    tracer.event(f"Loaded image: {width}x{height}")

    metadata = {
        "width": width,
        "height": height,
        "source_path": os.path.abspath(path),
    }

    return img, metadata


def is_binary(image):
    """True if an image only contains 0 and one other value."""
    values = np.unique(image)
    return values.size == 1 or (values.size == 2 and values[0] == 0)
