"""Pytest fixtures for fastellipse tests."""

import os
import tempfile

import cv2
import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def default_config():
    """Create default extractor configuration."""
    from fastellipse.config import ExtractorConfig
    return ExtractorConfig()


@pytest.fixture
def synthetic_ellipse_image():
    """One-pixel wide ellipse: center (100, 100), semi-axes 60 and 30, axis aligned."""
    img = np.zeros((200, 200), dtype=np.uint8)
    cv2.ellipse(img, (100, 100), (60, 30), 0, 0, 360, 255, 1)
    return img


@pytest.fixture
def synthetic_circle_image():
    """One-pixel wide circle of radius 50."""
    img = np.zeros((200, 200), dtype=np.uint8)
    cv2.circle(img, (100, 100), 50, 255, 1)
    return img


@pytest.fixture
def two_ellipses_image():
    """Two separate ellipses, one of them rotated."""
    img = np.zeros((240, 400), dtype=np.uint8)
    cv2.ellipse(img, (100, 120), (70, 40), 0, 0, 360, 255, 1)
    cv2.ellipse(img, (290, 120), (80, 45), 30, 0, 360, 255, 1)
    return img


@pytest.fixture
def empty_image():
    """Edge image without any foreground pixels."""
    return np.zeros((100, 120), dtype=np.uint8)


@pytest.fixture
def synthetic_input_file(temp_dir, synthetic_ellipse_image):
    """Write the synthetic ellipse to disk for CLI tests."""
    path = os.path.join(temp_dir, "test_input.png")
    cv2.imwrite(path, synthetic_ellipse_image)
    return path


def sampled_ellipse(x, y, a, b, angle, count=90, start=0.0, stop=2 * np.pi):
    """Exact samples of an ellipse whose major axis lies at `angle` (image coordinates)."""
    s = np.linspace(start, stop, count, endpoint=False)
    cos_t, sin_t = np.cos(angle), np.sin(angle)
    xs = x + a * np.cos(s) * cos_t - b * np.sin(s) * sin_t
    ys = y + a * np.cos(s) * sin_t + b * np.sin(s) * cos_t
    return xs, ys


def orientation_error(angle, expected):
    """Distance of two axis orientations, modulo pi."""
    diff = (angle - expected) % np.pi
    return min(diff, np.pi - diff)


@pytest.fixture
def ellipse_samples():
    """Sampler for exact ellipse points."""
    return sampled_ellipse


@pytest.fixture
def angle_error():
    """Orientation distance helper."""
    return orientation_error


@pytest.fixture
def arc_result(synthetic_ellipse_image, default_config):
    """Synthetic ellipse run through segments, lines and arcs."""
    from fastellipse.models import ExtractionResult
    from fastellipse.primitives.arc_trace import extract_arcs
    from fastellipse.primitives.line_chain import extract_lines
    from fastellipse.primitives.segment_scan import detect_segments

    height, width = synthetic_ellipse_image.shape
    result = ExtractionResult(width=width, height=height)
    result.segments = detect_segments(synthetic_ellipse_image, default_config)
    result.lines = extract_lines(result.segments, width, default_config)
    result.arcs = extract_arcs(result.lines, result.segments, width, default_config)
    return result


@pytest.fixture
def extended_result(arc_result, default_config):
    """Synthetic ellipse run up to extended arcs."""
    from fastellipse.ellipses.extended_arcs import build_extended_arcs

    build_extended_arcs(arc_result, default_config)
    return arc_result
