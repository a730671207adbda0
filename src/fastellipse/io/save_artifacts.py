"""
Artifact saving utilities for the fast ellipse extractor.

Handles writing JSON results, overlay images and SVG documents.
"""

import json
import math
import os

import cv2

from fastellipse.tracer import get_tracer


# BGR for OpenCV
COLORS = {
    "red": (0, 0, 255),
    "green": (0, 255, 0),
    "blue": (255, 0, 0),
    "yellow": (0, 255, 255),
    "magenta": (255, 0, 255),
    "cyan": (255, 255, 0),
    "black": (0, 0, 0),
    "white": (255, 255, 255),
}


def ensure_dir(path):
    """Create directory if it does not exist."""
    if path:
        os.makedirs(path, exist_ok=True)


def save_json(data, path, indent=2):
    """
    Save a dictionary or Pydantic model to JSON.
    """
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))

    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, default=str)

    tracer.event(f"Saved JSON: {path}")


def save_image(img, path):
    """Save a BGR or grayscale image to disk."""
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))
    if not cv2.imwrite(path, img):
        raise ValueError(f"Failed to write image: {path}")
    tracer.event(f"Saved image: {path}")


def save_svg(drawing, path):
    """
    Save an svgwrite drawing (or raw SVG text) to file.
    """
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))

    if hasattr(drawing, "tostring"):
        content = drawing.tostring()
    else:
        content = str(drawing)

    with open(path, "w", encoding="utf-8") as f:
        f.write(content)

    tracer.event(f"Saved SVG: {path}")


def draw_ellipse_overlay(base_img, result, color="red", thickness=1, draw_arcs=False):
    """
    Draw extracted ellipses (and optionally arcs) on a copy of an image.

    Returns a BGR image.
    """
    if len(base_img.shape) == 2:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_GRAY2BGR)
    else:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_RGB2BGR)

    bgr = COLORS.get(color, COLORS["red"])

    if draw_arcs:
        for arc in result.all_arcs():
            cv2.line(overlay, tuple(arc.start), tuple(arc.end), COLORS["green"], 1)

    for ellipse in result.ellipses:
        center = (int(round(ellipse.x)), int(round(ellipse.y)))
        axes = (int(round(ellipse.a)), int(round(ellipse.b)))
        angle = math.degrees(ellipse.major_axis_angle)
        cv2.ellipse(overlay, center, axes, angle, 0, 360, bgr, thickness)
        cv2.drawMarker(overlay, center, bgr, cv2.MARKER_CROSS, 6, 1)

    return overlay
