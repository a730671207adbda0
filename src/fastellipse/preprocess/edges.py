"""
Edge map preparation for photos and scans.

The extractor wants one-pixel wide edges. Canny already delivers those;
Otsu binarization delivers filled strokes that are thinned afterwards.
"""

import cv2
import numpy as np
from skimage.morphology import thin

from fastellipse.tracer import get_tracer, trace


@trace(label="build_edge_map")
def build_edge_map(gray, config):
    """
    Turn a grayscale image into a binary edge map.

    Returns a uint8 image with edges = 255 and background = 0.
    """
    tracer = get_tracer()
    edges_cfg = config.edges

    with tracer.span("blur", module="edges"):
        if edges_cfg.blur_kernel > 1:
            k = edges_cfg.blur_kernel | 1
            smoothed = cv2.GaussianBlur(gray, (k, k), 0)
        else:
            smoothed = gray

    with tracer.span("detect", module="edges"):
        if edges_cfg.method == "otsu":
            _, edges = cv2.threshold(
                smoothed,
                0,
                255,
                cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU,
            )
        else:
            edges = cv2.Canny(smoothed, edges_cfg.canny_low, edges_cfg.canny_high)
        tracer.event(f"Edge method: {edges_cfg.method}")

    if edges_cfg.thin:
        with tracer.span("thin", module="edges"):
            # skimage expects binary as bool
            edges = thin(edges > 0).astype(np.uint8) * 255

    tracer.event(f"Edge pixels: {int(np.count_nonzero(edges))}")
    return edges
