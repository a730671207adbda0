"""
Main orchestrator for the fast ellipse extractor.

Runs segment detection, line extraction, arc extraction, extended arc
extraction and ellipse merging in order on one edge image.
"""

import numpy as np

from fastellipse.config import ExtractorConfig, validate_config
from fastellipse.ellipses.extended_arcs import build_extended_arcs
from fastellipse.ellipses.merge import merge_ellipses
from fastellipse.models import ExtractionResult
from fastellipse.primitives.arc_trace import extract_arcs
from fastellipse.primitives.line_chain import extract_lines
from fastellipse.primitives.segment_scan import detect_segments
from fastellipse.tracer import get_tracer, trace


def as_edge_image(image):
    """
    Bring an edge image into uint8 form.

    Float images are taken to be in [0, 1] and scaled to [0, 255]; other
    integer types are clipped.

    Raises:
        ValueError: if the image is not 2D
    """
    image = np.asarray(image)
    if image.ndim != 2:
        raise ValueError(f"Expected a 2D edge image, got shape {image.shape}")

    if image.dtype == np.uint8:
        return image
    if np.issubdtype(image.dtype, np.floating):
        return (np.clip(image, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
    if image.dtype == np.bool_:
        return image.astype(np.uint8) * 255
    return np.clip(image, 0, 255).astype(np.uint8)


class EllipseExtractor:
    """
    Extracts ellipses from binary edge images.

    The extractor keeps the result of its last run; every call to apply
    starts from empty containers.
    """

    def __init__(self, config=None):
        self.config = validate_config(config or ExtractorConfig())
        self.result = ExtractionResult()

    @trace(label="apply")
    def apply(self, image):
        """
        Run all stages on one edge image (foreground is nonzero).

        Returns True once every stage has run, even if nothing was found.
        The entities of every stage are available in self.result.
        """
        tracer = get_tracer()
        image = as_edge_image(image)
        height, width = image.shape
        result = ExtractionResult(width=width, height=height)
        self.result = result

        with tracer.span("segments", module="pipeline"):
            result.segments = detect_segments(image, self.config)

        with tracer.span("lines", module="pipeline"):
            result.lines = extract_lines(result.segments, width, self.config)

        with tracer.span("arcs", module="pipeline"):
            result.arcs = extract_arcs(result.lines, result.segments, width, self.config)

        with tracer.span("extended_arcs", module="pipeline"):
            build_extended_arcs(result, self.config)

        with tracer.span("ellipses", module="pipeline"):
            merge_ellipses(result, self.config)

        tracer.event("extraction done", **result.counts())
        return True


def extract_ellipses(image, config=None):
    """
    Convenience wrapper: run a fresh extractor and return its result.

    Returns:
        ExtractionResult
    """
    extractor = EllipseExtractor(config)
    extractor.apply(image)
    return extractor.result
