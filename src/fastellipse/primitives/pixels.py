"""
Pixel access for segments, lines and arcs.

Segments only store their end points; the pixels in between are recovered
by stepping along the segment's scan direction.
"""

import numpy as np

from fastellipse.models import LineGroup


SCAN_STEPS = {
    LineGroup.HORIZONTAL: (1, 0),
    LineGroup.VERTICAL: (0, 1),
    LineGroup.DIAGONAL_DOWN: (1, 1),
    LineGroup.DIAGONAL_UP: (1, -1),
}


def segment_pixels(segment, group):
    """Return (xs, ys) int64 arrays of the pixels of one segment."""
    step_x, step_y = SCAN_STEPS[group]
    steps = np.arange(segment.length, dtype=np.int64)
    return segment.start[0] + step_x * steps, segment.start[1] + step_y * steps


def line_pixels(line, segments):
    """Return (xs, ys) of all pixels of a line, segment by segment."""
    if not line.segments:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
    parts = [segment_pixels(segments[idx], line.group) for idx in line.segments]
    return np.concatenate([p[0] for p in parts]), np.concatenate([p[1] for p in parts])


def arc_pixels(arc, result):
    """Return (xs, ys) of all pixels of an arc, using the containers of an ExtractionResult."""
    line_group = arc.group.line_group
    lines = result.lines[line_group]
    segments = result.segments[line_group]
    parts = [line_pixels(lines[idx], segments) for idx in arc.lines]
    if not parts:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
    return np.concatenate([p[0] for p in parts]), np.concatenate([p[1] for p in parts])


def moment_sums(xs, ys):
    """
    Raw moment sums up to third order.

    Returned as Python ints in the order
    (n, x, y, xx, yy, xy, xxx, yyy, xyy, xxy) so later products cannot
    overflow.
    """
    xs = np.asarray(xs, dtype=np.int64)
    ys = np.asarray(ys, dtype=np.int64)
    xx, yy = xs * xs, ys * ys
    return (
        int(xs.size),
        int(xs.sum()),
        int(ys.sum()),
        int(xx.sum()),
        int(yy.sum()),
        int((xs * ys).sum()),
        int((xx * xs).sum()),
        int((yy * ys).sum()),
        int((xs * yy).sum()),
        int((xx * ys).sum()),
    )


def add_moments(*moments):
    """Element-wise sum of moment tuples."""
    return tuple(sum(values) for values in zip(*moments))
