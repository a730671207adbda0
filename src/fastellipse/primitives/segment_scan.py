"""
Segment detection for the fast ellipse extractor.

Run-length encodes the foreground pixels of an edge image along four scan
directions: rows, columns, diagonals running down-right and diagonals
running up-right.
"""

import numpy as np

from fastellipse.models import LineGroup, Segment
from fastellipse.tracer import get_tracer, trace


def iter_scan_lines(shape, group):
    """
    Yield the pixel coordinates of every scan line of one direction.

    Each item is a pair of int arrays (xs, ys) in scan order. Diagonals are
    enumerated from the top-right corner over the top-left corner to the
    bottom-left corner.
    """
    rows, cols = shape

    if group == LineGroup.HORIZONTAL:
        xs = np.arange(cols)
        for y in range(rows):
            yield xs, np.full(cols, y)

    elif group == LineGroup.VERTICAL:
        ys = np.arange(rows)
        for x in range(cols):
            yield np.full(rows, x), ys

    elif group == LineGroup.DIAGONAL_DOWN:
        for a in range(rows + cols - 1):
            if a < cols:
                x0, y0 = cols - 1 - a, 0
            else:
                x0, y0 = 0, a - cols + 1
            n = min(cols - x0, rows - y0)
            steps = np.arange(n)
            yield x0 + steps, y0 + steps

    elif group == LineGroup.DIAGONAL_UP:
        for a in range(rows + cols - 1):
            if a < cols:
                x0, y0 = cols - 1 - a, rows - 1
            else:
                x0, y0 = 0, rows - 1 - (a - cols + 1)
            n = min(cols - x0, y0 + 1)
            steps = np.arange(n)
            yield x0 + steps, y0 - steps

    else:
        raise ValueError(f"Unknown line group: {group}")


def find_runs(values, min_length, tolerance=0):
    """
    Find segments in one scan line.

    A segment grows while each pixel is nonzero and differs from its
    predecessor by at most `tolerance`. The pixel that breaks the tolerance is
    dropped and the next pixel starts a new segment.

    Returns a list of (offset, length) pairs with length >= min_length.
    """
    mask = values > 0
    if not mask.any():
        return []

    padded = np.concatenate(([False], mask, [False]))
    edges = np.flatnonzero(padded[1:] != padded[:-1])
    starts, stops = edges[0::2], edges[1::2]

    runs = []
    for start, stop in zip(starts, stops):
        start, stop = int(start), int(stop)
        run = values[start:stop].astype(np.int32)
        if stop - start < 2 or np.all(np.abs(np.diff(run)) <= tolerance):
            runs.append((start, stop - start))
        else:
            runs.extend(_split_run(run, start, tolerance))

    return [(offset, length) for offset, length in runs if length >= min_length]


def _split_run(run, offset, tolerance):
    """Split a nonzero run at every tolerance break."""
    pieces = []
    seg_start, length = 0, 1

    for b in range(1, len(run)):
        if length == 0:
            seg_start, length = b, 1
        elif abs(int(run[b]) - int(run[b - 1])) <= tolerance:
            length += 1
        else:
            pieces.append((offset + seg_start, length))
            length = 0

    if length > 0:
        pieces.append((offset + seg_start, length))

    return pieces


@trace(label="detect_group_segments")
def detect_group_segments(image, group, min_length=2, tolerance=0):
    """
    Detect the segments of one scan direction.

    Args:
        image: 2D uint8 array, foreground is nonzero
        group: LineGroup of the scan direction
        min_length: shortest segment that is kept
        tolerance: largest value step between adjacent segment pixels

    Returns:
        list of Segment in scan order
    """
    segments = []

    for xs, ys in iter_scan_lines(image.shape, group):
        values = image[ys, xs]
        for offset, length in find_runs(values, min_length, tolerance):
            last = offset + length - 1
            segments.append(Segment(
                start=(int(xs[offset]), int(ys[offset])),
                end=(int(xs[last]), int(ys[last])),
                length=length,
            ))

    return segments


@trace(label="detect_segments")
def detect_segments(image, config):
    """
    Detect segments along all four scan directions.

    Returns a dict mapping LineGroup to its segment list.
    """
    tracer = get_tracer()

    segments = {}
    for group in LineGroup:
        segments[group] = detect_group_segments(
            image,
            group,
            min_length=config.segments.min_segment_length,
            tolerance=config.segments.segment_tolerance,
        )
        tracer.event(f"{group.name.lower()} segments: {len(segments[group])}", level="DEBUG")

    return segments
