"""
Geometric consistency checks between arcs, extended arcs and ellipses.

All checks return counts, distances or booleans. A zero-length vector turns
an angle or ratio into nan, and nan never exceeds a threshold, so such a
candidate is not rejected by that test.
"""

import math

from fastellipse.models import ArcGroup


INFINITE_SLOPE = 999999999.0


def _divide(num, den):
    """Float division that yields inf or nan instead of raising."""
    if den == 0:
        if num == 0:
            return math.nan
        return math.copysign(math.inf, num)
    return num / den


def vector_angle(u, v):
    """Angle between two vectors in degrees; nan if either has zero length."""
    norm = math.sqrt(float((u[0] * u[0] + u[1] * u[1]) * (v[0] * v[0] + v[1] * v[1])))
    cosine = _divide(u[0] * v[0] + u[1] * v[1], norm)
    if math.isnan(cosine):
        return math.nan
    return math.degrees(math.acos(max(-1.0, min(1.0, cosine))))


def slope_of(dx, dy):
    """Slope dy/dx with vertical lines mapped to a large finite value."""
    if dx == 0 and dy > 0:
        return INFINITE_SLOPE
    if dx == 0 and dy < 0:
        return -INFINITE_SLOPE
    return _divide(dy, dx)


def major_axis_frame(t):
    """
    Rotation angle of the major axis in a y-up frame.

    Orientations just above -90 degrees are folded to +90 so the same axis
    is not reported twice.
    """
    if math.degrees(t) < -89.5:
        t = -t
    return math.pi / 2 - t


def _to_ellipse_frame(px, py, params, phi):
    x = px - params.x
    y = params.y - py
    cos_p, sin_p = math.cos(phi), math.sin(phi)
    return x * cos_p + y * sin_p, -x * sin_p + y * cos_p


def arcs_connect(first, second, center_arc, config):
    """
    Check that `second` continues `first` along an ellipse.

    `center_arc` is the middle arc of the triple being built (either `first`
    or `second`); its circle is used for the overlap fallback when the end
    tangents point back across the gap.
    """
    ext = config.extended_arcs

    gap_x = second.start[0] - first.end[0]
    gap_y = second.start[1] - first.end[1]
    if abs(gap_x) > ext.max_arc_gap or abs(gap_y) > ext.max_arc_gap:
        return False

    # start point distance relative to the chord of the first arc
    chord = (first.end[0] - first.start[0], first.end[1] - first.start[1])
    start_vec = (second.start[0] - first.start[0], second.start[1] - first.start[1])
    ratio = _divide(math.hypot(*start_vec), math.hypot(*chord))
    if ratio < ext.min_arc_distance_ratio:
        return False

    if vector_angle(chord, start_vec) > ext.max_arc_distance_angle:
        return False

    if abs(gap_x) > ext.min_gap_angle_distance or abs(gap_y) > ext.min_gap_angle_distance:
        gap = (gap_x, gap_y)
        angle_first = vector_angle(first.last_vec, gap)
        angle_second = vector_angle(second.first_vec, gap)

        if angle_first > ext.max_gap_angle or angle_second > ext.max_gap_angle:
            limit = 180 - ext.max_gap_angle
            if angle_first <= limit and angle_second <= limit:
                return False
            # overlapping arcs: the gap end must lie on the middle arc's circle
            point = first.end if center_arc is second else second.start
            dx = point[0] - center_arc.mid[0]
            dy = point[1] - center_arc.mid[1]
            if abs(math.hypot(dx, dy) - math.sqrt(center_arc.r2)) > ext.max_arc_overlap_gap:
                return False

    return True


def _directed_line(line, group):
    if group.reversed_line_order:
        return line.end, line.start
    return line.start, line.end


def interior_angle_mismatches(arc_a, arc_b, result, max_mismatches):
    """
    Count line pairs of two arcs that do not bound a convex region.

    For every line of B against every line of A the normals must point to
    the other line's start within 90 degrees. Pairs closer than the length
    of the A line are skipped. Counting stops once max_mismatches is
    exceeded.
    """
    lines_a = result.lines[arc_a.group.line_group]
    lines_b = result.lines[arc_b.group.line_group]
    mismatches = 0

    for idx_b in arc_b.lines:
        b_start, b_end = _directed_line(lines_b[idx_b], arc_b.group)
        for idx_a in arc_a.lines:
            a_start, a_end = _directed_line(lines_a[idx_a], arc_a.group)

            # y up
            ax, ay = a_end[0] - a_start[0], -(a_end[1] - a_start[1])
            bx, by = b_end[0] - b_start[0], -(b_end[1] - b_start[1])
            abx, aby = b_start[0] - a_start[0], -(b_start[1] - a_start[1])

            if _divide(math.hypot(abx, aby), math.hypot(ax, ay)) < 1.0:
                continue

            theta1 = math.radians(vector_angle((abx, aby), (ay, -ax)))
            theta2 = math.radians(vector_angle((-abx, -aby), (by, -bx)))
            if theta1 > math.pi / 2 or theta2 > math.pi / 2:
                mismatches += 1

            if mismatches > max_mismatches:
                return mismatches

    return mismatches


def ellipse_tangent(params, point, phi):
    """Tangent direction of an ellipse at the projection of a pixel, in line tangent convention."""
    x, y = _to_ellipse_frame(point[0], point[1], params, phi)
    bbx = params.b * params.b * x
    aay = params.a * params.a * y

    if aay == 0:
        tangent = -math.pi / 2 if bbx >= 0 else math.pi / 2
    else:
        tangent = math.atan(-bbx / aay) + phi

    if tangent > math.pi / 2:
        tangent -= math.pi
    return tangent


def tangent_errors(extended_arc, params, result, config):
    """
    Count base lines whose tangent disagrees with the ellipse tangent.

    Mismatches are only counted for extraction stage 2 and up. Counting
    stops once max_tangent_errors is exceeded.
    """
    ext = config.extended_arcs
    phi = major_axis_frame(params.t)
    mismatches = 0

    for group, arc_idx in extended_arc.base_arcs():
        arc = result.arcs[group][arc_idx]
        lines = result.lines[group.line_group]

        for line_idx in arc.lines:
            line = lines[line_idx]
            tangent = ellipse_tangent(params, line.mid, phi)

            # vertical lines carry the mirrored tangent
            if group in (ArcGroup.RIGHT, ArcGroup.LEFT) and tangent < 0:
                tangent += math.pi

            error = math.degrees(tangent - line.tangent)
            if 178 < error < 182:
                error -= 180
            elif -182 < error < -178:
                error += 180

            if abs(error) > ext.max_arc_tangent_error:
                if ext.extraction_stage > 1:
                    mismatches += 1
                if mismatches > ext.max_tangent_errors:
                    return mismatches

    return mismatches


def ellipse_point_mismatch(extended_arc, params, result):
    """Largest ellipse-equation residual over the end points of the three base arcs."""
    phi = major_axis_frame(params.t)
    mismatch = 0.0

    for group, arc_idx in extended_arc.base_arcs():
        arc = result.arcs[group][arc_idx]
        for point in (arc.start, arc.end):
            x, y = _to_ellipse_frame(point[0], point[1], params, phi)
            residual = abs((x / params.a) ** 2 + (y / params.b) ** 2 - 1)
            if residual > mismatch:
                mismatch = residual

    return mismatch


def line_point_distance(px, py, line_x, line_y, slope):
    """Signed distance of a point from a line given by one point and its slope."""
    c = line_y - line_x * slope
    u = 1 / math.sqrt(slope * slope + 1)
    if c > 0:
        u = -u
    return (slope * px - py + c) * u


def line_beam(first_line, last_line):
    """
    Intersect the tangents of two lines and build the line beam.

    The beam runs from the tangent intersection through the midpoint between
    the two line midpoints. Returns (ix, iy, slope) or None for parallel
    tangents.
    """
    x1, y1 = first_line.mid
    x2, y2 = last_line.mid
    m1 = slope_of(first_line.end[0] - first_line.start[0], first_line.end[1] - first_line.start[1])
    m2 = slope_of(last_line.end[0] - last_line.start[0], last_line.end[1] - last_line.start[1])

    cx = (x1 + x2) / 2
    cy = (y1 + y2) / 2

    det0 = m2 - m1
    if det0 == 0:
        return None
    det1 = -(y2 - x2 * m2) + y1 - x1 * m1
    det2 = (y1 - x1 * m1) * m2 - m1 * (y2 - x2 * m2)

    ix = det1 / det0
    iy = det2 / det0
    return ix, iy, slope_of(cx - ix, cy - iy)


def line_beam_center_distance(first_line, last_line, x, y):
    """
    Distance of an ellipse center from the line beam of two lines.

    Returns (ix, iy, slope, distance) or None when the tangents are parallel.
    """
    beam = line_beam(first_line, last_line)
    if beam is None:
        return None
    ix, iy, slope = beam
    return ix, iy, slope, line_point_distance(x, y, ix, iy, slope)


def ellipse_circumference(a, b):
    """Ramanujan-style approximation of the ellipse circumference."""
    return math.pi * (1.5 * (a + b) - math.sqrt(a * b))


def ellipse_coverage(ellipse, result):
    """
    Share of the ellipse circumference covered by distinct base lines.

    Lines are counted once even when several merged extended arcs share
    them.
    """
    seen = set()
    pixels = 0

    for ext_idx in ellipse.merged_arcs:
        ext = result.extended_arcs[ext_idx]
        for group, arc_idx in ext.base_arcs():
            line_group = group.line_group
            lines = result.lines[line_group]
            for line_idx in result.arcs[group][arc_idx].lines:
                key = (line_group, line_idx)
                if key not in seen:
                    seen.add(key)
                    pixels += lines[line_idx].length

    return _divide(pixels, ellipse_circumference(ellipse.a, ellipse.b))
