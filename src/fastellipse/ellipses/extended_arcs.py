"""
Extended arc extraction.

An extended arc joins three arcs of adjacent octants (predecessor, middle,
successor) whose end points, chords and end tangents line up, and carries
the ellipse fitted through their pixels.
"""

from fastellipse.fitting.checks import (
    arcs_connect,
    interior_angle_mismatches,
    line_beam_center_distance,
    tangent_errors,
)
from fastellipse.fitting.conic_fit import fit_ellipse_to_arcs
from fastellipse.models import ArcGroup, ExtendedArc
from fastellipse.tracer import get_tracer, trace


def _connecting_arcs(middle, candidates, before, result, config):
    """Indices of candidate arcs that connect to the middle arc on one side."""
    max_mismatches = config.extended_arcs.max_interior_angle_mismatches
    found = []

    for idx, arc in enumerate(candidates):
        if before:
            if not arcs_connect(arc, middle, middle, config):
                continue
            mismatches = interior_angle_mismatches(arc, middle, result, max_mismatches)
        else:
            if not arcs_connect(middle, arc, middle, config):
                continue
            mismatches = interior_angle_mismatches(middle, arc, result, max_mismatches)

        if mismatches <= max_mismatches:
            found.append(idx)

    return found


def build_group_extended_arcs(result, group, config):
    """
    Build the extended arcs whose middle arc lies in one octant.

    Returns:
        list of ExtendedArc in (middle, predecessor, successor) index order
    """
    ext = config.extended_arcs
    group_a, group_c = group.predecessor, group.successor
    arcs_a = result.arcs[group_a]
    arcs_b = result.arcs[group]
    arcs_c = result.arcs[group_c]
    lines_a = result.lines[group_a.line_group]
    lines_c = result.lines[group_c.line_group]

    extended = []

    for b, arc_b in enumerate(arcs_b):
        list_a = _connecting_arcs(arc_b, arcs_a, True, result, config)
        if not list_a:
            continue
        list_c = _connecting_arcs(arc_b, arcs_c, False, result, config)
        if not list_c:
            continue

        for a in list_a:
            arc_a = arcs_a[a]
            for c in list_c:
                arc_c = arcs_c[c]
                mismatches = interior_angle_mismatches(
                    arc_a, arc_c, result, ext.max_interior_angle_mismatches
                )
                if mismatches > ext.max_interior_angle_mismatches:
                    continue

                fit = fit_ellipse_to_arcs((arc_a, arc_b, arc_c), result)
                if not fit.ok:
                    continue

                candidate = ExtendedArc(group=group, arc_indices=(a, b, c), **fit.params.model_dump())
                if tangent_errors(candidate, fit.params, result, config) > ext.max_tangent_errors:
                    continue

                beam = line_beam_center_distance(
                    lines_a[arc_a.lines[0]], lines_c[arc_c.lines[-1]], fit.params.x, fit.params.y
                )
                if beam is not None:
                    candidate.ix, candidate.iy, candidate.slope_lb, distance = beam
                    beam_ok = abs(distance) < ext.max_lb_center_mismatch
                else:
                    beam_ok = False

                if beam_ok or ext.extraction_stage < 3:
                    extended.append(candidate)

    return extended


@trace(label="build_extended_arcs")
def build_extended_arcs(result, config):
    """
    Build extended arcs for all eight octants, in octant order.

    Appends to result.extended_arcs, which the merger indexes as one flat
    list.
    """
    tracer = get_tracer()

    result.extended_arcs = []
    for group in ArcGroup:
        found = build_group_extended_arcs(result, group, config)
        result.extended_arcs.extend(found)
        tracer.event(f"{group.name.lower()} extended arcs: {len(found)}", level="DEBUG")

    return result.extended_arcs
