"""
Ellipse merging.

Turns extended arcs into ellipses in three phases:

1. grow merge sets from extended arcs that share a base arc, refitting as
   new octants join and validating every newcomer;
2. attach leftover extended arcs to the ellipses found so far;
3. cross-merge what is still left purely by center and axis similarity.

Earlier phases win conflicts: an extended arc consumed by one ellipse is not
offered to later ones.
"""

from fastellipse.fitting.checks import (
    ellipse_coverage,
    ellipse_point_mismatch,
    line_point_distance,
    tangent_errors,
)
from fastellipse.fitting.conic_fit import fit_ellipse_to_extended_arcs
from fastellipse.models import Ellipse, EllipseParams
from fastellipse.tracer import get_tracer, trace


def _validates(extended_arc, params, result, config):
    """Tangent and point-mismatch tests of an extended arc against an ellipse."""
    return (
        tangent_errors(extended_arc, params, result, config) <= config.extended_arcs.max_tangent_errors
        and ellipse_point_mismatch(extended_arc, params, result) < config.ellipses.max_ext_arc_mismatch
    )


def _new_ellipse(extended_arc, index):
    return Ellipse(
        x=extended_arc.x, y=extended_arc.y,
        a=extended_arc.a, b=extended_arc.b, t=extended_arc.t,
        merged_arcs=[index],
    )


def _refit(ellipse, result):
    """Refit an ellipse to its merged extended arcs; False if the fit failed."""
    fit = fit_ellipse_to_extended_arcs(ellipse.merged_arcs, result)
    if not fit.ok:
        return False
    ellipse.set_params(fit.params)
    ellipse.coverage = ellipse_coverage(ellipse, result)
    return True


def _grow_merge_set(seed, result, config):
    """
    Grow one ellipse from a seed extended arc.

    Candidates sharing a base arc with any member are tested against the
    current estimate. The estimate is refitted once per octant that joins
    the set. Rejected candidates are marked used so later seeds skip them.
    """
    extended = result.extended_arcs

    ellipse = _new_ellipse(extended[seed], seed)
    extended[seed].used += 1
    refitted_groups = set()

    members = ellipse.merged_arcs
    j = 0
    while j < len(members):
        target = extended[members[j]]
        j += 1

        for base_arc in target.base_arcs():
            for o, candidate in enumerate(extended):
                if o == seed or candidate.used != 0:
                    continue
                if base_arc not in set(candidate.base_arcs()):
                    continue
                _try_merge(ellipse, o, refitted_groups, result, config)

    if len(members) > 1:
        _refit(ellipse, result)

    return ellipse


def _try_merge(ellipse, o, refitted_groups, result, config):
    """Tentatively add one extended arc to a merge set; roll back if it does not fit."""
    members = ellipse.merged_arcs
    candidate = result.extended_arcs[o]
    lb_limit = config.extended_arcs.max_lb_center_mismatch

    members.append(o)
    new_fit = candidate.group not in refitted_groups
    if new_fit:
        fit = fit_ellipse_to_extended_arcs(members, result)
        if not fit.ok:
            members.pop()
            return
        params = fit.params
        refitted_groups.add(candidate.group)
    else:
        params = ellipse

    # tested candidates are never offered again, kept or not
    candidate.used += 1
    distance = line_point_distance(params.x, params.y, candidate.ix, candidate.iy, candidate.slope_lb)
    if _validates(candidate, params, result, config) and abs(distance) < lb_limit:
        if new_fit:
            ellipse.set_params(params)
    else:
        members.pop()
        if new_fit:
            refitted_groups.discard(candidate.group)


def _merge_overlapping(result, config, log):
    """Phase 1: merge extended arcs that share base arcs."""
    extended = result.extended_arcs
    min_coverage = config.ellipses.min_coverage

    for i, ext in enumerate(extended):
        if ext.used > 0:
            continue

        ellipse = _grow_merge_set(i, result, config)
        if ellipse.coverage > min_coverage:
            result.ellipses.append(ellipse)
            log.event(f"ellipse from {len(ellipse.merged_arcs)} overlapping extended arcs",
                      level="DEBUG", coverage=ellipse.coverage)
        else:
            for idx in ellipse.merged_arcs:
                extended[idx].used = 0


def _attach_leftovers(result, config):
    """
    Phase 2: attach unused extended arcs to the ellipses found so far.

    An attachment is undone when the refit fails or drops the coverage to
    min_coverage or below.
    """
    extended = result.extended_arcs
    min_coverage = config.ellipses.min_coverage

    for ellipse in result.ellipses:
        for j, candidate in enumerate(extended):
            if candidate.used > 0:
                continue
            if not _validates(candidate, ellipse, result, config):
                continue

            previous = EllipseParams(x=ellipse.x, y=ellipse.y, a=ellipse.a, b=ellipse.b, t=ellipse.t)
            previous_coverage = ellipse.coverage

            ellipse.merged_arcs.append(j)
            if _refit(ellipse, result) and ellipse.coverage > min_coverage:
                candidate.used += 1
                continue

            ellipse.merged_arcs.pop()
            ellipse.set_params(previous)
            ellipse.coverage = previous_coverage


def _cross_merge(result, config, log):
    """Phase 3: merge unused extended arcs with similar center and axes."""
    extended = result.extended_arcs
    cfg = config.ellipses

    for i, target in enumerate(extended):
        if target.used > 0:
            continue

        ellipse = _new_ellipse(target, i)
        for j, candidate in enumerate(extended):
            if j == i or candidate.used > 0:
                continue
            if (abs(target.x - candidate.x) < cfg.max_center_mismatch
                    and abs(target.y - candidate.y) < cfg.max_center_mismatch
                    and min(target.a, candidate.a) / max(target.a, candidate.a) > cfg.min_radius_match_ratio
                    and min(target.b, candidate.b) / max(target.b, candidate.b) > cfg.min_radius_match_ratio):
                ellipse.merged_arcs.append(j)

        if len(ellipse.merged_arcs) > 1:
            _refit(ellipse, result)
        else:
            ellipse.coverage = ellipse_coverage(ellipse, result)

        if ellipse.coverage > cfg.min_coverage:
            result.ellipses.append(ellipse)
            for idx in ellipse.merged_arcs:
                extended[idx].used += 1
            log.event(f"ellipse from {len(ellipse.merged_arcs)} similar extended arcs",
                      level="DEBUG", coverage=ellipse.coverage)


@trace(label="merge_ellipses")
def merge_ellipses(result, config):
    """
    Merge the extended arcs of a result into ellipses.

    Every emitted ellipse has coverage > ellipses.min_coverage. Returns
    result.ellipses.
    """
    log = get_tracer()
    result.ellipses = []

    _merge_overlapping(result, config, log)
    _attach_leftovers(result, config)
    _cross_merge(result, config, log)

    log.event(f"ellipses: {len(result.ellipses)}")
    return result.ellipses
