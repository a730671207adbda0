"""
Direct least-squares ellipse fitting.

Fitzgibbon-style constrained conic fit: the scatter matrix of the design
matrix [x², xy, y², x, y, 1] is Cholesky-factored, the ellipse constraint is
moved into the factor's frame and the one eigenvector with a negative
eigenvalue is the conic. Points are centered and scaled first so that pixel
coordinates in the hundreds do not ruin the conditioning of the scatter
matrix.
"""

import math

import numpy as np
from scipy import linalg

from fastellipse.models import FitFailure, FitResult
from fastellipse.primitives.pixels import arc_pixels


MIN_FIT_POINTS = 6

# ellipse constraint with the sign flipped, so an ellipse has a negative eigenvalue
CONSTRAINT = np.zeros((6, 6))
CONSTRAINT[0, 2] = CONSTRAINT[2, 0] = -2.0
CONSTRAINT[1, 1] = 1.0

EIGEN_ZERO = 1e-19


def fit_ellipse(xs, ys, ridge=1e-12):
    """
    Fit an ellipse to a set of pixels.

    Args:
        xs, ys: pixel coordinates (any array-likes of equal length)
        ridge: relative diagonal load that keeps the scatter matrix positive
            definite for noise-free samples

    Returns:
        FitResult with (x, y, a, b, t), a >= b, t the minor-axis direction
        in image coordinates; or the failure kind.
    """
    xs = np.asarray(xs, dtype=np.float64).ravel()
    ys = np.asarray(ys, dtype=np.float64).ravel()
    if xs.size < MIN_FIT_POINTS:
        return FitResult.failed(FitFailure.INSUFFICIENT_GEOMETRY)

    # mean-center + RMS scale
    xm, ym = float(xs.mean()), float(ys.mean())
    u, v = xs - xm, ys - ym
    scale = float(np.sqrt(np.mean(u * u + v * v)))
    if scale == 0.0:
        return FitResult.failed(FitFailure.INSUFFICIENT_GEOMETRY)
    u, v = u / scale, v / scale

    # all points on one line leave no second direction to fit
    spread = np.linalg.eigvalsh(np.cov(np.vstack([u, v])))
    if spread[0] < 1e-12:
        return FitResult.failed(FitFailure.INSUFFICIENT_GEOMETRY)

    design = np.column_stack([u * u, u * v, v * v, u, v, np.ones_like(u)])
    scatter = design.T @ design
    scatter += ridge * (np.trace(scatter) / 6.0) * np.eye(6)

    try:
        factor = linalg.cholesky(scatter, lower=True)
        factor_inv = linalg.inv(factor)
    except linalg.LinAlgError:
        return FitResult.failed(FitFailure.SINGULAR_MATRIX)

    system = factor_inv @ CONSTRAINT @ factor_inv.T
    evals, evecs = linalg.eigh(system)

    solutions = factor_inv.T @ evecs
    solutions /= np.linalg.norm(solutions, axis=0)

    # M shares the inertia of the constraint matrix: exactly one negative
    # eigenvalue for a positive definite scatter matrix
    threshold = max(EIGEN_ZERO, np.finfo(float).eps * 6 * float(np.abs(evals).max()))
    negative = np.flatnonzero(evals < -threshold)
    if negative.size != 1:
        return FitResult.failed(FitFailure.DEGENERATE_CONIC)

    params = conic_to_params(solutions[:, negative[0]])
    if params is None:
        return FitResult.failed(FitFailure.DEGENERATE_CONIC)

    x0, y0, a, b, t = params
    return FitResult.success(xm + scale * x0, ym + scale * y0, scale * a, scale * b, t)


def conic_to_params(coeffs):
    """
    Convert conic coefficients to (x, y, a, b, t).

    coeffs are (A, 2B, C, 2D, 2E, F) of Ax² + 2Bxy + Cy² + 2Dx + 2Ey + F = 0.
    Returns None for a degenerate conic or an imaginary axis.
    """
    coeffs = np.asarray(coeffs, dtype=np.float64)
    if coeffs[0] + coeffs[2] < 0:
        coeffs = -coeffs

    A = coeffs[0]
    B = coeffs[1] / 2
    C = coeffs[2]
    D = coeffs[3] / 2
    E = coeffs[4] / 2
    F = coeffs[5]

    delta = A * C - B * B
    if delta == 0:
        return None
    big_delta = A * C * F + 2 * B * E * D - A * E * E - B * B * F - D * D * C

    x0 = (B * E - C * D) / delta
    y0 = (B * D - A * E) / delta
    t = math.atan2(2 * B, A - C) / 2

    # eigenvalues of the quadratic block
    root = math.sqrt((A - C) * (A - C) + 4 * B * B)
    lam1 = (A + C + root) / 2
    lam2 = (A + C - root) / 2
    if lam1 == 0 or lam2 == 0:
        return None

    ratio = big_delta / delta
    minor2 = -ratio / lam1
    major2 = -ratio / lam2
    if minor2 <= 0 or major2 <= 0:
        return None

    return x0, y0, math.sqrt(major2), math.sqrt(minor2), t


def fit_ellipse_to_arcs(arcs, result):
    """Fit an ellipse to the pixels of a sequence of arcs."""
    xs, ys = [], []
    for arc in arcs:
        arc_xs, arc_ys = arc_pixels(arc, result)
        xs.append(arc_xs)
        ys.append(arc_ys)
    if not xs:
        return FitResult.failed(FitFailure.INSUFFICIENT_GEOMETRY)
    return fit_ellipse(np.concatenate(xs), np.concatenate(ys))


def fit_ellipse_to_extended_arcs(indices, result):
    """
    Fit an ellipse to the base arcs of several extended arcs.

    Arcs shared between extended arcs contribute their pixels once per
    extended arc, so overlapping arcs weigh more.
    """
    arcs = []
    for idx in indices:
        ext = result.extended_arcs[idx]
        for group, arc_idx in ext.base_arcs():
            arcs.append(result.arcs[group][arc_idx])
    return fit_ellipse_to_arcs(arcs, result)
