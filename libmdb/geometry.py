"""libmdb.geometry

Small vector helpers plus the closed-form eigen decomposition used to fit
oriented boxes to point sets.

Vectors are plain float tuples, matrices are three row tuples.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from .model import Vec3

Mat3 = Tuple[Vec3, Vec3, Vec3]

# ----------------------------
# Vector helpers
# ----------------------------

def v_add(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])

def v_sub(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])

def v_scale(a: Vec3, s: float) -> Vec3:
    return (a[0] * s, a[1] * s, a[2] * s)

def dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]

def cross(a: Vec3, b: Vec3) -> Vec3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )

def length(a: Vec3) -> float:
    return math.sqrt(dot(a, a))

def normalize(a: Vec3) -> Vec3:
    n = length(a)
    if n <= 0.0:
        return (0.0, 0.0, 0.0)
    return (a[0] / n, a[1] / n, a[2] / n)

def _finite(a: Vec3) -> bool:
    return all(math.isfinite(c) for c in a)

# ----------------------------
# Symmetric 3x3 eigen decomposition
# https://en.wikipedia.org/wiki/Eigenvalue_algorithm#3%C3%973_matrices
# ----------------------------

def det3(row1: Vec3, row2: Vec3, row3: Vec3) -> float:
    return (row1[0] * row2[1] * row3[2] + row2[0] * row3[1] * row1[2] + row1[1] * row2[2] * row3[0]
            - (row3[0] * row2[1] * row1[2] + row2[0] * row1[1] * row3[2] + row1[0] * row3[1] * row2[2]))


def eigen_values(row1: Vec3, row2: Vec3, row3: Vec3) -> Vec3:
    """Eigenvalues of a symmetric 3x3 matrix, largest first, smallest last.

    A diagonal matrix is returned as its diagonal, in row order.
    """
    p1 = row1[1] * row1[1] + row1[2] * row1[2] + row2[2] * row2[2]
    if p1 == 0:
        return (row1[0], row2[1], row3[2])

    q = (row1[0] + row2[1] + row3[2]) / 3.0
    p2 = (row1[0] - q) ** 2 + (row2[1] - q) ** 2 + (row3[2] - q) ** 2 + 2.0 * p1
    p = math.sqrt(p2 / 6.0)
    if p == 0:
        # off-diagonal terms too small to survive the division
        return (row1[0], row2[1], row3[2])
    b1 = ((row1[0] - q) / p, row1[1] / p, row1[2] / p)
    b2 = (row2[0] / p, (row2[1] - q) / p, row2[2] / p)
    b3 = (row3[0] / p, row3[1] / p, (row3[2] - q) / p)
    r = det3(b1, b2, b3) / 2.0
    if r <= -1:
        phi = math.pi / 3.0
    elif r >= 1:
        phi = 0.0
    else:
        phi = math.acos(r) / 3.0
    big = q + 2.0 * p * math.cos(phi)
    small = q + 2.0 * p * math.cos(phi + (2.0 * math.pi / 3.0))
    return (big, 3.0 * q - big - small, small)


def eigen_vector(row1: Vec3, row2: Vec3, lam: float) -> Optional[Vec3]:
    """Eigenvector for lam by eliminating with the first two rows.

    Fixes z = 1, so it returns None when the elimination hits a zero pivot
    (eigenvectors lying in the XY plane, or a diagonal matrix).
    """
    a = (row1[0] - lam, row1[1], row1[2])
    b = (row2[0], row2[1] - lam, row2[2])
    if a[0] == 0:
        return None
    f = b[0] / a[0]
    b = (b[0] - a[0] * f, b[1] - a[1] * f, b[2] - a[2] * f)
    if b[1] == 0:
        return None
    y = -b[2] / b[1]
    x = -(a[1] * y + a[2]) / a[0]
    res = (x, y, 1.0)
    return res if _finite(res) else None


def _null_vector(m: Mat3, lam: float) -> Optional[Vec3]:
    # largest cross product of two rows of (M - lam*I) spans its null space
    rows = [
        (m[0][0] - lam, m[0][1], m[0][2]),
        (m[1][0], m[1][1] - lam, m[1][2]),
        (m[2][0], m[2][1], m[2][2] - lam),
    ]
    best: Optional[Vec3] = None
    best_len = 0.0
    for i, j in ((0, 1), (0, 2), (1, 2)):
        c = cross(rows[i], rows[j])
        n = length(c)
        if n > best_len:
            best, best_len = c, n
    scale = max(abs(x) for row in rows for x in row)
    if best is None or best_len <= 1e-12 * max(scale * scale, 1e-30):
        return None
    return normalize(best)


def _eigen_axis(m: Mat3, lam: float) -> Optional[Vec3]:
    v = eigen_vector(m[0], m[1], lam)
    if v is not None:
        v = normalize(v)
        resid = (
            dot(m[0], v) - lam * v[0],
            dot(m[1], v) - lam * v[1],
            dot(m[2], v) - lam * v[2],
        )
        scale = max(abs(lam), max(abs(x) for row in m for x in row), 1e-30)
        if length(resid) <= 1e-6 * scale:
            return v
    return _null_vector(m, lam)


def _any_perpendicular(a: Vec3) -> Vec3:
    # cross with the world axis least aligned to a
    ax = min(range(3), key=lambda i: abs(a[i]))
    e = [0.0, 0.0, 0.0]
    e[ax] = 1.0
    return normalize(cross(a, (e[0], e[1], e[2])))


def principal_axes(m: Mat3) -> Tuple[Vec3, Vec3, Vec3]:
    """(cross, up, forward) axes of a covariance matrix.

    cross follows the largest eigenvalue, up the smallest, and forward is
    cross x up so the basis is always orthonormal and right-handed.
    """
    vals = eigen_values(*m)
    c = _eigen_axis(m, max(vals))
    u = _eigen_axis(m, min(vals))
    if c is None and u is None:
        c, u = (1.0, 0.0, 0.0), (0.0, 1.0, 0.0)
    elif c is None:
        c = _any_perpendicular(u)
    elif u is None:
        u = _any_perpendicular(c)
    else:
        # repeated eigenvalues can hand back a vector that is not orthogonal
        u = v_sub(u, v_scale(c, dot(u, c)))
        u = normalize(u) if length(u) > 1e-6 else _any_perpendicular(c)
    f = cross(c, u)
    return c, u, normalize(f)


def mean_and_covariance(points: Sequence[Vec3]) -> Tuple[Vec3, Mat3]:
    n = len(points)
    if n == 0:
        zero = (0.0, 0.0, 0.0)
        return zero, (zero, zero, zero)
    sx = sy = sz = 0.0
    for p in points:
        sx += p[0]; sy += p[1]; sz += p[2]
    mean = (sx / n, sy / n, sz / n)

    xx = xy = xz = yy = yz = zz = 0.0
    for p in points:
        dx = p[0] - mean[0]
        dy = p[1] - mean[1]
        dz = p[2] - mean[2]
        xx += dx * dx; xy += dx * dy; xz += dx * dz
        yy += dy * dy; yz += dy * dz; zz += dz * dz
    xx /= n; xy /= n; xz /= n; yy /= n; yz /= n; zz /= n
    return mean, ((xx, xy, xz), (xy, yy, yz), (xz, yz, zz))


def project_extents(points: List[Vec3], axes: Tuple[Vec3, Vec3, Vec3]) -> Tuple[Vec3, Vec3]:
    """Per-axis (min, max) of points expressed in the given basis."""
    mins = [math.inf, math.inf, math.inf]
    maxs = [-math.inf, -math.inf, -math.inf]
    for p in points:
        for i, ax in enumerate(axes):
            d = dot(ax, p)
            if d < mins[i]:
                mins[i] = d
            if d > maxs[i]:
                maxs[i] = d
    return (mins[0], mins[1], mins[2]), (maxs[0], maxs[1], maxs[2])
