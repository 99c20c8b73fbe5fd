"""3-component vector algebra on plain tuples.

All functions operate on ``Vector3 = Tuple[float, float, float]`` values so
the geometry core stays importable without any CAD or numeric dependency.
The zonohedron, topology, frame and picking modules all share these helpers
instead of carrying private copies.
"""

from __future__ import annotations

import math
from typing import Iterable, Tuple

__all__ = [
    "Vector3",
    "ZERO",
    "UP",
    "norm",
    "norm_sq",
    "normalize",
    "dot",
    "cross",
    "sub",
    "add",
    "scale",
    "neg",
    "midpoint",
    "centroid",
    "distance",
    "angle_between",
    "lerp",
    "project_perp",
    "point_line_distance",
]

Vector3 = Tuple[float, float, float]

ZERO: Vector3 = (0.0, 0.0, 0.0)
UP: Vector3 = (0.0, 0.0, 1.0)


def norm(v: Vector3) -> float:
    """Euclidean length of *v*."""
    return math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


def norm_sq(v: Vector3) -> float:
    return v[0] * v[0] + v[1] * v[1] + v[2] * v[2]


def normalize(v: Vector3) -> Vector3:
    """Unit vector in the direction of *v*, or (0,0,0) if degenerate."""
    n = norm(v)
    if n <= 1e-12:
        return ZERO
    return (v[0] / n, v[1] / n, v[2] / n)


def dot(a: Vector3, b: Vector3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def cross(a: Vector3, b: Vector3) -> Vector3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def sub(a: Vector3, b: Vector3) -> Vector3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def add(a: Vector3, b: Vector3) -> Vector3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def scale(v: Vector3, s: float) -> Vector3:
    return (v[0] * s, v[1] * s, v[2] * s)


def neg(v: Vector3) -> Vector3:
    return (-v[0], -v[1], -v[2])


def midpoint(a: Vector3, b: Vector3) -> Vector3:
    return ((a[0] + b[0]) * 0.5, (a[1] + b[1]) * 0.5, (a[2] + b[2]) * 0.5)


def centroid(points: Iterable[Vector3]) -> Vector3:
    """Arithmetic mean of *points*; (0,0,0) for an empty iterable."""
    sx = sy = sz = 0.0
    count = 0
    for p in points:
        sx += p[0]
        sy += p[1]
        sz += p[2]
        count += 1
    if count == 0:
        return ZERO
    return (sx / count, sy / count, sz / count)


def distance(a: Vector3, b: Vector3) -> float:
    return norm(sub(a, b))


def angle_between(a: Vector3, b: Vector3) -> float:
    """Angle in radians between two vectors."""
    na, nb = norm(a), norm(b)
    if na < 1e-12 or nb < 1e-12:
        return 0.0
    c = dot(a, b) / (na * nb)
    c = max(-1.0, min(1.0, c))
    return math.acos(c)


def lerp(a: Vector3, b: Vector3, t: float) -> Vector3:
    """Linear interpolation between *a* and *b* at parameter *t*."""
    return (
        a[0] + (b[0] - a[0]) * t,
        a[1] + (b[1] - a[1]) * t,
        a[2] + (b[2] - a[2]) * t,
    )


def project_perp(v: Vector3, axis: Vector3) -> Vector3:
    """Component of *v* perpendicular to the unit vector *axis*."""
    d = dot(v, axis)
    return (v[0] - axis[0] * d, v[1] - axis[1] * d, v[2] - axis[2] * d)


def point_line_distance(p: Vector3, origin: Vector3, direction: Vector3) -> float:
    """Distance from *p* to the infinite line ``origin + s * direction``.

    *direction* must be a unit vector.
    """
    return norm(project_perp(sub(p, origin), direction))
