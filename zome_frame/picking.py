"""Ray picking against the synthesized frame.

Connectors are tested as finite cylinders, beams as convex hexahedra
(Cyrus–Beck clipping against their six face planes). Picking never mutates
the frame.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from . import vec3 as v3
from .beams import BEAM_FACES, quad_normal
from .connectors import Connector
from .frame import FrameResult
from .vec3 import Vector3

__all__ = [
    "Ray",
    "PickHit",
    "ray_cylinder",
    "ray_convex_hull",
    "pick_connector",
    "pick_beam",
    "pick",
]

_EPS = 1e-12


@dataclass(frozen=True, slots=True)
class Ray:
    origin: Vector3
    direction: Vector3

    def __post_init__(self) -> None:
        d = v3.normalize(self.direction)
        if v3.norm(d) <= _EPS:
            raise ValueError("Ray direction must be non-zero")
        object.__setattr__(self, "direction", d)

    def at(self, t: float) -> Vector3:
        return v3.add(self.origin, v3.scale(self.direction, t))


@dataclass(frozen=True, slots=True)
class PickHit:
    kind: str  # "connector" | "beam"
    distance: float
    point: Vector3
    name: str
    info: Dict[str, Any]
    target: Any


def ray_cylinder(ray: Ray, connector: Connector) -> Optional[float]:
    """Nearest non-negative ray parameter hitting the connector, if any."""

    o = connector.to_local(ray.origin)
    x, y, z = connector.axes
    d = (v3.dot(ray.direction, x), v3.dot(ray.direction, y), v3.dot(ray.direction, z))
    r = connector.radius
    half = connector.spec.depth * 0.5
    hits: List[float] = []

    a = d[0] * d[0] + d[2] * d[2]
    if a > _EPS:
        b = 2.0 * (o[0] * d[0] + o[2] * d[2])
        c = o[0] * o[0] + o[2] * o[2] - r * r
        disc = b * b - 4.0 * a * c
        if disc >= 0:
            root = math.sqrt(disc)
            for t in ((-b - root) / (2.0 * a), (-b + root) / (2.0 * a)):
                if abs(o[1] + t * d[1]) <= half:
                    hits.append(t)
    if abs(d[1]) > _EPS:
        for cap_y in (-half, half):
            t = (cap_y - o[1]) / d[1]
            px = o[0] + t * d[0]
            pz = o[2] + t * d[2]
            if px * px + pz * pz <= r * r:
                hits.append(t)

    ahead = [t for t in hits if t >= 0.0]
    if ahead:
        return min(ahead)
    # Origin inside the cylinder.
    if hits and min(hits) < 0.0 < max(hits):
        return 0.0
    return None


def ray_convex_hull(ray: Ray, corners: Sequence[Vector3], faces=BEAM_FACES) -> Optional[float]:
    """Entry parameter of *ray* into a convex polyhedron with outward-wound faces."""

    t_enter = -math.inf
    t_exit = math.inf
    for quad in faces:
        pts = [corners[i] for i in quad]
        n = quad_normal(pts)
        if v3.norm_sq(n) <= _EPS:
            continue
        p = v3.centroid(pts)
        denom = v3.dot(n, ray.direction)
        dist = v3.dot(n, v3.sub(p, ray.origin))
        if abs(denom) <= _EPS:
            if dist < 0:
                return None
            continue
        t = dist / denom
        if denom < 0:
            t_enter = max(t_enter, t)
        else:
            t_exit = min(t_exit, t)
        if t_enter > t_exit:
            return None
    if t_exit < 0:
        return None
    return max(0.0, t_enter)


def pick_connector(frame: FrameResult, ray: Ray) -> Optional[PickHit]:
    best: Optional[PickHit] = None
    for connector in frame.connectors:
        if connector.hidden:
            continue
        t = ray_cylinder(ray, connector)
        if t is None or (best is not None and t >= best.distance):
            continue
        best = PickHit("connector", t, ray.at(t), connector.name, connector.info(), connector)
    return best


def pick_beam(frame: FrameResult, ray: Ray) -> Optional[PickHit]:
    best: Optional[PickHit] = None
    for beam in frame.beams:
        t = ray_convex_hull(ray, beam.corners)
        if t is None or (best is not None and t >= best.distance):
            continue
        best = PickHit("beam", t, ray.at(t), beam.name, beam.info(), beam)
    return best


def pick(frame: FrameResult, ray: Ray) -> Optional[PickHit]:
    """Nearest connector or beam along *ray*."""
    hits = [h for h in (pick_connector(frame, ray), pick_beam(frame, ray)) if h is not None]
    if not hits:
        return None
    return min(hits, key=lambda h: h.distance)
