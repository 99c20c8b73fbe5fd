"""Cylindrical node connectors.

Every visible vertex of the frame carries one cylinder whose length axis is
the vertex directrix. By default the outer cap sits on the vertex; a positive
offset pushes the whole cylinder further inward along the directrix.

Typical usage::

    from zome_frame.connectors import CylinderGeometryCache, resolve_connector_params
    cache = CylinderGeometryCache()
    spec = resolve_connector_params(params.structure, edits, k_original=3)
    geometry = cache.get(spec.radius, spec.depth, params.structure.cyl_segments)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from . import vec3 as v3
from .parameters import StructureParams
from .vec3 import Vector3

__all__ = [
    "ConnectorSpec",
    "CylinderGeometry",
    "CylinderGeometryCache",
    "Connector",
    "resolve_connector_params",
    "local_frame",
]

log = logging.getLogger(__name__)

MIN_RADIUS_M = 0.0005


# ---------------------------------------------------------------------------
# Per-level parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectorSpec:
    """Resolved connector dimensions (mm as entered, metres for geometry)."""

    diameter_mm: float
    depth_mm: float
    offset_mm: float

    @property
    def radius(self) -> float:
        return max(MIN_RADIUS_M, self.diameter_mm / 2000.0)

    @property
    def depth(self) -> float:
        return self.depth_mm / 1000.0

    @property
    def offset(self) -> float:
        return self.offset_mm / 1000.0


def _positive(value: Any, fallback: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(v) or v <= 0:
        return fallback
    return v


def resolve_connector_params(
    structure: StructureParams,
    overrides: Mapping[int, Mapping[str, float]] | None,
    k_original: int,
) -> ConnectorSpec:
    """Merge the level override for ``k_original`` over the base structure values.

    Invalid or non-positive diameters/depths fall back to the base value; the
    offset may be zero but never negative.
    """

    ov = (overrides or {}).get(int(k_original)) or {}
    diameter = structure.cyl_diameter_mm
    depth = structure.cyl_depth_mm
    offset = structure.cyl_offset_mm
    if ov.get("diameter_mm") is not None:
        diameter = _positive(ov["diameter_mm"], diameter)
    if ov.get("depth_mm") is not None:
        depth = _positive(ov["depth_mm"], depth)
    if ov.get("offset_mm") is not None:
        try:
            candidate = float(ov["offset_mm"])
        except (TypeError, ValueError):
            candidate = offset
        if math.isfinite(candidate):
            offset = max(0.0, candidate)
    return ConnectorSpec(diameter_mm=diameter, depth_mm=depth, offset_mm=offset)


# ---------------------------------------------------------------------------
# Shared cylinder geometry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CylinderGeometry:
    """Closed cylinder mesh in a local frame whose +Y is the length axis.

    Vertices ``0..seg-1`` form the bottom ring (``y = -depth/2``) and
    ``seg..2*seg-1`` the top ring. Faces are wound counter-clockwise when
    seen from outside.
    """

    radius: float
    depth: float
    segments: int
    vertices: Tuple[Vector3, ...]
    faces: Tuple[Tuple[int, ...], ...]

    @classmethod
    def build(cls, radius: float, depth: float, segments: int) -> "CylinderGeometry":
        seg = max(3, int(segments))
        half = depth * 0.5
        verts: List[Vector3] = []
        for y in (-half, half):
            for j in range(seg):
                phi = 2.0 * math.pi * j / seg
                verts.append((radius * math.cos(phi), y, radius * math.sin(phi)))
        faces: List[Tuple[int, ...]] = []
        faces.append(tuple(seg + j for j in range(seg - 1, -1, -1)))
        faces.append(tuple(range(seg)))
        for j in range(seg):
            nxt = (j + 1) % seg
            faces.append((j, seg + j, seg + nxt, nxt))
        return cls(radius=radius, depth=depth, segments=seg, vertices=tuple(verts), faces=tuple(faces))


class CylinderGeometryCache:
    """Cylinder meshes shared by every connector with the same dimensions."""

    def __init__(self) -> None:
        self._items: Dict[str, CylinderGeometry] = {}

    @staticmethod
    def key(radius: float, depth: float, segments: int) -> str:
        return f"{radius:.6f}_{depth:.6f}_{int(segments)}"

    def get(self, radius: float, depth: float, segments: int) -> CylinderGeometry:
        key = self.key(radius, depth, segments)
        geometry = self._items.get(key)
        if geometry is None:
            geometry = CylinderGeometry.build(radius, depth, segments)
            self._items[key] = geometry
        return geometry

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def dispose(self) -> None:
        if self._items:
            log.debug("Disposing %d cached cylinder geometries", len(self._items))
        self._items.clear()


# ---------------------------------------------------------------------------
# Connector record
# ---------------------------------------------------------------------------


def local_frame(axis: Vector3) -> Tuple[Vector3, Vector3, Vector3]:
    """Right-handed basis ``(x, y, z)`` with ``y`` along *axis*."""

    y = v3.normalize(axis)
    if v3.norm(y) <= 1e-12:
        y = v3.UP
    ref = (0.0, 0.0, 1.0) if abs(y[2]) < 0.9 else (1.0, 0.0, 0.0)
    x = v3.normalize(v3.cross(y, ref))
    z = v3.cross(x, y)
    return x, y, z


@dataclass(slots=True)
class Connector:
    """One cylinder placed at a frame vertex."""

    key: str
    name: str
    connector_id: str
    k_original: int
    k_visible: int
    i: int
    position: Vector3
    directrix: Vector3
    spec: ConnectorSpec
    geometry: CylinderGeometry
    is_intersection: bool = False
    is_pole: bool = False
    hidden: bool = False
    degree: int = 0
    plates: List[Any] = field(default_factory=list)

    @property
    def radius(self) -> float:
        return self.spec.radius

    @property
    def outer_center(self) -> Vector3:
        """Centre of the outer cap (the one nearest the zome surface)."""
        return v3.add(self.position, v3.scale(self.directrix, self.spec.offset))

    @property
    def inner_center(self) -> Vector3:
        return v3.add(self.outer_center, v3.scale(self.directrix, self.spec.depth))

    @property
    def center(self) -> Vector3:
        return v3.add(self.position, v3.scale(self.directrix, self.spec.depth * 0.5 + self.spec.offset))

    @property
    def axes(self) -> Tuple[Vector3, Vector3, Vector3]:
        return local_frame(self.directrix)

    def to_world(self, p: Vector3) -> Vector3:
        x, y, z = self.axes
        c = self.center
        return (
            c[0] + x[0] * p[0] + y[0] * p[1] + z[0] * p[2],
            c[1] + x[1] * p[0] + y[1] * p[1] + z[1] * p[2],
            c[2] + x[2] * p[0] + y[2] * p[1] + z[2] * p[2],
        )

    def to_local(self, p: Vector3) -> Vector3:
        x, y, z = self.axes
        d = v3.sub(p, self.center)
        return (v3.dot(d, x), v3.dot(d, y), v3.dot(d, z))

    def world_vertices(self) -> List[Vector3]:
        return [self.to_world(p) for p in self.geometry.vertices]

    def info(self) -> Dict[str, Any]:
        return {
            "kOriginal": self.k_original,
            "kVisible": self.k_visible,
            "i": self.i,
            "id": self.connector_id,
            "key": self.key,
            "diameterMm": round(self.spec.diameter_mm, 3),
            "depthMm": round(self.spec.depth_mm, 3),
            "offsetMm": round(self.spec.offset_mm, 3),
            "isIntersection": self.is_intersection,
            "degree": self.degree,
            "hidden": self.hidden,
        }
