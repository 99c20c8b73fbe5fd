"""Beam geometry: trimming, local frame, bevel planes, corners and plates.

A beam runs along an edge between two connectors. Its ends are pulled back
to where the edge line meets each cylinder's lateral surface, and its end
caps are cut by the plane that contains the cylinder axis and is tangent to
the cylinder. Both ends share a single ``(w, t)`` cross-section frame so the
prism never twists.

Corner layout (``W`` width along ``w``, ``H`` height along ``t``)::

    3 (-w, H) ---- 2 (+w, H)        start cap: 0..3
    |                  |            end cap:   4..7 (same pattern)
    0 (-w, 0) ---- 1 (+w, 0)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from . import vec3 as v3
from .vec3 import Vector3

__all__ = [
    "BEAM_FACES",
    "FACE_NAMES",
    "TRIM_CLAMP",
    "TrimResult",
    "BevelPlane",
    "Beam",
    "Plate",
    "trim_distance",
    "trim_edge",
    "beam_frame",
    "bevel_plane",
    "beam_corners",
    "quad_normal",
    "beam_id",
    "build_plate",
]

# Fixed outward winding of the six beam faces (indices into the 8 corners).
BEAM_FACES: Tuple[Tuple[int, int, int, int], ...] = (
    (0, 1, 2, 3),
    (4, 7, 6, 5),
    (0, 4, 5, 1),
    (1, 5, 6, 2),
    (2, 6, 7, 3),
    (3, 7, 4, 0),
)
FACE_NAMES = ("cap_start", "cap_end", "outer", "side_pos", "inner", "side_neg")

TRIM_CLAMP = 0.45
MIN_EDGE_LENGTH = 1e-6
AXIS_EPS = 1e-10


@dataclass(frozen=True, slots=True)
class TrimResult:
    start: Vector3
    end: Vector3
    direction: Vector3
    node_length: float
    length: float
    s_start: float
    s_end: float


@dataclass(frozen=True, slots=True)
class BevelPlane:
    """Plane ``normal · (x - origin) = offset``."""

    origin: Vector3
    normal: Vector3
    offset: float

    def signed_distance(self, p: Vector3) -> float:
        return v3.dot(self.normal, v3.sub(p, self.origin)) - self.offset


def trim_distance(radius: float, edge_dir: Vector3, directrix: Vector3) -> float:
    """Distance along the edge from a node to the cylinder's lateral surface."""
    c = v3.dot(edge_dir, directrix)
    return radius / math.sqrt(max(1e-10, 1.0 - c * c))


def trim_edge(
    a: Vector3,
    b: Vector3,
    dir_a: Vector3,
    dir_b: Vector3,
    radius_a: float,
    radius_b: float,
) -> TrimResult | None:
    """Pull both endpoints of ``a-b`` back to the cylinder surfaces."""

    ab = v3.sub(b, a)
    node_length = v3.norm(ab)
    if node_length < MIN_EDGE_LENGTH:
        return None
    e = v3.scale(ab, 1.0 / node_length)
    limit = TRIM_CLAMP * node_length
    s_a = min(limit, max(0.0, trim_distance(radius_a, e, dir_a)))
    s_b = min(limit, max(0.0, trim_distance(radius_b, e, dir_b)))
    start = v3.add(a, v3.scale(e, s_a))
    end = v3.sub(b, v3.scale(e, s_b))
    return TrimResult(
        start=start,
        end=end,
        direction=e,
        node_length=node_length,
        length=v3.distance(start, end),
        s_start=s_a,
        s_end=s_b,
    )


def beam_frame(e: Vector3, dir_a: Vector3, dir_b: Vector3) -> Tuple[Vector3, Vector3] | None:
    """Return ``(w, t)``: width and inward height axes, or ``None`` if degenerate."""

    bis = v3.add(dir_a, dir_b)
    for candidate in (bis, dir_a, dir_b):
        t = v3.project_perp(candidate, e)
        if v3.norm_sq(t) > AXIS_EPS:
            break
    else:
        return None
    t = v3.normalize(t)
    if v3.dot(t, bis) < 0:
        t = v3.neg(t)
    w = v3.cross(e, t)
    if v3.norm_sq(w) <= AXIS_EPS:
        return None
    return v3.normalize(w), t


def bevel_plane(
    node: Vector3,
    directrix: Vector3,
    leaving_dir: Vector3,
    w: Vector3,
    radius: float,
) -> BevelPlane | None:
    """Tangent plane of the cylinder at ``node`` that the beam leaving along
    ``leaving_dir`` butts against."""

    n = v3.project_perp(leaving_dir, directrix)
    if v3.norm_sq(n) <= AXIS_EPS:
        n = v3.project_perp(w, directrix)
        if v3.norm_sq(n) <= AXIS_EPS:
            return None
    return BevelPlane(origin=node, normal=v3.normalize(n), offset=radius)


def _cross_section(w: Vector3, t: Vector3, width: float, height: float) -> List[Vector3]:
    hw = width * 0.5
    return [
        v3.scale(w, -hw),
        v3.scale(w, hw),
        v3.add(v3.scale(w, hw), v3.scale(t, height)),
        v3.add(v3.scale(w, -hw), v3.scale(t, height)),
    ]


def _line_plane_param(p: Vector3, e: Vector3, plane: BevelPlane, lo: float, hi: float, fallback: float) -> float:
    denom = v3.dot(plane.normal, e)
    if abs(denom) < AXIS_EPS:
        return fallback
    u = -plane.signed_distance(p) / denom
    return min(hi, max(lo, u))


def beam_corners(
    trim: TrimResult,
    w: Vector3,
    t: Vector3,
    width: float,
    height: float,
    plane_a: BevelPlane,
    plane_b: BevelPlane,
) -> List[Vector3] | None:
    """Eight corners of the beveled prism, or ``None`` if the ends overlap.

    Each longitudinal edge is intersected with both bevel planes; the line
    parameter is kept within the node-to-node span.
    """

    e = trim.direction
    lo = -trim.s_start
    hi = trim.length + trim.s_end
    offsets = _cross_section(w, t, width, height)
    base = [v3.add(trim.start, off) for off in offsets]
    u_start = [_line_plane_param(p, e, plane_a, lo, hi, 0.0) for p in base]
    u_end = [_line_plane_param(p, e, plane_b, lo, hi, trim.length) for p in base]
    if max(u_start) + 0.2 * max(width, height) > min(u_end):
        return None
    starts = [v3.add(p, v3.scale(e, u)) for p, u in zip(base, u_start)]
    ends = [v3.add(p, v3.scale(e, u)) for p, u in zip(base, u_end)]
    return starts + ends


def quad_normal(points: Sequence[Vector3]) -> Vector3:
    """Newell normal of a polygon (not normalized)."""
    sx = sy = sz = 0.0
    count = len(points)
    for idx in range(count):
        x1, y1, z1 = points[idx]
        x2, y2, z2 = points[(idx + 1) % count]
        sx += (y1 - y2) * (z1 + z2)
        sy += (z1 - z2) * (x1 + x2)
        sz += (x1 - x2) * (y1 + y2)
    return (sx, sy, sz)


def beam_id(a: Tuple[int, int], b: Tuple[int, int]) -> str:
    """Order-independent id from ``(k_visible, i)`` endpoint pairs."""
    lo, hi = sorted((tuple(a), tuple(b)))
    return f"B{lo[0]}-{hi[0]}_{lo[1]}-{hi[1]}"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class BeamEnd:
    key: str
    name: str
    k: int
    i: int
    pos: Vector3
    node_pos: Vector3
    directrix: Vector3
    plane: BevelPlane

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "k": self.k,
            "i": self.i,
            "pos": list(self.pos),
            "nodePos": list(self.node_pos),
        }


@dataclass(slots=True)
class Beam:
    """One beveled prism between two connectors."""

    name: str
    beam_id: str
    kind: str
    k_visible: int
    a: BeamEnd
    b: BeamEnd
    edge_dir: Vector3
    w: Vector3
    t: Vector3
    width_mm: float
    height_mm: float
    length: float
    node_length: float
    corners: List[Vector3]
    plates: List["Plate"] = field(default_factory=list)

    @property
    def edge_key(self) -> str:
        a, b = self.a.key, self.b.key
        return f"{a}|{b}" if a < b else f"{b}|{a}"

    @property
    def ang_a_deg(self) -> float:
        c = min(1.0, abs(v3.dot(self.edge_dir, self.a.directrix)))
        return math.degrees(math.acos(c))

    @property
    def ang_b_deg(self) -> float:
        c = min(1.0, abs(v3.dot(v3.neg(self.edge_dir), self.b.directrix)))
        return math.degrees(math.acos(c))

    @property
    def touches_junction(self) -> bool:
        return self.a.key.startswith("X:") or self.b.key.startswith("X:")

    def face_quads(self) -> List[List[Vector3]]:
        return [[self.corners[idx] for idx in quad] for quad in BEAM_FACES]

    def expected_outward(self) -> List[Vector3]:
        e, w, t = self.edge_dir, self.w, self.t
        return [v3.neg(e), e, v3.neg(t), w, t, v3.neg(w)]

    def info(self) -> Dict[str, Any]:
        return {
            "id": self.beam_id,
            "name": self.name,
            "kind": self.kind,
            "kVisible": self.k_visible,
            "aKey": self.a.key,
            "bKey": self.b.key,
            "a": self.a.to_dict(),
            "b": self.b.to_dict(),
            "aDir": list(self.a.directrix),
            "bDir": list(self.b.directrix),
            "edgeDir": list(self.edge_dir),
            "angAdeg": round(self.ang_a_deg, 3),
            "angBdeg": round(self.ang_b_deg, 3),
            "widthMm": round(self.width_mm, 3),
            "heightMm": round(self.height_mm, 3),
            "lenMm": round(self.length * 1000.0, 2),
            "nodeLenMm": round(self.node_length * 1000.0, 2),
            "faces": [
                {"name": name, "indices": list(quad)} for name, quad in zip(FACE_NAMES, BEAM_FACES)
            ],
        }


@dataclass(slots=True)
class Plate:
    """Anchor plate lying on a beam's bevel plane, owned by a connector."""

    name: str
    beam_id: str
    end: str
    connector_key: str
    corners: List[Vector3]
    local_corners: List[Vector3]
    thickness_mm: float
    length_mm: float
    width_mm: float

    def info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "beamId": self.beam_id,
            "end": self.end,
            "connector": self.connector_key,
            "thicknessMm": self.thickness_mm,
            "lengthMm": self.length_mm,
            "widthMm": self.width_mm,
        }


def build_plate(
    plane: BevelPlane,
    directrix: Vector3,
    w: Vector3,
    cap_corners: Sequence[Vector3],
    thickness: float,
    length: float,
    width: float,
) -> List[Vector3] | None:
    """Eight world-space corners of a plate on ``plane``.

    The plate is centred on the beam cap, spans ``length`` along the
    directrix and ``width`` across it, and grows ``thickness`` from the plane
    toward the beam. Corners follow the beam layout so :data:`BEAM_FACES`
    winds outward.
    """

    n = plane.normal
    long_axis = v3.normalize(v3.project_perp(directrix, n))
    if v3.norm_sq(long_axis) <= AXIS_EPS:
        return None
    side = v3.cross(long_axis, n)
    if v3.dot(side, w) < 0:
        long_axis = v3.neg(long_axis)
        side = v3.neg(side)
    c = v3.centroid(cap_corners)
    c = v3.sub(c, v3.scale(n, plane.signed_distance(c)))
    start = v3.sub(c, v3.scale(long_axis, length * 0.5))
    section = _cross_section(side, n, width, thickness)
    starts = [v3.add(start, off) for off in section]
    ends = [v3.add(p, v3.scale(long_axis, length)) for p in starts]
    return starts + ends
