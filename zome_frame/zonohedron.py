"""Ring vertices and visible faces of the polar zonohedron.

Ring ``k`` (0..N) is a circle of N vertices at height ``k * h1``; even rings
are rotated by half a step (antiprism twist) so consecutive rings tile with
rhombi. The two poles collapse every index ``i`` onto the axis, which is why
vertex keys canonicalize them to ``pole_low`` / ``pole_top``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Tuple

from .parameters import ZomeParameters
from .vec3 import Vector3

__all__ = [
    "Vector3",
    "VertexRef",
    "Face",
    "ring_vertex",
    "vertex_key",
    "junction_key",
    "parse_vertex_key",
    "side_indices",
    "build_faces",
    "face_by_id",
    "parse_face_id",
    "ring_levels",
    "cut_cap",
    "geometry_summary",
]

POLE_LOW = "pole_low"
POLE_TOP = "pole_top"


@dataclass(frozen=True, slots=True)
class VertexRef:
    """A face corner: canonical key, ring coordinates and position."""

    key: str
    k: int
    i: int
    pos: Vector3


@dataclass(frozen=True, slots=True)
class Face:
    """One visible face.

    Quads are ordered ``(bottom, right, top, left)``; cut-ring triangles are
    ordered ``(left, right, top)``.
    """

    face_id: str
    k: int
    i: int
    vertices: Tuple[VertexRef, ...]

    @property
    def is_triangle(self) -> bool:
        return len(self.vertices) == 3

    @property
    def points(self) -> List[Vector3]:
        return [v.pos for v in self.vertices]

    @property
    def keys(self) -> List[str]:
        return [v.key for v in self.vertices]

    def corner(self, role: str) -> VertexRef:
        """Return the corner named ``bottom``/``right``/``top``/``left``."""
        order = ("left", "right", "top") if self.is_triangle else ("bottom", "right", "top", "left")
        if role not in order:
            raise ValueError(f"Face {self.face_id} has no '{role}' corner")
        return self.vertices[order.index(role)]


def ring_vertex(params: ZomeParameters, k: int, i: int) -> Vector3:
    """Position of vertex ``i`` on ring ``k``."""

    n = params.n
    z = k * params.h1
    rk = (params.dmax / 2.0) * math.sin(k * math.pi / n)
    step = 2.0 * math.pi / n
    rot_offset = math.pi / n if k % 2 == 0 else 0.0
    theta = -math.pi / 2.0 + rot_offset + i * step
    if k == 0 or k == n:
        return (0.0, 0.0, z)
    return (rk * math.cos(theta), rk * math.sin(theta), z)


def vertex_key(n: int, k: int, i: int) -> str:
    if k == 0:
        return POLE_LOW
    if k == n:
        return POLE_TOP
    return f"k{k}_i{i}"


def junction_key(k: int, i: int) -> str:
    """Key of the mid-face junction hosted by face ``k:i``."""
    return f"X:{k}:{i}"


def parse_vertex_key(key: str, n: int) -> Tuple[int, int, bool]:
    """Return ``(k, i, is_junction)`` for a vertex key."""

    if key == POLE_LOW:
        return 0, 0, False
    if key == POLE_TOP:
        return n, 0, False
    if key.startswith("X:"):
        parts = key.split(":")
        if len(parts) != 3:
            raise ValueError(f"Malformed junction key '{key}'")
        return int(parts[1]), int(parts[2]), True
    if key.startswith("k") and "_i" in key:
        k_part, i_part = key[1:].split("_i", 1)
        return int(k_part), int(i_part), False
    raise ValueError(f"Malformed vertex key '{key}'")


def side_indices(n: int, k: int, i: int) -> Tuple[int, int]:
    """Indices of the left and right corners of face ``i`` on ring ``k``."""
    if k % 2 == 1:
        return i, (i + 1) % n
    return (i - 1 + n) % n, i


def _ref(params: ZomeParameters, k: int, i: int) -> VertexRef:
    n = params.n
    canonical_i = 0 if k in (0, n) else i
    return VertexRef(vertex_key(n, k, i), k, canonical_i, ring_vertex(params, k, i))


def build_faces(params: ZomeParameters) -> List[Face]:
    """Return every visible face, ordered by level then index."""

    n = params.n
    faces: List[Face] = []
    for k in range(params.start_k, n):
        for i in range(n):
            idx_l, idx_r = side_indices(n, k, i)
            left = _ref(params, k, idx_l)
            right = _ref(params, k, idx_r)
            top = _ref(params, k + 1, i)
            if params.cut_active and k == params.cut_level:
                verts: Tuple[VertexRef, ...] = (left, right, top)
            else:
                bottom = _ref(params, k - 1, i)
                verts = (bottom, right, top, left)
            faces.append(Face(face_id=f"{k}:{i}", k=k, i=i, vertices=verts))
    return faces


def parse_face_id(face_id: str) -> Tuple[int, int]:
    parts = str(face_id).split(":")
    if len(parts) != 2:
        raise ValueError(f"Malformed face id '{face_id}'")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise ValueError(f"Malformed face id '{face_id}'") from exc


def face_by_id(params: ZomeParameters, face_id: str) -> Face:
    """Build the single face ``k:i`` without assembling the full list."""

    k, i = parse_face_id(face_id)
    n = params.n
    if not (params.start_k <= k <= n - 1) or not (0 <= i < n):
        raise ValueError(f"Face '{face_id}' is not visible for N={n}")
    idx_l, idx_r = side_indices(n, k, i)
    left = _ref(params, k, idx_l)
    right = _ref(params, k, idx_r)
    top = _ref(params, k + 1, i)
    if params.cut_active and k == params.cut_level:
        return Face(face_id=f"{k}:{i}", k=k, i=i, vertices=(left, right, top))
    return Face(
        face_id=f"{k}:{i}",
        k=k,
        i=i,
        vertices=(_ref(params, k - 1, i), right, top, left),
    )


def ring_levels(params: ZomeParameters, faces: List[Face] | None = None) -> Iterator[Dict[str, Any]]:
    """Yield ``{level, name, faces}`` per ring level for report generators."""

    faces = build_faces(params) if faces is None else faces
    by_level: Dict[int, List[Face]] = {}
    for face in faces:
        by_level.setdefault(face.k, []).append(face)
    for level in sorted(by_level):
        yield {
            "level": level,
            "name": f"R{level}",
            "faces": [
                {"vertices": face.points, "is_triangle": face.is_triangle, "face_id": face.face_id}
                for face in by_level[level]
            ],
        }


def cut_cap(params: ZomeParameters) -> Tuple[Vector3, List[Vector3]]:
    """Centre and ring of the planar cap closing the cut plane."""

    if not params.cut_active:
        raise ValueError("Cut cap requires an active cut")
    z = params.cut_level * params.h1
    ring = [ring_vertex(params, params.cut_level, i) for i in range(params.n)]
    return (0.0, 0.0, z), ring


def geometry_summary(params: ZomeParameters) -> Dict[str, Any]:
    """Headline dimensions of the zome shell."""

    n = params.n
    r1 = (params.dmax / 2.0) * math.sin(math.pi / n)
    # Every edge of the zonohedron has this length.
    side = math.sqrt(r1 * r1 + params.h1 * params.h1)
    levels = n - params.start_k
    triangles = n if params.cut_active else 0
    rhombi = levels * n - triangles
    summary: Dict[str, Any] = {
        "n": n,
        "a_deg": params.a_deg,
        "dmax": params.dmax,
        "h1": params.h1,
        "htotal": params.htotal,
        "visible_height": params.visible_height,
        "rhombus_side": side,
        "rhombi": rhombi,
        "triangles": triangles,
        "faces": rhombi + triangles,
    }
    if params.cut_active:
        r_cut = (params.dmax / 2.0) * math.sin(params.cut_level * math.pi / n)
        summary["floor_diameter"] = params.floor_diameter
        summary["triangle_base"] = 2.0 * r_cut * math.sin(math.pi / n)
    return summary
