"""Vertex incidence, inward normals, directrices and the deduplicated edge set.

The maps built here are the *base* graph of a zome. They are cached per
topology signature and exposed read-only (``MappingProxyType`` over frozen
records); the frame synthesizer copies them before layering user edits.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple

from . import vec3 as v3
from .parameters import ZomeParameters
from .vec3 import Vector3
from .zonohedron import Face, build_faces

__all__ = [
    "VertexRecord",
    "EdgeRecord",
    "Topology",
    "edge_key",
    "face_inward_normal",
    "build_topology",
    "get_topology",
    "clear_topology_cache",
    "validate_topology",
]

log = logging.getLogger(__name__)

_DEGENERATE_SQ = 1e-12


def edge_key(a_key: str, b_key: str) -> str:
    """Canonical, order-independent key of an undirected edge."""
    return f"{a_key}|{b_key}" if a_key < b_key else f"{b_key}|{a_key}"


@dataclass(frozen=True, slots=True)
class VertexRecord:
    key: str
    k: int
    i: int
    pos: Vector3
    inward_normals: Tuple[Vector3, ...] = ()
    directrix: Vector3 = v3.UP
    is_junction: bool = False


@dataclass(frozen=True, slots=True)
class EdgeRecord:
    a_key: str
    b_key: str
    kind: str = "edge"
    face_normals: Tuple[Vector3, ...] = ()

    @property
    def key(self) -> str:
        return edge_key(self.a_key, self.b_key)


@dataclass(frozen=True)
class Topology:
    """Immutable base graph of one zome configuration."""

    signature: Tuple[Any, ...]
    faces: Tuple[Face, ...]
    vertex_map: Mapping[str, VertexRecord]
    edge_map: Mapping[str, EdgeRecord]
    face_normals: Mapping[str, Vector3] = field(default_factory=lambda: MappingProxyType({}))

    def summary(self) -> str:
        triangles = sum(1 for f in self.faces if f.is_triangle)
        return (
            f"{len(self.faces)} faces ({len(self.faces) - triangles} rhombi, {triangles} triangles) / "
            f"{len(self.vertex_map)} vertices / {len(self.edge_map)} edges"
        )

    def face(self, face_id: str) -> Face | None:
        for f in self.faces:
            if f.face_id == face_id:
                return f
        return None


def face_inward_normal(points: List[Vector3], center: Vector3) -> Vector3 | None:
    """Unit normal of a face oriented toward *center*, or ``None`` if degenerate."""

    p0, p1, p2 = points[0], points[1], points[2]
    n = v3.cross(v3.sub(p1, p0), v3.sub(p2, p0))
    if v3.norm_sq(n) < _DEGENERATE_SQ:
        return None
    c = v3.centroid(points)
    if v3.dot(n, v3.sub(c, center)) > 0:
        n = v3.neg(n)
    return v3.normalize(n)


def build_topology(params: ZomeParameters, faces: List[Face] | None = None) -> Topology:
    """Build the base vertex/edge maps from the visible faces."""

    faces = build_faces(params) if faces is None else faces
    center = params.center

    positions: Dict[str, Tuple[int, int, Vector3]] = {}
    normals: Dict[str, List[Vector3]] = {}
    edge_order: List[Tuple[str, str]] = []
    edge_normals: Dict[str, List[Vector3]] = {}
    face_normals: Dict[str, Vector3] = {}

    for face in faces:
        inward = face_inward_normal(face.points, center)
        if inward is None:
            log.debug("Skipping degenerate face %s", face.face_id)
            continue
        face_normals[face.face_id] = inward
        corners = face.vertices
        for ref in corners:
            positions.setdefault(ref.key, (ref.k, ref.i, ref.pos))
            normals.setdefault(ref.key, []).append(inward)
        for idx, ref in enumerate(corners):
            other = corners[(idx + 1) % len(corners)]
            key = edge_key(ref.key, other.key)
            if key not in edge_normals:
                edge_normals[key] = []
                edge_order.append((ref.key, other.key))
            edge_normals[key].append(inward)

    vertex_map: Dict[str, VertexRecord] = {}
    for key, (k, i, pos) in positions.items():
        acc = normals[key]
        total = v3.ZERO
        for nrm in acc:
            total = v3.add(total, nrm)
        directrix = v3.normalize(total) if v3.norm_sq(total) >= _DEGENERATE_SQ else v3.UP
        vertex_map[key] = VertexRecord(
            key=key,
            k=k,
            i=i,
            pos=pos,
            inward_normals=tuple(acc),
            directrix=directrix,
        )

    edge_map: Dict[str, EdgeRecord] = {}
    for a_key, b_key in edge_order:
        key = edge_key(a_key, b_key)
        edge_map[key] = EdgeRecord(a_key=a_key, b_key=b_key, kind="edge", face_normals=tuple(edge_normals[key]))

    return Topology(
        signature=params.topology_signature,
        faces=tuple(faces),
        vertex_map=MappingProxyType(vertex_map),
        edge_map=MappingProxyType(edge_map),
        face_normals=MappingProxyType(face_normals),
    )


# ---------------------------------------------------------------------------
# Signature cache
# ---------------------------------------------------------------------------

_TOPOLOGY_CACHE: Dict[Tuple[Any, ...], Topology] = {}
_CACHE_LIMIT = 16


def get_topology(params: ZomeParameters) -> Topology:
    """Return the cached base topology for *params*, building it on a miss."""

    signature = params.topology_signature
    cached = _TOPOLOGY_CACHE.get(signature)
    if cached is not None:
        return cached
    topology = build_topology(params)
    if len(_TOPOLOGY_CACHE) >= _CACHE_LIMIT:
        _TOPOLOGY_CACHE.pop(next(iter(_TOPOLOGY_CACHE)))
    _TOPOLOGY_CACHE[signature] = topology
    log.info("Topology: %s", topology.summary())
    return topology


def clear_topology_cache() -> None:
    _TOPOLOGY_CACHE.clear()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_topology(topology: Topology, params: ZomeParameters) -> Dict[str, object]:
    """Check face/edge counts and normal orientation; log a short report."""

    n = params.n
    expected_faces = n * (n - 1 - params.cut_level) + n if params.cut_active else n * (n - 1)
    unique_face_edges = set()
    for face in topology.faces:
        keys = face.keys
        for idx, key in enumerate(keys):
            unique_face_edges.add(edge_key(key, keys[(idx + 1) % len(keys)]))

    center = params.center
    outward_faces: List[str] = []
    for face in topology.faces:
        nrm = topology.face_normals.get(face.face_id)
        if nrm is None:
            continue
        if v3.dot(nrm, v3.sub(center, v3.centroid(face.points))) <= 0:
            outward_faces.append(face.face_id)

    ring_counts = Counter(rec.k for rec in topology.vertex_map.values())
    short_rings = sorted(k for k, count in ring_counts.items() if 0 < k < n and count != n)

    report: Dict[str, object] = {
        "faces": len(topology.faces),
        "expected_faces": expected_faces,
        "edges": len(topology.edge_map),
        "unique_face_edges": len(unique_face_edges),
        "vertices": len(topology.vertex_map),
        "outward_faces": outward_faces,
        "short_rings": short_rings,
    }
    if len(topology.faces) != expected_faces:
        log.error("Face count %d differs from expected %d", len(topology.faces), expected_faces)
    if len(topology.edge_map) != len(unique_face_edges):
        log.error(
            "Edge map has %d entries for %d unique face edges",
            len(topology.edge_map),
            len(unique_face_edges),
        )
    if outward_faces:
        log.error("%d faces have outward normals (first 5): %s", len(outward_faces), outward_faces[:5])
    if short_rings:
        log.warning("Rings with missing vertices: %s", short_rings)
    log.info("Ring vertex counts: %s", sorted(ring_counts.items()))
    return report
