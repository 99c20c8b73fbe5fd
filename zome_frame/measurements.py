"""Geometric measurements of faces, beams and connectors.

Everything here is read-only: functions take topology or frame output and
return plain dicts/dataclasses for reports, cut lists and tests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Sequence, Tuple

from . import vec3 as v3
from .beams import Beam
from .connectors import Connector
from .frame import FrameResult
from .parameters import ZomeParameters
from .topology import Topology, edge_key
from .vec3 import Vector3
from .zonohedron import Face

__all__ = [
    "ADJACENCY_TOL",
    "CAP_OUTWARD_NORMAL",
    "Dihedral",
    "face_metrics",
    "polygon_area",
    "dihedral_half_angle",
    "face_dihedrals",
    "all_dihedrals",
    "cap_axis_clearance",
    "beam_measurements",
    "connector_measurements",
    "iter_beam_records",
    "iter_connector_records",
]

ADJACENCY_TOL = 1e-3
# Outward normal of the planar cap closing the cut; flipped before use.
CAP_OUTWARD_NORMAL: Vector3 = (0.0, 0.0, -1.0)


@dataclass(frozen=True, slots=True)
class Dihedral:
    face_id: str
    other: str  # neighbouring face id, or "cap"
    edge: Tuple[str, str]
    angle_deg: float

    @property
    def half_angle_deg(self) -> float:
        return self.angle_deg * 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "face": self.face_id,
            "other": self.other,
            "edge": list(self.edge),
            "dihedralDeg": round(self.angle_deg, 4),
            "halfAngleDeg": round(self.half_angle_deg, 4),
        }


def polygon_area(points: Sequence[Vector3]) -> float:
    """Area of a planar 3D polygon (Newell's method)."""
    n = len(points)
    if n < 3:
        return 0.0
    sx = sy = sz = 0.0
    for i in range(n):
        x1, y1, z1 = points[i]
        x2, y2, z2 = points[(i + 1) % n]
        sx += (y1 - y2) * (z1 + z2)
        sy += (z1 - z2) * (x1 + x2)
        sz += (x1 - x2) * (y1 + y2)
    return 0.5 * math.sqrt(sx * sx + sy * sy + sz * sz)


def _interior_angles(points: Sequence[Vector3]) -> List[float]:
    count = len(points)
    angles = []
    for idx in range(count):
        prev_p = points[idx - 1]
        cur = points[idx]
        nxt = points[(idx + 1) % count]
        angles.append(math.degrees(v3.angle_between(v3.sub(prev_p, cur), v3.sub(nxt, cur))))
    return angles


def face_metrics(face: Face) -> Dict[str, Any]:
    """Side lengths, interior angles and principal dimensions of one face."""

    pts = face.points
    sides = [v3.distance(pts[i], pts[(i + 1) % len(pts)]) for i in range(len(pts))]
    metrics: Dict[str, Any] = {
        "face_id": face.face_id,
        "level": face.k,
        "is_triangle": face.is_triangle,
        "sides": sides,
        "angles_deg": _interior_angles(pts),
        "area": polygon_area(pts),
    }
    if face.is_triangle:
        left, right, top = pts
        base_dir = v3.normalize(v3.sub(right, left))
        metrics["base"] = v3.distance(left, right)
        metrics["height"] = v3.point_line_distance(top, left, base_dir)
    else:
        bottom, right, top, left = pts
        metrics["diag_h"] = v3.distance(left, right)
        metrics["diag_v"] = v3.distance(bottom, top)
    return metrics


def dihedral_half_angle(n1: Vector3, n2: Vector3) -> float:
    """Half of the dihedral angle between faces with inward normals *n1*, *n2*."""
    between = math.degrees(v3.angle_between(n1, n2))
    return (180.0 - between) * 0.5


def _same_point(a: Vector3, b: Vector3) -> bool:
    return v3.distance(a, b) <= ADJACENCY_TOL


def _faces_by_level(topology: Topology) -> Dict[int, List[Face]]:
    by_level: Dict[int, List[Face]] = {}
    for f in topology.faces:
        by_level.setdefault(f.k, []).append(f)
    return by_level


def face_dihedrals(
    topology: Topology,
    params: ZomeParameters,
    face: Face,
    by_level: Dict[int, List[Face]] | None = None,
) -> List[Dihedral]:
    """Dihedral angles along every edge of *face*."""

    normal = topology.face_normals.get(face.face_id)
    if normal is None:
        return []
    by_level = _faces_by_level(topology) if by_level is None else by_level
    candidates = [
        f
        for k in (face.k - 1, face.k, face.k + 1)
        for f in by_level.get(k, ())
        if f.face_id != face.face_id
    ]
    cap_inward = v3.neg(CAP_OUTWARD_NORMAL)
    cut_z = params.cut_level * params.h1
    results: List[Dihedral] = []
    verts = face.vertices
    for idx, va in enumerate(verts):
        vb = verts[(idx + 1) % len(verts)]
        other_id = None
        other_normal = None
        for cand in candidates:
            pts = cand.points
            if any(_same_point(va.pos, p) for p in pts) and any(_same_point(vb.pos, p) for p in pts):
                other_id = cand.face_id
                other_normal = topology.face_normals.get(cand.face_id)
                break
        if other_normal is None:
            on_cut = (
                params.cut_active
                and abs(va.pos[2] - cut_z) <= ADJACENCY_TOL
                and abs(vb.pos[2] - cut_z) <= ADJACENCY_TOL
            )
            if not on_cut:
                continue
            other_id = "cap"
            other_normal = cap_inward
        angle = 180.0 - math.degrees(v3.angle_between(normal, other_normal))
        results.append(Dihedral(face.face_id, other_id, (va.key, vb.key), angle))
    return results


def all_dihedrals(topology: Topology, params: ZomeParameters) -> List[Dihedral]:
    """Dihedrals of every edge, each shared edge reported once."""

    by_level = _faces_by_level(topology)
    seen = set()
    out: List[Dihedral] = []
    for face in topology.faces:
        for d in face_dihedrals(topology, params, face, by_level):
            key = (edge_key(*d.edge), d.other == "cap")
            if key in seen:
                continue
            seen.add(key)
            out.append(d)
    return out


def cap_axis_clearance(beam: Beam, end: str, connector: Connector) -> float:
    """Distance from the connector axis to the nearest point of a beam cap.

    For a correctly beveled beam this equals the cylinder radius: the cap
    lies in a plane tangent to the cylinder and straddles the tangent line.
    """

    cap = beam.corners[0:4] if end == "A" else beam.corners[4:8]
    node = beam.a.node_pos if end == "A" else beam.b.node_pos
    d = connector.directrix

    def radial(p: Vector3) -> Vector3:
        return v3.project_perp(v3.sub(p, node), d)

    plane = beam.a.plane if end == "A" else beam.b.plane
    m = v3.normalize(v3.cross(d, plane.normal))
    candidates: List[Vector3] = list(cap)
    for idx, p in enumerate(cap):
        q = cap[(idx + 1) % len(cap)]
        bp = v3.dot(v3.sub(p, node), m)
        bq = v3.dot(v3.sub(q, node), m)
        if bp == bq or bp * bq > 0:
            continue
        s = bp / (bp - bq)
        candidates.append(v3.lerp(p, q, s))
    return min(v3.norm(radial(p)) for p in candidates)


def beam_measurements(beam: Beam) -> Dict[str, Any]:
    info = beam.info()
    info["bevelAdeg"] = round(90.0 - beam.ang_a_deg, 3)
    info["bevelBdeg"] = round(90.0 - beam.ang_b_deg, 3)
    info["trimAmm"] = round(v3.distance(beam.a.pos, beam.a.node_pos) * 1000.0, 2)
    info["trimBmm"] = round(v3.distance(beam.b.pos, beam.b.node_pos) * 1000.0, 2)
    return info


def connector_measurements(connector: Connector, beams: Sequence[Beam]) -> Dict[str, Any]:
    info = connector.info()
    incident = [b for b in beams if b.a.key == connector.key or b.b.key == connector.key]
    angles = []
    for beam in incident:
        angles.append(beam.ang_a_deg if beam.a.key == connector.key else beam.ang_b_deg)
    info["beams"] = [b.beam_id for b in incident]
    info["beamAnglesDeg"] = [round(a, 3) for a in angles]
    return info


def iter_beam_records(frame: FrameResult) -> Iterator[Dict[str, Any]]:
    for beam in frame.beams:
        yield beam_measurements(beam)


def iter_connector_records(frame: FrameResult, include_hidden: bool = False) -> Iterator[Dict[str, Any]]:
    for connector in frame.connectors:
        if connector.hidden and not include_hidden:
            continue
        yield connector_measurements(connector, frame.beams)
