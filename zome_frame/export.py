"""Export utilities for the zome generator.

Writes the shell and the synthesized structure as Wavefront OBJ, reads OBJ
files back for verification, and writes a JSON manifest of structural
pieces. Nothing here needs FreeCAD.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from . import vec3 as v3
from .beams import BEAM_FACES, quad_normal
from .frame import FrameResult
from .parameters import ZomeParameters
from .topology import face_inward_normal
from .vec3 import Vector3
from .zonohedron import build_faces, cut_cap

__all__ = [
    "EmptyModelError",
    "shell_obj_filename",
    "structure_obj_filename",
    "shell_obj_text",
    "structure_obj_text",
    "export_shell_obj",
    "export_structure_obj",
    "read_obj",
    "export_manifest",
]


class EmptyModelError(ValueError):
    """Raised when an export is requested for a model with nothing in it."""


# ---------------------------------------------------------------------------
# File names
# ---------------------------------------------------------------------------


def _name_stem(params: ZomeParameters) -> str:
    stem = f"D{params.dmax:.1f}_N{params.n}_a{params.a_deg:.2f}"
    if params.cut_active:
        stem += f"_cut{params.cut_level}"
    return stem


def shell_obj_filename(params: ZomeParameters) -> str:
    return f"zome_{_name_stem(params)}.obj"


def structure_obj_filename(params: ZomeParameters) -> str:
    return f"structure_{_name_stem(params)}.obj"


# ---------------------------------------------------------------------------
# OBJ writer helpers
# ---------------------------------------------------------------------------


def _fmt_v(p: Vector3) -> str:
    return f"v {p[0]:.6f} {p[1]:.6f} {p[2]:.6f}"


def _fmt_vn(n: Vector3) -> str:
    return f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}"


class _ObjWriter:
    """Accumulates OBJ lines and tracks 1-based vertex/normal counters."""

    def __init__(self, header: Iterable[str] = ()) -> None:
        self.lines: List[str] = [f"# {h}" for h in header]
        self.v_count = 0
        self.vn_count = 0

    def group(self, name: str) -> None:
        self.lines.append(f"o {name}")
        self.lines.append(f"g {name}")

    def vertices(self, points: Sequence[Vector3]) -> int:
        base = self.v_count + 1
        self.lines.extend(_fmt_v(p) for p in points)
        self.v_count += len(points)
        return base

    def normal(self, n: Vector3) -> int:
        self.lines.append(_fmt_vn(n))
        self.vn_count += 1
        return self.vn_count

    def face(self, indices: Sequence[int], normal_index: int | None = None) -> None:
        if normal_index is None:
            self.lines.append("f " + " ".join(str(i) for i in indices))
        else:
            self.lines.append("f " + " ".join(f"{i}//{normal_index}" for i in indices))

    def text(self) -> str:
        return "\n".join(self.lines) + "\n"


# ---------------------------------------------------------------------------
# Shell OBJ
# ---------------------------------------------------------------------------


def shell_obj_text(params: ZomeParameters, include_cap: bool = True) -> str:
    """OBJ text of the zome shell: one group ``R{k}`` per ring level.

    Each face carries its own vertices and an outward normal; polygons are
    wound counter-clockwise seen from outside.
    """

    faces = build_faces(params)
    if not faces:
        raise EmptyModelError("Shell is empty")
    center = params.center
    out = _ObjWriter(
        [
            "Polar zonohedron shell",
            f"N={params.n} a={params.a_deg:.2f}deg Dmax={params.dmax:.3f}m"
            + (f" cut={params.cut_level}" if params.cut_active else ""),
        ]
    )
    by_level: Dict[int, List[Any]] = {}
    for face in faces:
        by_level.setdefault(face.k, []).append(face)
    for level in sorted(by_level):
        out.group(f"R{level}")
        for face in by_level[level]:
            pts = face.points
            inward = face_inward_normal(pts, center)
            outward = v3.neg(inward) if inward is not None else v3.normalize(quad_normal(pts))
            if v3.dot(quad_normal(pts), outward) < 0:
                pts = list(reversed(pts))
            base = out.vertices(pts)
            vn = out.normal(outward)
            out.face(range(base, base + len(pts)), vn)

    if include_cap and params.cut_active:
        cap_center, ring = cut_cap(params)
        out.group("CutCap")
        base = out.vertices([cap_center] + ring)
        vn = out.normal((0.0, 0.0, -1.0))
        n = len(ring)
        for i in range(n):
            a = base + 1 + i
            b = base + 1 + (i + 1) % n
            # Ring runs counter-clockwise seen from above; reverse for -Z.
            out.face((base, b, a), vn)
    return out.text()


def export_shell_obj(params: ZomeParameters, destination: Path, include_cap: bool = True) -> Path:
    text = shell_obj_text(params, include_cap=include_cap)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(text, encoding="utf-8")
    logging.info("Wrote shell OBJ %s", destination)
    return destination


# ---------------------------------------------------------------------------
# Structure OBJ
# ---------------------------------------------------------------------------


def structure_obj_text(frame: FrameResult) -> str:
    """OBJ text of the frame: one group per connector, beam and plate."""

    connectors = frame.visible_connectors
    if not connectors and not frame.beams:
        raise EmptyModelError("Structure is empty")
    params = frame.params
    out = _ObjWriter(
        [
            "Zome structure (world coordinates, metres)",
            f"N={params.n} a={params.a_deg:.2f}deg Dmax={params.dmax:.3f}m",
            frame.summary(),
        ]
    )
    for connector in connectors:
        out.group(connector.name)
        base = out.vertices(connector.world_vertices())
        for poly in connector.geometry.faces:
            out.face([base + idx for idx in poly])
    for beam in frame.beams:
        out.group(beam.name)
        base = out.vertices(beam.corners)
        for quad in BEAM_FACES:
            out.face([base + idx for idx in quad])
    for plate in frame.plates:
        out.group(plate.name)
        base = out.vertices(plate.corners)
        for quad in BEAM_FACES:
            out.face([base + idx for idx in quad])
    return out.text()


def export_structure_obj(frame: FrameResult, destination: Path) -> Path:
    text = structure_obj_text(frame)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(text, encoding="utf-8")
    logging.info("Wrote structure OBJ %s", destination)
    return destination


# ---------------------------------------------------------------------------
# OBJ reader
# ---------------------------------------------------------------------------


def read_obj(source: Path | str) -> Dict[str, Any]:
    """Parse an OBJ file (or OBJ text) into vertices, normals and groups.

    Face indices are returned 0-based. Each group maps to a list of
    ``(vertex_indices, normal_index_or_None)`` tuples in file order.
    """

    if isinstance(source, Path):
        text = source.read_text(encoding="utf-8")
    else:
        text = source
    vertices: List[Vector3] = []
    normals: List[Vector3] = []
    groups: Dict[str, List[Tuple[Tuple[int, ...], int | None]]] = {}
    current = "default"
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        tag, _, rest = line.partition(" ")
        parts = rest.split()
        if tag == "v":
            vertices.append((float(parts[0]), float(parts[1]), float(parts[2])))
        elif tag == "vn":
            normals.append((float(parts[0]), float(parts[1]), float(parts[2])))
        elif tag in ("o", "g"):
            current = rest.strip() or "default"
            groups.setdefault(current, [])
        elif tag == "f":
            idx: List[int] = []
            normal_idx = None
            for token in parts:
                fields = token.split("/")
                v = int(fields[0])
                idx.append(v - 1 if v > 0 else len(vertices) + v)
                if len(fields) == 3 and fields[2]:
                    normal_idx = int(fields[2]) - 1
            groups.setdefault(current, []).append((tuple(idx), normal_idx))
        else:
            logging.debug("read_obj: ignoring line %d (%s)", lineno, tag)
    return {"vertices": vertices, "normals": normals, "groups": groups}


# ---------------------------------------------------------------------------
# Manifest export
# ---------------------------------------------------------------------------


def export_manifest(frame: FrameResult, destination: Path) -> None:
    """Write per-piece metadata (connectors, beams, plates) as a JSON manifest."""

    manifest: List[Dict[str, Any]] = []
    for c in frame.visible_connectors:
        manifest.append(
            {
                "type": "connector",
                "name": c.name,
                "id": c.connector_id,
                "kVisible": c.k_visible,
                "diameterMm": round(c.spec.diameter_mm, 3),
                "depthMm": round(c.spec.depth_mm, 3),
                "isIntersection": c.is_intersection,
            }
        )
    for b in frame.beams:
        manifest.append(
            {
                "type": "beam",
                "name": b.name,
                "id": b.beam_id,
                "kind": b.kind,
                "kVisible": b.k_visible,
                "lengthMm": round(b.length * 1000.0, 2),
                "section": [round(b.width_mm, 3), round(b.height_mm, 3)],
            }
        )
    for p in frame.plates:
        manifest.append({"type": "plate", **p.info()})
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    logging.info("Wrote manifest %s", destination)
