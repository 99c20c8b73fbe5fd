"""User edits layered on top of the base topology.

Edits never touch the cached topology. They record which edges are hidden,
which extra beams (face diagonals or free edges) were added, which faces
should grow a mid-face junction, and per-level dimensional overrides. The
frame synthesizer reads a snapshot of this state on every rebuild.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Set, Tuple

from .parameters import ZomeParameters
from .topology import edge_key
from .zonohedron import face_by_id, parse_face_id, vertex_key

__all__ = [
    "DIAGONAL_KINDS",
    "ExtraBeam",
    "EditState",
    "load_edits",
    "save_edits",
]

DIAGONAL_KINDS = ("diagH", "diagV")

_CONNECTOR_FIELDS = {
    "diameter_mm": "diameter_mm",
    "depth_mm": "depth_mm",
    "offset_mm": "offset_mm",
    "diameterMm": "diameter_mm",
    "depthMm": "depth_mm",
    "offsetMm": "offset_mm",
    "cylDiameterMm": "diameter_mm",
    "cylDepthMm": "depth_mm",
}

_BEAM_FIELDS = {
    "width_mm": "width_mm",
    "height_mm": "height_mm",
    "widthMm": "width_mm",
    "heightMm": "height_mm",
    "beamWidthMm": "width_mm",
    "beamHeightMm": "height_mm",
}


@dataclass(frozen=True, slots=True)
class ExtraBeam:
    """A user-added beam between ring coordinates ``a`` and ``b``."""

    a: Tuple[int, int]
    b: Tuple[int, int]
    kind: str = "extra"

    def keys(self, n: int) -> Tuple[str, str]:
        return vertex_key(n, *self.a), vertex_key(n, *self.b)

    def edge_key(self, n: int) -> str:
        return edge_key(*self.keys(n))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "a": {"k": self.a[0], "i": self.a[1]},
            "b": {"k": self.b[0], "i": self.b[1]},
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExtraBeam":
        a = data["a"]
        b = data["b"]
        return cls(
            a=(int(a["k"]), int(a["i"])),
            b=(int(b["k"]), int(b["i"])),
            kind=str(data.get("kind") or "extra"),
        )


def _merge_fields(
    target: Dict[int, Dict[str, float]],
    level: int,
    values: Mapping[str, Any],
    aliases: Mapping[str, str],
) -> None:
    current = dict(target.get(int(level), {}))
    for key, value in values.items():
        name = aliases.get(key)
        if name is None:
            raise KeyError(f"Unknown override field '{key}'")
        if value is None:
            current.pop(name, None)
        else:
            current[name] = float(value)
    if current:
        target[int(level)] = current
    else:
        target.pop(int(level), None)


@dataclass
class EditState:
    """Mutable record of user overrides."""

    deleted_edges: Set[str] = field(default_factory=set)
    extra_beams: List[ExtraBeam] = field(default_factory=list)
    intersection_faces: Set[str] = field(default_factory=set)
    connector_overrides: Dict[int, Dict[str, float]] = field(default_factory=dict)
    connector_intersection_overrides: Dict[int, Dict[str, float]] = field(default_factory=dict)
    beam_overrides: Dict[int, Dict[str, float]] = field(default_factory=dict)

    # ---- edges ------------------------------------------------------------

    def delete_edge(self, key: str) -> None:
        if "|" not in key:
            raise ValueError(f"Malformed edge key '{key}'")
        a, b = key.split("|", 1)
        self.deleted_edges.add(edge_key(a, b))

    def restore_edge(self, key: str) -> None:
        if "|" not in key:
            raise ValueError(f"Malformed edge key '{key}'")
        a, b = key.split("|", 1)
        self.deleted_edges.discard(edge_key(a, b))

    def is_deleted(self, key: str) -> bool:
        return key in self.deleted_edges

    def add_extra_beam(self, a: Tuple[int, int], b: Tuple[int, int], kind: str = "extra") -> ExtraBeam:
        beam = ExtraBeam(a=(int(a[0]), int(a[1])), b=(int(b[0]), int(b[1])), kind=kind)
        if beam.a == beam.b:
            raise ValueError("Extra beam endpoints must differ")
        for existing in self.extra_beams:
            if {existing.a, existing.b} == {beam.a, beam.b}:
                return existing
        self.extra_beams.append(beam)
        return beam

    # ---- face diagonals ---------------------------------------------------

    @staticmethod
    def diagonal_endpoints(params: ZomeParameters, face_id: str, kind: str) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """Ring coordinates of the ``diagH`` (left-right) or ``diagV`` (bottom-top) diagonal."""

        if kind not in DIAGONAL_KINDS:
            raise ValueError(f"Unknown diagonal kind '{kind}'")
        face = face_by_id(params, face_id)
        if face.is_triangle:
            raise ValueError(f"Face {face_id} is a triangle and has no diagonals")
        if kind == "diagH":
            a, b = face.corner("left"), face.corner("right")
        else:
            a, b = face.corner("bottom"), face.corner("top")
        return (a.k, a.i), (b.k, b.i)

    def find_diagonal(self, params: ZomeParameters, face_id: str, kind: str) -> ExtraBeam | None:
        a, b = self.diagonal_endpoints(params, face_id, kind)
        for beam in self.extra_beams:
            if beam.kind == kind and {beam.a, beam.b} == {a, b}:
                return beam
        return None

    def add_diagonal(
        self,
        params: ZomeParameters,
        face_id: str,
        kind: str,
        mark_intersection: bool = False,
    ) -> ExtraBeam:
        """Add a face diagonal; optionally request a junction when both are present."""

        existing = self.find_diagonal(params, face_id, kind)
        if existing is None:
            a, b = self.diagonal_endpoints(params, face_id, kind)
            existing = ExtraBeam(a=a, b=b, kind=kind)
            self.extra_beams.append(existing)
        other = "diagV" if kind == "diagH" else "diagH"
        if mark_intersection and self.find_diagonal(params, face_id, other) is not None:
            k, i = parse_face_id(face_id)
            self.intersection_faces.add(f"{k}:{i}")
        return existing

    def remove_diagonal(self, params: ZomeParameters, face_id: str, kind: str) -> None:
        beam = self.find_diagonal(params, face_id, kind)
        if beam is not None:
            self.extra_beams.remove(beam)
        self.intersection_faces.discard(face_id)

    def clear_face(self, params: ZomeParameters, face_id: str) -> None:
        """Drop both diagonals and the junction request of a face."""
        for kind in DIAGONAL_KINDS:
            beam = self.find_diagonal(params, face_id, kind)
            if beam is not None:
                self.extra_beams.remove(beam)
        self.intersection_faces.discard(face_id)

    # ---- overrides --------------------------------------------------------

    def set_connector_override(
        self, k_original: int, fields: Mapping[str, Any], intersection: bool = False
    ) -> None:
        target = self.connector_intersection_overrides if intersection else self.connector_overrides
        _merge_fields(target, k_original, fields, _CONNECTOR_FIELDS)

    def set_beam_override(self, k_level_original: int, fields: Mapping[str, Any]) -> None:
        _merge_fields(self.beam_overrides, k_level_original, fields, _BEAM_FIELDS)

    def clear_overrides(self) -> None:
        self.connector_overrides.clear()
        self.connector_intersection_overrides.clear()
        self.beam_overrides.clear()

    # ---- snapshots / serialization ----------------------------------------

    def snapshot(self) -> "EditState":
        """Independent copy used by one synthesis run."""
        return copy.deepcopy(self)

    def summary(self) -> str:
        return (
            f"{len(self.deleted_edges)} deleted / {len(self.extra_beams)} extra / "
            f"{len(self.intersection_faces)} junctions"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deleted_edges": sorted(self.deleted_edges),
            "extra_beams": [b.to_dict() for b in self.extra_beams],
            "intersection_faces": sorted(self.intersection_faces),
            "connector_overrides": {str(k): dict(v) for k, v in sorted(self.connector_overrides.items())},
            "connector_intersection_overrides": {
                str(k): dict(v) for k, v in sorted(self.connector_intersection_overrides.items())
            },
            "beam_overrides": {str(k): dict(v) for k, v in sorted(self.beam_overrides.items())},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EditState":
        state = cls()
        for key in data.get("deleted_edges", []):
            state.delete_edge(str(key))
        for item in data.get("extra_beams", []):
            state.extra_beams.append(ExtraBeam.from_dict(item))
        for face_id in data.get("intersection_faces", []):
            k, i = parse_face_id(face_id)
            state.intersection_faces.add(f"{k}:{i}")
        for level, values in dict(data.get("connector_overrides", {})).items():
            state.set_connector_override(int(level), values)
        for level, values in dict(data.get("connector_intersection_overrides", {})).items():
            state.set_connector_override(int(level), values, intersection=True)
        for level, values in dict(data.get("beam_overrides", {})).items():
            state.set_beam_override(int(level), values)
        return state


def load_edits(path: Path | str | None) -> EditState:
    if path is None:
        return EditState()
    json_path = Path(path)
    if not json_path.exists():
        raise FileNotFoundError(f"Edits file not found: {json_path}")
    data = json.loads(json_path.read_text(encoding="utf-8"))
    if not isinstance(data, Mapping):
        raise ValueError("Top-level edits JSON must be an object")
    edits = EditState.from_dict(data)
    logging.info("Loaded edits: %s", edits.summary())
    return edits


def save_edits(edits: EditState, destination: Path) -> None:
    destination.write_text(json.dumps(edits.to_dict(), indent=2), encoding="utf-8")
    logging.info("Wrote edits %s", destination)
