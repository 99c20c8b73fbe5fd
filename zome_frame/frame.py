"""Structural frame synthesis: connectors, beveled beams, junctions, plates.

The synthesizer reads the cached base topology, copies its maps, overlays
a snapshot of the user edits and emits a fresh :class:`FrameResult`. The
base topology is never mutated, so consecutive rebuilds with different
edits can share one cache entry.

Typical usage::

    from zome_frame.frame import FrameSynthesizer
    synth = FrameSynthesizer(params, edits)
    result = synth.build()
    print(result.summary())
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from . import vec3 as v3
from .beams import (
    Beam,
    BeamEnd,
    Plate,
    beam_corners,
    beam_frame,
    beam_id,
    bevel_plane,
    build_plate,
    trim_edge,
)
from .connectors import Connector, CylinderGeometryCache, resolve_connector_params
from .edits import EditState
from .parameters import ZomeParameters
from .topology import EdgeRecord, Topology, VertexRecord, edge_key, get_topology
from .zonohedron import POLE_LOW, POLE_TOP, junction_key, vertex_key

__all__ = [
    "FrameWarning",
    "FrameResult",
    "FrameSynthesizer",
    "synthesize_frame",
]

log = logging.getLogger(__name__)

BEAM_TOO_SHORT = "BEAM_TOO_SHORT"
DEGENERATE_FRAME = "DEGENERATE_FRAME"
DEGENERATE_BEVEL = "DEGENERATE_BEVEL"


@dataclass(slots=True)
class FrameWarning:
    type: str
    a: Tuple[int, int]
    b: Tuple[int, int]
    len_mm: float
    min_mm: float
    a_key: str = ""
    b_key: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "a": {"k": self.a[0], "i": self.a[1]},
            "b": {"k": self.b[0], "i": self.b[1]},
            "endpoints": [self.a_key, self.b_key],
            "lenMm": round(self.len_mm, 2),
            "minMm": round(self.min_mm, 2),
        }


@dataclass
class FrameResult:
    """Output of one synthesis run."""

    params: ZomeParameters
    connectors: List[Connector] = field(default_factory=list)
    beams: List[Beam] = field(default_factory=list)
    warnings: List[FrameWarning] = field(default_factory=list)
    skipped: Counter = field(default_factory=Counter)
    vertex_map: Dict[str, VertexRecord] = field(default_factory=dict)
    edge_map: Dict[str, EdgeRecord] = field(default_factory=dict)
    junctions: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.connectors and not self.beams

    @property
    def visible_connectors(self) -> List[Connector]:
        return [c for c in self.connectors if not c.hidden]

    @property
    def plates(self) -> List[Plate]:
        return [p for c in self.connectors for p in c.plates]

    def connector(self, key: str) -> Connector | None:
        for c in self.connectors:
            if c.key == key:
                return c
        return None

    def beams_at(self, key: str) -> List[Beam]:
        return [b for b in self.beams if b.a.key == key or b.b.key == key]

    def summary(self) -> str:
        hidden = len(self.connectors) - len(self.visible_connectors)
        return (
            f"{len(self.visible_connectors)} connectors ({hidden} hidden) / {len(self.beams)} beams / "
            f"{len(self.junctions)} junctions / {len(self.warnings)} warnings"
        )


class FrameSynthesizer:
    """Builds the connector/beam frame for one parameter set and edit state.

    The cylinder geometry cache lives as long as the synthesizer, so
    rebuilding with new edits reuses meshes; :meth:`dispose` releases it.
    """

    def __init__(
        self,
        params: ZomeParameters,
        edits: EditState | None = None,
        geometry_cache: CylinderGeometryCache | None = None,
    ) -> None:
        self.params = params
        self.edits = edits if edits is not None else EditState()
        self.geometry_cache = geometry_cache if geometry_cache is not None else CylinderGeometryCache()

    def dispose(self) -> None:
        self.geometry_cache.dispose()

    # ---- public -----------------------------------------------------------

    def build(self, topology: Topology | None = None) -> FrameResult:
        params = self.params
        edits = self.edits.snapshot()
        topology = topology if topology is not None else get_topology(params)
        result = FrameResult(params=params)
        if not topology.faces:
            log.info("Empty topology; frame has no pieces")
            return result

        vertex_map: Dict[str, VertexRecord] = dict(topology.vertex_map)
        edge_map: Dict[str, EdgeRecord] = dict(topology.edge_map)

        self._overlay_extras(edits, vertex_map, edge_map)
        for key in edits.deleted_edges:
            edge_map.pop(key, None)
        result.junctions = self._insert_junctions(topology, edits, vertex_map, edge_map)
        self._prune_junctions(vertex_map, edge_map, result.junctions)

        result.vertex_map = vertex_map
        result.edge_map = edge_map

        connectors = self._build_connectors(edits, vertex_map)
        result.connectors = list(connectors.values())
        result.beams = self._build_beams(edits, vertex_map, edge_map, connectors, result)
        self._hide_orphans(result)

        if result.warnings:
            log.warning("%d beams too short after trimming were omitted", len(result.warnings))
        log.info("Frame: %s", result.summary())
        return result

    # ---- overlay ----------------------------------------------------------

    def _overlay_extras(
        self,
        edits: EditState,
        vertex_map: Dict[str, VertexRecord],
        edge_map: Dict[str, EdgeRecord],
    ) -> None:
        params = self.params
        n = params.n
        for extra in edits.extra_beams:
            (ka, ia), (kb, ib) = extra.a, extra.b
            if params.cut_active and (ka < params.cut_level or kb < params.cut_level):
                continue
            a_key = vertex_key(n, ka, ia)
            b_key = vertex_key(n, kb, ib)
            if a_key == b_key:
                continue
            if a_key not in vertex_map or b_key not in vertex_map:
                log.debug("Extra beam %s-%s references hidden vertices; ignored", a_key, b_key)
                continue
            key = edge_key(a_key, b_key)
            if key in edits.deleted_edges or key in edge_map:
                continue
            edge_map[key] = EdgeRecord(a_key=a_key, b_key=b_key, kind=extra.kind or "extra")

    def _insert_junctions(
        self,
        topology: Topology,
        edits: EditState,
        vertex_map: Dict[str, VertexRecord],
        edge_map: Dict[str, EdgeRecord],
    ) -> List[str]:
        params = self.params
        center = params.center
        deleted = edits.deleted_edges
        created: List[str] = []
        for face in topology.faces:
            if face.is_triangle or face.face_id not in edits.intersection_faces:
                continue
            bottom, right, top, left = face.vertices
            x_key = junction_key(face.k, face.i)
            diagonals = {
                "diagH": (left, right),
                "diagV": (bottom, top),
            }
            live = True
            for kind, (p, q) in diagonals.items():
                whole = edge_key(p.key, q.key)
                halves = (edge_key(p.key, x_key), edge_key(x_key, q.key))
                if all(h in deleted for h in halves):
                    # Both halves removed: the diagonal is gone entirely.
                    edge_map.pop(whole, None)
                    live = False
                elif whole not in edge_map:
                    live = False
            if not live:
                continue

            c_pos = v3.midpoint(
                v3.midpoint(left.pos, right.pos),
                v3.midpoint(bottom.pos, top.pos),
            )
            nrm = v3.cross(v3.sub(right.pos, bottom.pos), v3.sub(top.pos, bottom.pos))
            if v3.norm_sq(nrm) < 1e-12:
                nrm = v3.cross(v3.sub(top.pos, bottom.pos), v3.sub(left.pos, bottom.pos))
            if v3.dot(nrm, v3.sub(center, c_pos)) < 0:
                nrm = v3.neg(nrm)
            directrix = v3.normalize(nrm) if v3.norm_sq(nrm) >= 1e-12 else v3.UP
            vertex_map[x_key] = VertexRecord(
                key=x_key,
                k=face.k,
                i=face.i,
                pos=c_pos,
                inward_normals=(directrix,),
                directrix=directrix,
                is_junction=True,
            )
            for kind, (p, q) in diagonals.items():
                edge_map.pop(edge_key(p.key, q.key), None)
                for a_key, b_key in ((p.key, x_key), (x_key, q.key)):
                    sub_key = edge_key(a_key, b_key)
                    if sub_key in deleted:
                        continue
                    edge_map[sub_key] = EdgeRecord(a_key=a_key, b_key=b_key, kind=kind)
            created.append(x_key)
        return created

    @staticmethod
    def _prune_junctions(
        vertex_map: Dict[str, VertexRecord],
        edge_map: Dict[str, EdgeRecord],
        junctions: List[str],
    ) -> None:
        degree: Counter = Counter()
        for rec in edge_map.values():
            degree[rec.a_key] += 1
            degree[rec.b_key] += 1
        for key in list(junctions):
            if degree[key] == 0:
                vertex_map.pop(key, None)
                junctions.remove(key)

    # ---- connectors -------------------------------------------------------

    def _build_connectors(
        self, edits: EditState, vertex_map: Dict[str, VertexRecord]
    ) -> Dict[str, Connector]:
        params = self.params
        structure = params.structure
        start_k = params.start_k_node
        connectors: Dict[str, Connector] = {}
        for key, rec in vertex_map.items():
            if rec.k < start_k:
                continue
            overrides = (
                edits.connector_intersection_overrides if rec.is_junction else edits.connector_overrides
            )
            spec = resolve_connector_params(structure, overrides, rec.k)
            geometry = self.geometry_cache.get(spec.radius, spec.depth, structure.cyl_segments)
            k_vis = params.k_visible(rec.k)
            if rec.is_junction:
                name = f"connectorX_k{k_vis}_f{rec.i}"
                connector_id = f"X{k_vis}-{rec.i}"
            else:
                name = f"connector_k{k_vis}_i{rec.i}"
                connector_id = f"C{k_vis}-{rec.i}"
            connectors[key] = Connector(
                key=key,
                name=name,
                connector_id=connector_id,
                k_original=rec.k,
                k_visible=k_vis,
                i=rec.i,
                position=rec.pos,
                directrix=rec.directrix,
                spec=spec,
                geometry=geometry,
                is_intersection=rec.is_junction,
                is_pole=key in (POLE_LOW, POLE_TOP),
            )
        return connectors

    # ---- beams ------------------------------------------------------------

    def _beam_dims(self, edits: EditState, k_level: int) -> Tuple[float, float]:
        structure = self.params.structure
        width_mm = structure.beam_width_mm
        height_mm = structure.beam_height_mm
        ov = edits.beam_overrides.get(int(k_level)) or {}
        if ov.get("width_mm") is not None and float(ov["width_mm"]) > 0:
            width_mm = float(ov["width_mm"])
        if ov.get("height_mm") is not None and float(ov["height_mm"]) > 0:
            height_mm = float(ov["height_mm"])
        return width_mm, height_mm

    def _build_beams(
        self,
        edits: EditState,
        vertex_map: Dict[str, VertexRecord],
        edge_map: Dict[str, EdgeRecord],
        connectors: Dict[str, Connector],
        result: FrameResult,
    ) -> List[Beam]:
        params = self.params
        structure = params.structure
        beams: List[Beam] = []
        counter = 0
        for rec in edge_map.values():
            ca = connectors.get(rec.a_key)
            cb = connectors.get(rec.b_key)
            if ca is None or cb is None:
                continue
            va = vertex_map[rec.a_key]
            vb = vertex_map[rec.b_key]
            width_mm, height_mm = self._beam_dims(edits, max(va.k, vb.k))
            width = width_mm / 1000.0
            height = height_mm / 1000.0

            trim = trim_edge(va.pos, vb.pos, va.directrix, vb.directrix, ca.radius, cb.radius)
            if trim is None:
                result.skipped["ZERO_LENGTH"] += 1
                continue
            min_len = 0.5 * max(width, height)
            if trim.length < min_len:
                result.warnings.append(
                    FrameWarning(
                        type=BEAM_TOO_SHORT,
                        a=(va.k, va.i),
                        b=(vb.k, vb.i),
                        len_mm=trim.length * 1000.0,
                        min_mm=min_len * 1000.0,
                        a_key=va.key,
                        b_key=vb.key,
                    )
                )
                result.skipped[BEAM_TOO_SHORT] += 1
                continue

            frame = beam_frame(trim.direction, va.directrix, vb.directrix)
            if frame is None:
                log.debug("Degenerate frame for %s", rec.key)
                result.skipped[DEGENERATE_FRAME] += 1
                continue
            w, t = frame

            plane_a = bevel_plane(va.pos, va.directrix, trim.direction, w, ca.radius)
            plane_b = bevel_plane(vb.pos, vb.directrix, v3.neg(trim.direction), w, cb.radius)
            if plane_a is None or plane_b is None:
                log.debug("Degenerate bevel for %s", rec.key)
                result.skipped[DEGENERATE_BEVEL] += 1
                continue
            corners = beam_corners(trim, w, t, width, height, plane_a, plane_b)
            if corners is None:
                log.debug("Overlapping bevel planes for %s", rec.key)
                result.skipped[DEGENERATE_BEVEL] += 1
                continue

            counter += 1
            k_vis = max(ca.k_visible, cb.k_visible)
            beam = Beam(
                name=f"beam_k{k_vis}_{counter}",
                beam_id=beam_id((ca.k_visible, ca.i), (cb.k_visible, cb.i)),
                kind=rec.kind,
                k_visible=k_vis,
                a=BeamEnd(
                    key=va.key,
                    name=ca.name,
                    k=va.k,
                    i=va.i,
                    pos=trim.start,
                    node_pos=va.pos,
                    directrix=va.directrix,
                    plane=plane_a,
                ),
                b=BeamEnd(
                    key=vb.key,
                    name=cb.name,
                    k=vb.k,
                    i=vb.i,
                    pos=trim.end,
                    node_pos=vb.pos,
                    directrix=vb.directrix,
                    plane=plane_b,
                ),
                edge_dir=trim.direction,
                w=w,
                t=t,
                width_mm=width_mm,
                height_mm=height_mm,
                length=trim.length,
                node_length=trim.node_length,
                corners=corners,
            )
            if structure.plates_enabled:
                self._attach_plates(beam, ca, cb)
            beams.append(beam)
        return beams

    def _attach_plates(self, beam: Beam, ca: Connector, cb: Connector) -> None:
        structure = self.params.structure
        thickness = structure.plate_thickness_mm / 1000.0
        length = structure.plate_length_mm / 1000.0
        width = structure.plate_width_mm / 1000.0
        for label, end, connector, cap in (
            ("A", beam.a, ca, beam.corners[0:4]),
            ("B", beam.b, cb, beam.corners[4:8]),
        ):
            corners = build_plate(end.plane, end.directrix, beam.w, cap, thickness, length, width)
            if corners is None:
                log.debug("Skipping plate %s end %s", beam.beam_id, label)
                continue
            plate = Plate(
                name=f"plate_{beam.beam_id}_{label}",
                beam_id=beam.beam_id,
                end=label,
                connector_key=connector.key,
                corners=corners,
                local_corners=[connector.to_local(p) for p in corners],
                thickness_mm=structure.plate_thickness_mm,
                length_mm=structure.plate_length_mm,
                width_mm=structure.plate_width_mm,
            )
            connector.plates.append(plate)
            beam.plates.append(plate)

    # ---- orphans ----------------------------------------------------------

    @staticmethod
    def _hide_orphans(result: FrameResult) -> None:
        degree: Counter = Counter()
        for beam in result.beams:
            degree[beam.a.key] += 1
            degree[beam.b.key] += 1
        for connector in result.connectors:
            connector.degree = degree[connector.key]
            if connector.degree == 0 and not connector.is_pole:
                connector.hidden = True


def synthesize_frame(params: ZomeParameters, edits: EditState | None = None) -> FrameResult:
    """One-shot helper: build a frame with a throwaway geometry cache."""
    return FrameSynthesizer(params, edits).build()
