"""Viewer layer payloads for the zome shell.

Each builder returns plain geometry (points, segments, triangles) that a
renderer can upload as merged buffers: ring polygons, helices, rhombus
outlines, per-level rhombi, the cut cap and the central axis. Rendering
itself lives outside this package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .edits import EditState
from .frame import FrameResult, FrameSynthesizer
from .parameters import ZomeParameters
from .vec3 import Vector3
from .zonohedron import build_faces, cut_cap, ring_levels, ring_vertex

__all__ = [
    "LAYER_ORDER",
    "Segment",
    "hsl_to_hex",
    "level_color",
    "MaterialPool",
    "build_polygons",
    "build_helices",
    "build_rhombus_edges",
    "build_rhombi",
    "build_cut_cap",
    "build_axis",
    "SceneBuilder",
]

Segment = Tuple[Vector3, Vector3]

# Fixed component order within one rebuild.
LAYER_ORDER = ("polygons", "lines", "rhombi", "cap", "axis", "structure")


# ---------------------------------------------------------------------------
# Colours and materials
# ---------------------------------------------------------------------------


def hsl_to_hex(h: float, s: float, l: float) -> int:
    """Convert HSL (degrees, percent, percent) to ``0xRRGGBB``."""
    s /= 100.0
    l /= 100.0
    c = (1.0 - abs(2.0 * l - 1.0)) * s
    x = c * (1.0 - abs((h / 60.0) % 2.0 - 1.0))
    m = l - c / 2.0
    if 0 <= h < 60:
        r, g, b = c, x, 0.0
    elif 60 <= h < 120:
        r, g, b = x, c, 0.0
    elif 120 <= h < 180:
        r, g, b = 0.0, c, x
    elif 180 <= h < 240:
        r, g, b = 0.0, x, c
    elif 240 <= h < 300:
        r, g, b = x, 0.0, c
    elif 300 <= h < 360:
        r, g, b = c, 0.0, x
    else:
        r = g = b = 0.0
    return (round((r + m) * 255) << 16) | (round((g + m) * 255) << 8) | round((b + m) * 255)


def level_color(level: int, total_levels: int) -> int:
    hue = ((level - 1) / max(1, total_levels)) * 360.0
    return hsl_to_hex(hue, 70.0, 60.0)


@dataclass(frozen=True, slots=True)
class Material:
    name: str
    color: int
    opacity: float = 1.0


class MaterialPool:
    """Hands out one shared material per (name, colour, opacity)."""

    def __init__(self) -> None:
        self._items: Dict[Tuple[str, int, float], Material] = {}

    def get(self, name: str, color: int, opacity: float = 1.0) -> Material:
        key = (name, int(color), float(opacity))
        mat = self._items.get(key)
        if mat is None:
            mat = Material(name=name, color=int(color), opacity=float(opacity))
            self._items[key] = mat
        return mat

    def __len__(self) -> int:
        return len(self._items)


# ---------------------------------------------------------------------------
# Layer builders
# ---------------------------------------------------------------------------


def build_polygons(params: ZomeParameters) -> Dict[str, Any]:
    """Closed ring outlines plus fan triangles filling each ring."""

    n = params.n
    loops: List[List[Vector3]] = []
    fills: List[Tuple[Vector3, Vector3, Vector3]] = []
    for k in range(params.start_k, n):
        ring = [ring_vertex(params, k, i) for i in range(n)]
        loops.append(ring + [ring[0]])
        center = (0.0, 0.0, k * params.h1)
        for i in range(n):
            fills.append((center, ring[i], ring[(i + 1) % n]))
    if params.cut_active:
        ring = [ring_vertex(params, params.cut_level, i) for i in range(n)]
        loops.append(ring + [ring[0]])
    return {"loops": loops, "fills": fills}


def _helix_segments(params: ZomeParameters, sign: int) -> Tuple[List[Segment], List[Segment]]:
    n = params.n
    start_k = params.start_k
    body: List[Segment] = []
    tips: List[Segment] = []
    for s in range(n):
        pts: List[Vector3] = []
        idx = s
        for k in range(start_k, n):
            pts.append(ring_vertex(params, k, idx))
            if sign > 0:
                if k % 2 == 0:
                    idx = (idx + 1) % n
            elif k % 2 == 1:
                idx = (idx - 1 + n) % n
        body.extend(zip(pts[:-1], pts[1:]))
        if not params.cut_active:
            low_idx = (s + 1) % n if sign > 0 else s
            tips.append((ring_vertex(params, 0, s), ring_vertex(params, 1, low_idx)))
        # ``idx`` already advanced past ring N-1; the pole ignores it.
        if pts:
            tips.append((pts[-1], ring_vertex(params, n, 0)))
    return body, tips


def build_helices(params: ZomeParameters) -> Dict[str, List[Segment]]:
    """Counter-clockwise and clockwise helices running pole to pole."""
    ccw, tips_ccw = _helix_segments(params, +1)
    cw, tips_cw = _helix_segments(params, -1)
    return {"ccw": ccw, "cw": cw, "tips": tips_cw + tips_ccw}


def build_rhombus_edges(params: ZomeParameters) -> List[Segment]:
    segments: List[Segment] = []
    for face in build_faces(params):
        pts = face.points
        for idx in range(len(pts)):
            segments.append((pts[idx], pts[(idx + 1) % len(pts)]))
    return segments


def build_rhombi(params: ZomeParameters, pool: MaterialPool | None = None) -> List[Dict[str, Any]]:
    """Per-level face groups with their display colour."""

    total_levels = params.n - 1
    levels = []
    for level in ring_levels(params):
        color = level_color(level["level"], total_levels) if params.color_by_level else 0x88CCEE
        level = dict(level)
        level["color"] = color
        if pool is not None:
            level["material"] = pool.get("rhombus", color, 1.0 if params.color_by_level else 0.35)
        levels.append(level)
    return levels


def build_cut_cap(params: ZomeParameters) -> Dict[str, Any]:
    """Triangle fan closing the cut plane; normal faces down (-Z)."""

    center, ring = cut_cap(params)
    n = len(ring)
    triangles = [(center, ring[(i + 1) % n], ring[i]) for i in range(n)]
    return {"center": center, "triangles": triangles, "normal": (0.0, 0.0, -1.0)}


def build_axis(params: ZomeParameters) -> Dict[str, Any]:
    start_z = params.cut_level * params.h1 if params.cut_active else 0.0
    start_k = params.cut_level if params.cut_active else 0
    return {
        "axis": ((0.0, 0.0, start_z), (0.0, 0.0, params.htotal)),
        "points": [(0.0, 0.0, k * params.h1) for k in range(start_k, params.n + 1)],
    }


# ---------------------------------------------------------------------------
# Scene builder
# ---------------------------------------------------------------------------


@dataclass
class SceneBuilder:
    """Holds the current layers and rebuilds them component by component.

    ``params`` and ``edits`` may be replaced between rebuilds; the frame
    synthesizer (and its cylinder geometry cache) persists until
    :meth:`dispose`.
    """

    params: ZomeParameters
    edits: EditState = field(default_factory=EditState)
    layers: Dict[str, Any] = field(default_factory=dict)
    materials: MaterialPool = field(default_factory=MaterialPool)
    history: List[str] = field(default_factory=list)
    _synth: Optional[FrameSynthesizer] = None

    def clear(self) -> None:
        self.layers.clear()

    def build_polygons(self) -> None:
        self._record("polygons")
        self.layers["polygons"] = build_polygons(self.params) if self.params.polys_visible else None

    def build_lines(self) -> None:
        self._record("lines")
        if self.params.lines_visible:
            self.layers["helices"] = build_helices(self.params)
            self.layers["edges"] = build_rhombus_edges(self.params)
        else:
            self.layers["helices"] = None
            self.layers["edges"] = None

    def build_rhombi(self) -> None:
        self._record("rhombi")
        self.layers["rhombi"] = (
            build_rhombi(self.params, self.materials) if self.params.rhombi_visible else None
        )

    def build_cap(self) -> None:
        self._record("cap")
        show = self.params.cut_active and self.params.rhombi_visible
        self.layers["cap"] = build_cut_cap(self.params) if show else None

    def build_axis(self) -> None:
        self._record("axis")
        self.layers["axis"] = build_axis(self.params) if self.params.axis_visible else None

    def build_structure(self) -> None:
        self._record("structure")
        if not self.params.structure_visible:
            self.layers["structure"] = None
            return
        if self._synth is None:
            self._synth = FrameSynthesizer(self.params, self.edits)
        else:
            self._synth.params = self.params
            self._synth.edits = self.edits
        result: FrameResult = self._synth.build()
        self.layers["structure"] = result

    def dispose(self) -> None:
        if self._synth is not None:
            self._synth.dispose()
            self._synth = None
        self.layers.clear()

    def _record(self, name: str) -> None:
        self.history.append(name)
        logging.debug("Scene component %s", name)
