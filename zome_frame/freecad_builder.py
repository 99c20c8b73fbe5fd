"""FreeCAD solids for a synthesized frame.

Connectors become ``Part.makeCylinder`` solids, beams and plates become
solids sewn from their six quads. Geometry is authored in metres and
converted to FreeCAD's millimetres here. All FreeCAD imports are lazy so
the module imports fine outside FreeCAD.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from .beams import BEAM_FACES
from .connectors import Connector
from .frame import FrameResult
from .parameters import ZomeParameters
from .vec3 import Vector3

__all__ = ["FrameModelBuilder"]

log = logging.getLogger(__name__)

MM_PER_M = 1000.0


class FrameModelBuilder:
    """Creates ``Part::Feature`` objects for connectors, beams and plates."""

    def __init__(self, params: ZomeParameters, document: Any = None) -> None:
        self.params = params
        self.document = document
        self._groups: dict = {}

    def ensure_document(self) -> Optional[Any]:
        try:
            import FreeCAD  # type: ignore
        except ImportError:  # pragma: no cover - outside FreeCAD
            return None
        if self.document is None:
            self.document = FreeCAD.ActiveDocument or FreeCAD.newDocument("Zome")
        return self.document

    def build(self, frame: FrameResult) -> List[Any]:
        try:
            import FreeCAD  # type: ignore  # noqa: F401
            import Part  # type: ignore  # noqa: F401
        except ImportError:
            log.warning("FreeCAD not available; skipping frame solid creation")
            return []

        doc = self.ensure_document()
        objects: List[Any] = []
        for connector in frame.visible_connectors:
            obj = self._add(doc, "Connectors", connector.name, self._cylinder_solid(connector))
            if obj is not None:
                self._tag(obj, connector.connector_id)
                objects.append(obj)
        for beam in frame.beams:
            obj = self._add(doc, "Beams", beam.name, self._hexahedron_solid(beam.corners))
            if obj is not None:
                self._tag(obj, beam.beam_id)
                objects.append(obj)
        for plate in frame.plates:
            obj = self._add(doc, "Plates", plate.name, self._hexahedron_solid(plate.corners))
            if obj is not None:
                self._tag(obj, plate.beam_id)
                objects.append(obj)
        doc.recompute()
        log.info("Created %d frame solids in FreeCAD", len(objects))
        return objects

    # ---- private ----------------------------------------------------------

    def _add(self, doc: Any, group_name: str, name: str, shape: Any) -> Any | None:
        if shape is None:
            return None
        try:
            obj = doc.addObject("Part::Feature", name)
            obj.Shape = shape
        except Exception as exc:
            log.warning("Failed to create solid for %s: %s", name, exc)
            return None
        self._group(doc, group_name).addObject(obj)
        self._check_volume(name, shape)
        return obj

    def _group(self, doc: Any, name: str) -> Any:
        group = self._groups.get(name)
        if group is None:
            group = doc.getObject(name) or doc.addObject("App::DocumentObjectGroup", name)
            self._groups[name] = group
        return group

    @staticmethod
    def _tag(obj: Any, ident: str) -> None:
        if hasattr(obj, "addProperty") and not hasattr(obj, "ZomeId"):
            obj.addProperty("App::PropertyString", "ZomeId", "Zome", "Frame piece id")
        if hasattr(obj, "ZomeId"):
            obj.ZomeId = ident

    @staticmethod
    def _vec(p: Vector3) -> Any:
        from FreeCAD import Vector  # type: ignore

        return Vector(p[0] * MM_PER_M, p[1] * MM_PER_M, p[2] * MM_PER_M)

    def _cylinder_solid(self, connector: Connector) -> Any:
        import Part  # type: ignore
        from FreeCAD import Vector  # type: ignore

        axis = Vector(*connector.directrix)
        radius = connector.spec.radius * MM_PER_M
        depth = connector.spec.depth * MM_PER_M
        return Part.makeCylinder(radius, depth, self._vec(connector.outer_center), axis)

    def _hexahedron_solid(self, corners: Sequence[Vector3]) -> Any | None:
        import Part  # type: ignore

        pts = [self._vec(p) for p in corners]
        faces = []
        for quad in BEAM_FACES:
            loop = [pts[i] for i in quad]
            wire = Part.makePolygon(loop + [loop[0]])
            faces.append(Part.Face(wire))
        try:
            return Part.makeSolid(Part.makeShell(faces))
        except Exception as exc:
            log.warning("Could not close hexahedron solid: %s", exc)
            return None

    @staticmethod
    def _check_volume(name: str, shape: Any) -> None:
        volume = getattr(shape, "Volume", None)
        if volume is None:
            return
        vol_m3 = float(volume) / MM_PER_M ** 3
        if vol_m3 <= 1e-9:
            log.warning("Solid %s volume %.6g m^3 extremely small", name, vol_m3)
