"""Configuration stack and parameter management for the zome generator.

The loader operates in three layers ordered from lowest to highest
precedence:

1. JSON file (primary): persistent project configuration. Both the flat
   project format (``ZomeParameters`` field names) and the versioned share
   format written by :mod:`zome_frame.share` are accepted.
2. CLI overrides: runtime tweaks for automation/headless workflows.
3. Explicit overrides: keyword values passed by the caller, e.g. a macro.

Every value is clamped into its valid domain when a parameter object is
built, so downstream geometry never sees an out-of-range configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict, fields, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
import logging
import json
import math

__all__ = [
    "MIN_N",
    "MAX_N",
    "StructureParams",
    "ZomeParameters",
    "load_json_config",
    "apply_overrides",
    "parse_cli_overrides",
    "load_parameters",
    "solve_angle_for_height",
    "solve_dmax_for_floor",
]

MIN_N = 3
MAX_N = 100
MIN_A_DEG = 0.1
MAX_A_DEG = 89.9
MIN_DMAX = 0.1

# Accepted spellings coming from share files / the browser configuration
# surface, mapped onto dataclass field names.
_PARAM_ALIASES = {
    "N": "n",
    "Dmax": "dmax",
    "aDeg": "a_deg",
    "cutActive": "cut_active",
    "cutLevel": "cut_level",
    "rhombiVisible": "rhombi_visible",
    "polysVisible": "polys_visible",
    "linesVisible": "lines_visible",
    "axisVisible": "axis_visible",
    "colorByLevel": "color_by_level",
    "isRotating": "is_rotating",
    "rotationSpeed": "rotation_speed",
    "structureVisible": "structure_visible",
    "structureParams": "structure",
}

_STRUCTURE_ALIASES = {
    "cylDiameterMm": "cyl_diameter_mm",
    "cylDepthMm": "cyl_depth_mm",
    "cylOffsetMm": "cyl_offset_mm",
    "cylSegments": "cyl_segments",
    "beamWidthMm": "beam_width_mm",
    "beamHeightMm": "beam_height_mm",
    "platThicknessMm": "plate_thickness_mm",
    "platLengthMm": "plate_length_mm",
    "platWidthMm": "plate_width_mm",
}


def _positive_or(value: Any, fallback: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(v) or v <= 0:
        return fallback
    return v


def _non_negative(value: Any) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(v):
        return 0.0
    return max(0.0, v)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _finite_or(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return float(default)
    return number if math.isfinite(number) else float(default)


@dataclass(slots=True)
class StructureParams:
    """Base dimensions of the structural frame, in millimetres."""

    cyl_diameter_mm: float = 150.0
    cyl_depth_mm: float = 150.0
    cyl_offset_mm: float = 0.0
    cyl_segments: int = 24
    beam_width_mm: float = 50.0
    beam_height_mm: float = 100.0
    # Anchor plates are emitted only when all three are > 0.
    plate_thickness_mm: float = 0.0
    plate_length_mm: float = 0.0
    plate_width_mm: float = 0.0

    def __post_init__(self) -> None:
        defaults = StructureParams.__dataclass_fields__
        self.cyl_diameter_mm = _positive_or(self.cyl_diameter_mm, defaults["cyl_diameter_mm"].default)
        self.cyl_depth_mm = _positive_or(self.cyl_depth_mm, defaults["cyl_depth_mm"].default)
        self.beam_width_mm = _positive_or(self.beam_width_mm, defaults["beam_width_mm"].default)
        self.beam_height_mm = _positive_or(self.beam_height_mm, defaults["beam_height_mm"].default)
        self.cyl_offset_mm = _non_negative(self.cyl_offset_mm)
        self.cyl_segments = max(3, int(_positive_or(self.cyl_segments, 24)))
        self.plate_thickness_mm = _non_negative(self.plate_thickness_mm)
        self.plate_length_mm = _non_negative(self.plate_length_mm)
        self.plate_width_mm = _non_negative(self.plate_width_mm)

    @property
    def plates_enabled(self) -> bool:
        return min(self.plate_thickness_mm, self.plate_length_mm, self.plate_width_mm) > 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "StructureParams":
        if not data:
            return cls()
        if isinstance(data, StructureParams):
            return replace(data)
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = _STRUCTURE_ALIASES.get(key, key)
            if name not in known:
                raise KeyError(f"Unknown structure parameter '{key}'")
            kwargs[name] = value
        return cls(**kwargs)


@dataclass(slots=True)
class ZomeParameters:
    """Canonical set of adjustable zome parameters.

    ``dmax`` is the diameter of the widest ring in metres; ``a_deg`` is the
    generator half-angle of the rhombi.
    """

    n: int = 11
    dmax: float = 6.596
    a_deg: float = 39.8
    cut_active: bool = False
    cut_level: int = 4

    # Viewer layer toggles; stored here so share files round-trip them.
    rhombi_visible: bool = True
    polys_visible: bool = False
    lines_visible: bool = True
    axis_visible: bool = False
    color_by_level: bool = True
    is_rotating: bool = False
    rotation_speed: float = 0.3
    structure_visible: bool = True

    structure: StructureParams = field(default_factory=StructureParams)

    def __post_init__(self) -> None:
        defaults = ZomeParameters.__dataclass_fields__
        self.n = int(min(MAX_N, max(MIN_N, round(_finite_or(self.n, defaults["n"].default)))))
        self.a_deg = min(MAX_A_DEG, max(MIN_A_DEG, _finite_or(self.a_deg, defaults["a_deg"].default)))
        self.dmax = max(MIN_DMAX, _finite_or(self.dmax, defaults["dmax"].default))
        self.cut_active = _as_bool(self.cut_active)
        self.cut_level = int(min(self.n - 1, max(1, round(_finite_or(self.cut_level, defaults["cut_level"].default)))))
        for name in (
            "rhombi_visible",
            "polys_visible",
            "lines_visible",
            "axis_visible",
            "color_by_level",
            "is_rotating",
            "structure_visible",
        ):
            setattr(self, name, _as_bool(getattr(self, name)))
        if not isinstance(self.structure, StructureParams):
            self.structure = StructureParams.from_dict(self.structure)

    def validate(self) -> None:
        for name in ("dmax", "a_deg", "rotation_speed"):
            if not math.isfinite(float(getattr(self, name))):
                raise ValueError(f"Parameter '{name}' must be finite")
        if not (self.cut_level < self.n):
            raise ValueError("cut_level must be below n")
        for name in ("h1", "htotal", "floor_diameter"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"Derived value '{name}' is not a non-negative number")

    # ---- derived scalars --------------------------------------------------

    @property
    def a_rad(self) -> float:
        return self.a_deg * math.pi / 180.0

    @property
    def h1(self) -> float:
        """Height of one ring step."""
        return (self.dmax / 2.0) * math.tan(self.a_rad) * math.sin(math.pi / self.n)

    @property
    def htotal(self) -> float:
        return self.n * self.h1

    @property
    def floor_diameter(self) -> float:
        if not self.cut_active:
            return 0.0
        return self.dmax * math.sin(self.cut_level * math.pi / self.n)

    @property
    def start_k(self) -> int:
        """First ring level that carries visible faces."""
        return self.cut_level if self.cut_active else 1

    @property
    def start_k_node(self) -> int:
        """First ring level that carries connectors."""
        return self.cut_level if self.cut_active else 0

    @property
    def cut_z(self) -> float:
        return self.cut_level * self.h1 if self.cut_active else 0.0

    @property
    def center(self) -> Tuple[float, float, float]:
        """Reference point used to orient face normals inward."""
        z0 = self.cut_z
        return (0.0, 0.0, z0 + (self.htotal - z0) * 0.5)

    @property
    def visible_height(self) -> float:
        return self.htotal - self.cut_z

    @property
    def topology_signature(self) -> Tuple[Any, ...]:
        return (
            self.n,
            round(self.a_deg, 9),
            round(self.dmax, 9),
            self.cut_active,
            self.cut_level if self.cut_active else 0,
            round(self.h1, 12),
            round(self.htotal, 12),
        )

    def k_visible(self, k: int) -> int:
        """Level number as seen above the cut plane."""
        if self.cut_active:
            return max(0, k - self.cut_level)
        return k

    # ---- serialization ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["structure"] = self.structure.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ZomeParameters":
        known = {f.name for f in fields(cls)}
        merged: Dict[str, Any] = {}
        for key, value in data.items():
            name = _PARAM_ALIASES.get(key, key)
            if name not in known:
                raise KeyError(f"Unknown parameter '{key}'")
            merged[name] = value
        structure = merged.pop("structure", None)
        params = cls(**merged, structure=StructureParams.from_dict(structure))
        params.validate()
        return params


# ---------------------------------------------------------------------------
# Inverse solvers
# ---------------------------------------------------------------------------


def solve_angle_for_height(params: ZomeParameters, height: float) -> ZomeParameters:
    """Return a copy of *params* whose visible height equals *height*."""

    if height <= 0:
        raise ValueError("Height must be positive")
    levels = params.n - params.cut_level if params.cut_active else params.n
    if levels <= 0:
        raise ValueError("No visible levels above the cut")
    h1_needed = height / levels
    base = (params.dmax / 2.0) * math.sin(math.pi / params.n)
    if base <= 0:
        raise ValueError("Degenerate ring radius")
    a_deg = math.degrees(math.atan(h1_needed / base))
    if not (MIN_A_DEG <= a_deg <= 89.0):
        raise ValueError(f"Height {height:.3f} needs a={a_deg:.2f} deg, outside 0.1..89")
    logging.info("Height %.3fm -> a=%.4f deg", height, a_deg)
    return replace(params, a_deg=a_deg, structure=replace(params.structure))


def solve_dmax_for_floor(params: ZomeParameters, floor_diameter: float) -> ZomeParameters:
    """Return a copy of *params* whose cut ring has diameter *floor_diameter*."""

    if floor_diameter <= 0:
        raise ValueError("Floor diameter must be positive")
    if not params.cut_active:
        raise ValueError("Floor diameter only applies to truncated zomes")
    factor = math.sin(params.cut_level * math.pi / params.n)
    if factor <= 0.001:
        raise ValueError("Cut level too close to a pole to solve for Dmax")
    dmax = floor_diameter / factor
    logging.info("Floor %.3fm -> Dmax=%.4fm", floor_diameter, dmax)
    return replace(params, dmax=dmax, structure=replace(params.structure))


# ---------------------------------------------------------------------------
# Layered loading
# ---------------------------------------------------------------------------


def load_json_config(path: Path | str | None) -> Dict[str, Any]:
    """Load the JSON config file or return an empty dict if missing."""

    if path is None:
        return {}
    json_path = Path(path)
    if not json_path.exists():
        raise FileNotFoundError(f"Config file not found: {json_path}")
    data = json.loads(json_path.read_text(encoding="utf-8"))
    if not isinstance(data, Mapping):
        raise ValueError("Top-level JSON config must be an object")
    return dict(data)


def apply_overrides(base: ZomeParameters, overrides: Mapping[str, Any]) -> ZomeParameters:
    """Return a copy of ``base`` with overrides applied.

    A ``structure`` entry is merged field by field instead of replacing the
    whole structure block.
    """

    merged = base.to_dict()
    for key, value in overrides.items():
        name = _PARAM_ALIASES.get(key, key)
        if name not in merged:
            raise KeyError(f"Unknown parameter '{key}'")
        if name == "structure" and isinstance(value, Mapping):
            structure = dict(merged["structure"])
            for skey, svalue in value.items():
                sname = _STRUCTURE_ALIASES.get(skey, skey)
                if sname not in structure:
                    raise KeyError(f"Unknown structure parameter '{skey}'")
                structure[sname] = svalue
            merged["structure"] = structure
            continue
        merged[name] = value
    return ZomeParameters.from_dict(merged)


def parse_cli_overrides(
    args: Optional[Iterable[str]] = None,
) -> Tuple[Dict[str, Any], Any]:
    """Parse CLI-style overrides using argparse conventions."""

    import argparse

    parser = argparse.ArgumentParser(description="Polar zonohedron (zome) frame generator")
    parser.add_argument("--config", type=str, help="Path to JSON config", default=None)
    parser.add_argument("--edits", type=str, default=None, help="Path to frame edits JSON")
    parser.add_argument("--out-dir", type=str, default="exports", help="Export folder")
    parser.add_argument("--manifest-name", type=str, default="zome_manifest.json")
    parser.add_argument("--report-name", type=str, default="frame_report.json")
    parser.add_argument("--share-name", type=str, default="zome_config.json")
    parser.add_argument("--skip-shell-obj", action="store_true", help="Disable shell OBJ export")
    parser.add_argument(
        "--skip-structure-obj", action="store_true", help="Disable structure OBJ export"
    )
    parser.add_argument("--freecad", action="store_true", help="Build FreeCAD solids")
    parser.add_argument("--n", type=int, help="Number of rings / sides per ring")
    parser.add_argument("--dmax", type=float, help="Widest ring diameter in meters")
    parser.add_argument("--angle", type=float, help="Generator half-angle in degrees")
    parser.add_argument("--cut-level", type=int, help="Truncate at this ring level")
    parser.add_argument("--no-cut", action="store_true", help="Disable truncation")
    parser.add_argument("--height", type=float, help="Solve the angle for this visible height")
    parser.add_argument(
        "--floor-diameter", type=float, help="Solve Dmax for this cut-ring diameter"
    )
    parser.add_argument("--cyl-diameter", type=float, help="Connector diameter in mm")
    parser.add_argument("--cyl-depth", type=float, help="Connector depth in mm")
    parser.add_argument("--cyl-offset", type=float, help="Connector inward offset in mm")
    parser.add_argument("--segments", type=int, help="Connector mesh segments")
    parser.add_argument(
        "--beam-size",
        type=float,
        nargs=2,
        metavar=("WIDTH", "HEIGHT"),
        help="Beam cross-section in mm",
    )
    parser.add_argument(
        "--plate",
        type=float,
        nargs=3,
        metavar=("THICKNESS", "LENGTH", "WIDTH"),
        help="Anchor plate dimensions in mm",
    )
    parser.add_argument(
        "--no-structure", action="store_true", help="Skip connector/beam synthesis"
    )

    parsed, unknown = parser.parse_known_args(args=args)
    if unknown:
        logging.info("Ignoring unrecognised arguments: %s", unknown)

    overrides: Dict[str, Any] = {}
    if parsed.n is not None:
        overrides["n"] = parsed.n
    if parsed.dmax is not None:
        overrides["dmax"] = parsed.dmax
    if parsed.angle is not None:
        overrides["a_deg"] = parsed.angle
    if parsed.cut_level is not None:
        overrides["cut_active"] = True
        overrides["cut_level"] = parsed.cut_level
    if parsed.no_cut:
        overrides["cut_active"] = False
    if parsed.no_structure:
        overrides["structure_visible"] = False

    structure: Dict[str, Any] = {}
    if parsed.cyl_diameter is not None:
        structure["cyl_diameter_mm"] = parsed.cyl_diameter
    if parsed.cyl_depth is not None:
        structure["cyl_depth_mm"] = parsed.cyl_depth
    if parsed.cyl_offset is not None:
        structure["cyl_offset_mm"] = parsed.cyl_offset
    if parsed.segments is not None:
        structure["cyl_segments"] = parsed.segments
    if parsed.beam_size is not None:
        structure["beam_width_mm"] = parsed.beam_size[0]
        structure["beam_height_mm"] = parsed.beam_size[1]
    if parsed.plate is not None:
        structure["plate_thickness_mm"] = parsed.plate[0]
        structure["plate_length_mm"] = parsed.plate[1]
        structure["plate_width_mm"] = parsed.plate[2]
    if structure:
        overrides["structure"] = structure

    return overrides, parsed


def load_parameters(
    config_path: Path | str | None,
    cli_overrides: Mapping[str, Any] | None = None,
    extra_overrides: Mapping[str, Any] | None = None,
) -> ZomeParameters:
    """Load parameters using the JSON → CLI → explicit precedence chain."""

    data = load_json_config(config_path)
    if "version" in data:
        from .share import params_from_json

        params = params_from_json(data)
    else:
        params = ZomeParameters.from_dict(data)
    if cli_overrides:
        params = apply_overrides(params, cli_overrides)
    if extra_overrides:
        params = apply_overrides(params, extra_overrides)
    return params
