"""Node analysis, beam cut lists and connector statistics.

These summarize a :class:`~zome_frame.frame.FrameResult` for fabrication:
how many beams of each length to cut, how many connector templates are
needed, and how beams meet at a representative node of each level.
"""

from __future__ import annotations

import csv
import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Tuple

from . import vec3 as v3
from .frame import FrameResult
from .measurements import beam_measurements

__all__ = [
    "analyze_nodes",
    "beam_cut_list",
    "connector_summary",
    "write_frame_report",
    "write_cut_list_csv",
]

log = logging.getLogger(__name__)


def analyze_nodes(frame: FrameResult) -> Dict[str, Any]:
    """Connectivity of every visible node plus one representative per level."""

    degree: Dict[str, int] = {}
    for beam in frame.beams:
        degree[beam.a.key] = degree.get(beam.a.key, 0) + 1
        degree[beam.b.key] = degree.get(beam.b.key, 0) + 1

    nodes = []
    histogram: Dict[int, int] = {}
    representatives: Dict[int, Any] = {}
    for c in frame.visible_connectors:
        deg = degree.get(c.key, 0)
        histogram[deg] = histogram.get(deg, 0) + 1
        nodes.append({"key": c.key, "id": c.connector_id, "kVisible": c.k_visible, "degree": deg})
        if c.is_intersection or deg == 0:
            continue
        rep = representatives.get(c.k_visible)
        if rep is None or c.i < rep.i:
            representatives[c.k_visible] = c

    levels: Dict[str, Any] = {}
    for k_vis, c in sorted(representatives.items()):
        x, _, z = c.axes
        incident = []
        for beam in frame.beams_at(c.key):
            away = beam.edge_dir if beam.a.key == c.key else v3.neg(beam.edge_dir)
            azimuth = math.degrees(math.atan2(v3.dot(away, z), v3.dot(away, x))) % 360.0
            angle = beam.ang_a_deg if beam.a.key == c.key else beam.ang_b_deg
            incident.append(
                {"beam": beam.beam_id, "azimuthDeg": round(azimuth, 3), "angleToAxisDeg": round(angle, 3)}
            )
        incident.sort(key=lambda item: item["azimuthDeg"])
        levels[str(k_vis)] = {"key": c.key, "id": c.connector_id, "degree": len(incident), "beams": incident}

    return {
        "nodes": nodes,
        "degree_histogram": {str(k): v for k, v in sorted(histogram.items())},
        "levels": levels,
    }


def beam_cut_list(frame: FrameResult) -> Dict[str, Any]:
    """Group beams into cutting types with quantities."""

    seen = set()
    groups: Dict[Tuple[str, bool, str, int], Dict[str, Any]] = {}
    per_level: Dict[int, Dict[str, Any]] = {}
    for beam in frame.beams:
        a, b = sorted((beam.a.key, beam.b.key))
        dedupe = f"{beam.kind}|{a}|{b}"
        if dedupe in seen:
            continue
        seen.add(dedupe)
        k_lo, k_hi = sorted((_k_visible(frame, beam.a.k), _k_visible(frame, beam.b.k)))
        length_mm = int(round(beam.length * 1000.0))
        key = (beam.kind, beam.touches_junction, f"{k_lo}-{k_hi}", length_mm)
        group = groups.get(key)
        if group is None:
            group = {
                "kind": beam.kind,
                "junction": beam.touches_junction,
                "levels": key[2],
                "lengthMm": length_mm,
                "widthMm": round(beam.width_mm, 3),
                "heightMm": round(beam.height_mm, 3),
                "quantity": 0,
                "beams": [],
            }
            groups[key] = group
        group["quantity"] += 1
        group["beams"].append(beam.beam_id)
        if beam.kind == "edge" and beam.k_visible not in per_level:
            per_level[beam.k_visible] = beam_measurements(beam)

    types = sorted(groups.values(), key=lambda g: (g["kind"], g["levels"], g["lengthMm"], g["junction"]))
    for idx, group in enumerate(types, start=1):
        group["type"] = f"T{idx:02d}"
    return {
        "total_beams": len(seen),
        "unique_types": len(types),
        "types": types,
        "representatives": {str(k): v for k, v in sorted(per_level.items())},
    }


def _k_visible(frame: FrameResult, k: int) -> int:
    return frame.params.k_visible(k)


def connector_summary(frame: FrameResult) -> Dict[str, Any]:
    """Counts per visible level and per (diameter, depth, offset) template."""

    per_level: Dict[int, int] = {}
    templates: Dict[Tuple[float, float, float], int] = {}
    junctions = 0
    for c in frame.visible_connectors:
        per_level[c.k_visible] = per_level.get(c.k_visible, 0) + 1
        spec = (round(c.spec.diameter_mm, 3), round(c.spec.depth_mm, 3), round(c.spec.offset_mm, 3))
        templates[spec] = templates.get(spec, 0) + 1
        if c.is_intersection:
            junctions += 1
    return {
        "total_connectors": sum(per_level.values()),
        "junctions": junctions,
        "per_level": {str(k): v for k, v in sorted(per_level.items())},
        "templates": [
            {"diameterMm": d, "depthMm": depth, "offsetMm": off, "quantity": qty}
            for (d, depth, off), qty in sorted(templates.items())
        ],
    }


def write_frame_report(frame: FrameResult, path: Path) -> Dict[str, Any]:
    """Write a JSON report of connectors, beams, warnings and the cut list."""

    from .measurements import iter_beam_records, iter_connector_records

    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    report = {
        "summary": frame.summary(),
        "skipped": dict(frame.skipped),
        "warnings": [w.to_dict() for w in frame.warnings],
        "connector_summary": connector_summary(frame),
        "nodes": analyze_nodes(frame),
        "cut_list": beam_cut_list(frame),
        "connectors": list(iter_connector_records(frame)),
        "beams": list(iter_beam_records(frame)),
        "plates": [p.info() for p in frame.plates],
    }
    out.write_text(json.dumps(report, indent=2), encoding="utf-8")
    log.info("Wrote frame report to %s", out)
    return report


def write_cut_list_csv(cut_list: Dict[str, Any], path: Path) -> None:
    """CSV cutting table with one row per beam type."""

    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    header = ["Type", "Kind", "Levels", "Junction", "Qty", "Length_mm", "Width_mm", "Height_mm"]
    with out.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for group in cut_list["types"]:
            writer.writerow([
                group["type"],
                group["kind"],
                group["levels"],
                int(group["junction"]),
                group["quantity"],
                group["lengthMm"],
                group["widthMm"],
                group["heightMm"],
            ])
    log.info("Wrote cut list to %s (%d types)", out, len(cut_list["types"]))
