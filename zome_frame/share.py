"""Shareable configuration formats: URL query strings and JSON v1.0 files.

Both formats carry the shell parameters, the cut and the viewer toggles.
Loading is forgiving: unknown keys are ignored and values are clamped into
the parameter domain by :class:`~zome_frame.parameters.ZomeParameters`.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping
from urllib.parse import parse_qs, urlencode, urlsplit

from .parameters import ZomeParameters, _as_bool

__all__ = [
    "JSON_VERSION",
    "APP_NAME",
    "build_share_query",
    "build_share_url",
    "params_from_query",
    "export_json",
    "params_from_json",
    "save_share_json",
    "load_share_json",
]

JSON_VERSION = "1.0"
APP_NAME = "Zome Generator"

_FLAG_KEYS = {
    "cut": "cut_active",
    "faces": "rhombi_visible",
    "polys": "polys_visible",
    "lines": "lines_visible",
    "axis": "axis_visible",
}


# ---------------------------------------------------------------------------
# URL query
# ---------------------------------------------------------------------------


def build_share_query(params: ZomeParameters) -> str:
    query = {
        "N": params.n,
        "a": f"{params.a_deg:.1f}",
        "Dmax": f"{params.dmax:.2f}",
        "cut": int(params.cut_active),
        "cutLevel": params.cut_level,
        "faces": int(params.rhombi_visible),
        "polys": int(params.polys_visible),
        "lines": int(params.lines_visible),
        "skin": "rainbow" if params.color_by_level else "crystal",
        "axis": int(params.axis_visible),
    }
    return urlencode(query)


def build_share_url(params: ZomeParameters, base_url: str = "") -> str:
    base = base_url.split("?", 1)[0]
    return f"{base}?{build_share_query(params)}"


def _number(raw: str, cast=float):
    try:
        number = float(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return cast(number)


def params_from_query(query: str, base: ZomeParameters | None = None) -> ZomeParameters:
    """Apply a share query (or full URL) on top of *base*."""

    base = base if base is not None else ZomeParameters()
    if "?" in query or "://" in query:
        query = urlsplit(query).query
    values = {k: v[-1] for k, v in parse_qs(query.lstrip("?")).items() if v}
    changes: Dict[str, Any] = {}

    n = _number(values.get("N"), int) if "N" in values else None
    if n is not None:
        changes["n"] = n
    a = _number(values.get("a")) if "a" in values else None
    if a is not None:
        changes["a_deg"] = a
    dmax = _number(values.get("Dmax")) if "Dmax" in values else None
    if dmax is not None:
        changes["dmax"] = dmax
    level = _number(values.get("cutLevel"), int) if "cutLevel" in values else None
    if level is not None:
        changes["cut_level"] = level
    for key, name in _FLAG_KEYS.items():
        if key in values:
            changes[name] = values[key] == "1"
    if "skin" in values:
        changes["color_by_level"] = values["skin"] != "crystal"

    ignored = sorted(set(values) - set(_FLAG_KEYS) - {"N", "a", "Dmax", "cutLevel", "skin"})
    if ignored:
        logging.debug("Ignoring unknown share keys: %s", ", ".join(ignored))
    # replace() re-runs clamping; cut_level clamps against the new n.
    return replace(base, **changes)


# ---------------------------------------------------------------------------
# JSON v1.0
# ---------------------------------------------------------------------------


def export_json(params: ZomeParameters, timestamp: str | None = None) -> Dict[str, Any]:
    return {
        "version": JSON_VERSION,
        "app": APP_NAME,
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
        "parameters": {"N": params.n, "aDeg": params.a_deg, "Dmax": params.dmax},
        "cut": {"active": params.cut_active, "level": params.cut_level},
        "visualization": {
            "rhombiVisible": params.rhombi_visible,
            "polysVisible": params.polys_visible,
            "linesVisible": params.lines_visible,
            "axisVisible": params.axis_visible,
            "colorByLevel": params.color_by_level,
        },
    }


def params_from_json(data: Mapping[str, Any], base: ZomeParameters | None = None) -> ZomeParameters:
    """Build parameters from a JSON v1.0 document.

    Raises ``ValueError`` when ``version`` or ``parameters`` is missing.
    """

    if not isinstance(data, Mapping) or "version" not in data or "parameters" not in data:
        raise ValueError("Invalid configuration file: missing 'version' or 'parameters'")
    base = base if base is not None else ZomeParameters()
    changes: Dict[str, Any] = {}
    p = data.get("parameters") or {}
    for key, name, cast in (("N", "n", int), ("aDeg", "a_deg", float), ("Dmax", "dmax", float)):
        if key in p:
            value = _number(p[key], cast)
            if value is not None:
                changes[name] = value
    cut = data.get("cut") or {}
    if "active" in cut:
        changes["cut_active"] = _as_bool(cut["active"])
    if "level" in cut:
        level = _number(cut["level"], int)
        if level is not None:
            changes["cut_level"] = level
    vis = data.get("visualization") or {}
    for key, name in (
        ("rhombiVisible", "rhombi_visible"),
        ("polysVisible", "polys_visible"),
        ("linesVisible", "lines_visible"),
        ("axisVisible", "axis_visible"),
        ("colorByLevel", "color_by_level"),
    ):
        if key in vis:
            changes[name] = _as_bool(vis[key])
    return replace(base, **changes)


def save_share_json(params: ZomeParameters, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(export_json(params), indent=2), encoding="utf-8")
    logging.info("Wrote share config %s", destination)


def load_share_json(path: Path | str, base: ZomeParameters | None = None) -> ZomeParameters:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    return params_from_json(data, base)
