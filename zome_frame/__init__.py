"""Polar zonohedron (zome) shell and structural frame generator."""

__all__ = [
    "beams",
    "connectors",
    "edits",
    "export",
    "frame",
    "freecad_builder",
    "measurements",
    "parameters",
    "picking",
    "pipeline",
    "rebuild",
    "reports",
    "scene",
    "share",
    "topology",
    "vec3",
    "zonohedron",
]
