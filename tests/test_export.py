import json

import pytest

from zome_frame import vec3 as v3
from zome_frame.beams import quad_normal
from zome_frame.export import (
    EmptyModelError,
    export_manifest,
    export_shell_obj,
    export_structure_obj,
    read_obj,
    shell_obj_filename,
    shell_obj_text,
    structure_obj_filename,
    structure_obj_text,
)
from zome_frame.frame import FrameResult, synthesize_frame
from zome_frame.parameters import StructureParams, ZomeParameters


def _directed_edges(faces):
    edges = set()
    for idx, _ in faces:
        for j, a in enumerate(idx):
            edges.add((a, idx[(j + 1) % len(idx)]))
    return edges


def _is_closed(faces):
    edges = _directed_edges(faces)
    return all((b, a) in edges for a, b in edges)


def test_filenames(s1_params, s2_params):
    assert shell_obj_filename(s2_params) == "zome_D10.0_N11_a39.80_cut3.obj"
    assert structure_obj_filename(s1_params) == "structure_D10.0_N11_a39.80.obj"


def test_s6_shell_obj(tmp_path, s2_params):
    path = export_shell_obj(s2_params, tmp_path / shell_obj_filename(s2_params))
    obj = read_obj(path)
    groups = obj["groups"]
    assert list(groups) == [f"R{k}" for k in range(3, 11)] + ["CutCap"]
    assert all(len(groups[f"R{k}"]) == 11 for k in range(3, 11))
    assert all(len(idx) == 3 for idx, _ in groups["R3"])
    assert all(len(idx) == 4 for idx, _ in groups["R4"])

    cap = groups["CutCap"]
    assert len(cap) == 11
    assert len({idx[0] for idx, _ in cap}) == 1

    vertices = obj["vertices"]
    normals = obj["normals"]
    for faces in groups.values():
        for idx, normal_idx in faces:
            assert normal_idx is not None
            newell = quad_normal([vertices[i] for i in idx])
            assert v3.dot(newell, normals[normal_idx]) > 0
    assert normals[cap[0][1]] == pytest.approx((0.0, 0.0, -1.0))


def test_shell_normals_point_away_from_center(s1_params):
    obj = read_obj(shell_obj_text(s1_params))
    assert "CutCap" not in obj["groups"]
    center = s1_params.center
    for faces in obj["groups"].values():
        for idx, normal_idx in faces:
            centroid = v3.centroid([obj["vertices"][i] for i in idx])
            assert v3.dot(obj["normals"][normal_idx], v3.sub(centroid, center)) > 0


def test_cap_can_be_left_out(s2_params):
    obj = read_obj(shell_obj_text(s2_params, include_cap=False))
    assert "CutCap" not in obj["groups"]


def test_structure_obj_pieces_are_closed(tmp_path, s3_params):
    frame = synthesize_frame(s3_params)
    path = export_structure_obj(frame, tmp_path / structure_obj_filename(s3_params))
    obj = read_obj(path)
    groups = obj["groups"]
    assert len(groups) == len(frame.visible_connectors) + len(frame.beams)
    vertices = obj["vertices"]

    for beam in frame.beams:
        faces = groups[beam.name]
        assert len(faces) == 6
        used = {i for idx, _ in faces for i in idx}
        assert len(used) == 8
        assert _is_closed(faces)
        middle = v3.centroid([vertices[i] for i in used])
        for idx, normal_idx in faces:
            assert normal_idx is None
            pts = [vertices[i] for i in idx]
            assert v3.dot(quad_normal(pts), v3.sub(v3.centroid(pts), middle)) > 0

    connector = frame.visible_connectors[0]
    faces = groups[connector.name]
    assert len(faces) == s3_params.structure.cyl_segments + 2
    assert _is_closed(faces)
    for idx, _ in faces:
        pts = [vertices[i] for i in idx]
        assert v3.dot(quad_normal(pts), v3.sub(v3.centroid(pts), connector.center)) > 0


def test_structure_obj_includes_plates():
    structure = StructureParams(plate_thickness_mm=6, plate_length_mm=150, plate_width_mm=60)
    frame = synthesize_frame(ZomeParameters(n=6, dmax=3.0, a_deg=40.0, structure=structure))
    obj = read_obj(structure_obj_text(frame))
    plate = frame.plates[0]
    assert plate.name in obj["groups"]
    assert _is_closed(obj["groups"][plate.name])


def test_empty_structure_raises(s3_params):
    with pytest.raises(EmptyModelError):
        structure_obj_text(FrameResult(params=s3_params))


def test_read_obj_negative_indices():
    text = "v 0 0 0\nv 1 0 0\nv 0 1 0\nf -3 -2 -1\nusemtl steel\n"
    obj = read_obj(text)
    assert obj["groups"]["default"] == [((0, 1, 2), None)]


def test_manifest(tmp_path, s3_params):
    frame = synthesize_frame(s3_params)
    path = tmp_path / "manifest.json"
    export_manifest(frame, path)
    entries = json.loads(path.read_text(encoding="utf-8"))
    kinds = [e["type"] for e in entries]
    assert kinds.count("connector") == len(frame.visible_connectors)
    assert kinds.count("beam") == len(frame.beams)
    assert "plate" not in kinds
    beam = next(e for e in entries if e["type"] == "beam")
    assert beam["section"] == [20.0, 40.0]
