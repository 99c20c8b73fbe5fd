import math

import pytest

from zome_frame import vec3 as v3
from zome_frame.measurements import face_metrics
from zome_frame.parameters import ZomeParameters
from zome_frame.topology import build_topology, edge_key, get_topology, validate_topology
from zome_frame.zonohedron import (
    POLE_LOW,
    POLE_TOP,
    build_faces,
    cut_cap,
    face_by_id,
    geometry_summary,
    parse_vertex_key,
    ring_levels,
    ring_vertex,
    vertex_key,
)


def test_s1_full_zome_counts(s1_params):
    faces = build_faces(s1_params)
    assert len(faces) == 110
    assert not any(f.is_triangle for f in faces)
    expected_h1 = 5.0 * math.tan(math.radians(39.8)) * math.sin(math.pi / 11)
    assert math.isclose(s1_params.h1, expected_h1, rel_tol=1e-12)
    assert s1_params.h1 == pytest.approx(1.17, abs=0.01)
    assert math.isclose(s1_params.htotal, 11 * expected_h1, rel_tol=1e-12)


def test_s2_truncated_counts(s2_params):
    faces = build_faces(s2_params)
    triangles = [f for f in faces if f.is_triangle]
    assert len(faces) == 88
    assert len(triangles) == 11
    assert all(f.k == 3 for f in triangles)
    assert math.isclose(s2_params.floor_diameter, 10.0 * math.sin(3 * math.pi / 11), rel_tol=1e-12)

    topo = build_topology(s2_params)
    per_ring = {}
    for rec in topo.vertex_map.values():
        per_ring[rec.k] = per_ring.get(rec.k, 0) + 1
    assert min(per_ring) == 3
    for k in range(3, 11):
        assert per_ring[k] == 11
    assert POLE_LOW not in topo.vertex_map


@pytest.mark.parametrize("n,cut,level", [(3, False, 1), (6, False, 1), (11, True, 4), (20, True, 1), (9, True, 8)])
def test_face_count_formula(n, cut, level):
    params = ZomeParameters(n=n, dmax=3.0, a_deg=35.0, cut_active=cut, cut_level=level)
    faces = build_faces(params)
    if cut:
        assert len(faces) == n * (n - 1 - level) + n
    else:
        assert len(faces) == n * (n - 1)


def test_poles_collapse_to_axis(s1_params):
    for i in range(s1_params.n):
        assert ring_vertex(s1_params, 0, i) == (0.0, 0.0, 0.0)
        top = ring_vertex(s1_params, s1_params.n, i)
        assert top[0] == 0.0 and top[1] == 0.0
        assert math.isclose(top[2], s1_params.htotal)
    assert vertex_key(11, 0, 7) == POLE_LOW
    assert vertex_key(11, 11, 3) == POLE_TOP


def test_ring_vertex_is_deterministic(s1_params):
    again = ZomeParameters(n=11, dmax=10.0, a_deg=39.8)
    for k in range(s1_params.n + 1):
        for i in range(s1_params.n):
            assert ring_vertex(s1_params, k, i) == ring_vertex(again, k, i)


def test_even_rings_are_rotated_half_step(s1_params):
    odd = ring_vertex(s1_params, 1, 0)
    even = ring_vertex(s1_params, 2, 0)
    step = 2 * math.pi / s1_params.n
    ang_odd = math.atan2(odd[1], odd[0])
    ang_even = math.atan2(even[1], even[0])
    assert math.isclose(ang_even - ang_odd, step / 2, abs_tol=1e-12)


def test_vertex_key_round_trip():
    assert parse_vertex_key("k3_i7", 11) == (3, 7, False)
    assert parse_vertex_key("X:4:2", 11) == (4, 2, True)
    assert parse_vertex_key(POLE_TOP, 11) == (11, 0, False)
    with pytest.raises(ValueError):
        parse_vertex_key("bogus", 11)


def test_face_by_id_matches_list(s2_params):
    faces = {f.face_id: f for f in build_faces(s2_params)}
    for face_id in ("3:0", "4:5", "10:10"):
        assert face_by_id(s2_params, face_id) == faces[face_id]
    with pytest.raises(ValueError):
        face_by_id(s2_params, "2:0")
    with pytest.raises(ValueError):
        face_by_id(s2_params, "nope")


def test_every_edge_has_the_generator_length(s1_params):
    side = geometry_summary(s1_params)["rhombus_side"]
    for face in build_faces(s1_params):
        for length in face_metrics(face)["sides"]:
            assert math.isclose(length, side, rel_tol=1e-9)


def test_geometry_summary_truncated(s2_params):
    summary = geometry_summary(s2_params)
    assert summary["faces"] == 88
    assert summary["triangles"] == 11
    assert summary["rhombi"] == 77
    assert math.isclose(summary["visible_height"], 8 * s2_params.h1)
    r_cut = 5.0 * math.sin(3 * math.pi / 11)
    assert math.isclose(summary["triangle_base"], 2 * r_cut * math.sin(math.pi / 11))


class TestTopology:
    def test_normals_point_inward(self, s1_params, s2_params):
        for params in (s1_params, s2_params):
            topo = build_topology(params)
            center = params.center
            for face in topo.faces:
                nrm = topo.face_normals[face.face_id]
                assert v3.dot(nrm, v3.sub(v3.centroid(face.points), center)) < 0

    def test_edges_are_unique(self, s1_params, s2_params):
        for params in (s1_params, s2_params):
            topo = build_topology(params)
            unique = set()
            for face in topo.faces:
                keys = face.keys
                for idx, key in enumerate(keys):
                    unique.add(edge_key(key, keys[(idx + 1) % len(keys)]))
            assert len(topo.edge_map) == len(unique)
            assert set(topo.edge_map) == unique

    def test_full_zome_euler_counts(self, s1_params):
        topo = build_topology(s1_params)
        n = s1_params.n
        assert len(topo.vertex_map) == n * (n - 1) + 2
        assert len(topo.edge_map) == 2 * n * (n - 1)
        assert len(topo.vertex_map) - len(topo.edge_map) + len(topo.faces) == 2

    def test_directrices_point_inward(self, s2_params):
        topo = build_topology(s2_params)
        center = s2_params.center
        for rec in topo.vertex_map.values():
            assert math.isclose(v3.norm(rec.directrix), 1.0, abs_tol=1e-12)
            assert v3.dot(rec.directrix, v3.sub(center, rec.pos)) > 0
        assert topo.vertex_map[POLE_TOP].directrix[2] == pytest.approx(-1.0)

    def test_cache_is_read_only_and_shared(self, s1_params):
        topo = get_topology(s1_params)
        assert get_topology(ZomeParameters(n=11, dmax=10.0, a_deg=39.8)) is topo
        with pytest.raises(TypeError):
            topo.edge_map["x|y"] = None  # type: ignore[index]
        assert get_topology(ZomeParameters(n=12, dmax=10.0, a_deg=39.8)) is not topo

    def test_validation_report(self, s2_params):
        report = validate_topology(get_topology(s2_params), s2_params)
        assert report["faces"] == report["expected_faces"] == 88
        assert report["edges"] == report["unique_face_edges"]
        assert report["outward_faces"] == []
        assert report["short_rings"] == []


def test_ring_levels_and_cap(s2_params):
    levels = list(ring_levels(s2_params))
    assert [lvl["name"] for lvl in levels] == [f"R{k}" for k in range(3, 11)]
    assert all(len(lvl["faces"]) == 11 for lvl in levels)
    center, ring = cut_cap(s2_params)
    assert center == (0.0, 0.0, pytest.approx(3 * s2_params.h1))
    assert len(ring) == 11
    with pytest.raises(ValueError):
        cut_cap(ZomeParameters(cut_active=False))
