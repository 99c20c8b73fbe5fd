import math

import pytest

from zome_frame import vec3 as v3
from zome_frame.beams import BEAM_FACES, beam_id, quad_normal, trim_distance, trim_edge
from zome_frame.edits import EditState
from zome_frame.frame import BEAM_TOO_SHORT, FrameSynthesizer, synthesize_frame
from zome_frame.measurements import cap_axis_clearance
from zome_frame.parameters import StructureParams, ZomeParameters
from zome_frame.topology import get_topology
from zome_frame.zonohedron import POLE_LOW, POLE_TOP


@pytest.fixture
def s3_frame(s3_params):
    return synthesize_frame(s3_params)


def test_s3_counts(s3_frame):
    assert len(s3_frame.visible_connectors) == 6 * 5 + 2
    assert len(s3_frame.beams) == 2 * 6 * 5
    assert s3_frame.warnings == []
    assert not s3_frame.is_empty
    assert s3_frame.connector(POLE_LOW).name == "connector_k0_i0"
    assert s3_frame.connector("k2_i4").name == "connector_k2_i4"
    assert s3_frame.connector("k2_i4").connector_id == "C2-4"


def test_connector_placement(s3_frame):
    for c in s3_frame.connectors:
        assert math.isclose(c.radius, 0.05)
        assert v3.distance(c.outer_center, c.position) == pytest.approx(0.0, abs=1e-12)
        assert v3.distance(c.inner_center, c.outer_center) == pytest.approx(0.15)
        local = c.to_local(c.to_world((0.01, 0.02, 0.03)))
        assert local == pytest.approx((0.01, 0.02, 0.03), abs=1e-12)
    assert s3_frame.connector(POLE_TOP).directrix == pytest.approx((0.0, 0.0, -1.0))


def test_connectors_share_one_mesh(s3_params):
    synth = FrameSynthesizer(s3_params)
    frame = synth.build()
    assert len(synth.geometry_cache) == 1
    assert len({id(c.geometry) for c in frame.connectors}) == 1
    synth.dispose()
    assert len(synth.geometry_cache) == 0


def test_beam_cross_section_frame(s3_frame):
    for beam in s3_frame.beams:
        assert math.isclose(v3.norm(beam.w), 1.0, abs_tol=1e-9)
        assert math.isclose(v3.norm(beam.t), 1.0, abs_tol=1e-9)
        assert abs(v3.dot(beam.w, beam.edge_dir)) < 1e-9
        assert abs(v3.dot(beam.t, beam.edge_dir)) < 1e-9
        assert v3.dot(beam.t, v3.add(beam.a.directrix, beam.b.directrix)) > 0
        assert 0 < beam.length < beam.node_length
        assert len(beam.corners) == 8


def test_trimmed_ends_touch_the_cylinders(s3_frame):
    for beam in s3_frame.beams:
        for end in (beam.a, beam.b):
            radial = v3.project_perp(v3.sub(end.pos, end.node_pos), end.directrix)
            assert v3.norm(radial) == pytest.approx(0.05, abs=1e-9)


def test_bevel_caps_lie_on_tangent_planes(s3_frame):
    for beam in s3_frame.beams:
        for end, cap in ((beam.a, beam.corners[0:4]), (beam.b, beam.corners[4:8])):
            plane = end.plane
            assert abs(v3.dot(plane.normal, end.directrix)) < 1e-9
            for p in cap:
                assert plane.signed_distance(p) == pytest.approx(0.0, abs=1e-9)


def test_caps_are_tangent_to_the_connector(s3_frame):
    for beam in s3_frame.beams:
        for end, key in (("A", beam.a.key), ("B", beam.b.key)):
            connector = s3_frame.connector(key)
            assert cap_axis_clearance(beam, end, connector) == pytest.approx(connector.radius, abs=1e-5)


def test_beam_faces_wind_outward(s3_frame):
    for beam in s3_frame.beams:
        for quad_pts, expected in zip(beam.face_quads(), beam.expected_outward()):
            assert v3.dot(quad_normal(quad_pts), expected) > 0


def test_beam_faces_close_the_prism():
    edges = {}
    for quad in BEAM_FACES:
        for idx, a in enumerate(quad):
            b = quad[(idx + 1) % 4]
            edges[(a, b)] = edges.get((a, b), 0) + 1
    assert len(edges) == 24
    for a, b in edges:
        assert (b, a) in edges


def test_trim_is_clamped():
    trim = trim_edge((0, 0, 0), (1, 0, 0), (0, 0, 1), (0, 0, 1), 10.0, 0.1)
    assert trim.s_start == pytest.approx(0.45)
    assert trim.s_end == pytest.approx(0.1)
    assert trim.length == pytest.approx(0.45)
    assert trim_edge((0, 0, 0), (0, 0, 0), (0, 0, 1), (0, 0, 1), 0.1, 0.1) is None
    assert trim_distance(0.1, (1.0, 0.0, 0.0), (0.0, 0.0, 1.0)) == pytest.approx(0.1)


def test_too_short_beams_are_reported_and_orphans_hidden(s3_params):
    params = ZomeParameters(
        n=6,
        dmax=2.0,
        a_deg=45.0,
        structure=StructureParams(cyl_diameter_mm=2000.0, beam_width_mm=500.0, beam_height_mm=500.0),
    )
    frame = synthesize_frame(params)
    assert frame.beams == []
    assert len(frame.warnings) == 60
    assert frame.skipped[BEAM_TOO_SHORT] == 60
    warning = frame.warnings[0].to_dict()
    assert warning["type"] == BEAM_TOO_SHORT
    assert warning["lenMm"] < warning["minMm"]
    visible = frame.visible_connectors
    assert {c.key for c in visible} == {POLE_LOW, POLE_TOP}


def test_s5_deleting_edges_hides_connector():
    params = ZomeParameters(n=8)
    base = synthesize_frame(params)
    topology = get_topology(params)
    incident = [key for key in topology.edge_map if "k3_i5" in key.split("|")]
    assert len(incident) == 4

    edits = EditState()
    for key in incident:
        edits.delete_edge(key)
    frame = synthesize_frame(params, edits)
    connector = frame.connector("k3_i5")
    assert connector.hidden
    assert connector.degree == 0
    assert len(frame.beams) == len(base.beams) - len(incident)
    assert connector not in frame.visible_connectors
    # Cached topology is untouched by edits.
    assert len(get_topology(params).edge_map) == len(topology.edge_map)
    for key in incident:
        assert key in get_topology(params).edge_map


def test_cut_frame_starts_at_cut_ring(s2_params):
    frame = synthesize_frame(s2_params)
    assert min(c.k_original for c in frame.connectors) == 3
    assert frame.connector("k3_i0").name == "connector_k0_i0"
    assert frame.connector("k3_i0").k_visible == 0
    assert frame.connector(POLE_LOW) is None
    assert len(frame.beams) == len(get_topology(s2_params).edge_map)


def test_connector_level_overrides(s3_params):
    edits = EditState()
    edits.set_connector_override(2, {"diameterMm": 200, "offsetMm": 10})
    synth = FrameSynthesizer(s3_params, edits)
    frame = synth.build()
    for c in frame.connectors:
        if c.k_original == 2:
            assert c.spec.diameter_mm == 200.0
            assert v3.distance(c.outer_center, c.position) == pytest.approx(0.01)
        else:
            assert c.spec.diameter_mm == 100.0
    assert len(synth.geometry_cache) == 2


def test_beam_level_overrides(s3_params):
    edits = EditState()
    edits.set_beam_override(3, {"width_mm": 30})
    frame = synthesize_frame(s3_params, edits)
    for beam in frame.beams:
        level = max(beam.a.k, beam.b.k)
        assert beam.width_mm == (30.0 if level == 3 else 20.0)
        assert beam.height_mm == 40.0


def test_plates_sit_on_bevel_planes():
    structure = StructureParams(
        cyl_diameter_mm=100.0,
        beam_width_mm=20.0,
        beam_height_mm=40.0,
        plate_thickness_mm=5.0,
        plate_length_mm=120.0,
        plate_width_mm=40.0,
    )
    params = ZomeParameters(n=6, dmax=2.0, a_deg=45.0, structure=structure)
    frame = synthesize_frame(params)
    assert len(frame.plates) == 2 * len(frame.beams)
    for beam in frame.beams:
        assert [p.name for p in beam.plates] == [f"plate_{beam.beam_id}_A", f"plate_{beam.beam_id}_B"]
        for plate, end in zip(beam.plates, (beam.a, beam.b)):
            assert plate.connector_key == end.key
            assert len(plate.local_corners) == 8
            for idx in (0, 1, 4, 5):
                assert end.plane.signed_distance(plate.corners[idx]) == pytest.approx(0.0, abs=1e-9)
            for idx in (2, 3, 6, 7):
                assert end.plane.signed_distance(plate.corners[idx]) == pytest.approx(0.005, abs=1e-9)
            long_axis = v3.sub(plate.corners[4], plate.corners[0])
            assert v3.norm(long_axis) == pytest.approx(0.12)
            assert abs(v3.dot(long_axis, end.plane.normal)) < 1e-9


def test_no_plates_by_default(s3_frame):
    assert s3_frame.plates == []


def test_synthesizer_rebuilds_with_new_edits(s4_params):
    synth = FrameSynthesizer(s4_params)
    first = synth.build()
    edits = EditState()
    edits.delete_edge(next(iter(first.edge_map)))
    synth.edits = edits
    second = synth.build()
    assert len(second.beams) == len(first.beams) - 1
    assert len(synth.geometry_cache) == 1


def test_beam_id_ignores_endpoint_order():
    assert beam_id((3, 2), (1, 5)) == beam_id((1, 5), (3, 2)) == "B1-3_5-2"
    assert beam_id((2, 4), (2, 1)) == "B2-2_1-4"


def test_beam_ids_are_stable_across_rebuilds(s4_params):
    edits = EditState()
    edits.add_diagonal(s4_params, "3:2", "diagH")
    edits.add_diagonal(s4_params, "3:2", "diagV", mark_intersection=True)
    synth = FrameSynthesizer(s4_params, edits)
    first = {b.edge_key: b.beam_id for b in synth.build().beams}
    second = {b.edge_key: b.beam_id for b in synth.build().beams}
    assert first == second
    reversed_edits = EditState()
    reversed_edits.add_diagonal(s4_params, "3:2", "diagV")
    reversed_edits.add_diagonal(s4_params, "3:2", "diagH", mark_intersection=True)
    assert {b.edge_key: b.beam_id for b in synthesize_frame(s4_params, reversed_edits).beams} == first
