import json
import math

import pytest

from zome_frame.parameters import (
    MAX_N,
    StructureParams,
    ZomeParameters,
    apply_overrides,
    load_parameters,
    parse_cli_overrides,
    solve_angle_for_height,
    solve_dmax_for_floor,
)
from zome_frame.share import export_json


def test_values_are_clamped():
    params = ZomeParameters(n=1, dmax=-4.0, a_deg=95.0, cut_active="yes", cut_level=40)
    assert params.n == 3
    assert params.dmax == 0.1
    assert params.a_deg == 89.9
    assert params.cut_active is True
    assert params.cut_level == 2

    assert ZomeParameters(n=250).n == MAX_N
    assert ZomeParameters(a_deg=0.0).a_deg == 0.1


def test_non_finite_values_fall_back_to_defaults():
    params = ZomeParameters(n=math.inf, dmax=math.inf, a_deg=math.nan, cut_level=-math.inf)
    defaults = ZomeParameters()
    assert (params.n, params.dmax, params.a_deg, params.cut_level) == (
        defaults.n,
        defaults.dmax,
        defaults.a_deg,
        defaults.cut_level,
    )
    assert math.isfinite(params.h1) and math.isfinite(params.htotal)
    params.validate()


def test_structure_falls_back_to_defaults():
    structure = StructureParams(cyl_diameter_mm=-1, beam_width_mm="abc", cyl_offset_mm=-3, cyl_segments=1)
    assert structure.cyl_diameter_mm == 150.0
    assert structure.beam_width_mm == 50.0
    assert structure.cyl_offset_mm == 0.0
    assert structure.cyl_segments == 3
    assert not structure.plates_enabled
    assert StructureParams(plate_thickness_mm=8, plate_length_mm=200, plate_width_mm=100).plates_enabled


def test_start_levels_follow_the_cut(s1_params, s2_params):
    assert s1_params.start_k == 1
    assert s1_params.start_k_node == 0
    assert s2_params.start_k == 3
    assert s2_params.start_k_node == 3
    assert s2_params.k_visible(5) == 2
    assert s1_params.k_visible(5) == 5
    assert math.isclose(s2_params.cut_z, 3 * s2_params.h1)
    assert s1_params.floor_diameter == 0.0


def test_solve_angle_for_height(s2_params):
    solved = solve_angle_for_height(s2_params, 6.0)
    assert math.isclose(solved.visible_height, 6.0, rel_tol=1e-9)
    assert solved is not s2_params
    assert s2_params.a_deg == 39.8
    with pytest.raises(ValueError):
        solve_angle_for_height(s2_params, 0.0)
    with pytest.raises(ValueError):
        solve_angle_for_height(s2_params, 1000.0)


def test_solve_dmax_for_floor(s1_params, s2_params):
    solved = solve_dmax_for_floor(s2_params, 7.0)
    assert math.isclose(solved.floor_diameter, 7.0, rel_tol=1e-9)
    with pytest.raises(ValueError):
        solve_dmax_for_floor(s1_params, 7.0)
    with pytest.raises(ValueError):
        solve_dmax_for_floor(s2_params, -1.0)


def test_round_trip_dict(s3_params):
    data = s3_params.to_dict()
    again = ZomeParameters.from_dict(data)
    assert again == s3_params
    assert again.structure.beam_height_mm == 40.0


def test_from_dict_accepts_aliases_and_rejects_unknown():
    params = ZomeParameters.from_dict({"N": 9, "aDeg": 30, "cutActive": True, "cutLevel": 2})
    assert (params.n, params.a_deg, params.cut_active, params.cut_level) == (9, 30.0, True, 2)
    with pytest.raises(KeyError):
        ZomeParameters.from_dict({"colour": "red"})


def test_apply_overrides_merges_structure(s3_params):
    updated = apply_overrides(s3_params, {"n": 7, "structure": {"beamWidthMm": 25}})
    assert updated.n == 7
    assert updated.structure.beam_width_mm == 25.0
    assert updated.structure.cyl_diameter_mm == 100.0
    assert s3_params.n == 6
    with pytest.raises(KeyError):
        apply_overrides(s3_params, {"structure": {"girth": 3}})


def test_parse_cli_overrides():
    overrides, parsed = parse_cli_overrides(
        ["--n", "12", "--cut-level", "3", "--beam-size", "60", "120", "--plate", "8", "200", "100", "--bogus"]
    )
    assert overrides["n"] == 12
    assert overrides["cut_active"] is True
    assert overrides["cut_level"] == 3
    assert overrides["structure"] == {
        "beam_width_mm": 60.0,
        "beam_height_mm": 120.0,
        "plate_thickness_mm": 8.0,
        "plate_length_mm": 200.0,
        "plate_width_mm": 100.0,
    }
    assert parsed.out_dir == "exports"
    assert parsed.freecad is False


def test_parse_cli_no_cut_and_no_structure():
    overrides, _ = parse_cli_overrides(["--no-cut", "--no-structure"])
    assert overrides == {"cut_active": False, "structure_visible": False}


def test_load_parameters_precedence(tmp_path):
    config = tmp_path / "zome.json"
    config.write_text(json.dumps({"n": 9, "dmax": 5.0, "a_deg": 35.0}), encoding="utf-8")
    params = load_parameters(config, {"dmax": 6.0}, {"a_deg": 40.0})
    assert params.n == 9
    assert params.dmax == 6.0
    assert params.a_deg == 40.0


def test_load_parameters_reads_share_files(tmp_path, s2_params):
    config = tmp_path / "share.json"
    config.write_text(json.dumps(export_json(s2_params, timestamp="2024-01-01T00:00:00")), encoding="utf-8")
    params = load_parameters(config)
    assert params.n == 11
    assert params.cut_active is True
    assert params.cut_level == 3


def test_load_parameters_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_parameters(tmp_path / "missing.json")
    assert load_parameters(None) == ZomeParameters()
