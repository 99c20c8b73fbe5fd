import csv
import json

from zome_frame.edits import EditState
from zome_frame.frame import synthesize_frame
from zome_frame.reports import (
    analyze_nodes,
    beam_cut_list,
    connector_summary,
    write_cut_list_csv,
    write_frame_report,
)


def test_connector_summary(s3_params):
    summary = connector_summary(synthesize_frame(s3_params))
    assert summary["total_connectors"] == 32
    assert summary["junctions"] == 0
    assert summary["per_level"] == {"0": 1, "1": 6, "2": 6, "3": 6, "4": 6, "5": 6, "6": 1}
    assert summary["templates"] == [{"diameterMm": 100.0, "depthMm": 150.0, "offsetMm": 0.0, "quantity": 32}]


def test_node_analysis(s3_params):
    nodes = analyze_nodes(synthesize_frame(s3_params))
    assert len(nodes["nodes"]) == 32
    assert nodes["degree_histogram"] == {"4": 30, "6": 2}
    assert sorted(nodes["levels"], key=int) == [str(k) for k in range(7)]
    pole = nodes["levels"]["0"]
    assert pole["degree"] == 6
    azimuths = [b["azimuthDeg"] for b in pole["beams"]]
    assert azimuths == sorted(azimuths)
    assert all(0.0 <= a < 360.0 for a in azimuths)


def test_cut_list(s3_params):
    frame = synthesize_frame(s3_params)
    cut_list = beam_cut_list(frame)
    assert cut_list["total_beams"] == 60
    assert sum(t["quantity"] for t in cut_list["types"]) == 60
    assert cut_list["unique_types"] == len(cut_list["types"])
    assert [t["type"] for t in cut_list["types"]] == [f"T{i:02d}" for i in range(1, len(cut_list["types"]) + 1)]
    assert {t["levels"] for t in cut_list["types"]} >= {"0-1", "5-6"}
    assert sorted(cut_list["representatives"], key=int) == [str(k) for k in range(1, 7)]


def test_cut_list_separates_junction_beams(s4_params):
    edits = EditState()
    edits.add_diagonal(s4_params, "3:2", "diagH")
    edits.add_diagonal(s4_params, "3:2", "diagV", mark_intersection=True)
    cut_list = beam_cut_list(synthesize_frame(s4_params, edits))
    junction_types = [t for t in cut_list["types"] if t["junction"]]
    assert sum(t["quantity"] for t in junction_types) == 4
    assert {t["kind"] for t in junction_types} == {"diagH", "diagV"}


def test_written_reports(tmp_path, s3_params):
    frame = synthesize_frame(s3_params)
    report = write_frame_report(frame, tmp_path / "report.json")
    on_disk = json.loads((tmp_path / "report.json").read_text(encoding="utf-8"))
    assert on_disk["summary"] == frame.summary()
    assert len(on_disk["beams"]) == 60
    assert on_disk["warnings"] == []

    csv_path = tmp_path / "cut_list.csv"
    write_cut_list_csv(report["cut_list"], csv_path)
    with csv_path.open(newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0][0] == "Type"
    assert len(rows) == 1 + report["cut_list"]["unique_types"]
