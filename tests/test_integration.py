"""Integration tests for the generation pipeline, the CLI and FreeCAD solids.

FreeCAD tests are skipped when FreeCAD cannot be imported. Run them with::

    freecadcmd -c "import pytest; pytest.main([__file__, '-v'])"
"""

from __future__ import annotations

import importlib.util
import json
from pathlib import Path

import pytest

from zome_frame.export import read_obj, shell_obj_filename, structure_obj_filename
from zome_frame.frame import synthesize_frame
from zome_frame.freecad_builder import FrameModelBuilder
from zome_frame.parameters import ZomeParameters
from zome_frame.pipeline import PipelineContext, PipelineStep, ZomePipeline, default_steps

# ---------------------------------------------------------------------------
# Skip markers
# ---------------------------------------------------------------------------

_FREECAD_AVAILABLE = False
try:
    import FreeCAD  # type: ignore  # noqa: F401
    import Part  # type: ignore  # noqa: F401

    _FREECAD_AVAILABLE = True
except ImportError:
    pass

requires_freecad = pytest.mark.skipif(not _FREECAD_AVAILABLE, reason="FreeCAD not available")
without_freecad = pytest.mark.skipif(_FREECAD_AVAILABLE, reason="FreeCAD is available")

REPO_ROOT = Path(__file__).resolve().parents[1]


def _load_cli():
    path = REPO_ROOT / "scripts" / "generate_zome.py"
    spec = importlib.util.spec_from_file_location("generate_zome", str(path))
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


# ---------------------------------------------------------------------------
# Pipeline (always run)
# ---------------------------------------------------------------------------


class TestPipelineIntegration:
    def test_step_ordering(self):
        names = [s.name for s in default_steps()]
        assert names[0] == "topology"
        assert names.index("frame") < names.index("reports") < names.index("structure_obj_export")
        assert names[-1] == "freecad_model"

    def test_full_run_writes_every_output(self, tmp_path, s3_params):
        ctx = ZomePipeline().run(PipelineContext(params=s3_params, out_dir=tmp_path))
        assert ctx.validation["faces"] == ctx.validation["expected_faces"] == 30
        assert ctx.frame is not None and len(ctx.frame.beams) == 60
        names = {p.name for p in ctx.written}
        assert names == {
            "frame_report.json",
            "frame_report_cut_list.csv",
            shell_obj_filename(s3_params),
            structure_obj_filename(s3_params),
            "zome_manifest.json",
            "zome_config.json",
        }
        for path in ctx.written:
            assert path.exists()
        assert ctx.freecad_objects == []

        structure = read_obj(tmp_path / structure_obj_filename(s3_params))
        assert len(structure["groups"]) == 32 + 60
        share = json.loads((tmp_path / "zome_config.json").read_text(encoding="utf-8"))
        assert share["parameters"]["N"] == 6

    def test_shell_only_when_structure_hidden(self, tmp_path):
        params = ZomeParameters(n=7, dmax=3.0, structure_visible=False)
        ctx = ZomePipeline().run(PipelineContext(params=params, out_dir=tmp_path, skip_shell_obj=True))
        assert ctx.frame is None
        assert [p.name for p in ctx.written] == ["zome_config.json"]

    def test_custom_steps(self, tmp_path, s4_params):
        seen = []

        class RecordStep(PipelineStep):
            name = "record"

            def execute(self, ctx):
                seen.append(len(ctx.frame.beams))

        pipeline = ZomePipeline()
        pipeline.insert_after("frame", RecordStep())
        pipeline.remove("share_export")
        pipeline.remove("shell_obj_export")
        assert pipeline.step_names.index("record") == pipeline.step_names.index("frame") + 1
        ctx = pipeline.run(PipelineContext(params=s4_params, out_dir=tmp_path))
        assert seen == [len(ctx.frame.beams)]
        assert not (tmp_path / "zome_config.json").exists()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


class TestCommandLine:
    def test_main_writes_outputs(self, tmp_path):
        cli = _load_cli()
        code = cli.main(
            ["--out-dir", str(tmp_path), "--n", "6", "--dmax", "2", "--angle", "45", "--no-cut", "--single-instance"]
        )
        assert code == 0
        params = ZomeParameters(n=6, dmax=2.0, a_deg=45.0)
        assert (tmp_path / shell_obj_filename(params)).exists()
        assert (tmp_path / "frame_report.json").exists()

    def test_main_solves_floor_diameter(self, tmp_path):
        cli = _load_cli()
        code = cli.main(
            ["--out-dir", str(tmp_path), "--n", "8", "--cut-level", "3", "--floor-diameter", "5", "--no-structure"]
        )
        assert code == 0
        share = json.loads((tmp_path / "zome_config.json").read_text(encoding="utf-8"))
        params = ZomeParameters(n=8, dmax=share["parameters"]["Dmax"], cut_active=True, cut_level=3)
        assert params.floor_diameter == pytest.approx(5.0)
        assert not (tmp_path / "zome_manifest.json").exists()

    def test_main_applies_edits_file(self, tmp_path):
        edits = tmp_path / "edits.json"
        edits.write_text(json.dumps({"deleted_edges": ["k1_i0|pole_low"]}), encoding="utf-8")
        cli = _load_cli()
        code = cli.main(
            ["--out-dir", str(tmp_path), "--n", "6", "--dmax", "2", "--angle", "45", "--no-cut", "--edits", str(edits)]
        )
        assert code == 0
        report = json.loads((tmp_path / "frame_report.json").read_text(encoding="utf-8"))
        assert report["cut_list"]["total_beams"] == 59

    def test_main_rejects_bad_config(self, tmp_path):
        config = tmp_path / "bad.json"
        config.write_text(json.dumps({"colour": "red"}), encoding="utf-8")
        cli = _load_cli()
        assert cli.main(["--config", str(config), "--out-dir", str(tmp_path)]) == 2
        assert not (tmp_path / "zome_config.json").exists()


# ---------------------------------------------------------------------------
# FreeCAD
# ---------------------------------------------------------------------------


@without_freecad
def test_builder_is_a_no_op_outside_freecad(s3_params):
    frame = synthesize_frame(s3_params)
    assert FrameModelBuilder(s3_params).build(frame) == []


@requires_freecad
class TestFreeCADSolids:
    def test_frame_solids_are_valid(self, s3_params):
        import FreeCAD  # type: ignore

        doc = FreeCAD.newDocument("ZomeTest")
        try:
            frame = synthesize_frame(s3_params)
            objects = FrameModelBuilder(s3_params, doc).build(frame)
            assert len(objects) == len(frame.visible_connectors) + len(frame.beams)
            for obj in objects:
                assert obj.Shape.isValid()
                assert obj.Shape.Volume > 0
            assert doc.getObject("Beams") is not None
        finally:
            FreeCAD.closeDocument(doc.Name)

    def test_pipeline_builds_document(self, tmp_path, s4_params):
        ctx = ZomePipeline().run(PipelineContext(params=s4_params, out_dir=tmp_path, build_freecad=True))
        assert ctx.document is not None
        assert len(ctx.freecad_objects) == len(ctx.frame.visible_connectors) + len(ctx.frame.beams)
