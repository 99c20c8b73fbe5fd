"""Pipeline architecture for the zome generator.

Breaks generation into composable, testable steps. Each step receives a
shared ``PipelineContext`` and can read/write its fields. Steps declare
their own ``should_run`` predicate so the runner skips irrelevant stages.

Usage::

    from zome_frame.pipeline import ZomePipeline, PipelineContext

    ctx = PipelineContext(params=my_params, out_dir=Path("exports"))
    pipeline = ZomePipeline()          # default steps
    pipeline.run(ctx)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .edits import EditState
from .frame import FrameResult, FrameSynthesizer
from .parameters import ZomeParameters
from .topology import Topology, get_topology, validate_topology
from .zonohedron import geometry_summary

__all__ = [
    "PipelineContext",
    "PipelineStep",
    "ZomePipeline",
    "TopologyStep",
    "FrameStep",
    "ReportStep",
    "ShellObjExportStep",
    "StructureObjExportStep",
    "ManifestExportStep",
    "ShareExportStep",
    "FreeCADModelStep",
    "default_steps",
]


# ---------------------------------------------------------------------------
# Pipeline context: shared state between steps
# ---------------------------------------------------------------------------


@dataclass
class PipelineContext:
    """Mutable state bag passed through every pipeline step."""

    params: ZomeParameters
    edits: EditState = field(default_factory=EditState)
    out_dir: Path = field(default_factory=lambda: Path("exports"))

    # Export control flags (typically populated from CLI).
    skip_shell_obj: bool = False
    skip_structure_obj: bool = False
    build_freecad: bool = False
    manifest_name: str = "zome_manifest.json"
    report_name: str = "frame_report.json"
    share_name: str = "zome_config.json"

    # Populated by TopologyStep.
    topology: Topology | None = None
    summary: Dict[str, Any] = field(default_factory=dict)
    validation: Dict[str, Any] = field(default_factory=dict)

    # Populated by FrameStep.
    frame: FrameResult | None = None
    report: Dict[str, Any] = field(default_factory=dict)

    # Populated by export/builder steps.
    written: List[Path] = field(default_factory=list)
    document: Any = None
    freecad_objects: List[Any] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Step base class
# ---------------------------------------------------------------------------


class PipelineStep(ABC):
    """A single composable stage of the zome generation pipeline."""

    name: str = "unnamed"

    def should_run(self, ctx: PipelineContext) -> bool:
        """Return ``False`` to skip this step for the current context."""
        return True

    @abstractmethod
    def execute(self, ctx: PipelineContext) -> None:
        """Perform the step's work, mutating *ctx* as needed."""
        ...


# ---------------------------------------------------------------------------
# Concrete steps
# ---------------------------------------------------------------------------


class TopologyStep(PipelineStep):
    """Build (or fetch cached) shell topology and validate it."""

    name = "topology"

    def execute(self, ctx: PipelineContext) -> None:
        ctx.summary = geometry_summary(ctx.params)
        logging.info(
            "Zome N=%d a=%.2f deg Dmax=%.3fm: h1=%.4fm Htotal=%.4fm, %d faces",
            ctx.params.n,
            ctx.params.a_deg,
            ctx.params.dmax,
            ctx.summary["h1"],
            ctx.summary["htotal"],
            ctx.summary["faces"],
        )
        ctx.topology = get_topology(ctx.params)
        ctx.validation = validate_topology(ctx.topology, ctx.params)
        _log_validation_report(ctx.validation)


class FrameStep(PipelineStep):
    """Synthesize connectors, beams, junctions and plates."""

    name = "frame"

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.params.structure_visible

    def execute(self, ctx: PipelineContext) -> None:
        synth = FrameSynthesizer(ctx.params, ctx.edits)
        try:
            ctx.frame = synth.build(ctx.topology)
        finally:
            synth.dispose()
        if ctx.frame.skipped:
            logging.info("Skipped beams: %s", dict(ctx.frame.skipped))


class ReportStep(PipelineStep):
    """Write the frame report and CSV cut list."""

    name = "reports"

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.frame is not None and not ctx.frame.is_empty

    def execute(self, ctx: PipelineContext) -> None:
        from .reports import write_cut_list_csv, write_frame_report

        path = ctx.out_dir / ctx.report_name
        ctx.report = write_frame_report(ctx.frame, path)
        ctx.written.append(path)
        csv_path = path.with_name(path.stem + "_cut_list.csv")
        write_cut_list_csv(ctx.report["cut_list"], csv_path)
        ctx.written.append(csv_path)


class ShellObjExportStep(PipelineStep):
    """Export the shell as OBJ, one group per ring level."""

    name = "shell_obj_export"

    def should_run(self, ctx: PipelineContext) -> bool:
        return not ctx.skip_shell_obj

    def execute(self, ctx: PipelineContext) -> None:
        from .export import export_shell_obj, shell_obj_filename

        path = ctx.out_dir / shell_obj_filename(ctx.params)
        ctx.written.append(export_shell_obj(ctx.params, path))


class StructureObjExportStep(PipelineStep):
    """Export connectors, beams and plates as OBJ."""

    name = "structure_obj_export"

    def should_run(self, ctx: PipelineContext) -> bool:
        if ctx.skip_structure_obj:
            return False
        if ctx.frame is None or ctx.frame.is_empty:
            logging.info("No structure generated; skipping structure OBJ export")
            return False
        return True

    def execute(self, ctx: PipelineContext) -> None:
        from .export import export_structure_obj, structure_obj_filename

        path = ctx.out_dir / structure_obj_filename(ctx.params)
        ctx.written.append(export_structure_obj(ctx.frame, path))


class ManifestExportStep(PipelineStep):
    """Write JSON manifest of structural pieces."""

    name = "manifest_export"

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.frame is not None and not ctx.frame.is_empty

    def execute(self, ctx: PipelineContext) -> None:
        from .export import export_manifest

        path = ctx.out_dir / ctx.manifest_name
        export_manifest(ctx.frame, path)
        ctx.written.append(path)


class ShareExportStep(PipelineStep):
    """Write the JSON v1.0 share file and log the share query."""

    name = "share_export"

    def execute(self, ctx: PipelineContext) -> None:
        from .share import build_share_query, save_share_json

        path = ctx.out_dir / ctx.share_name
        save_share_json(ctx.params, path)
        ctx.written.append(path)
        logging.info("Share query: ?%s", build_share_query(ctx.params))


class FreeCADModelStep(PipelineStep):
    """Create Part solids for the frame inside a FreeCAD document."""

    name = "freecad_model"

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.build_freecad and ctx.frame is not None and not ctx.frame.is_empty

    def execute(self, ctx: PipelineContext) -> None:
        from .freecad_builder import FrameModelBuilder

        try:
            builder = FrameModelBuilder(ctx.params)
            ctx.freecad_objects = builder.build(ctx.frame)
            ctx.document = builder.document
        except Exception as exc:
            logging.warning("FreeCAD model generation failed: %s", exc)


# ---------------------------------------------------------------------------
# Pipeline orchestrator
# ---------------------------------------------------------------------------


def default_steps() -> List[PipelineStep]:
    """Return the standard ordered list of pipeline steps."""
    return [
        TopologyStep(),
        FrameStep(),
        ReportStep(),
        ShellObjExportStep(),
        StructureObjExportStep(),
        ManifestExportStep(),
        ShareExportStep(),
        FreeCADModelStep(),
    ]


class ZomePipeline:
    """Orchestrates the full zome generation flow.

    Users can supply a custom step list to re-order, insert, or remove stages.
    """

    def __init__(self, steps: List[PipelineStep] | None = None) -> None:
        self.steps = steps if steps is not None else default_steps()

    @property
    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    def run(self, ctx: PipelineContext) -> PipelineContext:
        """Execute all enabled steps in order."""
        ctx.out_dir.mkdir(parents=True, exist_ok=True)
        for step in self.steps:
            if step.should_run(ctx):
                logging.info("[pipeline] %s", step.name)
                step.execute(ctx)
        return ctx

    def insert_before(self, reference_name: str, step: PipelineStep) -> None:
        """Insert *step* before *reference_name*; append if it is absent."""
        for i, existing in enumerate(self.steps):
            if existing.name == reference_name:
                self.steps.insert(i, step)
                return
        self.steps.append(step)

    def insert_after(self, reference_name: str, step: PipelineStep) -> None:
        """Insert *step* after *reference_name*; append if it is absent."""
        for i, existing in enumerate(self.steps):
            if existing.name == reference_name:
                self.steps.insert(i + 1, step)
                return
        self.steps.append(step)

    def remove(self, step_name: str) -> None:
        self.steps = [s for s in self.steps if s.name != step_name]

    def replace(self, step_name: str, new_step: PipelineStep) -> None:
        for i, existing in enumerate(self.steps):
            if existing.name == step_name:
                self.steps[i] = new_step
                return
        self.steps.append(new_step)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _log_validation_report(report: Dict[str, Any]) -> None:
    logging.info(
        "Topology check: %d/%d faces, %d vertices, %d edges (%d unique face edges)",
        report.get("faces", 0),
        report.get("expected_faces", 0),
        report.get("vertices", 0),
        report.get("edges", 0),
        report.get("unique_face_edges", 0),
    )
    outward = report.get("outward_faces", [])
    if outward:
        logging.error("Faces with reversed normals: %d", len(outward))
