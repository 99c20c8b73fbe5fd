#!/usr/bin/env python3
"""Headless entry point for the zome frame generator."""

from __future__ import annotations

import logging
from pathlib import Path
import sys
from typing import List

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from zome_frame.edits import load_edits
from zome_frame.parameters import (
    load_parameters,
    parse_cli_overrides,
    solve_angle_for_height,
    solve_dmax_for_floor,
)
from zome_frame.pipeline import PipelineContext, ZomePipeline


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


def main(argv: List[str] | None = None) -> int:
    configure_logging()
    overrides, cli = parse_cli_overrides(_sanitized_args(argv))
    config_path = _resolve_config_path(cli.config)
    try:
        params = load_parameters(config_path, overrides)
        if cli.floor_diameter is not None:
            params = solve_dmax_for_floor(params, cli.floor_diameter)
        if cli.height is not None:
            params = solve_angle_for_height(params, cli.height)
        edits = load_edits(cli.edits)
    except (KeyError, ValueError, FileNotFoundError) as exc:
        logging.error("Invalid configuration: %s", exc)
        return 2
    logging.info(
        "Parameters: N=%d a=%.2f deg Dmax=%.3fm cut=%s",
        params.n,
        params.a_deg,
        params.dmax,
        params.cut_level if params.cut_active else "off",
    )
    logging.info("Edits: %s", edits.summary())

    ctx = PipelineContext(
        params=params,
        edits=edits,
        out_dir=Path(cli.out_dir),
        skip_shell_obj=cli.skip_shell_obj,
        skip_structure_obj=cli.skip_structure_obj,
        build_freecad=cli.freecad,
        manifest_name=cli.manifest_name,
        report_name=cli.report_name,
        share_name=cli.share_name,
    )
    ZomePipeline().run(ctx)
    for path in ctx.written:
        logging.info("Output: %s", path)
    return 0


def _sanitized_args(argv: List[str] | None) -> List[str]:
    raw = sys.argv[1:] if argv is None else list(argv)
    return [arg for arg in raw if arg not in {"--single-instance", "--", "-"}]


def _resolve_config_path(cli_config: str | None) -> str | None:
    if cli_config:
        path = Path(cli_config)
        if path.exists():
            return str(path)
        logging.warning("Config file %s not found; trying project default", path)
    candidate = REPO_ROOT / "configs" / "base.json"
    if candidate.exists():
        return str(candidate)
    logging.info("No configuration file; using built-in defaults")
    return None


if __name__ == "__main__":
    sys.exit(main())
