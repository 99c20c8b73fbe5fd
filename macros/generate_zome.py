"""Generate zome frame (FreeCAD macro).

Runs ``scripts/generate_zome.py`` inside the FreeCAD GUI with ``--freecad``
so connectors, beams and plates land in the active document.

- Prompts for config JSON and output directory (Cancel keeps defaults)
- Add/run via Macro -> Macros... -> Add -> select this file -> Execute
"""

from __future__ import annotations

import importlib.util
import os
import sys
import traceback
from pathlib import Path

try:
    import FreeCADGui  # noqa: F401
    from PySide import QtWidgets
except Exception as exc:
    raise SystemExit(f"This macro must be run inside FreeCAD GUI. Error: {exc}")

import FreeCAD  # type: ignore


def _repo_root() -> Path:
    macro_path = Path(globals().get("__file__", "")).resolve()
    if macro_path.is_file():
        return macro_path.parents[1]
    return Path.cwd()


def _ask_config(default_path: Path) -> Path | None:
    path, _ = QtWidgets.QFileDialog.getOpenFileName(
        None,
        "Zome config or share JSON (Cancel for defaults)",
        str(default_path.parent),
        "JSON (*.json);;All Files (*)",
    )
    if path:
        return Path(path)
    return default_path if default_path.exists() else None


def _ask_out_dir(default_dir: Path) -> Path:
    path = QtWidgets.QFileDialog.getExistingDirectory(None, "Output directory", str(default_dir))
    return Path(path) if path else default_dir


def main() -> None:
    repo_root = _repo_root().resolve()
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    for key in list(sys.modules):
        if key == "zome_frame" or key.startswith("zome_frame."):
            sys.modules.pop(key, None)

    config_path = _ask_config(repo_root / "configs" / "base.json")
    out_dir = _ask_out_dir(repo_root / "exports")
    argv = ["--out-dir", str(out_dir), "--freecad"]
    if config_path is not None:
        argv += ["--config", str(config_path)]

    entry_path = repo_root / "scripts" / "generate_zome.py"
    spec = importlib.util.spec_from_file_location("zome_generate", str(entry_path))
    if spec is None or spec.loader is None:
        QtWidgets.QMessageBox.critical(None, "Zome generation failed", f"Could not load: {entry_path}")
        return
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    try:
        os.chdir(str(repo_root))
        code = module.main(argv)
        doc = FreeCAD.ActiveDocument
        if doc is not None:
            FreeCADGui.ActiveDocument.ActiveView.viewAxonometric()
            FreeCADGui.ActiveDocument.ActiveView.fitAll()
        QtWidgets.QMessageBox.information(
            None, "Zome generation", f"Finished (exit code {code}).\n\nOutputs in:\n{out_dir}"
        )
    except BaseException:
        QtWidgets.QMessageBox.critical(None, "Zome generation failed", traceback.format_exc())
        raise


main()
