"""Run-folder protocol for fabrication runs.

Layout of one run::

    runs/<stamp>_<slug>/
        input/         copies of the profile drawings / cut list used
        meshes/        exported solids and per-part JSON sidecars
        annotations/   angular cut annotations (DXF)
        logs.txt
        manifest.json
        metrics.json
        summary.md
    runs/latest -> <stamp>_<slug>
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict


@dataclass
class RunPaths:
    run_id: str
    run_dir: Path
    input_dir: Path
    meshes_dir: Path
    annotations_dir: Path
    logs_path: Path
    manifest_path: Path
    metrics_path: Path
    summary_path: Path


def slugify(value: str) -> str:
    value = value.strip().lower()
    value = re.sub(r"[^a-z0-9]+", "-", value)
    value = re.sub(r"-+", "-", value)
    return value.strip("-") or "run"


def create_run_id(run_name: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{stamp}_{slugify(run_name)}"


def prepare_run_dir(runs_root: str, run_name: str) -> RunPaths:
    """Create a fresh run folder under ``runs_root``."""
    runs_path = Path(runs_root)
    runs_path.mkdir(parents=True, exist_ok=True)

    run_id = create_run_id(run_name)
    run_dir = runs_path / run_id
    suffix = 1
    while run_dir.exists():
        # two runs within the same second
        suffix += 1
        run_dir = runs_path / f"{run_id}-{suffix}"
    run_id = run_dir.name

    paths = RunPaths(
        run_id=run_id,
        run_dir=run_dir,
        input_dir=run_dir / "input",
        meshes_dir=run_dir / "meshes",
        annotations_dir=run_dir / "annotations",
        logs_path=run_dir / "logs.txt",
        manifest_path=run_dir / "manifest.json",
        metrics_path=run_dir / "metrics.json",
        summary_path=run_dir / "summary.md",
    )
    for directory in (paths.input_dir, paths.meshes_dir, paths.annotations_dir):
        directory.mkdir(parents=True, exist_ok=True)
    return paths


def copy_input_file(source_path: str, input_dir: Path) -> Path:
    """Copy a profile drawing or cut list into the run's input folder."""
    src = Path(source_path)
    dst = input_dir / src.name
    if src.resolve() != dst.resolve():
        shutil.copy2(src, dst)
    return dst


def attach_run_log(paths: RunPaths, level: int = logging.DEBUG) -> logging.Handler:
    """Mirror all log records into the run's ``logs.txt``. Caller removes it."""
    handler = logging.FileHandler(paths.logs_path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logging.getLogger().addHandler(handler)
    return handler


def detach_run_log(handler: logging.Handler) -> None:
    logging.getLogger().removeHandler(handler)
    handler.close()


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(content)


def update_latest_pointer(runs_root: str, run_dir: Path) -> None:
    runs_path = Path(runs_root)
    latest = runs_path / "latest"

    if latest.exists() or latest.is_symlink():
        if latest.is_symlink() or latest.is_file():
            latest.unlink()
        else:
            shutil.rmtree(latest)

    try:
        target = os.path.relpath(run_dir, runs_path)
        latest.symlink_to(target)
    except OSError:
        # Fallback for filesystems where symlink is not available.
        latest.mkdir(parents=True, exist_ok=True)
        with (latest / "latest_run.txt").open("w", encoding="utf-8") as f:
            f.write(run_dir.name)
