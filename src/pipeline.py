"""Run pipeline: cut list -> fabricated parts -> run folder artifacts."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from annotations import AnnotationExportConfig, annotations_to_dxf
from cut_list import CutList, CutListReport, PartRequest, load_cut_list, run_cut_list
from fabrication import FabricationConfig, Fabricator
from fabrication_errors import AnnotationError, FabricationIssue, InvalidProfileError
from placement import MeshFileSink, MeshFormat
from profile_loader import ProfileLoader, ProfileLoaderConfig
from run_protocol import (
    RunPaths,
    attach_run_log,
    copy_input_file,
    detach_run_log,
    prepare_run_dir,
    update_latest_pointer,
    write_json,
    write_text,
)

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    runs_dir: str = "runs"
    mesh_format: MeshFormat = MeshFormat.STL
    export_annotations: bool = True
    search_paths: List[str] = field(default_factory=list)
    fabrication: FabricationConfig = field(default_factory=FabricationConfig)
    annotation_export: AnnotationExportConfig = field(default_factory=AnnotationExportConfig)


@dataclass
class PipelineResult:
    run_id: str
    run_dir: str
    status: str
    metrics_path: str
    summary_path: str
    manifest_path: str
    input_paths: List[str] = field(default_factory=list)
    mesh_paths: List[str] = field(default_factory=list)
    annotation_paths: List[str] = field(default_factory=list)
    report: Optional[CutListReport] = None


def run_pipeline_from_cut_list(
    cut_list_path: str,
    config: Optional[PipelineConfig] = None,
) -> PipelineResult:
    """Fabricate a cut list file into a new run folder."""
    cut_list = load_cut_list(cut_list_path)
    return run_pipeline(cut_list, config=config, input_files=[cut_list_path])


def run_pipeline_for_part(
    request: PartRequest,
    config: Optional[PipelineConfig] = None,
) -> PipelineResult:
    """Fabricate a single part request into a new run folder."""
    cut_list = CutList(name=request.part_name, requests=[request])
    return run_pipeline(cut_list, config=config)


def run_pipeline(
    cut_list: CutList,
    config: Optional[PipelineConfig] = None,
    input_files: Optional[List[str]] = None,
) -> PipelineResult:
    if config is None:
        config = PipelineConfig()

    started = time.perf_counter()
    paths = prepare_run_dir(config.runs_dir, cut_list.name)
    log_handler = attach_run_log(paths)
    try:
        loader = ProfileLoader(ProfileLoaderConfig(
            search_paths=list(cut_list.search_paths) + list(config.search_paths),
        ))
        input_paths = [str(copy_input_file(p, paths.input_dir)) for p in (input_files or [])]
        input_paths.extend(_copy_profiles(cut_list, loader, paths))

        sink = MeshFileSink(str(paths.meshes_dir), file_format=config.mesh_format)
        fabricator = Fabricator(loader=loader, sink=sink, config=config.fabrication)

        annotation_paths: List[str] = []

        def _collect(entry):
            if entry.ok and config.export_annotations and entry.result.annotations:
                dxf_path = paths.annotations_dir / f"{entry.request.part_name}_cuts.dxf"
                try:
                    annotation_paths.append(annotations_to_dxf(
                        entry.result.annotations, str(dxf_path), config.annotation_export,
                    ))
                except AnnotationError as exc:
                    logger.warning("Annotation export failed for %s: %s",
                                   entry.request.part_name, exc)
                    entry.result.issues.append(FabricationIssue(
                        code="annotation",
                        severity="warning",
                        message=str(exc),
                        item=entry.request.part_name,
                    ))

        logger.info("Running cut list %s (%d parts)", cut_list.name, len(cut_list.requests))
        report = run_cut_list(cut_list, fabricator=fabricator, on_result=_collect)
        mesh_paths = list(sink.paths)

        elapsed = time.perf_counter() - started
        status = _run_status(report)

        metrics_payload: Dict[str, object] = {
            "run_id": paths.run_id,
            "status": status,
            "elapsed_s": round(elapsed, 3),
            "parts": [_entry_metrics(e) for e in report.entries],
            "counts": {
                "requests": len(report.entries),
                "succeeded": len(report.succeeded),
                "failed": len(report.failed),
                "solids": sum(len(e.result.solids) for e in report.succeeded),
                "mesh_files": len(mesh_paths),
                "annotation_files": len(annotation_paths),
            },
        }
        write_json(paths.metrics_path, metrics_payload)

        summary = _build_summary(report, paths.run_id, status, elapsed)
        write_text(paths.summary_path, summary)

        manifest = {
            "run_id": paths.run_id,
            "cut_list": cut_list.name,
            "status": status,
            "created_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "config": {
                "runs_dir": config.runs_dir,
                "mesh_format": config.mesh_format.value,
                "export_annotations": config.export_annotations,
                "search_paths": loader.config.search_paths,
                "fabrication": asdict(config.fabrication),
            },
            "inputs": input_paths,
            "artifacts": {
                "metrics": str(paths.metrics_path),
                "summary": str(paths.summary_path),
                "logs": str(paths.logs_path),
                "meshes": mesh_paths,
                "annotations": annotation_paths,
            },
        }
        write_json(paths.manifest_path, manifest)
        update_latest_pointer(config.runs_dir, paths.run_dir)
    finally:
        detach_run_log(log_handler)

    return PipelineResult(
        run_id=paths.run_id,
        run_dir=str(paths.run_dir),
        status=status,
        metrics_path=str(paths.metrics_path),
        summary_path=str(paths.summary_path),
        manifest_path=str(paths.manifest_path),
        input_paths=input_paths,
        mesh_paths=mesh_paths,
        annotation_paths=annotation_paths,
        report=report,
    )


def _copy_profiles(cut_list: CutList, loader: ProfileLoader, paths: RunPaths) -> List[str]:
    copied = []
    seen = set()
    for request in cut_list.requests:
        try:
            source = loader.resolve_path(request.profile)
        except InvalidProfileError:
            # reported when the part itself is fabricated
            continue
        if source in seen:
            continue
        seen.add(source)
        copied.append(str(copy_input_file(str(source), paths.input_dir)))
    return copied


def _run_status(report: CutListReport) -> str:
    if not report.entries:
        return "empty"
    if not report.succeeded:
        return "failed"
    if report.failed:
        return "partial"
    if any(e.result.issues for e in report.succeeded):
        return "warning"
    return "ok"


def _entry_metrics(entry) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "part_name": entry.request.part_name,
        "profile": entry.request.profile,
        "length": entry.request.length,
        "ok": entry.ok,
    }
    if entry.ok:
        payload.update(entry.result.to_metadata())
    else:
        payload["error"] = entry.error
    return payload


def _build_summary(
    report: CutListReport,
    run_id: str,
    status: str,
    elapsed_s: float,
) -> str:
    issues = [i for e in report.succeeded for i in e.result.issues]
    lines = [
        f"# Run {run_id}",
        "",
        f"- Status: **{status.upper()}**",
        f"- Duration: {elapsed_s:.2f}s",
        f"- Parts: {len(report.succeeded)} of {len(report.entries)} fabricated",
        f"- Solids: {sum(len(e.result.solids) for e in report.succeeded)}",
        f"- Issues: {len(issues)}",
        "",
        "## Parts",
    ]

    if not report.entries:
        lines.append("- None")
    for entry in report.entries:
        req = entry.request
        cuts = (
            f"L {req.left_cut.miter:g}/{req.left_cut.tilt:g}, "
            f"R {req.right_cut.miter:g}/{req.right_cut.tilt:g}"
        )
        if entry.ok:
            res = entry.result
            lines.append(
                f"- {req.part_name}: {req.profile} x {req.length:g} ({cuts}) "
                f"W={res.width:.3f} H={res.height:.3f}, {len(res.solids)} solid(s)"
            )
        else:
            lines.append(f"- {req.part_name}: FAILED ({entry.error})")

    lines.extend(["", "## Issues"])
    if not issues:
        lines.append("- None")
    else:
        for i in issues[:20]:
            item = f" ({i.item})" if i.item else ""
            lines.append(f"- [{i.severity}] {i.code}{item}: {i.message}")

    return "\n".join(lines) + "\n"
