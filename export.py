# export.py — scalar-annotated point clouds, text report and CSV logs for one evaluation

from __future__ import annotations
from typing import Dict, Optional
import csv
import os
import numpy as np
import open3d as o3d
import matplotlib

from utils import ensure_dir_for

FIELDS = ("raw", "weighted", "count", "dropped")


def scalar_field(result, field: str) -> np.ndarray:
    if field == "raw":
        return np.asarray(result.raw, dtype=np.float64)
    if field == "weighted":
        return np.asarray(result.weighted, dtype=np.float64)
    if field == "count":
        return result.table.counts.astype(np.float64)
    if field == "dropped":
        return result.table.dropped.astype(np.float64)
    raise ValueError(f"unknown field: {field} (expected one of {', '.join(FIELDS)})")


def colorize(values: np.ndarray, cmap: str = "viridis", vmin=None, vmax=None) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64)
    lo = float(np.min(values)) if vmin is None and values.size else float(vmin or 0.0)
    hi = float(np.max(values)) if vmax is None and values.size else float(vmax or 1.0)
    norm = np.clip((values - lo) / max(hi - lo, 1e-12), 0.0, 1.0)
    return matplotlib.colormaps[cmap](norm)[:, :3].astype(np.float32)


def export_scored_cloud(path: str, P: np.ndarray, N: Optional[np.ndarray], values: np.ndarray,
                        name: str = "score", cmap: str = "viridis", vmin=None, vmax=None) -> None:
    """Write positions, normals, colors and the scalar itself (custom PLY attribute)."""
    ensure_dir_for(path)
    pcd = o3d.t.geometry.PointCloud()
    pcd.point.positions = o3d.core.Tensor(np.asarray(P, dtype=np.float32))
    if N is not None:
        pcd.point.normals = o3d.core.Tensor(np.asarray(N, dtype=np.float32))
    pcd.point.colors = o3d.core.Tensor(np.round(255.0 * colorize(values, cmap, vmin, vmax)).astype(np.uint8))
    pcd.point[name] = o3d.core.Tensor(np.asarray(values, dtype=np.float32).reshape(-1, 1))
    if not o3d.t.io.write_point_cloud(path, pcd):
        raise IOError(f"Failed to write point cloud: {path}")
    print(f"Saved scored cloud ({name}): {path}")

# -------------------- report --------------------

def _fmt_stats(tag: str, st) -> str:
    return (f"  {tag:10s} avg={st.mean:.6f}  min={st.minimum:.6f}  max={st.maximum:.6f}"
            f"  sum={st.total:.6f}  n={st.count}")


def format_report(result, settings, label: str = "trajectory") -> str:
    lines = [f"Reconstructability report — {label}", ""]
    lines.append(f"cameras: {result.num_cameras}  skipped: {len(result.skipped)}"
                 f"  samples: {len(result.raw)}")
    lines.append(f"max_distance: {settings.max_distance}  target_quality: {settings.target_quality}"
                 f"  max_cameras: {settings.max_cameras}  scorer: {settings.scorer}")
    lines.append("")
    lines.append("per-camera processing:")
    for k, (dt, nobs) in enumerate(zip(result.camera_times, result.camera_observed)):
        lines.append(f"  [{k + 1:03d}] time={dt * 1000:8.2f} ms  observed={nobs}")
    for k, name, reason in result.skipped:
        lines.append(f"  skipped [{k + 1:03d}] {name}: {reason}")
    lines.append("")
    lines.append("weighted score:")
    lines.append(_fmt_stats("parallel", result.parallel))
    lines.append(_fmt_stats("sequential", result.sequential))
    lines.append(f"  reductions agree: {'yes' if result.reductions_agree else 'NO'}")
    lines.append("")
    counts = result.table.counts
    lines.append(f"observations: mean={float(counts.mean()) if len(counts) else 0.0:.2f}"
                 f"  unobserved={int((counts == 0).sum())}"
                 f"  saturated={int((counts >= settings.max_cameras).sum())}"
                 f"  dropped={int(result.table.dropped.sum())}")
    lines.append(f"path length: {result.path_length:.3f}")
    lines.append("phases: " + "  ".join(f"{k}={v:.3f}s" for k, v in result.stage_times.items()))
    return "\n".join(lines) + "\n"


def write_report(path: str, text: str) -> None:
    ensure_dir_for(path)
    with open(path, "w") as f:
        f.write(text)
    print(f"Saved report: {path}")


def write_camera_log(path: str, result, cams) -> None:
    ensure_dir_for(path)
    skipped = {k for k, _, _ in result.skipped}
    with open(path, "w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["idx", "name", "x", "y", "z", "time_ms", "observed", "skipped"])
        for k, cam in enumerate(cams):
            p = cam.position
            w.writerow([k, cam.name, float(p[0]), float(p[1]), float(p[2]),
                        1000.0 * result.camera_times[k], result.camera_observed[k], int(k in skipped)])
    print(f"Saved camera log: {path}")


def summary_row(result, settings, label: str) -> Dict:
    return {
        "trajectory": label,
        "cameras": result.num_cameras,
        "skipped": len(result.skipped),
        "samples": len(result.raw),
        "path_length": result.path_length,
        "target_quality": settings.target_quality,
        "scorer": settings.scorer,
        "mean_weighted": result.parallel.mean,
        "min_weighted": result.parallel.minimum,
        "max_weighted": result.parallel.maximum,
        "mean_weighted_seq": result.sequential.mean,
        "agree": int(result.reductions_agree),
        "mean_observations": float(result.table.counts.mean()) if len(result.raw) else 0.0,
    }


def append_summary_log(path: str, row: Dict) -> None:
    ensure_dir_for(path)
    new_file = not os.path.isfile(path)
    with open(path, "a", newline="") as f:
        w = csv.DictWriter(f, fieldnames=list(row.keys()))
        if new_file:
            w.writeheader()
        w.writerow(row)
    print(f"Appended summary to: {path}")
