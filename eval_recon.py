# eval_recon.py — reconstructability of a camera trajectory over a proxy surface
# For every sample of the proxy cloud: collect the rays of the cameras that see it
# (occlusion-tested against the proxy mesh), score the ray set, weight it against a
# target quality, and report sum/min/max via the parallel and the sequential reducer.
#
# Examples:
#   python eval_recon.py --cfg configs/default.yaml
#   python eval_recon.py --cfg configs/default.yaml --trajectory experiments/traj/orbit.csv \
#                        --target-quality 4 --export-field count --out-cloud experiments/results/count.ply
#   python eval_recon.py --cfg configs/default.yaml --trajectory scenes/flight_01/ --viz

import argparse, os, sys
import numpy as np

from utils import (
    load_cfg, load_mesh, load_point_cloud, build_clean_tensor_scene,
    default_intr_from_cfg, sample_surface_points,
)
from trajectory import load_trajectory
from pipeline import EvalSettings, evaluate_trajectory
from export import (
    FIELDS, scalar_field, export_scored_cloud, format_report, write_report,
    write_camera_log, summary_row, append_summary_log,
)


def load_inputs(cfg, trajectory_path=None, mesh_path=None, cloud_path=None,
                surf_samples=20000, seed=0):
    """Everything read from disk; any failure here happens before computation starts."""
    mesh_path = mesh_path or cfg.get("mesh_path")
    traj_path = trajectory_path or cfg.get("trajectory_path")
    cloud_path = cloud_path or cfg.get("cloud_path")
    if not mesh_path:
        raise ValueError("no mesh path (cfg['mesh_path'] or --mesh)")
    if not traj_path:
        raise ValueError("no trajectory path (cfg['trajectory_path'] or --trajectory)")

    mesh, _, _ = load_mesh(mesh_path)
    scene = build_clean_tensor_scene(mesh)

    if cloud_path:
        cloud_cfg = cfg.get("cloud", {}) or {}
        P, N = load_point_cloud(cloud_path,
                                estimate_normals=bool(cloud_cfg.get("estimate_normals", True)),
                                orient_to=cloud_cfg.get("orient_normals_to", (0.0, 0.0, 1.0)))
    else:
        print(f"No cloud given; sampling {surf_samples} points on the proxy mesh…")
        P, N = sample_surface_points(mesh, n=int(surf_samples), seed=seed)

    intr = default_intr_from_cfg(cfg)
    target = cfg.get("look_at")
    default_target = np.asarray(target, dtype=float) if target is not None else P.mean(axis=0)
    cams = load_trajectory(traj_path, intr=intr, default_target=default_target,
                           fallback_fov=float(cfg.get("intrinsics", {}).get("fov_deg", 90.0)))
    return mesh, scene, P, N, cams, traj_path


def main(cfg_path,
         trajectory_path=None,
         mesh_path=None,
         cloud_path=None,
         surf_samples=20000,
         seed=0,
         overrides=None,
         export_field="raw",
         out_cloud=None,
         report_path=None,
         camera_log=None,
         summary_csv=None,
         viz=False,
         verbose=True):

    cfg = load_cfg(cfg_path)
    settings = EvalSettings.from_cfg(cfg)
    for k, v in (overrides or {}).items():
        if v is not None:
            setattr(settings, k, v)

    out_cfg = cfg.get("output", {}) or {}
    out_cloud = out_cloud or out_cfg.get("cloud")
    report_path = report_path or out_cfg.get("report")
    camera_log = camera_log or out_cfg.get("camera_log")
    summary_csv = summary_csv or out_cfg.get("summary_csv")

    mesh, scene, P, N, cams, traj_path = load_inputs(cfg, trajectory_path, mesh_path, cloud_path,
                                                      surf_samples=surf_samples, seed=seed)
    label = os.path.splitext(os.path.basename(os.path.normpath(traj_path)))[0]
    print(f"Trajectory: {label} | cameras: {len(cams)} | samples: {len(P)} | scorer: {settings.scorer}")

    result = evaluate_trajectory(scene, cams, P, N, settings, verbose=verbose)

    text = format_report(result, settings, label=label)
    print(text)
    if report_path:
        write_report(report_path, text)
    if camera_log:
        write_camera_log(camera_log, result, cams)
    if summary_csv:
        append_summary_log(summary_csv, summary_row(result, settings, label))
    if out_cloud:
        vmax = settings.max_cameras if export_field in ("count", "dropped") else None
        export_scored_cloud(out_cloud, P, N, scalar_field(result, export_field),
                            name=export_field, vmin=0.0, vmax=vmax)

    if viz:
        from visualize import show_scored_scene
        show_scored_scene(mesh, P, scalar_field(result, export_field), cams, window_name=f"{label} — {export_field}")
    return result


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--cfg", required=True, help="Path to config (mesh/cloud/trajectory paths, parameters)")
    ap.add_argument("--trajectory", default=None, help="Trajectory CSV or per-frame scene directory")
    ap.add_argument("--mesh", default=None, help="Override proxy mesh path (else cfg['mesh_path'])")
    ap.add_argument("--cloud", default=None, help="Override proxy point cloud path (else cfg['cloud_path'])")
    ap.add_argument("--surf-samples", type=int, default=20000, help="Mesh samples when no cloud is given")
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--max-distance", type=float, default=None)
    ap.add_argument("--target-quality", type=float, default=None)
    ap.add_argument("--max-cameras", type=int, default=None)
    ap.add_argument("--scorer", default=None, help="smith | gaussian")
    ap.add_argument("--device", default=None, help="Open3D device for the parallel reducer, e.g. CPU:0, CUDA:0")
    ap.add_argument("--export-field", choices=list(FIELDS), default="raw")
    ap.add_argument("--out-cloud", default=None, help="PLY with the exported per-sample scalar")
    ap.add_argument("--report", default=None)
    ap.add_argument("--camera-log", default=None)
    ap.add_argument("--summary-csv", default=None, help="Append one summary row per trajectory here")
    ap.add_argument("--viz", action="store_true", help="Open Open3D window with the scored samples")
    ap.add_argument("--quiet", action="store_true")
    args = ap.parse_args()

    overrides = dict(max_distance=args.max_distance, target_quality=args.target_quality,
                     max_cameras=args.max_cameras, scorer=args.scorer, device=args.device)
    try:
        main(args.cfg,
             trajectory_path=args.trajectory,
             mesh_path=args.mesh,
             cloud_path=args.cloud,
             surf_samples=args.surf_samples,
             seed=args.seed,
             overrides=overrides,
             export_field=args.export_field,
             out_cloud=args.out_cloud,
             report_path=args.report,
             camera_log=args.camera_log,
             summary_csv=args.summary_csv,
             viz=args.viz,
             verbose=not args.quiet)
    except (FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
