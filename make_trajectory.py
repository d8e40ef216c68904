# make_trajectory.py — candidate capture trajectories around a proxy mesh
# - orbit    : circular loops around the mesh centre at one or more heights
# - hemisphere: Fibonacci hemisphere viewpoints, flown band by band in azimuth order
# Output CSV: idx,x,y,z,tx,ty,tz (every pose looks at the mesh centre), readable by eval_recon.py.
#
# Examples:
#   python make_trajectory.py --cfg configs/default.yaml --mode orbit --views 48 --heights 20,35 \
#                             --out experiments/traj/orbit_2x.csv
#   python make_trajectory.py --cfg configs/default.yaml --mode hemisphere --views 96 \
#                             --out experiments/traj/hemi_96.csv

import argparse
import numpy as np

from utils import load_cfg, load_mesh, ensure_dir_for, fib_hemisphere_dirs
from trajectory import write_trajectory_csv


def orbit_positions(center, radius, heights, views_per_loop):
    th = np.linspace(0.0, 2.0 * np.pi, int(views_per_loop), endpoint=False)
    loops = []
    for h in heights:
        loops.append(np.stack([center[0] + radius * np.cos(th),
                               center[1] + radius * np.sin(th),
                               np.full_like(th, center[2] + float(h))], axis=1))
    return np.concatenate(loops, axis=0)


def hemisphere_positions(center, radius, views, phi_min_deg=15.0, phi_max_deg=75.0, bands=4):
    dirs = fib_hemisphere_dirs(int(views), phi_min_deg, phi_max_deg)
    # order: elevation band first, then azimuth, so consecutive poses stay close
    elev = np.arcsin(np.clip(dirs[:, 2], -1.0, 1.0))
    band = np.minimum((bands * (elev - elev.min()) / max(np.ptp(elev), 1e-9)).astype(int), bands - 1)
    az = np.arctan2(dirs[:, 1], dirs[:, 0])
    order = np.lexsort((az, band))
    return center + radius * dirs[order]


def main(cfg_path, mode="orbit", views=48, radius=None, heights="25", out="experiments/traj/orbit.csv",
         mesh_path=None, phi_min=15.0, phi_max=75.0, bands=4, safety_scale=1.5):
    cfg = load_cfg(cfg_path)
    mesh, center, extent = load_mesh(mesh_path or cfg["mesh_path"])
    r = float(radius) if radius else safety_scale * 0.5 * float(np.linalg.norm(extent[:2]))
    print(f"Mesh center: {center}  extent: {extent}  radius: {r:.3f}")

    if mode == "orbit":
        hs = [float(h) for h in str(heights).split(",") if h.strip()]
        pos = orbit_positions(center, r, hs, max(1, views // max(1, len(hs))))
    elif mode == "hemisphere":
        pos = hemisphere_positions(center, r, views, phi_min, phi_max, bands=bands)
    else:
        raise ValueError(f"unknown mode: {mode}")

    targets = np.tile(center, (len(pos), 1))
    ensure_dir_for(out)
    write_trajectory_csv(out, pos, targets)
    length = float(np.linalg.norm(np.diff(pos, axis=0), axis=1).sum())
    print(f"Saved {len(pos)} poses ({mode}), path length {length:.2f}: {out}")


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--cfg", required=True)
    ap.add_argument("--mesh", default=None, help="Override proxy mesh path (else cfg['mesh_path'])")
    ap.add_argument("--mode", choices=["orbit", "hemisphere"], default="orbit")
    ap.add_argument("--views", type=int, default=48)
    ap.add_argument("--radius", type=float, default=None, help="Default: safety_scale * half XY diagonal")
    ap.add_argument("--heights", default="25", help="Comma-separated loop heights above mesh centre (orbit)")
    ap.add_argument("--phi-min", type=float, default=15.0, help="Min elevation deg (hemisphere)")
    ap.add_argument("--phi-max", type=float, default=75.0, help="Max elevation deg (hemisphere)")
    ap.add_argument("--bands", type=int, default=4)
    ap.add_argument("--safety-scale", type=float, default=1.5)
    ap.add_argument("--out", default="experiments/traj/orbit.csv")
    args = ap.parse_args()

    main(args.cfg, mode=args.mode, views=args.views, radius=args.radius, heights=args.heights,
         out=args.out, mesh_path=args.mesh, phi_min=args.phi_min, phi_max=args.phi_max,
         bands=args.bands, safety_scale=args.safety_scale)
