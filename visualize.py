# visualize.py — scored samples + trajectory in Open3D
# Samples are colored by the chosen per-sample scalar; the trajectory is drawn as a
# polyline with camera frustums (every Nth pose).
import argparse
import numpy as np
import open3d as o3d

from utils import load_cfg, load_mesh
from export import colorize

# ---------- small viz helpers ----------
_FRUSTUM_EDGES = np.array([
    [0, 1], [1, 2], [2, 3], [3, 0],          # image rectangle at `far`
    [4, 0], [4, 1], [4, 2], [4, 3],          # apex (camera centre) -> corners
], dtype=np.int32)

def make_frustum(intr, cam_T, far=0.30, color=(0.2, 0.8, 0.2)):
    """Pyramid from the camera centre to the image corners unprojected at depth `far`."""
    K = np.array([[intr["fx"], 0.0, intr["cx"]],
                  [0.0, intr["fy"], intr["cy"]],
                  [0.0, 0.0, 1.0]], dtype=float)
    W, H = float(intr["width"]), float(intr["height"])
    pix = np.array([[0, 0, 1], [W, 0, 1], [W, H, 1], [0, H, 1]], dtype=float)
    corners = far * (np.linalg.inv(K) @ pix.T).T
    pts_c = np.vstack([corners, np.zeros((1, 3))])
    pts_w = pts_c @ cam_T[:3, :3].T + cam_T[:3, 3]

    ls = o3d.geometry.LineSet(o3d.utility.Vector3dVector(pts_w), o3d.utility.Vector2iVector(_FRUSTUM_EDGES))
    ls.paint_uniform_color(color)
    return ls

def make_path(positions, color=(1.0, 0.55, 0.10)):
    pts = np.asarray(positions, dtype=float)
    lines = [[i, i + 1] for i in range(len(pts) - 1)]
    ls = o3d.geometry.LineSet(
        points=o3d.utility.Vector3dVector(pts),
        lines=o3d.utility.Vector2iVector(np.asarray(lines, dtype=np.int32).reshape(-1, 2))
    )
    ls.paint_uniform_color(color)
    return ls

def scored_cloud(P, values, cmap="viridis", vmin=None, vmax=None):
    pcd = o3d.geometry.PointCloud()
    pcd.points = o3d.utility.Vector3dVector(np.asarray(P, dtype=float))
    pcd.colors = o3d.utility.Vector3dVector(colorize(values, cmap, vmin, vmax).astype(float))
    return pcd

def build_geoms(mesh, P, values, cams, frustum_stride=8, frustum_far=None):
    geoms = []
    if mesh is not None:
        m = o3d.geometry.TriangleMesh(mesh)
        m.paint_uniform_color((0.75, 0.75, 0.75))
        geoms.append(m)
    geoms.append(scored_cloud(P, values))
    if cams:
        geoms.append(make_path([c.position for c in cams]))
        center = np.asarray(P).mean(axis=0)
        for c in cams[::max(1, frustum_stride)]:
            dist = float(np.linalg.norm(center - c.position))
            far = frustum_far or max(0.18, 0.15 * dist)
            geoms.append(make_frustum(c.intr, c.cam_T, far=far))
    return geoms

def show_scored_scene(mesh, P, values, cams, window_name="Reconstructability", frustum_stride=8):
    geoms = build_geoms(mesh, P, values, cams, frustum_stride=frustum_stride)
    center = np.asarray(P).mean(axis=0)
    o3d.visualization.draw_geometries(
        geoms,
        window_name=window_name,
        width=1400, height=900,
        lookat=center.tolist(), front=[0, -1, 0], up=[0, 0, 1], zoom=0.7
    )

# ---------- main ----------
def main(cfg_path, cloud_ply, field="raw", mesh_path=None):
    """Re-open a cloud written by eval_recon.py --out-cloud."""
    cfg = load_cfg(cfg_path)
    pcd = o3d.t.io.read_point_cloud(cloud_ply)
    if field not in pcd.point:
        raise ValueError(f"{cloud_ply} has no '{field}' attribute")
    P = pcd.point.positions.numpy()
    values = pcd.point[field].numpy().reshape(-1)
    mesh = None
    if mesh_path or cfg.get("mesh_path"):
        mesh, _, _ = load_mesh(mesh_path or cfg["mesh_path"])
    show_scored_scene(mesh, P, values, [], window_name=f"{cloud_ply} — {field}")

if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--cfg", required=True)
    ap.add_argument("--cloud", required=True, help="PLY written by eval_recon.py --out-cloud")
    ap.add_argument("--field", default="raw")
    ap.add_argument("--mesh", default=None)
    args = ap.parse_args()
    main(args.cfg, args.cloud, field=args.field, mesh_path=args.mesh)
