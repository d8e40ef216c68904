# utils.py — core utilities for reconstructability scoring
# CV/+Z camera convention (OpenCV/Open3D) for projection and look-at poses.
# Mesh / point-cloud loading, raycasting scene, surface sampling, hemisphere directions.

from __future__ import annotations
from typing import Dict, Tuple, Optional
import os
import numpy as np
import open3d as o3d
import yaml

# -------------------------
# Config / I/O
# -------------------------


def load_cfg(path: str) -> Dict:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}

def ensure_dir_for(path: str) -> None:
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)

def load_mesh(path: str) -> Tuple[o3d.geometry.TriangleMesh, np.ndarray, np.ndarray]:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Mesh not found: {path}")
    mesh = o3d.io.read_triangle_mesh(path)
    if mesh.is_empty() or len(mesh.triangles) == 0:
        raise ValueError(f"Failed to load mesh: {path}")
    mesh.compute_vertex_normals()

    aabb = mesh.get_axis_aligned_bounding_box()
    center = np.asarray(aabb.get_center())
    extent = np.asarray(aabb.get_extent())
    return mesh, center, extent

def load_point_cloud(path: str,
                     estimate_normals: bool = True,
                     orient_to=(0.0, 0.0, 1.0),
                     knn: int = 30) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Sample points of the proxy cloud.
    Returns:
      P : (n, 3) float32 positions
      N : (n, 3) float32 unit normals, or None if the file has none and
          estimation is disabled
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Point cloud not found: {path}")
    pcd = o3d.io.read_point_cloud(path)
    if pcd.is_empty():
        raise ValueError(f"Failed to load point cloud: {path}")

    if not pcd.has_normals() and estimate_normals:
        pcd.estimate_normals(search_param=o3d.geometry.KDTreeSearchParamKNN(knn=int(knn)))
        pcd.orient_normals_to_align_with_direction(np.asarray(orient_to, dtype=float))

    P = np.asarray(pcd.points, dtype=np.float32)
    N = _normalize_rows(np.asarray(pcd.normals, dtype=np.float32)) if pcd.has_normals() else None
    return P, N

# -------------------------
# Math helpers
# -------------------------

def _normalize(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v)
    return v / (n + 1e-9)

def _normalize_rows(v: np.ndarray, eps: float = 1e-9) -> np.ndarray:
    n = np.linalg.norm(v, axis=-1, keepdims=True)
    return v / (n + eps)

# -------------------------
# Camera intrinsics / pose
# -------------------------

def pinhole_intrinsics(width: int = 640, height: int = 480, fov_deg: float = 90.0) -> Dict[str, float]:
    fx = fy = 0.5 * width / np.tan(np.radians(fov_deg / 2))
    return dict(width=width, height=height, fx=fx, fy=fy, cx=width / 2, cy=height / 2)

def default_intr_from_cfg(cfg: Dict) -> Dict[str, float]:
    i = cfg.get("intrinsics", {})
    return pinhole_intrinsics(int(i.get("width", 640)), int(i.get("height", 480)), float(i.get("fov_deg", 90.0)))

def look_at_cv(cam_pos, target, up=np.array([0, 0, 1.0], dtype=float)):
    """
    Camera-to-world transform for **CV convention**:
      - x: right, y: down, z: forward
      - Forward axis is **+Z** pointing from camera to target.
    Returns 4x4 world transform.
    """
    cam_pos = np.asarray(cam_pos, dtype=float)
    target  = np.asarray(target,  dtype=float)
    up      = _normalize(np.asarray(up, dtype=float))

    f = _normalize(target - cam_pos)          # forward (+Z)
    if abs(np.dot(f, up)) > 0.999:
        up = np.array([0, 1, 0], float) if abs(f[2]) > 0.9 else np.array([0, 0, 1], float)
        up = _normalize(up)

    r = _normalize(np.cross(f, up))           # right  (+X)
    d = _normalize(np.cross(f, r))            # down   (+Y)

    R = np.stack([r, d, f], axis=1)           # columns = camera axes in world
    T = np.eye(4, dtype=float)
    T[:3, :3] = R
    T[:3,  3] = cam_pos
    return T

def invert_pose(T: np.ndarray) -> np.ndarray:
    """Inverse of a rigid 4x4 transform."""
    R = T[:3, :3]; t = T[:3, 3]
    Ti = np.eye(4, dtype=float)
    Ti[:3, :3] = R.T
    Ti[:3,  3] = -R.T @ t
    return Ti

# -------------------------
# Raycasting
# -------------------------

def build_clean_tensor_scene(mesh_legacy: o3d.geometry.TriangleMesh) -> o3d.t.geometry.RaycastingScene:
    """Occlusion scene for the proxy mesh (positions + indices only)."""
    if len(mesh_legacy.vertices) == 0 or len(mesh_legacy.triangles) == 0:
        raise ValueError("Proxy mesh has no triangles; cannot build raycasting scene.")
    tmesh = o3d.t.geometry.TriangleMesh()
    tmesh.vertex.positions = o3d.core.Tensor(np.asarray(mesh_legacy.vertices, dtype=np.float32))
    tmesh.triangle.indices = o3d.core.Tensor(np.asarray(mesh_legacy.triangles, dtype=np.int32))
    scene = o3d.t.geometry.RaycastingScene()
    scene.add_triangles(tmesh)
    return scene

def first_hit_distance(scene, origins: np.ndarray, dirs: np.ndarray) -> np.ndarray:
    """Distance along each (unit) ray to the first surface hit; inf on a miss."""
    if len(origins) == 0:
        return np.zeros(0, dtype=np.float32)
    rays = np.hstack([np.asarray(origins, dtype=np.float32), np.asarray(dirs, dtype=np.float32)])
    hits = scene.cast_rays(o3d.core.Tensor(rays))
    return hits["t_hit"].numpy()

# -------------------------
# Surface sampling
# -------------------------

def sample_surface_points(mesh, n=20000, seed=0):
    """
    Area-weighted samples on the proxy mesh, used when no proxy cloud is given.
    Normals are the (unit) face normals of the sampled triangles.
    """
    V = np.asarray(mesh.vertices, dtype=np.float64)
    F = np.asarray(mesh.triangles, dtype=np.int64)
    if len(V) == 0 or len(F) == 0:
        raise ValueError("Cannot sample an empty mesh.")

    tri = V[F]                                         # (m, 3, 3)
    cross = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
    area = 0.5 * np.linalg.norm(cross, axis=1)
    if not area.sum() > 0:
        raise ValueError("Mesh has zero surface area.")

    rng = np.random.default_rng(seed)
    face = rng.choice(len(F), size=int(n), p=area / area.sum())
    # uniform barycentrics via the sqrt trick
    s = np.sqrt(rng.random(int(n)))
    t = rng.random(int(n))
    w = np.stack([1.0 - s, s * (1.0 - t), s * t], axis=1)
    P = np.einsum("nk,nkd->nd", w, tri[face])
    N = _normalize_rows(cross[face])
    return P.astype(np.float32), N.astype(np.float32)

# -------------------------
# Fibonacci directions on an elevation band
# -------------------------

def fib_hemisphere_dirs(num_pts: int, phi_min_deg: float, phi_max_deg: float) -> np.ndarray:
    """Unit directions spread evenly over elevations [phi_min, phi_max] (deg above the XY plane)."""
    if num_pts <= 0:
        raise ValueError("num_pts must be > 0")
    k = np.arange(num_pts) + 0.5
    lo, hi = np.sin(np.radians([phi_min_deg, phi_max_deg]))
    z = lo + (hi - lo) * k / num_pts
    ring = np.sqrt(np.clip(1.0 - z ** 2, 0.0, None))
    az = (np.pi * (3.0 - np.sqrt(5.0))) * np.arange(num_pts)
    return _normalize_rows(np.column_stack([ring * np.cos(az), ring * np.sin(az), z]))

# -------------------------
# Exported names
# -------------------------

__all__ = [
    # config / io
    "load_cfg", "ensure_dir_for", "load_mesh", "load_point_cloud",
    # math
    "_normalize", "_normalize_rows",
    # camera
    "pinhole_intrinsics", "default_intr_from_cfg", "look_at_cv", "invert_pose",
    # raycasting
    "build_clean_tensor_scene", "first_hit_distance",
    # sampling
    "sample_surface_points", "fib_hemisphere_dirs",
]
