"""Synthetic scenes shared by the test modules."""
from __future__ import annotations

import numpy as np
import open3d as o3d

from trajectory import pose_from_look_at
from utils import pinhole_intrinsics


def square_mesh(size: float = 1.0, z: float = 0.0) -> o3d.geometry.TriangleMesh:
    h = 0.5 * size
    V = np.array([[-h, -h, z], [h, -h, z], [h, h, z], [-h, h, z]], dtype=np.float64)
    F = np.array([[0, 1, 2], [0, 2, 3]], dtype=np.int32)
    mesh = o3d.geometry.TriangleMesh(o3d.utility.Vector3dVector(V), o3d.utility.Vector3iVector(F))
    mesh.compute_vertex_normals()
    return mesh


def ring_cameras(n: int, radius: float, height: float, target=(0.0, 0.0, 0.0), fov_deg: float = 90.0):
    intr = pinhole_intrinsics(640, 480, fov_deg)
    th = np.linspace(0.0, 2.0 * np.pi, n, endpoint=False)
    return [
        pose_from_look_at([radius * np.cos(t), radius * np.sin(t), height], target, intr, name=f"{k:03d}")
        for k, t in enumerate(th)
    ]
