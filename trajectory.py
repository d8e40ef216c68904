# trajectory.py — camera poses along a capture trajectory
# Loads an ordered trajectory either from a flat CSV (idx,x,y,z[,tx,ty,tz])
# or from a scene directory with one YAML file per frame.

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import csv
import glob
import os
import numpy as np

from utils import load_cfg, pinhole_intrinsics, look_at_cv, invert_pose


class TrajectoryError(ValueError):
    pass


@dataclass(frozen=True)
class CameraPose:
    name: str
    intr: Dict[str, float]
    world_to_cam: np.ndarray

    @property
    def position(self) -> np.ndarray:
        R = self.world_to_cam[:3, :3]; t = self.world_to_cam[:3, 3]
        return -R.T @ t

    @property
    def cam_T(self) -> np.ndarray:
        """Camera-to-world transform (as returned by look_at_cv)."""
        return invert_pose(self.world_to_cam)

    def project(self, P: np.ndarray):
        """World points -> (u, v, z) pixel coordinates and camera depth."""
        R = self.world_to_cam[:3, :3]; t = self.world_to_cam[:3, 3]
        Xc = np.asarray(P, dtype=np.float64) @ R.T + t
        z = Xc[:, 2]
        safe_z = np.where(np.abs(z) < 1e-12, 1e-12, z)
        u = float(self.intr["fx"]) * Xc[:, 0] / safe_z + float(self.intr["cx"])
        v = float(self.intr["fy"]) * Xc[:, 1] / safe_z + float(self.intr["cy"])
        return u, v, z

    def in_frustum(self, P: np.ndarray) -> np.ndarray:
        u, v, z = self.project(P)
        W, H = float(self.intr["width"]), float(self.intr["height"])
        return (z > 0) & (u >= 0) & (u < W) & (v >= 0) & (v < H)


def pose_from_look_at(position, target, intr: Dict[str, float], name: str = "") -> CameraPose:
    cam_T = look_at_cv(position, target)
    return CameraPose(name=name, intr=dict(intr), world_to_cam=invert_pose(cam_T))


def degenerate_reason(cam: CameraPose, det_tol: float = 1e-3) -> Optional[str]:
    """Why a pose cannot observe anything, or None if it is usable."""
    W, H = cam.intr.get("width", 0), cam.intr.get("height", 0)
    if not (W > 0 and H > 0):
        return f"zero-size image ({W}x{H})"
    f = np.array([cam.intr.get(k, np.nan) for k in ("fx", "fy", "cx", "cy")], dtype=float)
    if not np.all(np.isfinite(f)) or f[0] <= 0 or f[1] <= 0:
        return "invalid focal length / principal point"
    T = np.asarray(cam.world_to_cam, dtype=float)
    if T.shape != (4, 4) or not np.all(np.isfinite(T)):
        return "non-finite world-to-camera transform"
    R = T[:3, :3]
    det = float(np.linalg.det(R))
    if abs(det - 1.0) > det_tol or not np.allclose(R @ R.T, np.eye(3), atol=1e-3):
        return f"singular or non-rigid rotation (det={det:.3g})"
    return None


def trajectory_length(cams: Sequence[CameraPose]) -> float:
    """Polyline length through the camera centres; poses without a finite centre are left out."""
    pos = np.array([c.position for c in cams], dtype=float).reshape(-1, 3)
    pos = pos[np.all(np.isfinite(pos), axis=1)]
    if len(pos) < 2:
        return 0.0
    return float(np.linalg.norm(np.diff(pos, axis=0), axis=1).sum())

# -------------------- loaders --------------------

def read_trajectory_csv(path: str, intr: Dict[str, float], default_target=None) -> List[CameraPose]:
    """Header: x,y,z required; idx and tx,ty,tz (look-at target) optional."""
    cams = []
    with open(path, "r", newline="") as f:
        r = csv.DictReader(f)
        if r.fieldnames is None:
            raise TrajectoryError(f"{path} is empty")
        cols = {c.strip().lower() for c in r.fieldnames}
        if not {"x", "y", "z"}.issubset(cols):
            raise TrajectoryError(f"{path} must have columns x,y,z")
        has_target = {"tx", "ty", "tz"}.issubset(cols)
        if not has_target and default_target is None:
            raise TrajectoryError(f"{path} has no tx,ty,tz columns and no default target was given")

        for k, row in enumerate(r):
            row = {c.strip().lower(): v for c, v in row.items()}
            try:
                pos = [float(row["x"]), float(row["y"]), float(row["z"])]
                tgt = [float(row["tx"]), float(row["ty"]), float(row["tz"])] if has_target else default_target
            except (TypeError, ValueError) as e:
                raise TrajectoryError(f"{path}: malformed row {k + 1}: {e}") from e
            name = str(row.get("idx") or k)
            cams.append(pose_from_look_at(pos, tgt, intr, name=name))
    return cams


def _frame_intrinsics(frame: Dict, fallback_fov: float) -> Dict[str, float]:
    W, H = int(frame.get("width", 0)), int(frame.get("height", 0))
    if all(k in frame for k in ("fx", "fy")):
        return dict(width=W, height=H, fx=float(frame["fx"]), fy=float(frame["fy"]),
                    cx=float(frame.get("cx", W / 2)), cy=float(frame.get("cy", H / 2)))
    if W <= 0 or H <= 0:
        # intrinsics cannot be derived; degenerate_reason reports it
        return dict(width=W, height=H, fx=0.0, fy=0.0, cx=0.0, cy=0.0)
    return pinhole_intrinsics(W, H, float(frame.get("fov_deg", fallback_fov)))


def read_trajectory_dir(path: str, fallback_fov: float = 90.0) -> List[CameraPose]:
    """One YAML per frame, ordered by filename."""
    files = sorted(glob.glob(os.path.join(path, "*.yaml")) + glob.glob(os.path.join(path, "*.yml")))
    cams = []
    for fp in files:
        frame = load_cfg(fp)
        name = os.path.splitext(os.path.basename(fp))[0]
        intr = _frame_intrinsics(frame, fallback_fov)
        if "world_to_cam" in frame:
            T = np.asarray(frame["world_to_cam"], dtype=float)
            if T.shape != (4, 4):
                raise TrajectoryError(f"{fp}: world_to_cam must be 4x4")
            cams.append(CameraPose(name=name, intr=intr, world_to_cam=T))
        elif "position" in frame and "target" in frame:
            cams.append(pose_from_look_at(frame["position"], frame["target"], intr, name=name))
        else:
            raise TrajectoryError(f"{fp}: needs world_to_cam or position+target")
    return cams


def load_trajectory(path: str, intr: Optional[Dict[str, float]] = None, default_target=None,
                    fallback_fov: float = 90.0) -> List[CameraPose]:
    if os.path.isdir(path):
        cams = read_trajectory_dir(path, fallback_fov=fallback_fov)
    elif os.path.isfile(path):
        cams = read_trajectory_csv(path, intr or pinhole_intrinsics(fov_deg=fallback_fov), default_target)
    else:
        raise FileNotFoundError(f"Trajectory not found: {path}")
    if not cams:
        raise TrajectoryError(f"No cameras found in {path}")
    return cams


def write_trajectory_csv(path: str, positions: np.ndarray, targets: np.ndarray) -> None:
    with open(path, "w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["idx", "x", "y", "z", "tx", "ty", "tz"])
        for i, (p, t) in enumerate(zip(positions, targets)):
            w.writerow([i, float(p[0]), float(p[1]), float(p[2]), float(t[0]), float(t[1]), float(t[2])])
