# observations.py — per-sample observation rays
# ObservationTable: fixed-capacity rows (one per sample), filled one camera pass at a time.
# observe_camera: visibility of every sample from one pose (range, facing, frustum, occlusion).
# compact_rays: per-row normalisation + de-duplication ahead of scoring.

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import numpy as np

from utils import _normalize_rows, first_hit_distance

MAX_CAMERAS = 32


class ObservationTable:
    """
    Row i holds the rays (sample -> camera vectors) of the cameras that observed
    sample i, in trajectory order. Capacity is fixed; overflow is discarded.
    """

    def __init__(self, num_samples: int, max_cameras: int = MAX_CAMERAS):
        if max_cameras <= 0:
            raise ValueError("max_cameras must be > 0")
        n = int(num_samples)
        self.max_cameras = int(max_cameras)
        self.rays = np.zeros((n, self.max_cameras, 3), dtype=np.float32)
        self.cam_ids = np.full((n, self.max_cameras), -1, dtype=np.int32)
        self.counts = np.zeros(n, dtype=np.int32)
        self.dropped = np.zeros(n, dtype=np.int32)

    def __len__(self) -> int:
        return len(self.counts)

    def append(self, sample_idx: np.ndarray, rays: np.ndarray, cam_index: int) -> int:
        """
        Write one observation into each listed row. Indices must be unique: each
        row has a single writer per pass. Returns the number of rays stored.
        """
        sample_idx = np.asarray(sample_idx, dtype=np.int64)
        if len(sample_idx) == 0:
            return 0
        if len(np.unique(sample_idx)) != len(sample_idx):
            raise ValueError("sample indices must be unique within one camera pass")

        room = self.counts[sample_idx] < self.max_cameras
        keep = sample_idx[room]
        slot = self.counts[keep]
        self.rays[keep, slot] = rays[room]
        self.cam_ids[keep, slot] = int(cam_index)
        self.counts[keep] += 1
        self.dropped[sample_idx[~room]] += 1
        return int(len(keep))


def observe_camera(table: ObservationTable, scene, cam, cam_index: int,
                   P: np.ndarray, N: Optional[np.ndarray] = None,
                   max_distance: float = 80.0,
                   ray_eps: float = 1e-3,
                   front_thresh: Optional[float] = 0.0,
                   use_frustum: bool = True) -> np.ndarray:
    """
    Cast a ray FROM every sample TO the camera. A sample is observed if:
      (i)   ray_eps < distance <= max_distance
      (ii)  front-facing: dot(N, dir_point_to_cam) > front_thresh (when normals exist)
      (iii) it projects inside the image
      (iv)  nothing is hit before reaching the camera
    Observed samples get the sample->camera vector appended to their row.
    """
    C = np.asarray(cam.position, dtype=np.float64)
    vec = C[None, :] - P.astype(np.float64)
    dist = np.linalg.norm(vec, axis=1)
    dirw = vec / np.maximum(dist, 1e-12)[:, None]

    ok = (dist > ray_eps) & (dist <= float(max_distance))
    if N is not None and front_thresh is not None:
        ok &= np.sum(N * dirw, axis=1) > float(front_thresh)
    if use_frustum:
        ok &= cam.in_frustum(P)

    idx = np.flatnonzero(ok)
    origins = P[idx] + dirw[idx] * ray_eps
    t_hit = first_hit_distance(scene, origins, dirw[idx])
    clear = ~(t_hit < dist[idx] - 2.0 * ray_eps)

    vis_idx = idx[clear]
    table.append(vis_idx, vec[vis_idx].astype(np.float32), cam_index)

    vis = np.zeros(len(P), dtype=bool)
    vis[vis_idx] = True
    return vis

# -------------------- compaction --------------------

@dataclass
class RaySet:
    dirs: np.ndarray     # (n, K, 3) unit directions sample -> camera
    dists: np.ndarray    # (n, K)
    valid: np.ndarray    # (n, K) bool
    counts: np.ndarray   # (n,) valid rays per row

    def __len__(self) -> int:
        return len(self.counts)


def compact_rays(table: ObservationTable, dedupe_deg: float = 0.1, chunk: int = 8192) -> RaySet:
    n, K = len(table), table.max_cameras
    dists = np.linalg.norm(table.rays, axis=2)
    valid = np.arange(K)[None, :] < table.counts[:, None]
    dirs = np.where(valid[..., None], _normalize_rows(table.rays, eps=1e-12), 0.0).astype(np.float32)

    if dedupe_deg > 0 and n > 0:
        cos_tol = np.cos(np.radians(dedupe_deg))
        later = np.triu(np.ones((K, K), dtype=bool), k=1)   # (earlier i, later j)
        for s in range(0, n, chunk):
            d = dirs[s:s + chunk]
            v = valid[s:s + chunk]
            cos = np.einsum("nik,njk->nij", d, d)
            dup = (cos > cos_tol) & later[None] & v[:, :, None] & v[:, None, :]
            # a later ray is dropped when it repeats any earlier one
            valid[s:s + chunk] = v & ~dup.any(axis=1)

    dists = np.where(valid, dists, 0.0).astype(np.float32)
    return RaySet(dirs=dirs, dists=dists, valid=valid, counts=valid.sum(axis=1).astype(np.int32))
