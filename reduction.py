# reduction.py — sum / min / max of per-sample scores, two ways
# reduce_parallel : segmented tree reduction on Open3D core tensors (CPU:0 / CUDA:0)
# reduce_sequential: plain scan, kept as the oracle the parallel path is checked against

from __future__ import annotations
from dataclasses import dataclass
import math
import numpy as np
import open3d as o3d


@dataclass(frozen=True)
class ReductionStats:
    count: int
    total: float
    minimum: float
    maximum: float

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else math.nan


EMPTY = ReductionStats(count=0, total=0.0, minimum=math.nan, maximum=math.nan)


def _tree_reduce(t: o3d.core.Tensor, op: str, identity: float, block_size: int) -> float:
    """Reduce each block, then the block results, until one value is left."""
    while t.shape[0] > 1:
        n = t.shape[0]
        pad = (-n) % block_size
        if pad:
            fill = o3d.core.Tensor.full((pad,), identity, o3d.core.Dtype.Float64, t.device)
            t = t.append(fill)
        blocks = t.reshape((t.shape[0] // block_size, block_size))
        if op == "sum":
            t = blocks.sum([1])
        elif op == "min":
            t = blocks.min([1])
        else:
            t = blocks.max([1])
    return float(t[0].item())


def reduce_parallel(values, device: str = "CPU:0", block_size: int = 256) -> ReductionStats:
    if block_size < 2:
        raise ValueError("block_size must be >= 2")
    arr = np.ascontiguousarray(np.asarray(values, dtype=np.float64).ravel())
    if arr.size == 0:
        return EMPTY
    t = o3d.core.Tensor(arr, dtype=o3d.core.Dtype.Float64, device=o3d.core.Device(device))
    return ReductionStats(
        count=int(arr.size),
        total=_tree_reduce(t, "sum", 0.0, block_size),
        minimum=_tree_reduce(t, "min", math.inf, block_size),
        maximum=_tree_reduce(t, "max", -math.inf, block_size),
    )


def reduce_sequential(values) -> ReductionStats:
    vals = np.asarray(values, dtype=np.float64).ravel().tolist()
    if not vals:
        return EMPTY
    total = 0.0
    lo = math.inf
    hi = -math.inf
    for x in vals:
        total += x
        if x < lo:
            lo = x
        if x > hi:
            hi = x
    return ReductionStats(count=len(vals), total=total, minimum=lo, maximum=hi)


def stats_agree(a: ReductionStats, b: ReductionStats, rtol: float = 1e-6, atol: float = 1e-9) -> bool:
    if a.count != b.count:
        return False
    pa = np.array([a.total, a.minimum, a.maximum])
    pb = np.array([b.total, b.minimum, b.maximum])
    return bool(np.allclose(pa, pb, rtol=rtol, atol=atol, equal_nan=True))
