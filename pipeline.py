# pipeline.py — trajectory evaluation as a fixed sequence of barrier-separated phases
#   observe (one pass per camera) -> compact -> score -> weight -> reduce
# Each phase must pass its barrier before a phase that reads its output may start.

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import time
import numpy as np
import open3d as o3d

from observations import MAX_CAMERAS, ObservationTable, RaySet, observe_camera, compact_rays
from scorers import MIN_SCORE, get_scorer, target_weighted
from reduction import ReductionStats, reduce_parallel, reduce_sequential, stats_agree
from trajectory import CameraPose, degenerate_reason, trajectory_length


class PhaseOrderError(RuntimeError):
    pass


@dataclass
class Stage:
    name: str
    fn: Callable[[Dict], None]
    requires: Tuple[str, ...] = ()


class PhasePipeline:
    def __init__(self, stages: Sequence[Stage], device: str = "CPU:0", verbose: bool = False):
        seen = set()
        for st in stages:
            if st.name in seen:
                raise PhaseOrderError(f"duplicate stage: {st.name}")
            missing = [r for r in st.requires if r not in seen]
            if missing:
                raise PhaseOrderError(f"stage '{st.name}' requires later/unknown stages: {missing}")
            seen.add(st.name)
        self.stages = list(stages)
        self.device = o3d.core.Device(device)
        self.verbose = verbose
        self.completed: List[str] = []
        self.stage_times: Dict[str, float] = {}

    def barrier(self, name: str) -> None:
        if self.device.get_type() == o3d.core.Device.DeviceType.CUDA:
            o3d.core.cuda.synchronize(self.device)
        self.completed.append(name)

    def run_stage(self, name: str, state: Dict) -> None:
        st = next((s for s in self.stages if s.name == name), None)
        if st is None:
            raise KeyError(name)
        if name in self.completed:
            raise PhaseOrderError(f"stage '{name}' already ran")
        pending = [r for r in st.requires if r not in self.completed]
        if pending:
            raise PhaseOrderError(f"stage '{name}' started before barrier of {pending}")
        t0 = time.perf_counter()
        st.fn(state)
        self.barrier(name)
        self.stage_times[name] = time.perf_counter() - t0
        if self.verbose:
            print(f"[phase] {name:8s} done in {self.stage_times[name]:.3f}s")

    def run(self, state: Dict) -> Dict:
        for st in self.stages:
            self.run_stage(st.name, state)
        return state

# -------------------- settings / result --------------------

@dataclass
class EvalSettings:
    max_distance: float = 80.0
    target_quality: float = 3.0
    max_cameras: int = MAX_CAMERAS
    ray_eps: float = 1e-3
    front_thresh: Optional[float] = 0.0
    use_frustum: bool = True
    scorer: str = "smith"
    scorer_params: Dict = field(default_factory=dict)
    top_k_pairs: Optional[int] = None
    dedupe_deg: float = 0.1
    device: str = "CPU:0"
    block_size: int = 256
    rtol: float = 1e-6

    @classmethod
    def from_cfg(cls, cfg: Dict) -> "EvalSettings":
        vis = cfg.get("visibility", {}) or {}
        sc = cfg.get("scoring", {}) or {}
        red = cfg.get("reduction", {}) or {}
        d = cls()
        return cls(
            max_distance=float(vis.get("max_distance", d.max_distance)),
            target_quality=float(sc.get("target_quality", d.target_quality)),
            max_cameras=int(vis.get("max_cameras", d.max_cameras)),
            ray_eps=float(vis.get("ray_eps", d.ray_eps)),
            front_thresh=vis.get("front_thresh", d.front_thresh),
            use_frustum=bool(vis.get("use_frustum", d.use_frustum)),
            scorer=str(sc.get("name", d.scorer)),
            scorer_params=dict(sc.get("params", {}) or {}),
            top_k_pairs=sc.get("top_k_pairs", d.top_k_pairs),
            dedupe_deg=float(sc.get("dedupe_deg", d.dedupe_deg)),
            device=str(red.get("device", d.device)),
            block_size=int(red.get("block_size", d.block_size)),
            rtol=float(red.get("rtol", d.rtol)),
        )


@dataclass
class EvalResult:
    table: ObservationTable
    rays: RaySet
    raw: np.ndarray
    weighted: np.ndarray
    parallel: ReductionStats
    sequential: ReductionStats
    reductions_agree: bool
    camera_times: List[float]
    camera_observed: List[int]
    skipped: List[Tuple[int, str, str]]
    path_length: float
    stage_times: Dict[str, float]
    num_cameras: int

# -------------------- evaluation --------------------

def evaluate_trajectory(scene, cams: Sequence[CameraPose], P: np.ndarray, N: Optional[np.ndarray],
                        settings: Optional[EvalSettings] = None, verbose: bool = True) -> EvalResult:
    s = settings or EvalSettings()
    n = len(P)
    params = dict(s.scorer_params)
    if s.scorer == "smith":
        params.setdefault("max_distance", s.max_distance)
    scorer = get_scorer(s.scorer, top_k_pairs=s.top_k_pairs, **params)

    state: Dict = {
        "table": ObservationTable(n, max_cameras=s.max_cameras),
        "raw": np.full(n, MIN_SCORE, dtype=np.float64),
        "weighted": np.full(n, target_weighted(MIN_SCORE, s.target_quality), dtype=np.float64),
        "camera_times": [],
        "camera_observed": [],
        "skipped": [],
    }

    def observe(st):
        for k, cam in enumerate(cams):
            reason = degenerate_reason(cam)
            if reason is not None:
                st["skipped"].append((k, cam.name, reason))
                st["camera_times"].append(0.0)
                st["camera_observed"].append(0)
                if verbose:
                    print(f"[{k + 1:03d}/{len(cams)}] skip      {cam.name}: {reason}")
                continue
            t0 = time.perf_counter()
            vis = observe_camera(st["table"], scene, cam, k, P, N,
                                 max_distance=s.max_distance, ray_eps=s.ray_eps,
                                 front_thresh=s.front_thresh, use_frustum=s.use_frustum)
            dt = time.perf_counter() - t0
            st["camera_times"].append(dt)
            st["camera_observed"].append(int(vis.sum()))
            if verbose:
                print(f"[{k + 1:03d}/{len(cams)}] observed:{int(vis.sum()):8d}  time:{dt * 1000:.1f} ms")

    def compact(st):
        st["rays"] = compact_rays(st["table"], dedupe_deg=s.dedupe_deg)

    def score(st):
        st["raw"] = scorer(st["rays"], N)

    def weight(st):
        st["weighted"] = target_weighted(st["raw"], s.target_quality)

    def reduce(st):
        # host snapshot taken after every device phase has passed its barrier
        snapshot = np.array(st["weighted"], copy=True)
        st["parallel"] = reduce_parallel(snapshot, device=s.device, block_size=s.block_size)
        st["sequential"] = reduce_sequential(snapshot)

    pipe = PhasePipeline([
        Stage("observe", observe),
        Stage("compact", compact, requires=("observe",)),
        Stage("score", score, requires=("compact",)),
        Stage("weight", weight, requires=("score",)),
        Stage("reduce", reduce, requires=("weight",)),
    ], device=s.device, verbose=verbose)
    pipe.run(state)

    agree = stats_agree(state["parallel"], state["sequential"], rtol=s.rtol)
    if verbose and not agree:
        print(f"[reduce] WARNING parallel {state['parallel']} != sequential {state['sequential']}")

    return EvalResult(
        table=state["table"],
        rays=state["rays"],
        raw=state["raw"],
        weighted=state["weighted"],
        parallel=state["parallel"],
        sequential=state["sequential"],
        reductions_agree=agree,
        camera_times=state["camera_times"],
        camera_observed=state["camera_observed"],
        skipped=state["skipped"],
        path_length=trajectory_length(cams),
        stage_times=dict(pipe.stage_times),
        num_cameras=len(cams),
    )
