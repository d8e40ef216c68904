from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import open3d as o3d
import pytest
import yaml

import eval_recon
import make_trajectory
from scene_helpers import square_mesh
from trajectory import load_trajectory, write_trajectory_csv


def _write_case(tmp_path: Path, with_cloud: bool = True):
    mesh_path = tmp_path / "square.ply"
    o3d.io.write_triangle_mesh(str(mesh_path), square_mesh(1.0))

    cfg = {
        "mesh_path": str(mesh_path),
        "intrinsics": {"width": 640, "height": 480, "fov_deg": 90.0},
        "scoring": {"target_quality": 4.0},
    }
    if with_cloud:
        g = np.linspace(-0.4, 0.4, 5)
        xx, yy = np.meshgrid(g, g)
        pcd = o3d.geometry.PointCloud()
        pcd.points = o3d.utility.Vector3dVector(np.stack([xx.ravel(), yy.ravel(), np.zeros(xx.size)], axis=1))
        pcd.normals = o3d.utility.Vector3dVector(np.tile([[0.0, 0.0, 1.0]], (xx.size, 1)))
        cloud_path = tmp_path / "cloud.ply"
        o3d.io.write_point_cloud(str(cloud_path), pcd)
        cfg["cloud_path"] = str(cloud_path)

    th = np.linspace(0.0, 2.0 * np.pi, 4, endpoint=False)
    r, h = 8.0 * math.sin(0.25), 8.0 * math.cos(0.25)
    pos = np.stack([r * np.cos(th), r * np.sin(th), np.full(4, h)], axis=1)
    traj_path = tmp_path / "ring4.csv"
    write_trajectory_csv(str(traj_path), pos, np.zeros_like(pos))
    cfg["trajectory_path"] = str(traj_path)

    cfg_path = tmp_path / "cfg.yaml"
    cfg_path.write_text(yaml.safe_dump(cfg))
    return cfg_path, cfg


@pytest.mark.integration
def test_eval_recon_end_to_end(tmp_path: Path):
    cfg_path, _ = _write_case(tmp_path)
    out = tmp_path / "results"
    res = eval_recon.main(str(cfg_path),
                          export_field="count",
                          out_cloud=str(out / "count.ply"),
                          report_path=str(out / "report.txt"),
                          camera_log=str(out / "cams.csv"),
                          summary_csv=str(out / "summary.csv"),
                          verbose=False)
    assert np.all(res.table.counts == 4)
    np.testing.assert_allclose(res.weighted, 1.0)
    for name in ("count.ply", "report.txt", "cams.csv", "summary.csv"):
        assert (out / name).is_file()
    pcd = o3d.t.io.read_point_cloud(str(out / "count.ply"))
    np.testing.assert_allclose(pcd.point["count"].numpy().reshape(-1), 4.0)


@pytest.mark.integration
def test_eval_recon_samples_mesh_without_cloud(tmp_path: Path):
    cfg_path, _ = _write_case(tmp_path, with_cloud=False)
    res = eval_recon.main(str(cfg_path), surf_samples=200, overrides={"target_quality": 1.0}, verbose=False)
    assert len(res.raw) == 200
    assert res.table.counts.max() == 4
    assert res.reductions_agree


def test_eval_recon_missing_inputs_fail_before_computing(tmp_path: Path):
    cfg_path, _ = _write_case(tmp_path)
    with pytest.raises(FileNotFoundError):
        eval_recon.main(str(cfg_path), trajectory_path=str(tmp_path / "missing.csv"), verbose=False)
    with pytest.raises(FileNotFoundError):
        eval_recon.main(str(cfg_path), mesh_path=str(tmp_path / "missing.ply"), verbose=False)
    with pytest.raises(FileNotFoundError):
        eval_recon.main(str(cfg_path), cloud_path=str(tmp_path / "missing_cloud.ply"), verbose=False)


def test_make_trajectory_orbit_and_hemisphere(tmp_path: Path):
    cfg_path, _ = _write_case(tmp_path)
    orbit = tmp_path / "orbit.csv"
    make_trajectory.main(str(cfg_path), mode="orbit", views=12, radius=5.0, heights="4,8", out=str(orbit))
    cams = load_trajectory(str(orbit))
    assert len(cams) == 12
    np.testing.assert_allclose(sorted({round(float(c.position[2]), 6) for c in cams}), [4.0, 8.0])

    hemi = tmp_path / "hemi.csv"
    make_trajectory.main(str(cfg_path), mode="hemisphere", views=24, radius=5.0, out=str(hemi))
    cams = load_trajectory(str(hemi))
    assert len(cams) == 24
    np.testing.assert_allclose([np.linalg.norm(c.position) for c in cams], 5.0, atol=1e-6)

    with pytest.raises(ValueError):
        make_trajectory.main(str(cfg_path), mode="spiral", out=str(tmp_path / "x.csv"))
