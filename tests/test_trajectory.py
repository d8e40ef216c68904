from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import yaml

from trajectory import (
    CameraPose, TrajectoryError, degenerate_reason, load_trajectory, pose_from_look_at,
    trajectory_length, write_trajectory_csv,
)


def test_pose_from_look_at_is_rigid_and_points_at_target(intr):
    cam = pose_from_look_at([3.0, -2.0, 5.0], [0.0, 0.0, 0.0], intr)
    assert degenerate_reason(cam) is None
    np.testing.assert_allclose(cam.position, [3.0, -2.0, 5.0], atol=1e-9)
    u, v, z = cam.project(np.zeros((1, 3)))
    assert z[0] > 0
    assert u[0] == pytest.approx(intr["cx"])
    assert v[0] == pytest.approx(intr["cy"])


def test_degenerate_cameras_are_reported(intr):
    ok = pose_from_look_at([0.0, 0.0, 5.0], [0.0, 0.0, 0.0], intr)
    zero_image = CameraPose(name="z", intr=dict(intr, width=0), world_to_cam=ok.world_to_cam)
    singular = CameraPose(name="s", intr=intr, world_to_cam=np.diag([1.0, 1.0, 0.0, 1.0]))
    non_finite = CameraPose(name="n", intr=intr, world_to_cam=np.full((4, 4), np.nan))
    assert "zero-size" in degenerate_reason(zero_image)
    assert degenerate_reason(singular) is not None
    assert degenerate_reason(non_finite) is not None
    # camera sitting on its own look-at target has no orientation
    assert degenerate_reason(pose_from_look_at([1.0, 1.0, 1.0], [1.0, 1.0, 1.0], intr)) is not None


def test_trajectory_length(intr):
    cams = [pose_from_look_at(p, [0.0, 0.0, -10.0], intr) for p in ([0, 0, 0], [3, 4, 0], [3, 4, 2])]
    assert trajectory_length(cams) == pytest.approx(7.0)
    assert trajectory_length(cams[:1]) == 0.0
    lost = CameraPose(name="lost", intr=intr, world_to_cam=np.full((4, 4), np.nan))
    assert trajectory_length([cams[0], lost, cams[1], cams[2]]) == pytest.approx(7.0)
    assert trajectory_length([lost, lost]) == 0.0


def test_csv_roundtrip_with_targets(tmp_path: Path, intr):
    pos = np.array([[5.0, 0.0, 5.0], [0.0, 5.0, 5.0]])
    tgt = np.zeros((2, 3))
    path = tmp_path / "traj.csv"
    write_trajectory_csv(str(path), pos, tgt)
    cams = load_trajectory(str(path), intr=intr)
    assert [c.name for c in cams] == ["0", "1"]
    np.testing.assert_allclose(np.stack([c.position for c in cams]), pos, atol=1e-9)


def test_csv_without_targets_uses_default_target(tmp_path: Path, intr):
    path = tmp_path / "traj.csv"
    path.write_text("idx,x,y,z\n0,0,0,10\n1,1,0,10\n")
    cams = load_trajectory(str(path), intr=intr, default_target=[0.0, 0.0, 0.0])
    u, v, z = cams[0].project(np.zeros((1, 3)))
    assert z[0] == pytest.approx(10.0)
    with pytest.raises(TrajectoryError):
        load_trajectory(str(path), intr=intr)


def test_bad_trajectory_inputs(tmp_path: Path, intr):
    with pytest.raises(FileNotFoundError):
        load_trajectory(str(tmp_path / "missing.csv"), intr=intr)

    empty = tmp_path / "empty.csv"
    empty.write_text("idx,x,y,z,tx,ty,tz\n")
    with pytest.raises(TrajectoryError):
        load_trajectory(str(empty), intr=intr)

    bad = tmp_path / "bad.csv"
    bad.write_text("idx,x,y,z,tx,ty,tz\n0,a,0,1,0,0,0\n")
    with pytest.raises(TrajectoryError):
        load_trajectory(str(bad), intr=intr)

    no_cols = tmp_path / "nocols.csv"
    no_cols.write_text("a,b\n1,2\n")
    with pytest.raises(TrajectoryError):
        load_trajectory(str(no_cols), intr=intr, default_target=[0, 0, 0])

    with pytest.raises(TrajectoryError):
        load_trajectory(str(tmp_path), intr=intr)   # directory without frames


def test_scene_directory_frames(tmp_path: Path, intr):
    look = pose_from_look_at([0.0, 0.0, 6.0], [0.0, 0.0, 0.0], intr)
    (tmp_path / "0001.yaml").write_text(yaml.safe_dump(
        {"width": 640, "height": 480, "fov_deg": 90.0, "position": [2.0, 0.0, 6.0], "target": [0.0, 0.0, 0.0]}))
    (tmp_path / "0000.yaml").write_text(yaml.safe_dump(
        {"width": 640, "height": 480, "fx": 320.0, "fy": 320.0,
         "world_to_cam": look.world_to_cam.tolist()}))
    (tmp_path / "0002.yml").write_text(yaml.safe_dump(
        {"width": 0, "height": 0, "position": [0.0, 2.0, 6.0], "target": [0.0, 0.0, 0.0]}))

    cams = load_trajectory(str(tmp_path))
    assert [c.name for c in cams] == ["0000", "0001", "0002"]
    np.testing.assert_allclose(cams[0].position, [0.0, 0.0, 6.0], atol=1e-9)
    assert cams[0].intr["cx"] == pytest.approx(320.0)
    np.testing.assert_allclose(cams[1].position, [2.0, 0.0, 6.0], atol=1e-9)
    assert degenerate_reason(cams[0]) is None
    assert degenerate_reason(cams[2]) is not None


def test_scene_directory_frame_without_pose(tmp_path: Path):
    (tmp_path / "0000.yaml").write_text(yaml.safe_dump({"width": 640, "height": 480}))
    with pytest.raises(TrajectoryError):
        load_trajectory(str(tmp_path))
