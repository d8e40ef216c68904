from __future__ import annotations

import numpy as np
import pytest

from scene_helpers import ring_cameras, square_mesh
from observations import MAX_CAMERAS, ObservationTable, compact_rays, observe_camera
from trajectory import pose_from_look_at
from utils import build_clean_tensor_scene


def test_table_append_respects_capacity_and_order():
    table = ObservationTable(3, max_cameras=2)
    idx = np.array([0, 2])
    for k in range(4):
        table.append(idx, np.full((2, 3), k + 1.0, dtype=np.float32), cam_index=k)
    assert table.counts.tolist() == [2, 0, 2]
    assert table.dropped.tolist() == [2, 0, 2]
    assert table.cam_ids[0].tolist() == [0, 1]
    assert table.cam_ids[1].tolist() == [-1, -1]


def test_table_rejects_two_writers_on_one_row():
    table = ObservationTable(4)
    with pytest.raises(ValueError):
        table.append(np.array([1, 1]), np.zeros((2, 3), dtype=np.float32), cam_index=0)


def test_single_camera_observes_unoccluded_samples(flat_scene, grid_samples, intr):
    P, N = grid_samples
    table = ObservationTable(len(P))
    cam = pose_from_look_at([0.0, 0.0, 8.0], [0.0, 0.0, 0.0], intr)
    vis = observe_camera(table, flat_scene, cam, 0, P, N)
    assert vis.all()
    assert np.all(table.counts == 1)
    # stored ray is the sample -> camera vector
    np.testing.assert_allclose(table.rays[:, 0], cam.position[None, :] - P, atol=1e-5)


def test_occluder_blocks_observation(grid_samples, intr):
    P, N = grid_samples
    ground = square_mesh(1.0, z=0.0)
    roof = square_mesh(4.0, z=4.0)
    scene = build_clean_tensor_scene(ground + roof)
    table = ObservationTable(len(P))
    cam = pose_from_look_at([0.0, 0.0, 8.0], [0.0, 0.0, 0.0], intr)
    vis = observe_camera(table, scene, cam, 0, P, N)
    assert not vis.any()
    assert np.all(table.counts == 0)


def test_camera_beyond_max_distance_sees_nothing(flat_scene, grid_samples, intr):
    P, N = grid_samples
    table = ObservationTable(len(P))
    cam = pose_from_look_at([0.0, 0.0, 100.0], [0.0, 0.0, 0.0], intr)
    vis = observe_camera(table, flat_scene, cam, 0, P, N, max_distance=80.0)
    assert not vis.any()
    assert np.all(table.counts == 0)


def test_back_facing_and_out_of_frustum_samples_are_not_observed(flat_scene, grid_samples, intr):
    P, N = grid_samples
    below = pose_from_look_at([0.0, 0.0, -8.0], [0.0, 0.0, 0.0], intr)
    table = ObservationTable(len(P))
    assert not observe_camera(table, flat_scene, below, 0, P, N).any()

    away = pose_from_look_at([0.0, 0.0, 8.0], [0.0, 0.0, 16.0], intr)
    assert not observe_camera(table, flat_scene, away, 1, P, N).any()
    assert observe_camera(table, flat_scene, away, 2, P, N, use_frustum=False).all()


def test_capacity_keeps_first_cameras_in_trajectory_order(flat_scene, grid_samples):
    P, N = grid_samples
    cams = ring_cameras(40, radius=2.0, height=8.0)

    def run():
        table = ObservationTable(len(P))
        for k, cam in enumerate(cams):
            observe_camera(table, flat_scene, cam, k, P, N)
        return table

    table = run()
    assert np.all(table.counts == MAX_CAMERAS)
    assert np.all(table.dropped == len(cams) - MAX_CAMERAS)
    assert np.all(table.cam_ids == np.arange(MAX_CAMERAS)[None, :])

    again = run()
    np.testing.assert_array_equal(table.cam_ids, again.cam_ids)
    np.testing.assert_array_equal(table.rays, again.rays)


def test_compact_rays_normalises_and_drops_repeats():
    table = ObservationTable(2, max_cameras=4)
    table.append(np.array([0]), np.array([[0.0, 0.0, 5.0]], dtype=np.float32), 0)
    table.append(np.array([0]), np.array([[0.0, 0.0, 7.0]], dtype=np.float32), 1)   # same direction
    table.append(np.array([0]), np.array([[3.0, 0.0, 4.0]], dtype=np.float32), 2)

    rays = compact_rays(table, dedupe_deg=0.1)
    assert rays.counts.tolist() == [2, 0]
    assert rays.valid[0].tolist() == [True, False, True, False]
    np.testing.assert_allclose(rays.dirs[0, 2], [0.6, 0.0, 0.8], atol=1e-6)
    assert rays.dists[0, 0] == pytest.approx(5.0)
    assert rays.dists[0, 1] == 0.0

    kept = compact_rays(table, dedupe_deg=0.0)
    assert kept.counts.tolist() == [3, 0]
