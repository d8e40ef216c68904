from __future__ import annotations

import numpy as np
import pytest

from scene_helpers import square_mesh
from utils import build_clean_tensor_scene, pinhole_intrinsics


@pytest.fixture
def flat_square():
    return square_mesh(1.0)


@pytest.fixture
def flat_scene(flat_square):
    return build_clean_tensor_scene(flat_square)


@pytest.fixture
def grid_samples():
    g = np.linspace(-0.45, 0.45, 10)
    xx, yy = np.meshgrid(g, g)
    P = np.stack([xx.ravel(), yy.ravel(), np.zeros(xx.size)], axis=1).astype(np.float32)
    N = np.tile(np.array([[0.0, 0.0, 1.0]], dtype=np.float32), (len(P), 1))
    return P, N


@pytest.fixture
def intr():
    return pinhole_intrinsics(640, 480, 90.0)
