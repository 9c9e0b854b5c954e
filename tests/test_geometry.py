import math

import numpy as np
import pytest

from orbfeatures.geometry import (
    check_dist_epipolar_line,
    decompose_sim3,
    project_point,
    radius_by_viewing_cos,
)
from orbfeatures.keypoint import KeyPoint

_STEREO_F = [[0, 0, 0], [0, 0, -1], [0, 1, 0]]


@pytest.mark.parametrize("cos, expected", [(0.999, 2.5), (0.998, 4.0), (0.5, 4.0)])
def test_radius_by_viewing_cos(cos, expected):
    assert radius_by_viewing_cos(cos) == expected


def test_epipolar_degenerate_line():
    assert check_dist_epipolar_line(KeyPoint(1, 2), KeyPoint(3, 4), np.zeros((3, 3)), [1.0]) is False


def test_epipolar_point_on_line():
    assert check_dist_epipolar_line(KeyPoint(10, 20), KeyPoint(40, 20), _STEREO_F, [1.0]) is True


def test_epipolar_point_off_line():
    assert check_dist_epipolar_line(KeyPoint(10, 20), KeyPoint(40, 25), _STEREO_F, [1.0, 10.0]) is False


def test_epipolar_tolerance_grows_with_level():
    kp2 = KeyPoint(40, 25, octave=1)
    assert check_dist_epipolar_line(KeyPoint(10, 20), kp2, _STEREO_F, [1.0, 10.0]) is True


def test_epipolar_rejects_bad_shape():
    with pytest.raises(ValueError):
        check_dist_epipolar_line(KeyPoint(1, 2), KeyPoint(3, 4), np.eye(2), [1.0])


def _rotation_z(theta):
    c, s = math.cos(theta), math.sin(theta)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def test_decompose_sim3_recovers_parts():
    rotation = _rotation_z(0.5)
    t_raw = np.array([1.0, -2.0, 3.0])
    scw = np.eye(4)
    scw[:3, :3] = 2.0 * rotation
    scw[:3, 3] = t_raw
    result = decompose_sim3(scw)
    assert result.scale == pytest.approx(2.0)
    assert np.allclose(result.rotation, rotation)
    assert np.allclose(result.translation, t_raw / 2.0)
    assert np.allclose(result.rotation @ result.center + result.translation, 0.0)


def test_decompose_sim3_rejects_small_matrix():
    with pytest.raises(ValueError):
        decompose_sim3(np.eye(3))


def test_project_point_simple():
    proj = project_point(np.eye(3), np.zeros(3), [1.0, 2.0, 4.0], 100.0, 100.0, 50.0, 50.0)
    assert proj.u == pytest.approx(75.0)
    assert proj.v == pytest.approx(100.0)
    assert proj.depth == pytest.approx(4.0)


def test_project_point_behind_camera():
    assert project_point(np.eye(3), np.zeros(3), [1.0, 2.0, -4.0], 100.0, 100.0, 50.0, 50.0) is None


def test_project_point_back_projects():
    rotation = _rotation_z(0.3)
    translation = np.array([0.1, 0.2, 5.0])
    point = np.array([0.5, -0.4, 1.0])
    fx, fy, cx, cy = 420.0, 430.0, 320.0, 240.0
    proj = project_point(rotation, translation, point, fx, fy, cx, cy)
    camera = np.array([(proj.u - cx) / fx * proj.depth, (proj.v - cy) / fy * proj.depth, proj.depth])
    assert np.allclose(rotation.T @ (camera - translation), point)