"""Geometric checks used when searching for matches between views."""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple

import numpy as np

from .keypoint import KeyPoint

_CHI2_ONE_DOF = 3.84
_FRONTAL_VIEW_COS = 0.998
_NARROW_RADIUS = 2.5
_WIDE_RADIUS = 4.0


class Sim3Decomposition(NamedTuple):
    """A similarity transform split into rotation, translation and scale."""

    rotation: np.ndarray
    translation: np.ndarray
    scale: float
    center: np.ndarray


class Projection(NamedTuple):
    """A point projected into an image, with its depth in the camera."""

    u: float
    v: float
    depth: float


def radius_by_viewing_cos(view_cos: float) -> float:
    """Return the search radius factor for a viewing angle cosine.

    A point seen almost head-on gets a narrow window; any other a wider one.
    """
    cos_value = float(view_cos)
    if cos_value > _FRONTAL_VIEW_COS:
        return _NARROW_RADIUS
    return _WIDE_RADIUS


def check_dist_epipolar_line(kp1: KeyPoint, kp2: KeyPoint, f12, level_sigma2: Sequence[float]) -> bool:
    """Tell whether ``kp2`` lies close enough to the epipolar line of ``kp1``.

    ``f12`` is the 3x3 fundamental matrix from image 1 to image 2 and
    ``level_sigma2`` the squared scale of each pyramid level of image 2.
    """
    f = np.asarray(f12, dtype=np.float64)
    if f.shape != (3, 3):
        raise ValueError("the fundamental matrix must be 3x3")
    a = kp1.x * f[0, 0] + kp1.y * f[1, 0] + f[2, 0]
    b = kp1.x * f[0, 1] + kp1.y * f[1, 1] + f[2, 1]
    c = kp1.x * f[0, 2] + kp1.y * f[1, 2] + f[2, 2]

    num = a * kp2.x + b * kp2.y + c
    den = a * a + b * b
    if den == 0:
        return False
    return num * num / den < _CHI2_ONE_DOF * level_sigma2[kp2.octave]


def decompose_sim3(scw) -> Sim3Decomposition:
    """Split a ``[sR | t]`` similarity into rotation, ``t / s``, ``s`` and the camera centre."""
    matrix = np.asarray(scw, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] < 3 or matrix.shape[1] < 4:
        raise ValueError("the similarity must have at least 3 rows and 4 columns")
    s_rotation = matrix[:3, :3]
    scale = float(np.linalg.norm(s_rotation[0]))
    if scale == 0.0:
        raise ValueError("the similarity has zero scale")
    rotation = s_rotation / scale
    translation = matrix[:3, 3] / scale
    center = -rotation.T @ translation
    return Sim3Decomposition(rotation, translation, scale, center)


def project_point(rotation, translation, point, fx: float, fy: float, cx: float, cy: float) -> Projection | None:
    """Project a world point into the image of a pinhole camera.

    Returns ``None`` when the point is not in front of the camera.
    """
    camera = np.asarray(rotation, dtype=np.float64) @ np.asarray(point, dtype=np.float64).ravel()
    camera = camera + np.asarray(translation, dtype=np.float64).ravel()
    depth = float(camera[2])
    if depth <= 0.0:
        return None
    inv_z = 1.0 / depth
    u = fx * float(camera[0]) * inv_z + cx
    v = fy * float(camera[1]) * inv_z + cy
    return Projection(u, v, depth)