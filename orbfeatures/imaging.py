"""Small image operations needed to build and scan an image pyramid.

Images are two-dimensional numpy arrays. Operations keep the input dtype;
integer results are rounded to the nearest value and clipped to the range
of that dtype.
"""

from __future__ import annotations

import math

import numpy as np

from .keypoint import KeyPoint

# The 16 pixels of the Bresenham circle of radius 3 used by FAST, as
# (dx, dy) offsets, in circular order.
_CIRCLE = (
    (0, 3), (1, 3), (2, 2), (3, 1), (3, 0), (3, -1), (2, -2), (1, -3),
    (0, -3), (-1, -3), (-2, -2), (-3, -1), (-3, 0), (-3, 1), (-2, 2), (-1, 3),
)
_ARC_LENGTH = 9
_FAST_KEYPOINT_SIZE = 7.0


def _as_image(image) -> np.ndarray:
    array = np.asarray(image)
    if array.ndim != 2:
        raise ValueError("expected a single-channel two-dimensional image")
    return array


def _cast_like(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(values), info.min, info.max).astype(dtype)
    return values.astype(dtype)


def pad_reflect101(image, border: int) -> np.ndarray:
    """Pad ``image`` by ``border`` pixels on every side, mirroring about the edge.

    The edge pixel itself is not repeated: ``gfedcb|abcdefgh|gfedcba``.
    """
    array = _as_image(image)
    if border < 0:
        raise ValueError("border must not be negative")
    if border == 0:
        return array.copy()
    return np.pad(array, border, mode="reflect")


def _linear_axis(src_size: int, dst_size: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    scale = src_size / dst_size
    coords = (np.arange(dst_size) + 0.5) * scale - 0.5
    low = np.floor(coords).astype(np.int64)
    frac = coords - low
    below = low < 0
    low[below] = 0
    frac[below] = 0.0
    above = low >= src_size - 1
    low[above] = src_size - 1
    frac[above] = 0.0
    high = np.minimum(low + 1, src_size - 1)
    return low, high, frac


def resize_bilinear(image, width: int, height: int) -> np.ndarray:
    """Resize ``image`` to ``width`` x ``height`` with bilinear interpolation.

    Pixel centres are aligned, so each output pixel samples the source at
    ``(d + 0.5) * scale - 0.5``; samples outside the image use the edge.
    """
    array = _as_image(image)
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")
    if array.size == 0:
        raise ValueError("cannot resize an empty image")

    src = array.astype(np.float64)
    y0, y1, fy = _linear_axis(src.shape[0], height)
    x0, x1, fx = _linear_axis(src.shape[1], width)

    rows = src[y0] * (1.0 - fy)[:, None] + src[y1] * fy[:, None]
    result = rows[:, x0] * (1.0 - fx)[None, :] + rows[:, x1] * fx[None, :]
    return _cast_like(result, array.dtype)


def _gaussian_kernel(ksize: int, sigma: float) -> np.ndarray:
    if sigma <= 0:
        sigma = 0.3 * ((ksize - 1) * 0.5 - 1) + 0.8
    center = (ksize - 1) / 2
    offsets = np.arange(ksize) - center
    kernel = np.exp(-(offsets ** 2) / (2.0 * sigma * sigma))
    return kernel / kernel.sum()


def gaussian_blur(image, ksize: int, sigma: float) -> np.ndarray:
    """Blur ``image`` with a square Gaussian kernel of odd size ``ksize``.

    A non-positive ``sigma`` is derived from the kernel size. Borders are
    mirrored without repeating the edge pixel.
    """
    array = _as_image(image)
    if ksize <= 0 or ksize % 2 == 0:
        raise ValueError("ksize must be a positive odd number")
    if array.size == 0:
        raise ValueError("cannot blur an empty image")

    kernel = _gaussian_kernel(ksize, sigma)
    radius = ksize // 2
    height, width = array.shape
    src = array.astype(np.float64)
    if radius:
        src = np.pad(src, radius, mode="reflect")

    vertical = sum(weight * src[i:i + height, :] for i, weight in enumerate(kernel))
    result = sum(weight * vertical[:, i:i + width] for i, weight in enumerate(kernel))
    return _cast_like(np.asarray(result), array.dtype)


def fast_keypoints(image, threshold: int, nonmax_suppression: bool) -> list[KeyPoint]:
    """Detect FAST-9 corners in ``image``.

    A pixel is a corner when 9 contiguous pixels of the surrounding circle
    are all brighter than it by more than ``threshold`` or all darker by
    more than ``threshold``. The response is the largest threshold for which
    the pixel would still be a corner. With ``nonmax_suppression`` a corner
    is kept only if its response is strictly above all eight neighbours.
    Keypoints are returned in row-major order.
    """
    array = _as_image(image)
    threshold = min(max(int(threshold), 0), 255)
    height, width = array.shape
    if height < 7 or width < 7:
        return []

    pixels = array.astype(np.int32)
    center = pixels[3:height - 3, 3:width - 3]
    diffs = np.stack([
        pixels[3 + dy:height - 3 + dy, 3 + dx:width - 3 + dx] - center
        for dx, dy in _CIRCLE
    ])
    extended = np.concatenate([diffs, diffs[:_ARC_LENGTH - 1]])

    best = np.zeros(center.shape, dtype=np.int32)
    for start in range(len(_CIRCLE)):
        arc = extended[start:start + _ARC_LENGTH]
        brighter = arc.min(axis=0)
        darker = (-arc).max(axis=0) * 0 + (-arc).min(axis=0)
        best = np.maximum(best, np.maximum(brighter, darker))

    corners = best > threshold
    scores = np.where(corners, best - 1, 0)

    if nonmax_suppression:
        padded = np.pad(scores, 1, mode="constant")
        rows, cols = scores.shape
        keep = corners.copy()
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                if dx == 0 and dy == 0:
                    continue
                neighbour = padded[1 + dy:1 + dy + rows, 1 + dx:1 + dx + cols]
                keep &= scores > neighbour
    else:
        keep = corners

    ys, xs = np.nonzero(keep)
    return [
        KeyPoint(
            x=float(x + 3),
            y=float(y + 3),
            size=_FAST_KEYPOINT_SIZE,
            response=float(scores[y, x]),
        )
        for y, x in zip(ys.tolist(), xs.tolist())
    ]