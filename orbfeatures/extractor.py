"""Oriented FAST keypoints with rotated binary descriptors over a scale pyramid."""

from __future__ import annotations

import itertools
import math
from dataclasses import replace

import numpy as np

from .descriptors import DESCRIPTOR_BYTES
from .imaging import fast_keypoints, gaussian_blur, pad_reflect101, resize_bilinear
from .keypoint import KeyPoint
from .octree import distribute_octree
from .pattern import EDGE_THRESHOLD, HALF_PATCH_SIZE, PATCH_SIZE, compute_umax, orb_pattern

_CELL_SIZE = 30.0
_BLUR_KSIZE = 7
_BLUR_SIGMA = 2.0


def ic_angle(image, x: float, y: float, umax) -> float:
    """Return the intensity-centroid orientation of the patch around ``(x, y)``.

    The patch is the circle described by ``umax``; the result is in degrees,
    in ``[0, 360)``.
    """
    array = np.asarray(image)
    half = len(umax) - 1
    cx = int(round(x))
    cy = int(round(y))
    rows, cols = array.shape
    if cy - half < 0 or cy + half >= rows or cx - half < 0 or cx + half >= cols:
        raise ValueError("the patch around the point does not fit inside the image")

    patch = array[cy - half:cy + half + 1, cx - half:cx + half + 1].astype(np.int64)
    offsets = np.arange(-half, half + 1)
    m_10 = int((offsets * patch[half]).sum())
    m_01 = 0
    for v in range(1, half + 1):
        d = umax[v]
        columns = slice(half - d, half + d + 1)
        below = patch[half + v, columns]
        above = patch[half - v, columns]
        us = np.arange(-d, d + 1)
        m_01 += v * int((below - above).sum())
        m_10 += int((us * (below + above)).sum())

    angle = math.degrees(math.atan2(m_01, m_10))
    if angle < 0.0:
        angle += 360.0
    if angle >= 360.0:
        angle -= 360.0
    return angle


def compute_orb_descriptor(keypoint: KeyPoint, image, pattern) -> np.ndarray:
    """Return the binary descriptor of ``keypoint`` as an array of bytes.

    The pattern is rotated by the keypoint angle; bit ``i`` is set when the
    sample at point ``2*i`` is darker than the sample at point ``2*i + 1``.
    Bits are packed least significant first.
    """
    array = np.asarray(image)
    points = np.asarray(pattern, dtype=np.float32).reshape(-1, 2)
    if len(points) == 0 or len(points) % 16:
        raise ValueError("the pattern must hold a multiple of 16 points")

    angle = np.float32(keypoint.angle) * np.float32(math.pi / 180.0)
    a = np.float32(math.cos(angle))
    b = np.float32(math.sin(angle))
    cx = int(round(keypoint.x))
    cy = int(round(keypoint.y))

    dy = np.rint(points[:, 0] * b + points[:, 1] * a).astype(np.int64)
    dx = np.rint(points[:, 0] * a - points[:, 1] * b).astype(np.int64)
    rows = cy + dy
    cols = cx + dx
    height, width = array.shape
    if rows.min() < 0 or cols.min() < 0 or rows.max() >= height or cols.max() >= width:
        raise ValueError("the sampling pattern does not fit inside the image")

    values = array[rows, cols]
    bits = values[0::2] < values[1::2]
    return np.packbits(bits.reshape(-1, 8), axis=1, bitorder="little").ravel()


def _best_by_response(keypoints: list[KeyPoint], count: int) -> list[KeyPoint]:
    return sorted(keypoints, key=lambda kp: kp.response, reverse=True)[:max(count, 0)]


class OrbExtractor:
    """Detects keypoints over an image pyramid and describes them."""

    def __init__(self, nfeatures: int, scale_factor: float, nlevels: int,
                 ini_th_fast: int, min_th_fast: int) -> None:
        if nfeatures < 0:
            raise ValueError("nfeatures must not be negative")
        if nlevels < 1:
            raise ValueError("nlevels must be at least 1")
        if scale_factor <= 1.0:
            raise ValueError("scale_factor must be greater than 1")

        self.nfeatures = nfeatures
        self.scale_factor = scale_factor
        self.nlevels = nlevels
        self.ini_th_fast = ini_th_fast
        self.min_th_fast = min_th_fast

        self.scale_factors = [scale_factor ** level for level in range(nlevels)]
        self.level_sigma2 = [s * s for s in self.scale_factors]
        self.inv_scale_factors = [1.0 / s for s in self.scale_factors]
        self.inv_level_sigma2 = [1.0 / s2 for s2 in self.level_sigma2]

        factor = 1.0 / scale_factor
        desired = nfeatures * (1 - factor) / (1 - factor ** nlevels)
        per_level = []
        for _ in range(nlevels - 1):
            per_level.append(round(desired))
            desired *= factor
        per_level.append(max(nfeatures - sum(per_level), 0))
        self.features_per_level = per_level

        self.pattern = orb_pattern()
        self.umax = compute_umax(HALF_PATCH_SIZE)

        self.image_pyramid: list[np.ndarray] = []
        self._padded: list[np.ndarray] = []

    def compute_pyramid(self, image) -> list[np.ndarray]:
        """Build the scale pyramid of ``image`` and return its levels."""
        array = np.asarray(image)
        if array.ndim != 2:
            raise ValueError("expected a single-channel two-dimensional image")
        rows, cols = array.shape

        padded_levels = []
        levels = []
        for level, scale in enumerate(self.inv_scale_factors):
            width = round(float(np.float32(cols) * np.float32(scale)))
            height = round(float(np.float32(rows) * np.float32(scale)))
            if width < 1 or height < 1:
                raise ValueError("the image is too small for this many pyramid levels")
            resized = array if level == 0 else resize_bilinear(levels[-1], width, height)
            padded = pad_reflect101(resized, EDGE_THRESHOLD)
            padded_levels.append(padded)
            levels.append(padded[EDGE_THRESHOLD:EDGE_THRESHOLD + height,
                                 EDGE_THRESHOLD:EDGE_THRESHOLD + width])

        self._padded = padded_levels
        self.image_pyramid = levels
        return levels

    def _require_pyramid(self) -> None:
        if not self.image_pyramid:
            raise RuntimeError("compute_pyramid must be called first")

    def _patch_size(self, level: int) -> float:
        return float(int(PATCH_SIZE * self.scale_factors[level]))

    def _detect(self, cell) -> list[KeyPoint]:
        found = fast_keypoints(cell, self.ini_th_fast, True)
        if not found:
            found = fast_keypoints(cell, self.min_th_fast, True)
        return found

    def _orient(self, level: int, keypoints: list[KeyPoint]) -> list[KeyPoint]:
        padded = self._padded[level]
        return [
            replace(kp, angle=ic_angle(padded, kp.x + EDGE_THRESHOLD, kp.y + EDGE_THRESHOLD, self.umax))
            for kp in keypoints
        ]

    def _grid_candidates(self, image, min_x: int, max_x: int, min_y: int, max_y: int) -> list[KeyPoint]:
        width = float(max_x - min_x)
        height = float(max_y - min_y)
        n_cols = int(width / _CELL_SIZE)
        n_rows = int(height / _CELL_SIZE)
        if n_cols <= 0 or n_rows <= 0:
            return []
        w_cell = math.ceil(width / n_cols)
        h_cell = math.ceil(height / n_rows)

        candidates = []
        for i in range(n_rows):
            ini_y = min_y + i * h_cell
            if ini_y >= max_y - 3:
                continue
            end_y = min(ini_y + h_cell + 6, max_y)
            for j in range(n_cols):
                ini_x = min_x + j * w_cell
                if ini_x >= max_x - 6:
                    continue
                end_x = min(ini_x + w_cell + 6, max_x)
                cell = image[ini_y:end_y, ini_x:end_x]
                candidates.extend(kp.shifted(j * w_cell, i * h_cell) for kp in self._detect(cell))
        return candidates

    def compute_keypoints_octree(self) -> list[list[KeyPoint]]:
        """Detect keypoints on each level, spread out with a quadtree."""
        self._require_pyramid()
        result = []
        for level, image in enumerate(self.image_pyramid):
            rows, cols = image.shape
            min_x = min_y = EDGE_THRESHOLD - 3
            max_x = cols - EDGE_THRESHOLD + 3
            max_y = rows - EDGE_THRESHOLD + 3

            if max_x <= min_x or max_y <= min_y:
                result.append([])
                continue

            candidates = self._grid_candidates(image, min_x, max_x, min_y, max_y)
            kept = distribute_octree(candidates, min_x, max_x, min_y, max_y,
                                     self.features_per_level[level])
            size = self._patch_size(level)
            result.append([
                replace(kp.shifted(min_x, min_y), octave=level, size=size) for kp in kept
            ])
        return [self._orient(level, kps) for level, kps in enumerate(result)]

    def compute_keypoints_old(self) -> list[list[KeyPoint]]:
        """Detect keypoints on each level with a fixed grid and per-cell quotas."""
        self._require_pyramid()
        first_rows, first_cols = self.image_pyramid[0].shape
        ratio = first_cols / first_rows
        result = []

        for level, image in enumerate(self.image_pyramid):
            n_desired = self.features_per_level[level]
            level_cols = int(math.sqrt(n_desired / (5 * ratio)))
            level_rows = int(ratio * level_cols)
            rows, cols = image.shape
            min_b = EDGE_THRESHOLD
            max_bx = cols - EDGE_THRESHOLD
            max_by = rows - EDGE_THRESHOLD
            if level_cols <= 0 or level_rows <= 0 or max_bx <= min_b or max_by <= min_b:
                result.append([])
                continue

            cell_w = math.ceil((max_bx - min_b) / level_cols)
            cell_h = math.ceil((max_by - min_b) / level_rows)
            n_cells = level_rows * level_cols
            per_cell = math.ceil(n_desired / n_cells)

            ini_x_col = [min_b + j * cell_w - 3 for j in range(level_cols)]
            ini_y_row = [min_b + i * cell_h - 3 for i in range(level_rows)]
            grid = list(itertools.product(range(level_rows), range(level_cols)))
            cells = {key: [] for key in grid}
            total = dict.fromkeys(grid, 0)
            retain = dict.fromkeys(grid, 0)
            no_more = dict.fromkeys(grid, False)
            n_no_more = 0
            to_distribute = 0

            h_y = cell_h + 6
            for i, ini_y in enumerate(ini_y_row):
                if i == level_rows - 1:
                    h_y = max_by + 3 - ini_y
                    if h_y <= 0:
                        continue
                h_x = cell_w + 6
                for j, ini_x in enumerate(ini_x_col):
                    if j == level_cols - 1:
                        h_x = max_bx + 3 - ini_x
                        if h_x <= 0:
                            continue
                    cell = image[ini_y:ini_y + h_y, ini_x:ini_x + h_x]
                    found = fast_keypoints(cell, self.ini_th_fast, True)
                    if len(found) <= 3:
                        found = fast_keypoints(cell, self.min_th_fast, True)
                    cells[(i, j)] = found
                    total[(i, j)] = len(found)
                    if len(found) > per_cell:
                        retain[(i, j)] = per_cell
                    else:
                        retain[(i, j)] = len(found)
                        to_distribute += per_cell - len(found)
                        no_more[(i, j)] = True
                        n_no_more += 1

            while to_distribute > 0 and n_no_more < n_cells:
                new_per_cell = per_cell + math.ceil(to_distribute / (n_cells - n_no_more))
                to_distribute = 0
                for key in grid:
                    if no_more[key]:
                        continue
                    if total[key] > new_per_cell:
                        retain[key] = new_per_cell
                    else:
                        retain[key] = total[key]
                        to_distribute += new_per_cell - total[key]
                        no_more[key] = True
                        n_no_more += 1

            size = self._patch_size(level)
            level_keypoints = [
                replace(kp.shifted(ini_x_col[j], ini_y_row[i]), octave=level, size=size)
                for i, j in grid
                for kp in _best_by_response(cells[(i, j)], retain[(i, j)])
            ]
            if len(level_keypoints) > n_desired:
                level_keypoints = _best_by_response(level_keypoints, n_desired)
            result.append(level_keypoints)

        return [self._orient(level, kps) for level, kps in enumerate(result)]

    def extract(self, image) -> tuple[list[KeyPoint], np.ndarray]:
        """Detect and describe keypoints in an 8-bit grey image.

        Returns the keypoints in full-resolution coordinates and an
        ``(n, 32)`` array of descriptors, one row per keypoint.
        """
        array = np.asarray(image)
        if array.size == 0:
            return [], np.zeros((0, DESCRIPTOR_BYTES), dtype=np.uint8)
        if array.ndim != 2 or array.dtype != np.uint8:
            raise ValueError("expected a single-channel 8-bit image")

        self.compute_pyramid(array)
        per_level = self.compute_keypoints_octree()

        keypoints: list[KeyPoint] = []
        rows: list[np.ndarray] = []
        for level, level_keypoints in enumerate(per_level):
            if not level_keypoints:
                continue
            blurred = gaussian_blur(self._padded[level], _BLUR_KSIZE, _BLUR_SIGMA)
            rows.extend(
                compute_orb_descriptor(kp.shifted(EDGE_THRESHOLD, EDGE_THRESHOLD), blurred, self.pattern)
                for kp in level_keypoints
            )
            scale = self.scale_factors[level]
            keypoints.extend(kp.scaled(scale) if level else kp for kp in level_keypoints)

        if not rows:
            return [], np.zeros((0, DESCRIPTOR_BYTES), dtype=np.uint8)
        return keypoints, np.vstack(rows).astype(np.uint8)