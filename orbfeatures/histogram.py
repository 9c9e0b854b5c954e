"""Rotation consistency checks for feature matches."""

from __future__ import annotations

import math
from collections.abc import Sequence

HISTO_LENGTH = 30


def rotation_bin(angle1: float, angle2: float) -> int:
    """Return the histogram bin of the rotation between two keypoint angles.

    Angles are in degrees. The difference is wrapped into ``[0, 360)`` and
    scaled by ``1 / HISTO_LENGTH``; the last bin wraps to zero.
    """
    rot = angle1 - angle2
    if rot < 0.0:
        rot += 360.0
    scaled = rot / HISTO_LENGTH
    index = math.floor(scaled + 0.5) if scaled >= 0 else -math.floor(-scaled + 0.5)
    if index == HISTO_LENGTH:
        index = 0
    if not 0 <= index < HISTO_LENGTH:
        raise ValueError(f"rotation {rot} falls outside the histogram")
    return index


def compute_three_maxima(histo: Sequence[int]) -> tuple[int | None, int | None, int | None]:
    """Return the indices of the three largest counts in ``histo``.

    On ties the earlier bin ranks higher. The second and third index are
    dropped (``None``) when their count is below a tenth of the largest.
    """
    max1 = max2 = max3 = 0
    ind1: int | None = None
    ind2: int | None = None
    ind3: int | None = None

    for index, count in enumerate(histo):
        if count > max1:
            max3, max2, max1 = max2, max1, count
            ind3, ind2, ind1 = ind2, ind1, index
        elif count > max2:
            max3, max2 = max2, count
            ind3, ind2 = ind2, index
        elif count > max3:
            max3 = count
            ind3 = index

    if max2 < 0.1 * max1:
        ind2 = ind3 = None
    elif max3 < 0.1 * max1:
        ind3 = None
    return ind1, ind2, ind3


class RotationHistogram:
    """Collects match indices by the rotation between matched keypoints."""

    def __init__(self) -> None:
        self._bins: list[list[int]] = [[] for _ in range(HISTO_LENGTH)]

    @property
    def bins(self) -> tuple[tuple[int, ...], ...]:
        """The indices recorded in each bin."""
        return tuple(tuple(entries) for entries in self._bins)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._bins)

    def add(self, angle1: float, angle2: float, index: int) -> int:
        """Record ``index`` under the rotation ``angle1 - angle2``; return its bin."""
        bin_index = rotation_bin(angle1, angle2)
        self._bins[bin_index].append(index)
        return bin_index

    def rejected(self) -> list[int]:
        """Return the indices outside the three dominant rotation bins."""
        dominant = set(compute_three_maxima([len(entries) for entries in self._bins]))
        return [
            index
            for bin_index, entries in enumerate(self._bins)
            if bin_index not in dominant
            for index in entries
        ]