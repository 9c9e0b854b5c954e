"""Binary descriptor comparison."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import NamedTuple

import numpy as np

DESCRIPTOR_BYTES = 32
_NO_MATCH_DISTANCE = 256


class BestMatches(NamedTuple):
    """The closest candidate and the two smallest distances seen."""

    index: int | None
    distance: int
    second_distance: int


def _as_bytes(descriptor) -> np.ndarray:
    if isinstance(descriptor, (bytes, bytearray, memoryview)):
        return np.frombuffer(bytes(descriptor), dtype=np.uint8)
    return np.asarray(descriptor, dtype=np.uint8).ravel()


def descriptor_distance(a, b) -> int:
    """Return the Hamming distance between two binary descriptors."""
    first = _as_bytes(a)
    second = _as_bytes(b)
    if first.shape != second.shape:
        raise ValueError("descriptors must have the same length")
    return int(np.unpackbits(np.bitwise_xor(first, second)).sum())


def best_two_matches(descriptor, candidates: Iterable[int], descriptors: Sequence) -> BestMatches:
    """Find the nearest and second-nearest of ``candidates`` to ``descriptor``.

    ``candidates`` are indices into ``descriptors``. On ties the earlier
    candidate wins. With no candidates the index is ``None`` and both
    distances are 256.
    """
    best_index: int | None = None
    best = _NO_MATCH_DISTANCE
    second = _NO_MATCH_DISTANCE
    for index in candidates:
        dist = descriptor_distance(descriptor, descriptors[index])
        if dist < best:
            second = best
            best = dist
            best_index = index
        elif dist < second:
            second = dist
    return BestMatches(best_index, best, second)