"""Matching of binary descriptors between two views."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from .descriptors import best_two_matches, descriptor_distance
from .histogram import RotationHistogram
from .keypoint import KeyPoint

TH_HIGH = 100
TH_LOW = 50


class OrbMatcher:
    """Finds correspondences between keypoints of two images.

    ``nn_ratio`` is the largest accepted ratio between the best and the
    second-best descriptor distance. With ``check_orientation`` matches
    whose rotation disagrees with the dominant rotations are dropped.
    """

    def __init__(self, nn_ratio: float = 0.6, check_orientation: bool = True) -> None:
        self.nn_ratio = nn_ratio
        self.check_orientation = check_orientation

    def filter_by_rotation(self, rotation_histogram: RotationHistogram) -> list[int]:
        """Return the match indices to drop because their rotation is inconsistent."""
        if not self.check_orientation:
            return []
        return rotation_histogram.rejected()

    def search_by_bow(
        self,
        keypoints1: Sequence[KeyPoint],
        descriptors1: Sequence,
        feature_vector1: Mapping[int, Iterable[int]],
        keypoints2: Sequence[KeyPoint],
        descriptors2: Sequence,
        feature_vector2: Mapping[int, Iterable[int]],
        valid1: Sequence[bool] | None = None,
        valid2: Sequence[bool] | None = None,
    ) -> list[int | None]:
        """Match features of image 1 to image 2 that share a vocabulary node.

        Feature vectors map a vocabulary node to the indices of the features
        under it. ``valid1`` and ``valid2`` mark which features may take
        part; by default all may. Returns, for each keypoint of image 1, the
        index of its match in image 2 or ``None``.
        """
        n1 = len(keypoints1)
        n2 = len(keypoints2)
        if valid1 is None:
            valid1 = [True] * n1
        if valid2 is None:
            valid2 = [True] * n2
        if len(valid1) != n1 or len(valid2) != n2:
            raise ValueError("validity flags must have one entry per keypoint")

        matches: list[int | None] = [None] * n1
        matched2 = [False] * n2
        histogram = RotationHistogram()

        for node in sorted(set(feature_vector1) & set(feature_vector2)):
            indices2 = list(feature_vector2[node])
            for idx1 in feature_vector1[node]:
                if not valid1[idx1]:
                    continue
                candidates = (idx2 for idx2 in indices2 if not matched2[idx2] and valid2[idx2])
                best = best_two_matches(descriptors1[idx1], candidates, descriptors2)
                if best.index is None or best.distance >= TH_LOW:
                    continue
                if not float(best.distance) < self.nn_ratio * float(best.second_distance):
                    continue
                matches[idx1] = best.index
                matched2[best.index] = True
                if self.check_orientation:
                    histogram.add(keypoints1[idx1].angle, keypoints2[best.index].angle, idx1)

        for idx1 in self.filter_by_rotation(histogram):
            matches[idx1] = None
        return matches

    def search_for_initialization(
        self,
        keypoints1: Sequence[KeyPoint],
        descriptors1: Sequence,
        keypoints2: Sequence[KeyPoint],
        descriptors2: Sequence,
        candidates: Sequence[Iterable[int]],
    ) -> list[int | None]:
        """Match finest-level keypoints of image 1 to nearby keypoints of image 2.

        ``candidates[i]`` lists the indices of image 2 that lie in the search
        window of keypoint ``i`` of image 1. Only keypoints on level 0 are
        matched, and only against candidates on the same level. A keypoint of
        image 2 keeps the closest of the keypoints that claim it. Returns,
        for each keypoint of image 1, the index of its match or ``None``.
        """
        n1 = len(keypoints1)
        n2 = len(keypoints2)
        if len(candidates) != n1:
            raise ValueError("candidates must have one entry per keypoint of image 1")

        matches12: list[int | None] = [None] * n1
        matches21: list[int | None] = [None] * n2
        matched_distance: list[float] = [float("inf")] * n2
        histogram = RotationHistogram()

        for i1, kp1 in enumerate(keypoints1):
            level = kp1.octave
            if level > 0:
                continue

            best_dist = float("inf")
            second_dist = float("inf")
            best_idx: int | None = None
            for i2 in candidates[i1]:
                if keypoints2[i2].octave != level:
                    continue
                dist = descriptor_distance(descriptors1[i1], descriptors2[i2])
                if matched_distance[i2] <= dist:
                    continue
                if dist < best_dist:
                    second_dist = best_dist
                    best_dist = dist
                    best_idx = i2
                elif dist < second_dist:
                    second_dist = dist

            if best_idx is None or best_dist > TH_LOW:
                continue
            if not best_dist < second_dist * self.nn_ratio:
                continue

            previous = matches21[best_idx]
            if previous is not None:
                matches12[previous] = None
            matches12[i1] = best_idx
            matches21[best_idx] = i1
            matched_distance[best_idx] = best_dist

            if self.check_orientation:
                histogram.add(kp1.angle, keypoints2[best_idx].angle, i1)

        for i1 in self.filter_by_rotation(histogram):
            matches12[i1] = None
        return matches12