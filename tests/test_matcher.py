import numpy as np
import pytest

from orbfeatures.histogram import RotationHistogram
from orbfeatures.keypoint import KeyPoint
from orbfeatures.matcher import TH_LOW, OrbMatcher


def _descriptor(flipped_bits=0, start=0):
    bits = np.zeros(256, dtype=np.uint8)
    bits[start:start + flipped_bits] = 1
    return np.packbits(bits)


def _distinct(i):
    # Descriptors for different i are far apart: each sets a different block.
    bits = np.zeros(256, dtype=np.uint8)
    bits[(i * 16) % 256:(i * 16) % 256 + 16] = 1
    bits[(i * 37 + 100) % 256] = 1
    return np.packbits(bits)


def _kp(angle=0.0, octave=0):
    return KeyPoint(x=0.0, y=0.0, angle=angle, octave=octave)


def test_bow_identical_descriptors_match():
    matcher = OrbMatcher(0.6, True)
    d = [_descriptor(0)]
    result = matcher.search_by_bow([_kp()], d, {7: [0]}, [_kp()], d, {7: [0]})
    assert result == [0]


@pytest.mark.parametrize("bits, expected", [(TH_LOW - 1, [0]), (TH_LOW, [None])])
def test_bow_threshold_is_strict(bits, expected):
    matcher = OrbMatcher(0.6, False)
    result = matcher.search_by_bow(
        [_kp()], [_descriptor(0)], {1: [0]},
        [_kp()], [_descriptor(bits)], {1: [0]},
    )
    assert result == expected


def test_bow_ratio_test_rejects_ambiguous():
    matcher = OrbMatcher(0.6, False)
    d = _descriptor(0)
    result = matcher.search_by_bow([_kp()], [d], {1: [0]}, [_kp(), _kp()], [d, d], {1: [0, 1]})
    assert result == [None]


def test_bow_skips_invalid_features():
    matcher = OrbMatcher(0.6, False)
    d = [_descriptor(0)]
    assert matcher.search_by_bow([_kp()], d, {1: [0]}, [_kp()], d, {1: [0]}, [True], [False]) == [None]
    assert matcher.search_by_bow([_kp()], d, {1: [0]}, [_kp()], d, {1: [0]}, [False], [True]) == [None]


def test_bow_needs_shared_node():
    matcher = OrbMatcher(0.6, False)
    d = [_descriptor(0)]
    assert matcher.search_by_bow([_kp()], d, {1: [0]}, [_kp()], d, {2: [0]}) == [None]


def test_bow_second_image_feature_matched_once():
    matcher = OrbMatcher(0.6, False)
    d = _descriptor(0)
    result = matcher.search_by_bow([_kp(), _kp()], [d, d], {1: [0], 2: [1]}, [_kp()], [d], {1: [0], 2: [0]})
    assert result == [0, None]


def test_bow_rejects_inconsistent_rotation():
    matcher = OrbMatcher(0.6, True)
    n = 12
    descriptors = [_distinct(i) for i in range(n)]
    kps1 = [_kp(angle=0.0) for _ in range(n - 1)] + [_kp(angle=90.0)]
    kps2 = [_kp(angle=0.0) for _ in range(n)]
    fv = {i: [i] for i in range(n)}
    result = matcher.search_by_bow(kps1, descriptors, fv, kps2, descriptors, fv)
    assert result[:-1] == list(range(n - 1))
    assert result[-1] is None


def test_bow_keeps_rotation_when_check_disabled():
    matcher = OrbMatcher(0.6, False)
    n = 12
    descriptors = [_distinct(i) for i in range(n)]
    kps1 = [_kp(angle=0.0) for _ in range(n - 1)] + [_kp(angle=90.0)]
    kps2 = [_kp(angle=0.0) for _ in range(n)]
    fv = {i: [i] for i in range(n)}
    assert matcher.search_by_bow(kps1, descriptors, fv, kps2, descriptors, fv) == list(range(n))


def test_bow_rejects_mismatched_flags():
    matcher = OrbMatcher(0.6, False)
    d = [_descriptor(0)]
    with pytest.raises(ValueError):
        matcher.search_by_bow([_kp()], d, {1: [0]}, [_kp()], d, {1: [0]}, [True, True], [True])


def test_initialization_closer_match_replaces_earlier():
    matcher = OrbMatcher(0.9, False)
    d1 = [_descriptor(10), _descriptor(0)]
    d2 = [_descriptor(0)]
    result = matcher.search_for_initialization([_kp(), _kp()], d1, [_kp()], d2, [[0], [0]])
    assert result == [None, 0]


def test_initialization_farther_match_does_not_replace():
    matcher = OrbMatcher(0.9, False)
    d1 = [_descriptor(0), _descriptor(10)]
    d2 = [_descriptor(0)]
    result = matcher.search_for_initialization([_kp(), _kp()], d1, [_kp()], d2, [[0], [0]])
    assert result == [0, None]


def test_initialization_ignores_coarser_levels():
    matcher = OrbMatcher(0.9, False)
    d = [_descriptor(0)]
    assert matcher.search_for_initialization([_kp(octave=1)], d, [_kp()], d, [[0]]) == [None]
    assert matcher.search_for_initialization([_kp()], d, [_kp(octave=1)], d, [[0]]) == [None]


def test_initialization_threshold_inclusive():
    matcher = OrbMatcher(0.9, False)
    result = matcher.search_for_initialization(
        [_kp()], [_descriptor(0)], [_kp()], [_descriptor(TH_LOW)], [[0]]
    )
    assert result == [0]
    result = matcher.search_for_initialization(
        [_kp()], [_descriptor(0)], [_kp()], [_descriptor(TH_LOW + 1)], [[0]]
    )
    assert result == [None]


def test_initialization_requires_candidates_per_keypoint():
    matcher = OrbMatcher(0.9, False)
    with pytest.raises(ValueError):
        matcher.search_for_initialization([_kp()], [_descriptor(0)], [_kp()], [_descriptor(0)], [])


def test_initialization_matches_are_unique():
    matcher = OrbMatcher(0.9, True)
    n = 6
    descriptors = [_distinct(i) for i in range(n)]
    kps = [_kp() for _ in range(n)]
    candidates = [list(range(n)) for _ in range(n)]
    result = matcher.search_for_initialization(kps, descriptors, kps, descriptors, candidates)
    assert result == list(range(n))
    matched = [m for m in result if m is not None]
    assert len(matched) == len(set(matched))


def test_filter_by_rotation_disabled_returns_nothing():
    histogram = RotationHistogram()
    for i in range(11):
        histogram.add(0.0, 0.0, i)
    histogram.add(90.0, 0.0, 11)
    assert OrbMatcher(0.6, False).filter_by_rotation(histogram) == []
    assert OrbMatcher(0.6, True).filter_by_rotation(histogram) == [11]