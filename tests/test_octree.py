import pytest

from orbfeatures.keypoint import KeyPoint
from orbfeatures.octree import ExtractorNode, distribute_octree


def _grid_points():
    coords = (10.0, 35.0, 60.0, 85.0)
    return [
        KeyPoint(x=x, y=y, response=float(i))
        for i, (x, y) in enumerate((x, y) for y in coords for x in coords)
    ]


def _square_node(size, keys=()):
    return ExtractorNode(
        ul=(0, 0), ur=(size, 0), bl=(0, size), br=(size, size), keys=list(keys)
    )


def test_divide_corners_tile_parent():
    n1, n2, n3, n4 = _square_node(10).divide()
    assert n1.ul == (0, 0)
    assert n1.br == n4.ul
    assert n2.ur == (10, 0)
    assert n3.bl == (0, 10)
    assert n4.br == (10, 10)
    assert n1.ur == n2.ul
    assert n3.ur == n4.ul


def test_divide_partitions_keypoints():
    keys = [KeyPoint(x=1, y=1), KeyPoint(x=8, y=1), KeyPoint(x=1, y=8), KeyPoint(x=8, y=8), KeyPoint(x=9, y=9)]
    n1, n2, n3, n4 = _square_node(10, keys).divide()
    assert n1.keys == [keys[0]]
    assert n2.keys == [keys[1]]
    assert n3.keys == [keys[2]]
    assert n4.keys == [keys[3], keys[4]]
    assert n1.no_more and n2.no_more and n3.no_more
    assert not n4.no_more


def test_divide_keeps_all_keypoints():
    keys = _grid_points()
    children = _square_node(100, keys).divide()
    total = [kp for child in children for kp in child.keys]
    assert len(total) == len(keys)
    assert all(any(kp is k for k in keys) for kp in total)


def test_empty_input_gives_empty_result():
    assert distribute_octree([], 0, 100, 0, 100, 10) == []


def test_single_keypoint_is_returned():
    kp = KeyPoint(x=5.0, y=5.0, response=3.0)
    assert distribute_octree([kp], 0, 100, 0, 100, 10) == [kp]


def test_all_separated_keypoints_kept_when_enough_requested():
    keys = _grid_points()
    result = distribute_octree(keys, 0, 100, 0, 100, len(keys))
    assert sorted(kp.response for kp in result) == sorted(kp.response for kp in keys)


def test_large_request_returns_each_point_once():
    keys = _grid_points()
    result = distribute_octree(keys, 0, 100, 0, 100, 1000)
    assert len(result) == len(keys)
    assert len({id(kp) for kp in result}) == len(result)


def test_results_are_taken_from_input():
    keys = _grid_points()
    result = distribute_octree(keys, 0, 100, 0, 100, 5)
    assert 1 <= len(result) <= len(keys)
    assert all(any(kp is k for k in keys) for kp in result)


def test_one_pass_of_splitting_is_always_done():
    keys = [KeyPoint(x=10, y=10), KeyPoint(x=90, y=10), KeyPoint(x=10, y=90), KeyPoint(x=90, y=90)]
    result = distribute_octree(keys, 0, 100, 0, 100, 1)
    assert len(result) == 4


def test_strongest_of_coincident_keypoints_wins():
    weak = KeyPoint(x=20.0, y=20.0, response=1.0)
    strong = KeyPoint(x=20.0, y=20.0, response=9.0)
    other = KeyPoint(x=80.0, y=80.0, response=0.5)
    result = distribute_octree([weak, strong, other], 0, 100, 0, 100, 10)
    assert strong in result
    assert all(kp is not weak for kp in result)
    assert len(result) == 2


def test_wide_region_uses_several_initial_columns():
    keys = [KeyPoint(x=10, y=10, response=1.0), KeyPoint(x=150, y=10, response=2.0)]
    result = distribute_octree(keys, 0, 200, 0, 100, 2)
    assert sorted(kp.response for kp in result) == [1.0, 2.0]


def test_offset_region_bounds_only_matter_by_size():
    keys = _grid_points()
    shifted = distribute_octree(keys, 50, 150, 20, 120, len(keys))
    plain = distribute_octree(keys, 0, 100, 0, 100, len(keys))
    assert sorted(kp.response for kp in shifted) == sorted(kp.response for kp in plain)


@pytest.mark.parametrize("bounds", [(0, 100, 10, 10), (0, 100, 50, 10), (20, 20, 0, 100)])
def test_degenerate_region_raises(bounds):
    with pytest.raises(ValueError):
        distribute_octree([KeyPoint(x=1, y=1)], *bounds, 5)