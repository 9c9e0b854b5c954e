"""Spatial distribution of keypoints with a quadtree.

Keypoints are spread over the image by repeatedly splitting regions into
four until there are as many regions as wanted features; the strongest
keypoint of each region is kept.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from .keypoint import KeyPoint

Corner = tuple[int, int]


@dataclass(eq=False)
class ExtractorNode:
    """A rectangular region of the image and the keypoints inside it.

    Corners are upper-left, upper-right, bottom-left and bottom-right.
    ``no_more`` marks a node that holds a single keypoint and is not split.
    """

    ul: Corner
    ur: Corner
    bl: Corner
    br: Corner
    keys: list[KeyPoint] = field(default_factory=list)
    no_more: bool = False

    def divide(self) -> tuple[ExtractorNode, ExtractorNode, ExtractorNode, ExtractorNode]:
        """Split the node into four quadrants and share out its keypoints.

        Returns the upper-left, upper-right, bottom-left and bottom-right
        children, in that order.
        """
        half_x = math.ceil((self.ur[0] - self.ul[0]) / 2)
        half_y = math.ceil((self.br[1] - self.ul[1]) / 2)
        left, top = self.ul

        n1 = ExtractorNode(
            ul=(left, top),
            ur=(left + half_x, top),
            bl=(left, top + half_y),
            br=(left + half_x, top + half_y),
        )
        n2 = ExtractorNode(ul=n1.ur, ur=self.ur, bl=n1.br, br=(self.ur[0], top + half_y))
        n3 = ExtractorNode(ul=n1.bl, ur=n1.br, bl=self.bl, br=(n1.br[0], self.bl[1]))
        n4 = ExtractorNode(ul=n3.ur, ur=n2.br, bl=n3.br, br=self.br)

        split_x = n1.ur[0]
        split_y = n1.br[1]
        for kp in self.keys:
            if kp.x < split_x:
                (n1 if kp.y < split_y else n3).keys.append(kp)
            elif kp.y < split_y:
                n2.keys.append(kp)
            else:
                n4.keys.append(kp)

        children = (n1, n2, n3, n4)
        for child in children:
            if len(child.keys) == 1:
                child.no_more = True
        return children


def _round_half_away(value: float) -> int:
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def _initial_nodes(keypoints: Iterable[KeyPoint], width: int, height: int) -> list[ExtractorNode]:
    # Very narrow regions would otherwise get no column at all.
    n_ini = max(1, _round_half_away(width / height))
    h_x = width / n_ini

    nodes = []
    for i in range(n_ini):
        left = int(h_x * i)
        right = int(h_x * (i + 1))
        nodes.append(ExtractorNode(ul=(left, 0), ur=(right, 0), bl=(left, height), br=(right, height)))

    for kp in keypoints:
        index = min(max(int(kp.x / h_x), 0), n_ini - 1)
        nodes[index].keys.append(kp)

    nodes = [node for node in nodes if node.keys]
    for node in nodes:
        if len(node.keys) == 1:
            node.no_more = True
    return nodes


def _split_children(node: ExtractorNode, pushed: list[ExtractorNode], expandable: list[ExtractorNode]) -> None:
    for child in node.divide():
        if child.keys:
            pushed.append(child)
            if len(child.keys) > 1:
                expandable.append(child)


def _expand_largest(nodes: list[ExtractorNode], expandable: list[ExtractorNode], n: int) -> list[ExtractorNode]:
    """Split the most populated nodes first until ``n`` nodes exist."""
    while True:
        prev_size = len(nodes)
        ordered = sorted(expandable, key=lambda node: len(node.keys))
        expandable = []
        pushed: list[ExtractorNode] = []
        erased: set[int] = set()

        for node in reversed(ordered):
            _split_children(node, pushed, expandable)
            erased.add(id(node))
            if len(nodes) - len(erased) + len(pushed) >= n:
                break

        nodes = pushed[::-1] + [node for node in nodes if id(node) not in erased]
        if len(nodes) >= n or len(nodes) == prev_size:
            return nodes


def distribute_octree(
    keypoints: Iterable[KeyPoint],
    min_x: int,
    max_x: int,
    min_y: int,
    max_y: int,
    n: int,
) -> list[KeyPoint]:
    """Spread ``keypoints`` over the region and keep about ``n`` of them.

    Keypoint coordinates are relative to ``(min_x, min_y)``. The region is
    split into quadrants until at least ``n`` regions exist or no region
    can be split further; the keypoint with the highest response in each
    region is returned. The result may hold more than ``n`` keypoints.
    """
    width = max_x - min_x
    height = max_y - min_y
    if width <= 0 or height <= 0:
        raise ValueError("the region must have a positive width and height")

    nodes = _initial_nodes(keypoints, width, height)

    while True:
        prev_size = len(nodes)
        pushed: list[ExtractorNode] = []
        kept: list[ExtractorNode] = []
        expandable: list[ExtractorNode] = []

        for node in nodes:
            if node.no_more:
                kept.append(node)
            else:
                _split_children(node, pushed, expandable)

        nodes = pushed[::-1] + kept

        if len(nodes) >= n or len(nodes) == prev_size:
            break
        if len(nodes) + 3 * len(expandable) > n:
            nodes = _expand_largest(nodes, expandable, n)
            break

    return [max(node.keys, key=lambda kp: kp.response) for node in nodes]