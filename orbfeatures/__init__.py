"""ORB feature extraction over an image pyramid, quadtree keypoint distribution and binary descriptor matching."""

__version__ = "0.1.0"