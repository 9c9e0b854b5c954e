# orbfeatures

This package finds ORB keypoints in grayscale images stored as NumPy arrays. It also
matches their binary descriptors between two images.

## How extraction works

1. The image is turned into a scale pyramid.
2. On each level, FAST corners are detected in a grid of cells. A lower threshold is
   used in any cell where nothing is found at the first one.
3. A quadtree spreads the corners evenly over the level.
4. Each kept corner gets an intensity-centroid orientation and a rotated 256-bit
   binary descriptor. The descriptor is computed on a Gaussian-blurred copy of the
   level.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Extracting features

```python
import numpy as np
from orbfeatures.extractor import OrbExtractor

image = np.random.default_rng(0).integers(0, 256, (480, 640), dtype=np.uint8)

extractor = OrbExtractor(1000, 1.2, 8, 20, 7)
keypoints, descriptors = extractor.extract(image)
```

`extract` needs a two-dimensional `uint8` image and returns two things:

- A list of `KeyPoint`. Each has the fields `x`, `y`, `size`, `angle` (in degrees),
  `response` and `octave`. Positions are in full-resolution coordinates.
- A `uint8` array of shape `(len(keypoints), 32)`, with one descriptor per row.

An empty image gives no keypoints and a `(0, 32)` array.

The constructor takes these arguments:

- `nfeatures`: the total number of features. It is shared out over the levels and
  stored in `features_per_level`.
- `scale_factor`: the scale ratio between pyramid levels. It must be greater than 1.
- `nlevels`: the number of pyramid levels.
- `ini_th_fast`: the initial FAST threshold.
- `min_th_fast`: the lower threshold, used in cells where nothing is found at the
  initial one.

The steps can also be run one at a time:

- `compute_pyramid(image)`: builds the pyramid.
- `compute_keypoints_octree()`: returns the keypoints of each level, spread out with
  the quadtree. `extract` uses this method.
- `compute_keypoints_old()`: returns the keypoints of each level, using a fixed grid
  with a quota per cell.

Each keypoint method returns one list of oriented keypoints per level. The
coordinates are those of that level.

### Lower-level pieces

- `orbfeatures.imaging` has four image operations:
  - `pad_reflect101`: mirrored padding.
  - `resize_bilinear`: bilinear resizing.
  - `gaussian_blur`: Gaussian blurring.
  - `fast_keypoints`: FAST-9 corner detection, with optional non-maximum suppression.
- `orbfeatures.pattern` has two functions:
  - `orb_pattern()`: returns the 512 sampling points.
  - `compute_umax(half_patch_size)`: returns the bounds of the circular patch.
- `orbfeatures.extractor` has two functions:
  - `ic_angle`: computes the orientation.
  - `compute_orb_descriptor`: computes a single descriptor.
- `orbfeatures.octree` has two items:
  - `distribute_octree(keypoints, min_x, max_x, min_y, max_y, n)`: keeps the strongest
    keypoint in each of about `n` regions.
  - `ExtractorNode`: a quadtree region.

## Matching descriptors

```python
from orbfeatures.descriptors import descriptor_distance
from orbfeatures.matcher import OrbMatcher

distance = descriptor_distance(descriptors[0], descriptors[1])  # Hamming distance, 0..256

matcher = OrbMatcher(nn_ratio=0.9, check_orientation=True)
```

`OrbMatcher` has two search methods. Each returns, for every keypoint of image 1,
either the index of its match in image 2 or `None`.

### `search_by_bow`

This method compares only features that share a vocabulary node. It takes, for each
image:

- the keypoints;
- the descriptors;
- a feature vector, which is a mapping from a node id to the feature indices under that
  node.

Two optional lists, `valid1` and `valid2`, choose which features may take part. A match
must meet both of these conditions:

- its distance is below 50;
- it passes the nearest-neighbour ratio test.

### `search_for_initialization`

This method matches level-0 keypoints of image 1 against candidate indices of image 2,
given as one list per keypoint. It only considers candidates on the same level. A
keypoint of image 2 keeps the closest of the keypoints that claim it.

### Rotation check

When `check_orientation` is on, both methods drop matches whose rotation falls outside
the three dominant bins of a `orbfeatures.histogram.RotationHistogram`. The same module
also has two functions:

- `rotation_bin`
- `compute_three_maxima`

`orbfeatures.descriptors.best_two_matches` finds the nearest and second-nearest
candidate for a descriptor.

### Geometry helpers

`orbfeatures.geometry` has four helpers:

- `check_dist_epipolar_line`: checks the distance of a keypoint from an epipolar line,
  given a fundamental matrix.
- `decompose_sim3`: splits a `[sR | t]` similarity.
- `project_point`: projects a point through a pinhole camera.
- `radius_by_viewing_cos`: gives a search radius factor from a viewing angle.

## What this package does not do

This package only detects and matches features. It does not do the following:

- It does not build or load a visual vocabulary. The feature vectors given to
  `search_by_bow` must come from elsewhere.
- It keeps no map of 3D points or keyframes.
- It does not search by projecting map points.
- It does not estimate or optimise camera poses.
- It provides no command-line program.