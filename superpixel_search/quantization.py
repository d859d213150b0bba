"""
Bucket quantization of region descriptors.

Maps a finalized descriptor to one integer key built from five
quantized coordinates: the three channel averages (16 buckets each over
the 8-bit range) and the bounding-box centre (10 buckets per axis over
an assumed maximum image extent). Keys are packed mixed-radix in the
order channel 1, channel 2, channel 3, x, y.

The maximum extent is a configuration limit, not read from the image.
Regions of larger images still quantize, because every coordinate is
clamped into its last bucket, but their spatial resolution is coarser.
Configure via environment variables (SPS_MAX_IMAGE_WIDTH,
SPS_MAX_IMAGE_HEIGHT).
"""

import os
import logging
from typing import Optional, Tuple

from .descriptors import RegionDescriptor

logger = logging.getLogger(__name__)

# Assumes 8-bit channels
CHANNEL_RANGE = 256
COLOR_BUCKETS = 16
COLOR_BUCKET_SIZE = CHANNEL_RANGE // COLOR_BUCKETS

MAX_IMAGE_WIDTH = int(os.environ.get("SPS_MAX_IMAGE_WIDTH", "3840"))
MAX_IMAGE_HEIGHT = int(os.environ.get("SPS_MAX_IMAGE_HEIGHT", "2160"))
X_BUCKETS = 10
Y_BUCKETS = 10

DIMENSIONS = (COLOR_BUCKETS, COLOR_BUCKETS, COLOR_BUCKETS, X_BUCKETS, Y_BUCKETS)
KEY_SPACE = COLOR_BUCKETS ** 3 * X_BUCKETS * Y_BUCKETS

# Returned for descriptors that carry no pixels; never a valid key
INVALID_KEY = -1

BucketCoordinates = Tuple[int, int, int, int, int]


def _clamp(value: int, buckets: int) -> int:
    return max(0, min(value, buckets - 1))


def bucket_coordinates(descriptor: RegionDescriptor,
                       max_width: int = None,
                       max_height: int = None) -> Optional[BucketCoordinates]:
    """
    Quantize a descriptor into its five bucket coordinates.

    Args:
        descriptor: Region descriptor with accumulated statistics.
        max_width: Assumed maximum image width (defaults to MAX_IMAGE_WIDTH).
        max_height: Assumed maximum image height (defaults to MAX_IMAGE_HEIGHT).

    Returns:
        (c1, c2, c3, x, y) bucket indices, each clamped into range, or
        None if the descriptor is empty.
    """
    if descriptor.pixel_count == 0:
        return None

    max_width = max_width or MAX_IMAGE_WIDTH
    max_height = max_height or MAX_IMAGE_HEIGHT
    # Whole-pixel bucket widths; an extent that is not a multiple of the
    # bucket count leaves a remainder that clamps into the last bucket
    x_bucket_size = max(1, max_width // X_BUCKETS)
    y_bucket_size = max(1, max_height // Y_BUCKETS)

    c1_avg, c2_avg, c3_avg = descriptor.channel_means()
    x_center, y_center = descriptor.center()

    return (
        _clamp(int(c1_avg // COLOR_BUCKET_SIZE), COLOR_BUCKETS),
        _clamp(int(c2_avg // COLOR_BUCKET_SIZE), COLOR_BUCKETS),
        _clamp(int(c3_avg // COLOR_BUCKET_SIZE), COLOR_BUCKETS),
        _clamp(int(x_center // x_bucket_size), X_BUCKETS),
        _clamp(int(y_center // y_bucket_size), Y_BUCKETS),
    )


def compose_key(coordinates: BucketCoordinates) -> int:
    """
    Pack five bucket coordinates into a single key.

    Raises:
        ValueError: If a coordinate lies outside its dimension.
    """
    if len(coordinates) != len(DIMENSIONS):
        raise ValueError(
            f"Expected {len(DIMENSIONS)} coordinates, got {len(coordinates)}"
        )

    key = 0
    for value, size in zip(coordinates, DIMENSIONS):
        if not 0 <= value < size:
            raise ValueError(f"Bucket coordinate {value} outside [0, {size})")
        key = key * size + value
    return key


def decompose_key(key: int) -> BucketCoordinates:
    """Inverse of compose_key, useful for inspecting index buckets."""
    if not 0 <= key < KEY_SPACE:
        raise ValueError(f"Key {key} outside [0, {KEY_SPACE})")

    coordinates = []
    for size in reversed(DIMENSIONS):
        key, value = divmod(key, size)
        coordinates.append(value)
    return tuple(reversed(coordinates))


def quantize(descriptor: RegionDescriptor,
             max_width: int = None,
             max_height: int = None) -> int:
    """
    Map a descriptor to its bucket key.

    Pure function of the descriptor's sums, extrema and count, so the
    result does not depend on the order pixels were visited.

    Returns:
        Key in [0, KEY_SPACE), or INVALID_KEY for an empty descriptor.
    """
    coordinates = bucket_coordinates(descriptor, max_width, max_height)
    if coordinates is None:
        return INVALID_KEY
    return compose_key(coordinates)
