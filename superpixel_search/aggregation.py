"""
Per-region descriptor aggregation.

Walks every pixel of an image once, in row-major order, folding colour
and position into one accumulator per region. A region's descriptor is
yielded the moment its observed pixel count reaches the total supplied
by the segmenter, so no second sweep is needed to know which regions
are complete. Memory is bounded by the region count, not the pixel
count.
"""

import logging
from typing import Iterator, Optional, Sequence

import numpy as np

from .descriptors import RegionDescriptor

logger = logging.getLogger(__name__)


class AggregationError(ValueError):
    """Supplied per-region pixel totals disagree with the label map."""


def as_label_map(labels) -> np.ndarray:
    """
    Return labels as an integer array.

    Float maps are accepted when every value is a whole number, which is
    what np.zeros((h, w)) style maps contain.

    Raises:
        ValueError: If any label is not a whole number.
    """
    labels = np.asarray(labels)
    if np.issubdtype(labels.dtype, np.integer):
        return labels
    if labels.dtype == np.bool_ or not np.issubdtype(labels.dtype, np.number):
        raise ValueError(f"Label map must be numeric, got dtype {labels.dtype}")

    as_int = labels.astype(np.int64)
    if not np.array_equal(labels, as_int):
        raise ValueError("Label map contains non-integral labels")
    return as_int


def count_region_pixels(labels: np.ndarray,
                        region_count: Optional[int] = None) -> np.ndarray:
    """
    Count how many pixels the label map assigns to each region.

    Args:
        labels: H×W integer label map with values in [0, region_count).
        region_count: Number of regions. Defaults to max label + 1.

    Returns:
        int64 array of length region_count.

    Raises:
        ValueError: If labels are non-integral, negative or exceed
            region_count.
    """
    flat = as_label_map(labels).ravel()
    if flat.size == 0:
        return np.zeros(region_count or 0, dtype=np.int64)
    if flat.min() < 0:
        raise ValueError("Label map contains negative labels")

    if region_count is None:
        region_count = int(flat.max()) + 1
    elif flat.max() >= region_count:
        raise ValueError(
            f"Label {int(flat.max())} out of range for {region_count} regions"
        )

    return np.bincount(flat, minlength=region_count)


def aggregate_regions(image: np.ndarray,
                      labels: np.ndarray,
                      pixel_totals: Sequence[int],
                      image_id: Optional[int] = None
                      ) -> Iterator[RegionDescriptor]:
    """
    Stream finalized region descriptors for one image.

    Args:
        image: H×W×3 image in the colour space used for indexing.
        labels: H×W label map assigning each pixel to a region.
        pixel_totals: Exact pixel count of each region; its length is the
            region count.
        image_id: Registry id stamped on every descriptor.

    Yields:
        RegionDescriptor for each region, in the order regions complete.

    Raises:
        ValueError: On shape mismatch, non-integral labels or labels outside
            the region range.
        AggregationError: If a region receives more pixels than its total,
            or if any region is still incomplete once every pixel has been
            visited. The latter is raised when the generator is exhausted.
    """
    image = np.asarray(image)
    labels = as_label_map(labels)

    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected an H×W×3 image, got shape {image.shape}")
    if labels.shape != image.shape[:2]:
        raise ValueError(
            f"Label map shape {labels.shape} doesn't match "
            f"image shape {image.shape[:2]}"
        )

    totals = [int(t) for t in pixel_totals]
    region_count = len(totals)
    if labels.size and (labels.min() < 0 or labels.max() >= region_count):
        raise ValueError(
            f"Label map values must lie in [0, {region_count}), "
            f"got [{int(labels.min())}, {int(labels.max())}]"
        )

    accumulators = [RegionDescriptor(label=r, image_id=image_id)
                    for r in range(region_count)]
    finalized = 0

    for row in range(labels.shape[0]):
        # One row at a time as plain Python ints: sums never overflow
        label_row = labels[row].tolist()
        pixel_row = image[row].astype(np.int64).tolist()
        for col, (region, pixel) in enumerate(zip(label_row, pixel_row)):
            acc = accumulators[region]
            if acc.is_final:
                raise AggregationError(
                    f"Region {region} has more pixels than its total "
                    f"of {totals[region]}"
                )
            acc.add_pixel(row, col, pixel[0], pixel[1], pixel[2])
            if acc.pixel_count == totals[region]:
                finalized += 1
                yield acc.finalize()

    mismatched = [
        (acc.label, acc.pixel_count, totals[acc.label])
        for acc in accumulators
        if acc.pixel_count != totals[acc.label]
    ]
    if mismatched:
        label, seen, expected = mismatched[0]
        raise AggregationError(
            f"{len(mismatched)} region(s) never finalized, region {label} "
            f"has {seen} pixels but its total is {expected}"
        )

    logger.debug(
        f"Aggregated {finalized} regions from {labels.size} pixels "
        f"(image {image_id})"
    )
