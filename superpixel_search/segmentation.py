"""
SLIC segmentation adapter.

Wraps scikit-image's SLIC so the rest of the package receives exactly
what the aggregator consumes: a dense label map, the region count and
the pixel total of each region. Segmentation quality is not this
package's concern; any segmenter returning the same triple can be
plugged into SearchEngine instead.

Defaults follow small superpixels of roughly 25 px side with connectivity
enforcement. Configure via environment (SPS_REGION_SIZE, SPS_COMPACTNESS,
SPS_MIN_SIZE_FACTOR).
"""

import os
import logging
from typing import NamedTuple

import cv2
import numpy as np
from skimage.segmentation import slic

from .aggregation import count_region_pixels
from .preprocessing import normalize_image

logger = logging.getLogger(__name__)

REGION_SIZE = int(os.environ.get("SPS_REGION_SIZE", "25"))
COMPACTNESS = float(os.environ.get("SPS_COMPACTNESS", "10.0"))
MIN_SIZE_FACTOR = float(os.environ.get("SPS_MIN_SIZE_FACTOR", "0.04"))


class Segmentation(NamedTuple):
    labels: np.ndarray
    region_count: int
    pixel_totals: np.ndarray


def relabel_dense(labels: np.ndarray) -> np.ndarray:
    """Map arbitrary integer labels onto 0..n-1, preserving their order."""
    _, dense = np.unique(labels, return_inverse=True)
    return dense.reshape(labels.shape).astype(np.int32)


def segment_image(image_np: np.ndarray,
                  region_size: int = None,
                  compactness: float = None,
                  min_size_factor: float = None) -> Segmentation:
    """
    Partition a BGR image into SLIC superpixels.

    Args:
        image_np: BGR image.
        region_size: Approximate superpixel side length in pixels.
        compactness: Colour vs. spatial proximity balance (higher = more
            compact, grid-like regions).
        min_size_factor: Minimum region size relative to the average
            superpixel, used when enforcing connectivity.

    Returns:
        Segmentation with dense labels, region count and pixel totals.
    """
    region_size = region_size or REGION_SIZE
    compactness = COMPACTNESS if compactness is None else compactness
    min_size_factor = MIN_SIZE_FACTOR if min_size_factor is None else min_size_factor

    image_np = normalize_image(image_np)
    h, w = image_np.shape[:2]
    n_segments = max(1, (h * w) // (region_size * region_size))

    rgb = cv2.cvtColor(image_np, cv2.COLOR_BGR2RGB)
    raw = slic(
        rgb,
        n_segments=n_segments,
        compactness=compactness,
        start_label=0,
        enforce_connectivity=True,
        min_size_factor=min_size_factor,
        convert2lab=True,
    )

    labels = relabel_dense(raw)
    totals = count_region_pixels(labels)

    logger.debug(
        f"SLIC: {len(totals)} regions for {w}x{h} image "
        f"(requested {n_segments})"
    )
    return Segmentation(labels=labels, region_count=len(totals), pixel_totals=totals)
