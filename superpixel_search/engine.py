"""
Superpixel search engine.

Orchestrates the two phases of collision-based retrieval:
    1. Build: segment each database image, aggregate region descriptors,
       quantize them and insert them into the bucket index
    2. Query: describe the query image the same way, then vote on the
       database images whose regions share its buckets

The first query seals the index. Adding images after that raises
IndexSealedError; build a new engine to extend the database.
"""

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import numpy as np

from .aggregation import aggregate_regions, count_region_pixels
from .bucket_index import BucketIndex, IndexSealedError
from .descriptors import ImageRegistry, MatchResult, NoMatch, RegionDescriptor
from .preprocessing import DEFAULT_COLOR_SPACE, convert_color
from .quantization import INVALID_KEY, quantize
from .scoring import resolve
from .segmentation import Segmentation, segment_image

logger = logging.getLogger(__name__)

Segmenter = Callable[[np.ndarray], Segmentation]


class SearchEngine:
    """
    Content-based image retrieval over quantized superpixel descriptors.

    Holds the image registry and the bucket index. Images are BGR arrays
    as returned by cv2.imread.
    """

    def __init__(self,
                 color_space: str = None,
                 segmenter: Optional[Segmenter] = None):
        """
        Args:
            color_space: Colour space descriptors are computed in
                (see preprocessing.COLOR_SPACES).
            segmenter: Callable returning a Segmentation for a BGR image.
                Defaults to SLIC via segment_image().
        """
        self.color_space = color_space or DEFAULT_COLOR_SPACE
        self.segmenter = segmenter or segment_image
        self.registry = ImageRegistry()
        self.index = BucketIndex()

    def describe(self,
                 image: np.ndarray,
                 labels: np.ndarray = None,
                 image_id: int = None) -> List[RegionDescriptor]:
        """
        Compute the finalized region descriptors of an image.

        Args:
            image: BGR image.
            labels: Optional precomputed label map; segments the image
                when omitted.
            image_id: Registry id to stamp on each descriptor.

        Returns:
            Descriptors in completion order.
        """
        if labels is None:
            segmentation = self.segmenter(image)
            labels, totals = segmentation.labels, segmentation.pixel_totals
        else:
            labels = np.asarray(labels)
            totals = count_region_pixels(labels)

        converted = convert_color(image, self.color_space)
        return list(aggregate_regions(converted, labels, totals, image_id))

    def insert_descriptors(self, descriptors: Iterable[RegionDescriptor]) -> int:
        """
        Quantize and insert descriptors; returns how many were indexed.

        Descriptors must be finalized and carry a registered image id.
        """
        inserted = 0
        for descriptor in descriptors:
            key = quantize(descriptor)
            if key == INVALID_KEY:
                continue
            self.index.insert(key, descriptor)
            inserted += 1
        return inserted

    def add_image(self,
                  image: np.ndarray,
                  labels: np.ndarray = None,
                  name: str = None) -> int:
        """
        Index one database image.

        Args:
            image: BGR image.
            labels: Optional precomputed label map.
            name: Human-readable name, e.g. the filename.

        Returns:
            The image id assigned by the registry.

        Raises:
            IndexSealedError: If a query has already been resolved.
        """
        if self.index.sealed:
            raise IndexSealedError("Cannot add images after the first search")
        return self.add_descriptors(self.describe(image, labels), name)

    def add_descriptors(self,
                        descriptors: Iterable[RegionDescriptor],
                        name: str = None) -> int:
        """
        Register an image and index its already computed descriptors.

        The image is registered only once its descriptors exist, so a
        failed segmentation or aggregation leaves the registry untouched.

        Returns:
            The image id assigned by the registry.

        Raises:
            IndexSealedError: If a query has already been resolved.
        """
        if self.index.sealed:
            raise IndexSealedError("Cannot add images after the first search")

        descriptors = list(descriptors)
        image_id = self.registry.register(name)
        inserted = self.insert_descriptors(
            replace(d, image_id=image_id) for d in descriptors
        )
        logger.info(
            f"Indexed image {image_id} ({self.registry.name_of(image_id)}): "
            f"{inserted} regions"
        )
        return image_id

    def search_descriptors(self,
                           descriptors: Iterable[RegionDescriptor]
                           ) -> Union[MatchResult, NoMatch]:
        """Resolve a query from precomputed descriptors; seals the index."""
        self.index.seal()
        return resolve(self.index, descriptors, self.registry)

    def search(self,
               query_image: np.ndarray,
               labels: np.ndarray = None) -> Union[MatchResult, NoMatch]:
        """
        Find the database image sharing the most buckets with a query.

        Args:
            query_image: BGR query image.
            labels: Optional precomputed label map for the query.

        Returns:
            MatchResult with the winning image and its votes, or NO_MATCH.
        """
        result = self.search_descriptors(self.describe(query_image, labels))
        if result:
            logger.info(f"Best match: {result.name} with {result.votes} votes")
        else:
            logger.info("No matches found")
        return result

    def stats(self) -> Dict[str, Any]:
        return {
            "images": len(self.registry),
            "entries": len(self.index),
            "buckets": self.index.bucket_count,
            "sealed": self.index.sealed,
            "color_space": self.color_space,
        }
