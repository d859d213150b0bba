"""
Region descriptors, image identities and match results.

A RegionDescriptor holds the running statistics of one superpixel:
three colour-channel sums, the bounding box of the pixels seen so far,
the pixel count and the id of the image it came from. Descriptors are
filled pixel by pixel and frozen once their region is complete.

Source images are referenced by integer ids issued by an ImageRegistry,
never by the image object itself, so index entries carry no lifetime
coupling to caller-owned arrays.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class RegionDescriptor:
    """Aggregated colour sums, bounding box and pixel count for one region."""

    label: int = -1
    image_id: Optional[int] = None
    sum_c1: int = 0
    sum_c2: int = 0
    sum_c3: int = 0
    min_col: int = 0
    max_col: int = 0
    min_row: int = 0
    max_row: int = 0
    pixel_count: int = 0
    is_final: bool = False

    @property
    def is_empty(self) -> bool:
        return self.pixel_count == 0

    def add_pixel(self, row: int, col: int, c1: int, c2: int, c3: int) -> None:
        """
        Fold one pixel into the running statistics.

        The first pixel initializes the bounding box; later pixels only
        widen it.

        Raises:
            RuntimeError: If the descriptor has already been finalized.
        """
        if self.is_final:
            raise RuntimeError(
                f"Region {self.label} of image {self.image_id} is finalized"
            )

        self.sum_c1 += c1
        self.sum_c2 += c2
        self.sum_c3 += c3

        if self.pixel_count == 0:
            self.min_col = self.max_col = col
            self.min_row = self.max_row = row
        else:
            if col < self.min_col:
                self.min_col = col
            elif col > self.max_col:
                self.max_col = col
            if row < self.min_row:
                self.min_row = row
            elif row > self.max_row:
                self.max_row = row

        self.pixel_count += 1

    def finalize(self) -> "RegionDescriptor":
        self.is_final = True
        return self

    def channel_means(self) -> Tuple[float, float, float]:
        """
        Average value of each colour channel.

        Raises:
            ValueError: If the descriptor has no pixels.
        """
        if self.is_empty:
            raise ValueError("Empty descriptor has no channel means")
        n = float(self.pixel_count)
        return self.sum_c1 / n, self.sum_c2 / n, self.sum_c3 / n

    def center(self) -> Tuple[float, float]:
        """Midpoint of the bounding box as (x, y), i.e. (column, row)."""
        if self.is_empty:
            raise ValueError("Empty descriptor has no bounding box")
        return (
            (self.min_col + self.max_col) / 2.0,
            (self.min_row + self.max_row) / 2.0,
        )


class ImageRegistry:
    """
    Issues stable integer ids for source images.

    Ids are assigned sequentially from 0 in registration order, so a
    lower id always means an image that entered the database earlier.
    """

    def __init__(self):
        self._names: List[str] = []

    def register(self, name: Optional[str] = None) -> int:
        image_id = len(self._names)
        self._names.append(name if name is not None else f"image-{image_id}")
        logger.debug(f"Registered image {image_id}: {self._names[image_id]}")
        return image_id

    def name_of(self, image_id: int) -> str:
        if image_id not in self:
            raise KeyError(f"Unknown image id: {image_id}")
        return self._names[image_id]

    def as_dict(self) -> Dict[int, str]:
        return dict(enumerate(self._names))

    def __contains__(self, image_id) -> bool:
        return isinstance(image_id, int) and 0 <= image_id < len(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self) -> Iterator[int]:
        return iter(range(len(self._names)))


@dataclass(frozen=True)
class MatchResult:
    """Winning database image of a query and its vote count."""

    image_id: int
    votes: int
    name: Optional[str] = None


class NoMatch:
    """Query outcome when no query region collided with any index entry."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_MATCH"


NO_MATCH = NoMatch()
