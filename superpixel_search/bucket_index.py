"""
Multi-valued index from bucket key to region descriptors.

Descriptors sharing a key, from the same or different images, are kept
together in insertion order; that sharing is what queries vote on.
Entries are never removed. The index is unbounded, which suits the
small database sizes it is built for.

Build and query phases are separate: once sealed, the index rejects
inserts and can be read from any number of threads. Before sealing,
inserts are serialized by a lock so build workers may share one index.
"""

import logging
import threading
from dataclasses import replace
from typing import Dict, Iterator, List, Tuple

from .descriptors import RegionDescriptor
from .quantization import INVALID_KEY, KEY_SPACE

logger = logging.getLogger(__name__)


class InvalidKeyError(ValueError):
    """Insert called with INVALID_KEY or a key outside the key space."""


class UnindexableDescriptorError(ValueError):
    """Descriptor is not finalized or has no source image id."""


class IndexSealedError(RuntimeError):
    """Insert attempted after the build phase ended."""


class BucketIndex:
    """Append-only mapping of bucket key to descriptor entries."""

    def __init__(self):
        self._buckets: Dict[int, List[RegionDescriptor]] = {}
        self._entries = 0
        self._sealed = False
        self._lock = threading.Lock()

    def insert(self, key: int, descriptor: RegionDescriptor) -> None:
        """
        Append a descriptor to the bucket for key.

        Raises:
            InvalidKeyError: If key is INVALID_KEY or out of range.
            UnindexableDescriptorError: If the descriptor is not finalized
                or carries no image id.
            IndexSealedError: If the index has been sealed.
        """
        if key == INVALID_KEY or not 0 <= key < KEY_SPACE:
            raise InvalidKeyError(f"Cannot insert under key {key}")
        if not descriptor.is_final or descriptor.image_id is None:
            raise UnindexableDescriptorError(
                f"Region {descriptor.label} must be finalized and carry an "
                f"image id before indexing"
            )

        # The index owns its entries; later changes to the caller's object
        # never reach it
        entry = replace(descriptor)

        with self._lock:
            if self._sealed:
                raise IndexSealedError("Index is sealed; build phase is over")
            self._buckets.setdefault(key, []).append(entry)
            self._entries += 1

    def lookup(self, key: int) -> Tuple[RegionDescriptor, ...]:
        """Entries stored under key in insertion order, or () if none."""
        return tuple(self._buckets.get(key, ()))

    def seal(self) -> None:
        with self._lock:
            if not self._sealed:
                self._sealed = True
                logger.info(
                    f"Index sealed: {self._entries} entries in "
                    f"{len(self._buckets)} buckets"
                )

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def keys(self) -> Iterator[int]:
        return iter(list(self._buckets))

    def __contains__(self, key) -> bool:
        return bool(self._buckets.get(key))

    def __len__(self) -> int:
        return self._entries
