"""
Collision voting for query resolution.

Each query region is quantized and looked up in the bucket index. Every
entry in a colliding bucket casts one vote for its source image, so a
query region that lands in a bucket holding five regions of the same
database image adds five votes to it. The image with the most votes
wins.

Ties on the maximum vote count go to the lowest image id, i.e. the
image registered into the database first.
"""

import logging
from collections import Counter
from typing import Iterable, List, Optional, Tuple, Union

from .bucket_index import BucketIndex
from .descriptors import NO_MATCH, ImageRegistry, MatchResult, NoMatch, RegionDescriptor
from .quantization import INVALID_KEY, quantize

logger = logging.getLogger(__name__)


def tally_votes(index: BucketIndex,
                descriptors: Iterable[RegionDescriptor]) -> Counter:
    """
    Count bucket collisions per source image.

    Empty query descriptors quantize to INVALID_KEY and are skipped.

    Args:
        index: Populated bucket index.
        descriptors: Region descriptors of the query image.

    Returns:
        Counter mapping image id to vote count. Empty if nothing collided.
    """
    tally = Counter()
    skipped = 0
    missed = 0

    for descriptor in descriptors:
        key = quantize(descriptor)
        if key == INVALID_KEY:
            skipped += 1
            continue

        matches = index.lookup(key)
        if not matches:
            missed += 1
            continue

        for match in matches:
            tally[match.image_id] += 1

    logger.debug(
        f"Tallied {sum(tally.values())} votes over {len(tally)} images "
        f"({missed} regions missed, {skipped} empty)"
    )
    return tally


def rank_results(tally: Counter) -> List[Tuple[int, int]]:
    """
    Sort candidates by votes (descending), then image id (ascending).

    Returns:
        List of (image_id, votes) pairs, best first.
    """
    return sorted(tally.items(), key=lambda item: (-item[1], item[0]))


def resolve(index: BucketIndex,
            descriptors: Iterable[RegionDescriptor],
            registry: Optional[ImageRegistry] = None
            ) -> Union[MatchResult, NoMatch]:
    """
    Find the database image with the most collisions for a query.

    Args:
        index: Populated bucket index.
        descriptors: Region descriptors of the query image.
        registry: Optional registry used to attach the image name.

    Returns:
        MatchResult for the winner, or NO_MATCH if no region collided.
    """
    ranked = rank_results(tally_votes(index, descriptors))
    if not ranked:
        return NO_MATCH

    image_id, votes = ranked[0]
    name = registry.name_of(image_id) if registry is not None else None
    if len(ranked) > 1 and ranked[1][1] == votes:
        logger.debug(f"Vote tie at {votes}; picking lowest image id {image_id}")

    return MatchResult(image_id=image_id, votes=votes, name=name)
