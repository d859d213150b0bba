"""
Batch index construction and querying from image directories.

Reads every image in a database directory, segments it and aggregates
its region descriptors, then inserts them into a SearchEngine. Per-image
work is independent and can run on a thread pool; insertion happens
serially in filename order, so image ids are deterministic regardless
of worker count.

A query directory can then be resolved against the built engine.
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import cv2

from .bucket_index import IndexSealedError
from .engine import SearchEngine

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.webp', '.tif', '.tiff'}
BUILD_WORKERS = int(os.environ.get("SPS_BUILD_WORKERS", "1"))


def list_images(image_dir: str) -> List[str]:
    """Sorted filenames in image_dir with a known image extension."""
    return sorted(
        f for f in os.listdir(image_dir)
        if os.path.splitext(f)[1].lower() in IMAGE_EXTENSIONS
    )


class ImageReadError(OSError):
    """An image file could not be decoded."""


def _describe_file(engine: SearchEngine, filepath: str):
    image = cv2.imread(filepath)
    if image is None:
        raise ImageReadError(f"Could not read image: {filepath}")
    return engine.describe(image)


def build_index(image_dir: str,
                engine: Optional[SearchEngine] = None,
                workers: int = None) -> dict:
    """
    Build a search engine from a directory of database images.

    Args:
        image_dir: Directory containing database images.
        engine: Engine to populate. A new one is created if omitted.
        workers: Threads used for segmentation and aggregation.
            Defaults to SPS_BUILD_WORKERS.

    Returns:
        Dict with 'success', 'processed', 'errors', 'regions', 'buckets'
        and the populated 'engine'.

    Raises:
        AggregationError: If the segmenter's pixel totals disagree with its
            label map. Unreadable files are only logged and counted.
        IndexSealedError: If the engine has already resolved a query.
    """
    engine = engine or SearchEngine()
    if engine.index.sealed:
        raise IndexSealedError("Cannot build into an engine that has been searched")
    workers = max(1, workers or BUILD_WORKERS)
    filenames = list_images(image_dir)

    logger.info(
        f"Building index from {len(filenames)} images in {image_dir} "
        f"({workers} workers)"
    )

    processed = 0
    errors = 0
    entries_before = len(engine.index)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(_describe_file, engine, os.path.join(image_dir, f))
            for f in filenames
        ]

        for filename, future in zip(filenames, futures):
            try:
                descriptors = future.result()
            except (ImageReadError, cv2.error) as e:
                logger.warning(f"Failed to process {filename}: {e}")
                errors += 1
                continue

            engine.add_descriptors(descriptors, name=filename)
            processed += 1

    regions = len(engine.index) - entries_before

    if processed == 0:
        return {"success": False, "error": "No valid images processed",
                "errors": errors, "engine": engine}

    logger.info(
        f"Index built: {processed} images, {regions} regions in "
        f"{engine.index.bucket_count} buckets, {errors} errors"
    )

    return {
        "success": True,
        "processed": processed,
        "errors": errors,
        "regions": regions,
        "buckets": engine.index.bucket_count,
        "engine": engine,
    }


def search_directory(engine: SearchEngine, query_dir: str) -> List[dict]:
    """
    Resolve every image in query_dir against a built engine.

    Returns:
        One dict per readable query image with 'filename', 'match'
        (database filename, or None for no match) and 'votes'.
    """
    results = []
    for filename in list_images(query_dir):
        image = cv2.imread(os.path.join(query_dir, filename))
        if image is None:
            logger.warning(f"Could not read query: {filename}")
            continue

        result = engine.search(image)
        results.append({
            "filename": filename,
            "match": result.name if result else None,
            "votes": result.votes if result else 0,
        })

    matched = sum(1 for r in results if r["match"] is not None)
    logger.info(f"Resolved {len(results)} queries, {matched} matched")
    return results
