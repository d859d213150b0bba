"""
superpixel_search: Superpixel hashing for content-based image retrieval.

Summarizes each SLIC superpixel by its average colour and bounding-box
centre, quantizes that summary into a bucket key, and retrieves the
database image whose regions collide most often with a query's.

Modules:
    engine          Main SearchEngine class
    descriptors     Region descriptors, image registry, match results
    aggregation     Single-pass per-region descriptor aggregation
    quantization    Descriptor to bucket-key mapping
    bucket_index    Append-only bucket key index
    scoring         Collision voting and tie-breaking
    preprocessing   Image normalization and colour conversion
    segmentation    SLIC segmentation adapter
    index_builder   Directory-level index construction and querying
"""

__version__ = "1.0.0"

