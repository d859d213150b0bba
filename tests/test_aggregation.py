"""Tests for per-region descriptor aggregation."""

import tracemalloc

import numpy as np
import pytest

from superpixel_search.aggregation import (
    AggregationError, aggregate_regions, as_label_map, count_region_pixels,
)
from superpixel_search.descriptors import RegionDescriptor


class TestCountRegionPixels:
    """Tests for the pixel-total prior pass."""

    def test_counts_each_region(self, quadrant_labels):
        totals = count_region_pixels(quadrant_labels)
        assert list(totals) == [400, 400, 400, 400]

    def test_explicit_region_count_pads_missing_regions(self):
        labels = np.array([[0, 0], [2, 2]])
        totals = count_region_pixels(labels, region_count=4)
        assert list(totals) == [2, 0, 2, 0]

    def test_label_out_of_range_raises(self):
        labels = np.array([[0, 5]])
        with pytest.raises(ValueError, match="out of range"):
            count_region_pixels(labels, region_count=3)

    def test_negative_label_raises(self):
        with pytest.raises(ValueError, match="negative"):
            count_region_pixels(np.array([[0, -1]]))


class TestAggregateRegions:
    """Tests for single-pass aggregation."""

    def test_one_descriptor_per_region(self, quadrant_image, quadrant_labels):
        totals = count_region_pixels(quadrant_labels)
        descriptors = list(aggregate_regions(quadrant_image, quadrant_labels,
                                             totals, image_id=3))
        assert sorted(d.label for d in descriptors) == [0, 1, 2, 3]
        assert all(d.image_id == 3 for d in descriptors)
        assert all(d.is_final for d in descriptors)

    def test_sums_and_bounding_box(self, quadrant_image, quadrant_labels):
        totals = count_region_pixels(quadrant_labels)
        by_label = {d.label: d for d in
                    aggregate_regions(quadrant_image, quadrant_labels, totals)}

        top_right = by_label[1]
        assert top_right.pixel_count == 400
        assert (top_right.sum_c1, top_right.sum_c2, top_right.sum_c3) == \
            (30 * 400, 200 * 400, 30 * 400)
        assert (top_right.min_col, top_right.max_col) == (20, 39)
        assert (top_right.min_row, top_right.max_row) == (0, 19)
        assert top_right.channel_means() == (30.0, 200.0, 30.0)
        assert top_right.center() == (29.5, 9.5)

    def test_regions_yield_in_completion_order(self, striped_image, stripe_labels):
        totals = count_region_pixels(stripe_labels)
        labels = [d.label for d in
                  aggregate_regions(striped_image, stripe_labels, totals)]
        assert labels == [0, 1, 2, 3]

    def test_descriptor_yielded_before_pass_ends(self, striped_image, stripe_labels):
        totals = count_region_pixels(stripe_labels)
        stream = aggregate_regions(striped_image, stripe_labels, totals)
        first = next(stream)
        # Stripe 0 completes on row 9; later stripes are still untouched
        assert first.label == 0
        assert first.max_row == 9

    def test_no_overflow_with_large_sums(self):
        image = np.full((300, 300, 3), 255, dtype=np.uint8)
        labels = np.zeros((300, 300), dtype=np.int32)
        (descriptor,) = aggregate_regions(image, labels, [300 * 300])
        assert descriptor.sum_c1 == 255 * 300 * 300

    def test_undercounted_total_raises(self, quadrant_image, quadrant_labels):
        totals = count_region_pixels(quadrant_labels)
        totals[2] += 1
        stream = aggregate_regions(quadrant_image, quadrant_labels, totals)
        with pytest.raises(AggregationError, match="never finalized"):
            list(stream)

    def test_overcounted_region_raises(self, quadrant_image, quadrant_labels):
        totals = count_region_pixels(quadrant_labels)
        totals[0] -= 1
        with pytest.raises(AggregationError, match="more pixels"):
            list(aggregate_regions(quadrant_image, quadrant_labels, totals))

    def test_empty_region_yields_nothing(self):
        image = np.zeros((2, 2, 3), dtype=np.uint8)
        labels = np.array([[0, 0], [2, 2]])
        descriptors = list(aggregate_regions(image, labels, [2, 0, 2]))
        assert sorted(d.label for d in descriptors) == [0, 2]

    def test_shape_mismatch_raises(self, quadrant_image):
        with pytest.raises(ValueError, match="doesn't match"):
            list(aggregate_regions(quadrant_image, np.zeros((5, 5)), [25]))

    def test_grayscale_image_rejected(self):
        with pytest.raises(ValueError, match="H×W×3"):
            list(aggregate_regions(np.zeros((4, 4)), np.zeros((4, 4)), [16]))

    def test_label_outside_totals_raises(self, quadrant_image, quadrant_labels):
        with pytest.raises(ValueError, match="must lie in"):
            list(aggregate_regions(quadrant_image, quadrant_labels, [400, 400]))


class TestRegionDescriptor:
    """Tests for descriptor accumulation."""

    def test_new_descriptor_is_empty(self):
        assert RegionDescriptor().is_empty

    def test_bounding_box_widens(self):
        d = RegionDescriptor()
        d.add_pixel(5, 5, 1, 2, 3)
        d.add_pixel(2, 9, 1, 2, 3)
        d.add_pixel(7, 1, 1, 2, 3)
        assert (d.min_col, d.max_col, d.min_row, d.max_row) == (1, 9, 2, 7)
        assert d.pixel_count == 3

    def test_visit_order_does_not_matter(self):
        pixels = [(0, 0, 10, 20, 30), (3, 1, 50, 60, 70), (1, 4, 90, 0, 5)]
        forward, backward = RegionDescriptor(), RegionDescriptor()
        for p in pixels:
            forward.add_pixel(*p)
        for p in reversed(pixels):
            backward.add_pixel(*p)
        assert forward == backward

    def test_finalized_descriptor_rejects_pixels(self):
        d = RegionDescriptor()
        d.add_pixel(0, 0, 1, 1, 1)
        d.finalize()
        with pytest.raises(RuntimeError, match="finalized"):
            d.add_pixel(0, 1, 1, 1, 1)

    def test_empty_descriptor_has_no_means(self):
        with pytest.raises(ValueError):
            RegionDescriptor().channel_means()


class TestLabelMaps:
    """Tests for label map dtype handling and memory use."""

    def test_whole_number_float_labels_accepted(self, quadrant_image, quadrant_labels):
        float_labels = quadrant_labels.astype(np.float64)
        totals = count_region_pixels(float_labels)
        descriptors = list(aggregate_regions(quadrant_image, float_labels, totals))
        assert sorted(d.label for d in descriptors) == [0, 1, 2, 3]

    def test_fractional_labels_rejected(self, quadrant_image):
        labels = np.full((40, 40), 0.5)
        with pytest.raises(ValueError, match="non-integral"):
            list(aggregate_regions(quadrant_image, labels, [1600]))
        with pytest.raises(ValueError, match="non-integral"):
            count_region_pixels(labels)

    def test_as_label_map_keeps_integer_maps(self, quadrant_labels):
        assert as_label_map(quadrant_labels) is quadrant_labels

    def test_boolean_labels_rejected(self):
        with pytest.raises(ValueError, match="numeric"):
            as_label_map(np.zeros((2, 2), dtype=bool))

    def test_peak_memory_independent_of_pixel_count(self):
        image = np.full((600, 800, 3), 200, dtype=np.uint8)
        labels = np.zeros((600, 800), dtype=np.int32)

        tracemalloc.start()
        try:
            (descriptor,) = aggregate_regions(image, labels, [600 * 800])
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert descriptor.pixel_count == 600 * 800
        # Converting the whole image to nested lists would need tens of MB
        assert peak < 5_000_000
