"""Shared test fixtures for superpixel search tests."""

import numpy as np
import pytest


@pytest.fixture
def uniform_gray_image():
    """4x4 BGR image with every pixel at (128, 128, 128)."""
    return np.full((4, 4, 3), 128, dtype=np.uint8)


@pytest.fixture
def single_region_labels():
    """4x4 label map with one region covering the whole image."""
    return np.zeros((4, 4), dtype=np.int32)


@pytest.fixture
def quadrant_image():
    """40x40 BGR image split into four flat-coloured quadrants."""
    img = np.zeros((40, 40, 3), dtype=np.uint8)
    img[:20, :20] = [200, 30, 30]
    img[:20, 20:] = [30, 200, 30]
    img[20:, :20] = [30, 30, 200]
    img[20:, 20:] = [240, 240, 240]
    return img


@pytest.fixture
def quadrant_labels():
    """Label map matching quadrant_image: 0 TL, 1 TR, 2 BL, 3 BR."""
    labels = np.zeros((40, 40), dtype=np.int32)
    labels[:20, 20:] = 1
    labels[20:, :20] = 2
    labels[20:, 20:] = 3
    return labels


@pytest.fixture
def striped_image():
    """40x40 BGR image with four horizontal stripes of unrelated colours."""
    img = np.zeros((40, 40, 3), dtype=np.uint8)
    img[0:10] = [10, 250, 120]
    img[10:20] = [250, 10, 60]
    img[20:30] = [90, 90, 250]
    img[30:40] = [160, 0, 0]
    return img


@pytest.fixture
def stripe_labels():
    """Label map matching striped_image, one region per stripe."""
    labels = np.zeros((40, 40), dtype=np.int32)
    for i in range(4):
        labels[i * 10:(i + 1) * 10] = i
    return labels
