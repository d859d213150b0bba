"""
Image normalization and colour-space conversion.

Colour conversion sits at the boundary, before aggregation, so the
quantizer only ever sees three 8-bit channels and stays agnostic of
which space they came from. Images are expected in OpenCV's native BGR
order, as returned by cv2.imread.

Supported spaces:
    bgr   passthrough of the device-native channel order
    rgb   channel swap
    lab   OpenCV 8-bit CIE Lab (L, a and b scaled into 0-255)

The default is configurable via the SPS_COLOR_SPACE environment variable.
"""

import os
import cv2
import numpy as np
import logging

logger = logging.getLogger(__name__)

DEFAULT_COLOR_SPACE = os.environ.get("SPS_COLOR_SPACE", "lab").lower()

_CONVERSIONS = {
    "bgr": None,
    "rgb": cv2.COLOR_BGR2RGB,
    "lab": cv2.COLOR_BGR2Lab,
}

COLOR_SPACES = tuple(_CONVERSIONS)


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 with three channels."""
    if image_np.dtype != np.uint8:
        if image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)
    if image_np.ndim == 2:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_GRAY2BGR)
    elif image_np.ndim == 3 and image_np.shape[2] == 4:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_BGRA2BGR)
    return image_np


def convert_color(image_np: np.ndarray, space: str = None) -> np.ndarray:
    """
    Convert a BGR image into the colour space used for indexing.

    Args:
        image_np: BGR image, any dtype normalize_image accepts.
        space: One of COLOR_SPACES. Defaults to DEFAULT_COLOR_SPACE.

    Returns:
        uint8 H×W×3 image in the requested space.

    Raises:
        ValueError: If the colour space is unknown.
    """
    space = (space or DEFAULT_COLOR_SPACE).lower()
    if space not in _CONVERSIONS:
        raise ValueError(
            f"Unknown colour space '{space}', expected one of {COLOR_SPACES}"
        )

    image_np = normalize_image(image_np)
    code = _CONVERSIONS[space]
    if code is None:
        return image_np
    return cv2.cvtColor(image_np, code)
