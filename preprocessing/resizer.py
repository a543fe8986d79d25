import cv2
import numpy as np

from config.constants import MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH, MIN_IMAGE_DIMENSION


def fits_within(image: np.ndarray, max_width: int = MAX_IMAGE_WIDTH, max_height: int = MAX_IMAGE_HEIGHT) -> bool:
    height, width = image.shape[:2]
    return height <= max_height and width <= max_width


def resize_to_720p(
    image: np.ndarray, max_width: int = MAX_IMAGE_WIDTH, max_height: int = MAX_IMAGE_HEIGHT
) -> np.ndarray:
    """Downscale so the image fits the bounds, preserving aspect ratio.

    Smaller images are returned untouched; detectors do worse on upscaled input.
    """
    if fits_within(image, max_width, max_height):
        return image

    height, width = image.shape[:2]
    scale = min(max_height / height, max_width / width)
    new_size = (
        max(MIN_IMAGE_DIMENSION, int(width * scale)),
        max(MIN_IMAGE_DIMENSION, int(height * scale)),
    )
    return cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)
