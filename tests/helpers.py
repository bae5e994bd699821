"""Synthetic composite builders shared by tests."""

import cv2
import numpy as np

GRAY = 100
WHITE = 255


def encode_png(image: np.ndarray) -> bytes:
    """
    Encode a BGR image as PNG bytes.

    Args:
        image (np.ndarray): Image to encode.

    Returns:
        bytes: PNG bytes.
    """
    _, buffer = cv2.imencode(".png", image)
    return buffer.tobytes()


def draw_gutters(
    image: np.ndarray,
    columns: list[tuple[int, int]],
    rows: list[tuple[int, int]],
) -> np.ndarray:
    """
    Paint white vertical and horizontal bands onto an image.

    Args:
        image (np.ndarray): Image to paint on (modified in place).
        columns (list[tuple[int, int]]): (start, end) column ranges.
        rows (list[tuple[int, int]]): (start, end) row ranges.

    Returns:
        np.ndarray: The same image.
    """
    for start, end in columns:
        image[:, start:end] = WHITE
    for start, end in rows:
        image[start:end, :] = WHITE
    return image
