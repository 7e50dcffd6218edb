from os import PathLike
import logging

from PIL import Image
import numpy as np

from quadtree import InvalidInput


logger = logging.getLogger(__name__)

FIT_MODES = ("reject", "pad")


def to_monochrome(image: Image.Image) -> np.ndarray:
    """
    Converts [image] into a 2D array of 8-bit intensities.

    Pillow's "L" conversion weighs the channels as
        L = R * 299/1000 + G * 587/1000 + B * 114/1000.
    """
    return np.array(image.convert("L"), dtype=np.uint8)


def load_monochrome(path: str | PathLike) -> np.ndarray:
    with Image.open(path) as image:
        logger.info("Reading %s: %d x %d (%s)", path, image.height, image.width, image.mode)
        return to_monochrome(image)


def next_power_of_two(value: int) -> int:
    return 1 << max(0, value - 1).bit_length()


def fit_square(array: np.ndarray, mode: str = "reject") -> tuple[np.ndarray, tuple[int, int]]:
    """
    Makes [array] usable by the quadtree, which only accepts squares
        whose side is a power of two.

    With mode "reject", any other shape raises InvalidInput.
    With mode "pad", the image is grown to the next power of two square
        by repeating its last row and column, so that the padding
        merges into the neighbouring regions instead of adding edges.

    Returns the square array and the original (height, width), to be
        passed to [crop] once the tree has been decoded.
    """
    if mode not in FIT_MODES:
        raise InvalidInput(f"unknown fit mode {mode!r}, expected one of {FIT_MODES}")

    if array.ndim != 2 or array.size == 0:
        raise InvalidInput(f"expected a non-empty 2D monochrome image, got shape {array.shape}")

    height, width = array.shape
    side = next_power_of_two(max(height, width))

    if height == width == side:
        return array, (height, width)

    if mode == "reject":
        raise InvalidInput(
            f"image is {width} x {height}, a square power of two side is required "
            "(pad the image to accept other sizes)"
        )

    logger.info("Padding %d x %d image to %d x %d", width, height, side, side)
    padded = np.pad(array, ((0, side - height), (0, side - width)), mode="edge")
    return padded, (height, width)


def crop(array: np.ndarray, shape: tuple[int, int]) -> np.ndarray:
    height, width = shape
    return array[:height, :width]
