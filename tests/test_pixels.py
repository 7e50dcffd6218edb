import numpy as np
import pytest
from PIL import Image

from quadtree_pixels import crop, fit_square, load_monochrome, next_power_of_two, to_monochrome
from quadtree import InvalidInput, build, materialize


@pytest.mark.parametrize(
    "value, expected",
    [(1, 1), (2, 2), (3, 4), (5, 8), (64, 64), (65, 128)],
)
def test_next_power_of_two(value, expected):
    assert next_power_of_two(value) == expected


def test_to_monochrome_uses_luminance():
    image = Image.new("RGB", (2, 2), color=(255, 0, 0))
    array = to_monochrome(image)

    assert array.dtype == np.uint8
    assert array.shape == (2, 2)
    # 255 * 299/1000, rounded.
    assert int(array[0, 0]) == 76


def test_load_monochrome_reads_bmp(tmp_path):
    path = tmp_path / "gradient.bmp"
    pixels = np.arange(64, dtype=np.uint8).reshape(8, 8) * 4
    Image.fromarray(np.stack([pixels] * 3, axis=-1)).save(path)

    array = load_monochrome(path)
    assert np.array_equal(array, pixels)


def test_load_monochrome_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_monochrome(tmp_path / "missing.bmp")


def test_fit_square_keeps_power_of_two_squares():
    array = np.zeros((8, 8), dtype=np.uint8)
    square, shape = fit_square(array)

    assert square is array
    assert shape == (8, 8)


def test_fit_square_rejects_other_shapes_by_default():
    with pytest.raises(InvalidInput):
        fit_square(np.zeros((6, 8), dtype=np.uint8))
    with pytest.raises(InvalidInput):
        fit_square(np.zeros((6, 6), dtype=np.uint8))


def test_fit_square_rejects_unknown_modes():
    with pytest.raises(InvalidInput):
        fit_square(np.zeros((4, 4), dtype=np.uint8), mode="truncate")


def test_fit_square_rejects_empty_images():
    with pytest.raises(InvalidInput):
        fit_square(np.zeros((0, 0), dtype=np.uint8), mode="pad")


def test_fit_square_pads_by_repeating_edges():
    array = np.array([[1, 2, 3], [4, 5, 6]], dtype=np.uint8)
    square, shape = fit_square(array, mode="pad")

    assert shape == (2, 3)
    assert square.tolist() == [
        [1, 2, 3, 3],
        [4, 5, 6, 6],
        [4, 5, 6, 6],
        [4, 5, 6, 6],
    ]
    assert np.array_equal(crop(square, shape), array)


def test_padded_image_encodes_and_crops_back():
    rng = np.random.default_rng(7)
    array = rng.integers(0, 256, size=(5, 7)).astype(np.uint8)
    square, shape = fit_square(array, mode="pad")

    tree = build(square, square.shape[0], 0)
    reconstructed, _ = materialize(tree)

    assert np.array_equal(crop(reconstructed, shape), array)
