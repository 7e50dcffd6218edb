import numpy as np
import pytest
from PIL import Image

from quadtree_render import CAPTION_HEIGHT, compose, save_outputs


def _panels(side=8):
    original = np.full((side, side), 10, dtype=np.uint8)
    decoded = np.full((side, side), 20, dtype=np.uint8)
    overlay = np.full((side, side), 255, dtype=np.uint8)
    return original, decoded, overlay


def test_compose_places_panels_side_by_side():
    original, decoded, overlay = _panels()
    panel = compose(original, decoded, overlay)

    assert panel.mode == "L"
    assert panel.size == (16, 8 + CAPTION_HEIGHT)
    assert panel.getpixel((0, CAPTION_HEIGHT)) == 10
    assert panel.getpixel((15, CAPTION_HEIGHT + 7)) == 20


def test_compose_shows_overlay_on_request():
    original, decoded, overlay = _panels()
    panel = compose(original, decoded, overlay, show_overlay=True)

    assert panel.getpixel((15, CAPTION_HEIGHT + 7)) == 255


def test_compose_rejects_mismatched_panels():
    original, decoded, _ = _panels()
    with pytest.raises(ValueError):
        compose(original, decoded, np.zeros((4, 4), dtype=np.uint8))


def test_save_outputs(tmp_path):
    _, decoded, overlay = _panels()
    decoded_path, overlay_path = save_outputs(tmp_path / "out", "sample", decoded, overlay)

    assert decoded_path.name == "sample_decoded.png"
    assert overlay_path.name == "sample_overlay.png"
    with Image.open(decoded_path) as image:
        assert np.array_equal(np.array(image), decoded)
    with Image.open(overlay_path) as image:
        assert np.array_equal(np.array(image), overlay)
