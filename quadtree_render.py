from pathlib import Path
import logging

from PIL import Image, ImageDraw
import numpy as np


logger = logging.getLogger(__name__)

CAPTION_HEIGHT = 24
CAPTION_MARGIN = 20

ORIGINAL_CAPTION = "Original Image"
DECODED_CAPTION = "Quadtree Image"
OVERLAY_CAPTION = "Quadtree Image (with quads)"


def compose(
    original: np.ndarray,
    decoded: np.ndarray,
    overlay: np.ndarray,
    show_overlay: bool = False,
) -> Image.Image:
    """
    Places the original image on the left and the decoded image
        (or its overlay) on the right, with a caption strip on top.
    """
    if original.shape != decoded.shape or decoded.shape != overlay.shape:
        raise ValueError(
            f"panel shapes differ: {original.shape}, {decoded.shape}, {overlay.shape}"
        )

    height, width = original.shape
    panel = Image.new("L", (2 * width, height + CAPTION_HEIGHT), color=0)

    panel.paste(Image.fromarray(original), (0, CAPTION_HEIGHT))
    right = overlay if show_overlay else decoded
    panel.paste(Image.fromarray(right), (width, CAPTION_HEIGHT))

    draw = ImageDraw.Draw(panel)
    draw.text((CAPTION_MARGIN, 5), ORIGINAL_CAPTION, fill=255)
    draw.text(
        (width + CAPTION_MARGIN, 5),
        OVERLAY_CAPTION if show_overlay else DECODED_CAPTION,
        fill=255,
    )

    return panel


def save_outputs(output_dir: Path, stem: str, decoded: np.ndarray, overlay: np.ndarray) -> tuple[Path, Path]:
    output_dir.mkdir(parents=True, exist_ok=True)

    decoded_path = output_dir / f"{stem}_decoded.png"
    overlay_path = output_dir / f"{stem}_overlay.png"

    Image.fromarray(decoded).save(decoded_path)
    Image.fromarray(overlay).save(overlay_path)

    logger.info("Wrote %s and %s", decoded_path, overlay_path)
    return decoded_path, overlay_path
