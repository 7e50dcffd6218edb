"""
Quadtree encoding of a monochrome image.

Encodes the image into a quadtree whose leaves are regions of similar
intensity, decodes it back, and reports how large the quadtree is
compared to the uncompressed image. Raising the tolerance merges more
pixels into each region and shrinks the tree, at the cost of quality.

Usage::

    python quadtree_cli.py image.bmp 10 --output-dir output --overlay
"""

from dataclasses import dataclass
from pathlib import Path
from collections.abc import Sequence
import argparse
import logging
import sys

from PIL import UnidentifiedImageError

from quadtree_pixels import crop, fit_square, load_monochrome
from quadtree import DEFAULT_TOLERANCE, QuadTree, QuadTreeError, build, close_grid, materialize, size_estimate
from quadtree_render import compose, save_outputs


logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    """Runtime configuration derived from CLI arguments."""

    image: Path
    tolerance: int
    output_dir: Path
    fit: str
    show_overlay: bool
    show: bool
    verbose: bool


def _setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _non_negative(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"tolerance must be non-negative, got {value}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Encode a monochrome image as a quadtree and decode it back.",
    )
    parser.add_argument("image", type=Path, help="Image file (BMP or any format Pillow reads).")
    parser.add_argument(
        "tolerance",
        type=_non_negative,
        nargs="?",
        default=DEFAULT_TOLERANCE,
        help="Largest allowed deviation of a pixel from its region's mean, the fudge factor "
        f"(default: {DEFAULT_TOLERANCE}).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Where the decoded image, overlay and panel are written (default: output).",
    )
    parser.add_argument(
        "--pad",
        dest="fit",
        action="store_const",
        const="pad",
        default="reject",
        help="Pad images that are not power of two squares instead of rejecting them.",
    )
    parser.add_argument(
        "--overlay",
        action="store_true",
        help="Show the region boundaries on the right panel.",
    )
    parser.add_argument("--show", action="store_true", help="Open the panel in an image viewer.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def parse_config(argv: Sequence[str] | None = None) -> RunConfig:
    args = _build_parser().parse_args(argv)
    return RunConfig(
        image=args.image,
        tolerance=args.tolerance,
        output_dir=args.output_dir,
        fit=args.fit,
        show_overlay=args.overlay,
        show=args.show,
        verbose=args.verbose,
    )


def image_info(tree: QuadTree) -> str:
    estimate = size_estimate(tree)
    pixels = estimate.uncompressed_bytes
    return "\n".join([
        f"{pixels} 8-bit pixels in image ({pixels} bytes).",
        f"{tree.node_count} nodes and {tree.leaf_count} leaves in quadtree "
        f"({estimate.compressed_bytes} bytes).",
        f"The quadtree size is about {int(estimate.percent)}% of the uncompressed image size.",
    ])


def run(config: RunConfig) -> int:
    original = load_monochrome(config.image)
    square, shape = fit_square(original, config.fit)

    with build(square, square.shape[0], config.tolerance) as tree:
        print(image_info(tree))
        decoded, overlay = materialize(tree)

    decoded = crop(decoded, shape)
    overlay = close_grid(crop(overlay, shape).copy())

    stem = config.image.stem
    save_outputs(config.output_dir, stem, decoded, overlay)

    panel = compose(original, decoded, overlay, show_overlay=config.show_overlay)
    panel_path = config.output_dir / f"{stem}_panel.png"
    panel.save(panel_path)
    logger.info("Wrote %s", panel_path)

    if config.show:
        panel.show(title=str(config.image))

    return 0


def main(argv: Sequence[str] | None = None) -> int:
    config = parse_config(argv)
    _setup_logging(config.verbose)

    try:
        return run(config)
    except (QuadTreeError, UnidentifiedImageError, OSError) as exc:
        logger.error("Unable to encode %s: %s", config.image, exc)
        return 1


# Runner Code
if __name__ == "__main__":
    sys.exit(main())
