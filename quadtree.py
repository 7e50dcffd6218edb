from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
import logging

import numpy as np


logger = logging.getLogger(__name__)

# Intensity used to draw region boundaries on the overlay.
BOUNDARY_VALUE = 255

# Each leaf is charged one tag byte and one value byte.
BYTES_PER_LEAF = 2

DEFAULT_TOLERANCE = 8


class QuadTreeError(Exception):
    pass


class InvalidInput(QuadTreeError, ValueError):
    pass


class AllocationFailure(QuadTreeError, MemoryError):
    pass


class GeometryViolation(QuadTreeError, AssertionError):
    pass


class TreeDestroyed(QuadTreeError, RuntimeError):
    pass


class Region:
    # [origin] represents the top-left pixel (x, y) of the region.
    #   Rows grow downward, the same way the pixel buffer is indexed.
    origin: tuple[int, int]

    # The depth of the region in the QuadTree, the root is 0.
    level: int

    # The side length of the (square) region in pixels.
    size: int

    def __init__(self, origin, level, size):
        self.origin = origin
        self.level = level
        self.size = size


class Leaf(Region):
    # The representative intensity of every pixel in the region.
    value: int

    def __init__(self, origin, level, size, value):
        super().__init__(origin, level, size)
        self.value = value

    def __repr__(self):
        return f"Leaf(origin={self.origin}, level={self.level}, size={self.size}, value={self.value})"


class Internal(Region):
    # The four sub-regions, always in the order:
    #   upper-left, upper-right, lower-left, lower-right.
    children: tuple[Region, Region, Region, Region]

    def __init__(self, origin, level, size, children):
        super().__init__(origin, level, size)
        self.children = children

    def __repr__(self):
        return f"Internal(origin={self.origin}, level={self.level}, size={self.size})"


class TreeState(Enum):
    UNBUILT = "unbuilt"
    BUILDING = "building"
    BUILT = "built"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class SizeEstimate:
    uncompressed_bytes: int
    compressed_bytes: int

    @property
    def percent(self) -> float:
        return 100 * self.compressed_bytes / self.uncompressed_bytes


class QuadTree:
    """
    Owns the root region of a built tree together with the counters
        gathered while building it.

    A tree is only ever handed out by [build], so callers never see
        it in the UNBUILT or BUILDING state. It is read-only until
        [destroy] releases it; use it as a context manager to tie its
        lifetime to a block.
    """

    def __init__(self, side: int, tolerance: int):
        self.side = side
        self.tolerance = tolerance
        self.state = TreeState.UNBUILT

        self._root: Region | None = None
        self._node_count = 0
        self._leaf_count = 0

    def __enter__(self) -> "QuadTree":
        return self

    def __exit__(self, *exc_info):
        if self.state is not TreeState.DESTROYED:
            destroy(self)

    def _check_alive(self):
        if self.state is TreeState.DESTROYED:
            raise TreeDestroyed("the quadtree has already been destroyed")
        if self.state is not TreeState.BUILT:
            raise QuadTreeError(f"the quadtree is not built (state: {self.state.value})")

    @property
    def root(self) -> Region:
        self._check_alive()
        assert self._root is not None
        return self._root

    @property
    def node_count(self) -> int:
        self._check_alive()
        return self._node_count

    @property
    def leaf_count(self) -> int:
        self._check_alive()
        return self._leaf_count

    @property
    def internal_count(self) -> int:
        return self.node_count - self.leaf_count

    def __repr__(self):
        return f"QuadTree(side={self.side}, tolerance={self.tolerance}, state={self.state.value})"


def _as_image_array(pixels, side: int) -> np.ndarray:
    # Signed 16-bit so that [pixel - mean] can never wrap around.
    if isinstance(pixels, np.ndarray):
        if pixels.ndim == 2 and pixels.shape != (side, side):
            raise InvalidInput(f"expected a {side} x {side} image, got shape {pixels.shape}")
        if pixels.ndim not in (1, 2):
            raise InvalidInput(f"expected a 1D or 2D pixel array, got {pixels.ndim} dimensions")

        # Floats (NaN included) would be truncated silently by astype.
        if not (np.issubdtype(pixels.dtype, np.integer) or pixels.dtype == np.bool_):
            raise InvalidInput(f"pixel intensities must be integers, got dtype {pixels.dtype}")

        flat = pixels.reshape(-1)
        if flat.size < side * side:
            raise InvalidInput(f"pixel buffer holds {flat.size} values, {side * side} needed")
        flat = flat[:side * side]
        if flat.size and (flat.min() < 0 or flat.max() > 255):
            raise InvalidInput("pixel intensities must lie within [0, 255]")
        return flat.astype(np.int16).reshape(side, side)

    try:
        buffer = memoryview(pixels).cast("B")
    except TypeError as exc:
        raise InvalidInput(f"unsupported pixel buffer type: {type(pixels).__name__}") from exc

    if len(buffer) < side * side:
        raise InvalidInput(f"pixel buffer holds {len(buffer)} bytes, {side * side} needed")

    return np.frombuffer(buffer, dtype=np.uint8, count=side * side)\
        .astype(np.int16)\
        .reshape(side, side)


def _validate(side, tolerance):
    if isinstance(side, bool) or not isinstance(side, (int, np.integer)) or side <= 0:
        raise InvalidInput(f"side must be a positive integer, got {side!r}")

    # A power of two halves cleanly all the way down to 1.
    if side & (side - 1):
        raise InvalidInput(f"side must be a power of two, got {side}")

    if isinstance(tolerance, bool) or not isinstance(tolerance, (int, np.integer)) or tolerance < 0:
        raise InvalidInput(f"tolerance must be a non-negative integer, got {tolerance!r}")


def region_mean(area: np.ndarray) -> int:
    # Integer truncation, not rounding.
    return int(area.sum()) // area.size


def is_homogeneous(area: np.ndarray, mean: int, tolerance: int) -> bool:
    return int(np.abs(area - mean).max()) <= tolerance


def _child_origins(x: int, y: int, size: int) -> list[tuple[int, int]]:
    half = size // 2
    if size % 2 or half < 1:
        raise GeometryViolation(f"cannot split a region of side {size} at {(x, y)}")

    return [
        (x,        y),
        (x + half, y),
        (x,        y + half),
        (x + half, y + half),
    ]


def _fill(tree: QuadTree, image_array: np.ndarray, origin: tuple[int, int], level: int) -> Region:
    x, y = origin
    size = tree.side >> level
    tree._node_count += 1

    if size == 1:
        tree._leaf_count += 1
        return Leaf(origin, level, size, int(image_array[y, x]))

    area = image_array[y:y + size, x:x + size]
    mean = region_mean(area)

    if is_homogeneous(area, mean, tree.tolerance):
        tree._leaf_count += 1
        return Leaf(origin, level, size, mean)

    children = tuple(
        _fill(tree, image_array, child_origin, level + 1)
        for child_origin in _child_origins(x, y, size)
    )
    return Internal(origin, level, size, children)


def build(pixels, side: int, tolerance: int) -> QuadTree:
    """
    Partitions a [side] x [side] monochrome buffer into a QuadTree.

    A region whose pixels all lie within [tolerance] of the region's
        (truncated) mean collapses into a single Leaf holding that mean.
        Any other region is split into four equal quadrants, recursively,
        down to single pixels.

    Raises InvalidInput before anything is allocated when [side] is not
        a positive power of two, [tolerance] is negative, or [pixels] is
        too short.
    """
    _validate(side, tolerance)
    image_array = _as_image_array(pixels, side)

    logger.debug("Encoding start (side=%d, tolerance=%d)", side, tolerance)

    tree = QuadTree(int(side), int(tolerance))
    tree.state = TreeState.BUILDING
    try:
        tree._root = _fill(tree, image_array, (0, 0), 0)
    except MemoryError as exc:
        # Dropping the only reference releases every partial node.
        tree._root = None
        tree.state = TreeState.DESTROYED
        raise AllocationFailure(f"ran out of memory after {tree._node_count} nodes") from exc
    tree.state = TreeState.BUILT

    logger.debug(
        "QuadTree building finished: %d nodes, %d leaves",
        tree._node_count, tree._leaf_count,
    )
    return tree


def iter_leaves(tree: QuadTree) -> Iterator[Leaf]:
    # Depth-first, children pushed reversed so that leaves come out
    #   in the upper-left, upper-right, lower-left, lower-right order.
    stack = deque([tree.root])
    while len(stack) > 0:
        current = stack.pop()

        if isinstance(current, Internal):
            stack.extend(reversed(current.children))
        else:
            yield current


def materialize(tree: QuadTree, side: int | None = None) -> tuple[np.ndarray, np.ndarray]:
    """
    Paints the leaves of [tree] back into full resolution buffers.

    Returns (reconstructed, overlay), both [side] x [side] uint8 arrays.
        The overlay holds the same values as the reconstruction, except
        the top row and left column of every leaf, and the bottom row
        and right column of the whole image, are drawn at BOUNDARY_VALUE.
    """
    if side is not None and side != tree.side:
        raise InvalidInput(f"tree was built for side {tree.side}, not {side}")

    side = tree.side
    reconstructed = np.zeros((side, side), dtype=np.uint8)
    overlay = np.zeros((side, side), dtype=np.uint8)

    for leaf in iter_leaves(tree):
        x, y = leaf.origin
        rows = slice(y, y + leaf.size)
        cols = slice(x, x + leaf.size)

        reconstructed[rows, cols] = leaf.value
        overlay[rows, cols] = leaf.value

        overlay[y, cols] = BOUNDARY_VALUE
        overlay[rows, x] = BOUNDARY_VALUE

    logger.debug("Image painting finished")
    return reconstructed, close_grid(overlay)


def close_grid(overlay: np.ndarray) -> np.ndarray:
    # Leaves only draw their top and left edges, the far edges
    #   of the image are drawn here. Modifies [overlay] in place.
    overlay[-1, :] = BOUNDARY_VALUE
    overlay[:, -1] = BOUNDARY_VALUE
    return overlay


def node_count(tree: QuadTree) -> int:
    return tree.node_count


def leaf_count(tree: QuadTree) -> int:
    return tree.leaf_count


def depth(tree: QuadTree) -> int:
    return max(leaf.level for leaf in iter_leaves(tree))


def size_estimate(tree: QuadTree) -> SizeEstimate:
    return SizeEstimate(
        uncompressed_bytes=tree.side * tree.side,
        compressed_bytes=tree.leaf_count * BYTES_PER_LEAF,
    )


def destroy(tree: QuadTree) -> int:
    """
    Releases every region of [tree], children before their parent.

    Returns the number of regions released. The tree can not be read
        (or destroyed) again afterwards.
    """
    root = tree.root

    released = 0
    # Post-order: a node is released on its second visit,
    #   after all of its children have been released.
    stack: deque[tuple[Region, bool]] = deque([(root, False)])
    while len(stack) > 0:
        current, expanded = stack.pop()

        if isinstance(current, Internal) and not expanded:
            stack.append((current, True))
            stack.extend((child, False) for child in reversed(current.children))
            continue

        if isinstance(current, Internal):
            current.children = ()
        released += 1

    tree._root = None
    tree.state = TreeState.DESTROYED

    if released != tree._node_count:
        logger.warning("released %d regions, %d were built", released, tree._node_count)
    logger.debug("QuadTree destroyed: %d regions released", released)
    return released
