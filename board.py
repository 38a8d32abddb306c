#!/usr/bin/env python3
"""
Raster Chess Board
==================
A fixed 536x536 board made of three RGBA pixel layers plus an 8x8 grid
of pieces:

- background: two-tone checker, painted once
- highlight: square frames drawn by highlightSquare / unmark
- arrows: re-rasterized from the arrow set whenever it changed

render() composes pieces OVER ((highlight OVER background) OVERLAY arrows)
in premultiplied-alpha space and returns an opaque Pillow image.

Dependencies:
- numpy: pixel layers and compositing
- Pillow (PIL): output image
"""

import math
import logging
from typing import Optional, List, Dict, Tuple, Iterator, Iterable

import numpy as np
from PIL import Image

from config import BOARD_SETTINGS, COLORS
from pieces import Piece, PieceKind, Square

logger = logging.getLogger("RasterBoard")

# =============================================================================
# CONSTANTS
# =============================================================================

BOARD_SIZE = BOARD_SETTINGS["size"]
SQUARE_SIZE = BOARD_SETTINGS["square_size"]
HIGHLIGHT_WIDTH = BOARD_SETTINGS["highlight_width"]
SHAFT_OFFSETS = range(-BOARD_SETTINGS["shaft_half_width"], BOARD_SETTINGS["shaft_half_width"] + 1)
FLANGE_OFFSETS = range(-BOARD_SETTINGS["flange_half_width"], BOARD_SETTINGS["flange_half_width"] + 1)

# Distance from the arrow tip to each flange end
FLANGE_RADIUS = math.ceil(SQUARE_SIZE / 2)

TRANSPARENT = (0, 0, 0, 0)

Color = Tuple[int, int, int, int]
Point = Tuple[int, int]


class BoardGeometryError(RuntimeError):
    """Raised when an arrow has no direction (both ends on one square)."""

# =============================================================================
# LINE RASTERIZATION
# =============================================================================

def bresenham(start: Point, end: Point) -> Iterator[Point]:
    """
    Integer line from start to end.

    Yields every pixel after `start` and before `end`; callers draw the
    start point themselves.
    """
    (x, y), (end_x, end_y) = start, end
    dx, dy = abs(end_x - x), abs(end_y - y)
    step_x = 1 if x < end_x else -1
    step_y = 1 if y < end_y else -1
    error = int((dx if dx > dy else -dy) / 2)

    while True:
        e2 = error
        if e2 > -dx:
            error -= dy
            x += step_x
        if e2 < dy:
            error += dx
            y += step_y
        if x == end_x and y == end_y:
            return
        yield x, y


def square_origin(square: Square) -> Point:
    """Top-left pixel of a square (a8 is at 0,0)."""
    return (square.file - 1) * SQUARE_SIZE, (8 - square.rank) * SQUARE_SIZE


def square_center(square: Square) -> Point:
    x, y = square_origin(square)
    return x + SQUARE_SIZE // 2, y + SQUARE_SIZE // 2

# =============================================================================
# ARROW GEOMETRY
# =============================================================================

# |slope| angles of the two knight shapes, taken from board geometry
KNIGHT_ANGLES = {
    "knight_vertical": math.atan(2.0),    # 1 file, 2 ranks
    "knight_horizontal": math.atan(0.5),  # 2 files, 1 rank
}


def arrow_shape(from_square: Square, to_square: Square) -> str:
    """Classify an arrow as horizontal, vertical, diagonal, knight_* or oblique."""
    files = abs(from_square.file - to_square.file)
    ranks = abs(from_square.rank - to_square.rank)

    if files == 0 and ranks == 0:
        raise BoardGeometryError(f"Arrow from {from_square} to itself")
    if ranks == 0:
        return "horizontal"
    if files == 0:
        return "vertical"
    if files == ranks:
        return "diagonal"
    if (files, ranks) == (1, 2):
        return "knight_vertical"
    if (files, ranks) == (2, 1):
        return "knight_horizontal"
    return "oblique"


def shaft_angle(from_square: Square, to_square: Square) -> float:
    """
    Direction from the arrow tip back along the shaft.

    Angles are measured clockwise from screen-up, so a flange end lies at
    tip + r * (sin a, -cos a).
    """
    shape = arrow_shape(from_square, to_square)
    (x1, y1), (x2, y2) = square_center(from_square), square_center(to_square)

    if shape == "vertical":
        return math.pi if y1 > y2 else 0.0

    if shape in KNIGHT_ANGLES:
        theta = KNIGHT_ANGLES[shape]
    else:
        theta = math.atan(abs((y2 - y1) / (x2 - x1)))

    # Quadrant of the tail as seen from the tip
    back_x, back_y = x1 - x2, y1 - y2
    if back_x > 0 and back_y <= 0:
        return math.pi / 2 - theta
    if back_x > 0 and back_y > 0:
        return math.pi / 2 + theta
    if back_x < 0 and back_y >= 0:
        return -math.pi / 2 - theta
    if back_x < 0 and back_y < 0:
        return -math.pi / 2 + theta
    raise BoardGeometryError(f"No direction for arrow {from_square}-{to_square}")


def flange_ends(tip: Point, angle: float) -> Tuple[Point, Point]:
    ends = []
    for a in (angle + math.pi / 4, angle - math.pi / 4):
        ends.append((int(tip[0] + FLANGE_RADIUS * math.sin(a)), int(tip[1] - FLANGE_RADIUS * math.cos(a))))
    return ends[0], ends[1]

# =============================================================================
# COMPOSITING
# =============================================================================

def _premultiply(layer: np.ndarray) -> np.ndarray:
    pixels = layer.astype(np.float32) / 255.0
    pixels[..., :3] *= pixels[..., 3:4]
    return pixels


def _over(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    return src + dst * (1.0 - src[..., 3:4])


def _overlay(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Premultiplied overlay: `dst` (the arrows) decides light or dark per channel."""
    sa, da = src[..., 3:4], dst[..., 3:4]
    sc, dc = src[..., :3], dst[..., :3]

    dark = 2.0 * sc * dc + sc * (1.0 - da) + dc * (1.0 - sa)
    light = sc * (1.0 + da) + dc * (1.0 + sa) - 2.0 * sc * dc - sa * da

    out = np.empty_like(src)
    out[..., :3] = np.where(2.0 * dc <= da, dark, light)
    out[..., 3:4] = sa + da - sa * da
    return out

# =============================================================================
# RASTER BOARD
# =============================================================================

class RasterBoard:
    """
    Pixel layers, piece grid and arrow set of one board snapshot.

    Layers share a single (3, S, S, 4) uint8 allocation and are addressed
    with the BACKGROUND / ARROWS / HIGHLIGHT indices.
    """

    BACKGROUND = 0
    ARROWS = 1
    HIGHLIGHT = 2

    def __init__(self):
        self.layers = np.zeros((3, BOARD_SIZE, BOARD_SIZE, 4), dtype=np.uint8)
        self.grid: List[List[Optional[Piece]]] = [[None] * 8 for _ in range(8)]
        self.arrows: Dict[Tuple[Square, Square], Color] = {}
        self.arrows_dirty = True
        self._paint_background()

    def _paint_background(self):
        rows = np.arange(BOARD_SIZE) // SQUARE_SIZE
        parity = (rows[:, None] + rows[None, :]) % 2
        background = self.layers[self.BACKGROUND]
        background[parity == 0] = COLORS["square_light"]
        background[parity == 1] = COLORS["square_dark"]

    def layer(self, index: int) -> np.ndarray:
        return self.layers[index]

    def copy(self) -> "RasterBoard":
        clone = RasterBoard.__new__(RasterBoard)
        clone.layers = self.layers.copy()
        clone.grid = [column[:] for column in self.grid]
        clone.arrows = dict(self.arrows)
        clone.arrows_dirty = self.arrows_dirty
        return clone

    # -------------------------------------------------------------------------
    # Pieces
    # -------------------------------------------------------------------------

    def piece_at(self, square: Square) -> Optional[Piece]:
        return self.grid[square.file - 1][square.rank - 1]

    def place_piece(self, square: Square, piece: Optional[Piece]):
        self.grid[square.file - 1][square.rank - 1] = piece

    def pieces(self) -> Dict[Square, Piece]:
        """Occupied squares, for inspection and tests."""
        return {
            Square(f + 1, r + 1): piece
            for f, column in enumerate(self.grid)
            for r, piece in enumerate(column)
            if piece is not None
        }

    def load_fen(self, squares: Iterable[Tuple[Square, Optional[Piece]]]):
        for square, piece in squares:
            self.place_piece(square, piece)

    def move_piece(self, from_square: Square, to_square: Square):
        """
        Relocate the piece on from_square, capturing whatever stands on
        to_square. Castling moves the rook too and en passant removes the
        captured pawn; both are recognised from the board alone.
        """
        moving = self.piece_at(from_square)

        if (
            moving is not None
            and moving.kind is PieceKind.KING
            and from_square.file == 5
            and from_square.rank in (1, 8)
            and to_square.rank == from_square.rank
            and abs(to_square.file - from_square.file) == 2
        ):
            rank = from_square.rank
            if to_square.file == 7:
                rook_from, rook_to = Square(8, rank), Square(6, rank)
            else:
                rook_from, rook_to = Square(1, rank), Square(4, rank)
            self.place_piece(rook_to, self.piece_at(rook_from))
            self.place_piece(rook_from, None)

        elif (
            moving is not None
            and moving.kind is PieceKind.PAWN
            and self.piece_at(to_square) is None
            and abs(to_square.file - from_square.file) == 1
            and abs(to_square.rank - from_square.rank) == 1
        ):
            passed = Square(to_square.file, from_square.rank)
            if self.piece_at(passed) == Piece(PieceKind.PAWN, moving.color.opponent):
                self.place_piece(passed, None)

        self.place_piece(to_square, moving)
        self.place_piece(from_square, None)

    def promote(self, square: Square, kind: PieceKind):
        """Swap the piece on `square` for one of `kind` in the same color."""
        piece = self.piece_at(square)
        if piece is None:
            logger.warning(f"Promotion on empty square {square}")
            return
        self.place_piece(square, piece.with_kind(kind))

    # -------------------------------------------------------------------------
    # Highlights
    # -------------------------------------------------------------------------

    def set_highlight(self, square: Square, color: Optional[Color]):
        """Frame a square in `color`; None erases the frame."""
        x, y = square_origin(square)
        w = HIGHLIGHT_WIDTH
        highlight = self.layers[self.HIGHLIGHT, y:y + SQUARE_SIZE, x:x + SQUARE_SIZE]
        fill = TRANSPARENT if color is None else color

        highlight[:w, :] = fill
        highlight[-w:, :] = fill
        highlight[:, :w] = fill
        highlight[:, -w:] = fill

    def clear_highlight(self, square: Square):
        self.set_highlight(square, None)

    def clear_highlights(self):
        self.layers[self.HIGHLIGHT] = 0

    # -------------------------------------------------------------------------
    # Arrows
    # -------------------------------------------------------------------------

    def add_arrow(self, from_square: Square, to_square: Square, color: Color):
        self.arrows[(from_square, to_square)] = tuple(color)
        self.arrows_dirty = True

    def remove_arrow(self, from_square: Square, to_square: Square):
        self.arrows.pop((from_square, to_square), None)
        self.arrows_dirty = True

    def clear_arrows(self):
        self.arrows.clear()
        self.arrows_dirty = True

    def clear_markers(self):
        self.clear_arrows()
        self.clear_highlights()

    def draw_line(
        self,
        layer: int,
        color: Color,
        offsets: Iterable[Point],
        start: Point,
        end: Point
    ):
        """
        Draw start..end once per (dx, dy) offset, producing a band of
        parallel 1px lines. Pixels off the canvas are dropped.
        """
        xs, ys = [], []
        for ox, oy in offsets:
            a = (start[0] + ox, start[1] + oy)
            b = (end[0] + ox, end[1] + oy)
            xs.append(a[0])
            ys.append(a[1])
            for px, py in bresenham(a, b):
                xs.append(px)
                ys.append(py)

        xs, ys = np.array(xs), np.array(ys)
        inside = (xs >= 0) & (xs < BOARD_SIZE) & (ys >= 0) & (ys < BOARD_SIZE)
        self.layers[layer, ys[inside], xs[inside]] = color

    def _rasterize_arrow(self, from_square: Square, to_square: Square, color: Color):
        start, tip = square_center(from_square), square_center(to_square)

        if start[1] == tip[1]:
            shaft = [(0, o) for o in SHAFT_OFFSETS]
        else:
            shaft = [(o, 0) for o in SHAFT_OFFSETS]
        self.draw_line(self.ARROWS, color, shaft, start, tip)

        flange = [(0, o) for o in FLANGE_OFFSETS]
        left, right = flange_ends(tip, shaft_angle(from_square, to_square))
        self.draw_line(self.ARROWS, color, flange, tip, left)
        self.draw_line(self.ARROWS, color, flange, tip, right)
        self.draw_line(self.ARROWS, color, flange, left, right)

        # Fill the head
        for point in bresenham(left, right):
            self.draw_line(self.ARROWS, color, flange, tip, point)

    def prerender_arrows(self):
        """Redraw the arrow layer if the arrow set changed since the last render."""
        if not self.arrows_dirty:
            return
        self.layers[self.ARROWS] = 0
        for (from_square, to_square), color in self.arrows.items():
            self._rasterize_arrow(from_square, to_square, color)
        self.arrows_dirty = False

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def piece_layer(self) -> np.ndarray:
        layer = np.zeros((BOARD_SIZE, BOARD_SIZE, 4), dtype=np.uint8)
        for square, piece in self.pieces().items():
            x, y = square_origin(square)
            layer[y:y + SQUARE_SIZE, x:x + SQUARE_SIZE] = piece.sprite
        return layer

    def render(self) -> Image.Image:
        """Compose all layers into an opaque RGBA image."""
        self.prerender_arrows()

        background = _premultiply(self.layers[self.BACKGROUND])
        highlight = _premultiply(self.layers[self.HIGHLIGHT])
        arrows = _premultiply(self.layers[self.ARROWS])
        pieces = _premultiply(self.piece_layer())

        composed = _over(pieces, _overlay(_over(highlight, background), arrows))

        out = np.empty((BOARD_SIZE, BOARD_SIZE, 4), dtype=np.uint8)
        out[..., :3] = np.clip(np.rint(composed[..., :3] * 255.0), 0, 255).astype(np.uint8)
        out[..., 3] = 255
        return Image.fromarray(out)

    def save(self, path):
        self.render().save(path)
