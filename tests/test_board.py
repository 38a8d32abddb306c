"""Tests for the raster board: piece moves, markers, arrows and compositing."""

import math

import numpy as np
import pytest

from board import (
    BOARD_SIZE, SQUARE_SIZE, BoardGeometryError, RasterBoard, arrow_shape,
    bresenham, flange_ends, shaft_angle, square_center, square_origin,
)
from config import COLORS
from fen import STARTING_FEN, Fen
from pieces import Piece, PieceKind, Square

BLUE = COLORS["blue"]
RED = COLORS["red"]


def sq(name: str) -> Square:
    return Square.from_name(name)


def board_with(placement: dict) -> RasterBoard:
    board = RasterBoard()
    for name, symbol in placement.items():
        board.place_piece(sq(name), Piece.from_symbol(symbol))
    return board


class TestGeometry:
    def test_bresenham_excludes_both_ends(self) -> None:
        assert list(bresenham((0, 0), (3, 0))) == [(1, 0), (2, 0)]
        assert list(bresenham((0, 0), (3, 3))) == [(1, 1), (2, 2)]
        assert list(bresenham((5, 5), (5, 5))) == []

    def test_bresenham_steps_are_adjacent(self) -> None:
        points = [(0, 0)] + list(bresenham((0, 0), (7, 19))) + [(7, 19)]
        for (x1, y1), (x2, y2) in zip(points, points[1:]):
            assert abs(x2 - x1) <= 1 and abs(y2 - y1) <= 1

    def test_square_origin(self) -> None:
        assert square_origin(sq("a8")) == (0, 0)
        assert square_origin(sq("h1")) == (7 * SQUARE_SIZE, 7 * SQUARE_SIZE)
        assert square_center(sq("a8")) == (33, 33)

    @pytest.mark.parametrize(
        "start, end, shape",
        [
            ("a1", "h1", "horizontal"),
            ("e2", "e4", "vertical"),
            ("c1", "h6", "diagonal"),
            ("g1", "f3", "knight_vertical"),
            ("b1", "d2", "knight_horizontal"),
            ("a1", "b4", "oblique"),
        ],
    )
    def test_arrow_shape(self, start: str, end: str, shape: str) -> None:
        assert arrow_shape(sq(start), sq(end)) == shape

    def test_zero_length_arrow(self) -> None:
        with pytest.raises(BoardGeometryError):
            arrow_shape(sq("e4"), sq("e4"))

    def test_shaft_angle_points_back_to_tail(self) -> None:
        # Upward arrow: the tail is below the tip
        assert shaft_angle(sq("e2"), sq("e4")) == pytest.approx(math.pi)
        assert shaft_angle(sq("e4"), sq("e2")) == pytest.approx(0.0)
        # Rightward arrow: the tail is to the left
        assert shaft_angle(sq("a1"), sq("h1")) == pytest.approx(-math.pi / 2)

    def test_flange_ends_are_symmetric(self) -> None:
        tip = square_center(sq("e4"))
        left, right = flange_ends(tip, shaft_angle(sq("e2"), sq("e4")))
        # Both ends sit below the tip, mirrored around the shaft
        assert left[1] > tip[1] and right[1] > tip[1]
        assert abs((left[0] - tip[0]) + (right[0] - tip[0])) <= 1


class TestPieces:
    def test_load_fen(self) -> None:
        board = RasterBoard()
        board.load_fen(Fen(STARTING_FEN).squares())
        assert len(board.pieces()) == 32
        assert board.piece_at(sq("e1")) == Piece.from_symbol("K")
        assert board.piece_at(sq("d8")) == Piece.from_symbol("q")

    def test_move_and_capture(self) -> None:
        board = board_with({"d1": "Q", "d7": "p"})
        board.move_piece(sq("d1"), sq("d7"))
        assert board.pieces() == {sq("d7"): Piece.from_symbol("Q")}

    def test_kingside_castling_moves_rook(self) -> None:
        board = board_with({"e1": "K", "h1": "R"})
        board.move_piece(sq("e1"), sq("g1"))
        assert board.pieces() == {sq("g1"): Piece.from_symbol("K"), sq("f1"): Piece.from_symbol("R")}

    def test_queenside_castling_moves_rook(self) -> None:
        board = board_with({"e8": "k", "a8": "r"})
        board.move_piece(sq("e8"), sq("c8"))
        assert board.pieces() == {sq("c8"): Piece.from_symbol("k"), sq("d8"): Piece.from_symbol("r")}

    def test_king_step_is_not_castling(self) -> None:
        board = board_with({"e1": "K", "h1": "R"})
        board.move_piece(sq("e1"), sq("f1"))
        assert board.piece_at(sq("h1")) == Piece.from_symbol("R")

    def test_en_passant_removes_passed_pawn(self) -> None:
        board = board_with({"d5": "P", "e5": "p"})
        board.move_piece(sq("d5"), sq("e6"))
        assert board.pieces() == {sq("e6"): Piece.from_symbol("P")}

    def test_pawn_capture_leaves_neighbours(self) -> None:
        board = board_with({"d5": "P", "e6": "n", "e5": "p"})
        board.move_piece(sq("d5"), sq("e6"))
        assert board.piece_at(sq("e5")) == Piece.from_symbol("p")
        assert board.piece_at(sq("e6")) == Piece.from_symbol("P")

    def test_diagonal_step_keeps_own_pawn(self) -> None:
        board = board_with({"d5": "P", "e5": "P"})
        board.move_piece(sq("d5"), sq("e6"))
        assert board.piece_at(sq("e5")) == Piece.from_symbol("P")

    def test_promote(self) -> None:
        board = board_with({"e8": "P"})
        board.promote(sq("e8"), PieceKind.QUEEN)
        assert board.piece_at(sq("e8")) == Piece.from_symbol("Q")

    def test_copy_is_independent(self) -> None:
        board = board_with({"e2": "P"})
        board.add_arrow(sq("e2"), sq("e4"), BLUE)
        clone = board.copy()

        clone.move_piece(sq("e2"), sq("e4"))
        clone.set_highlight(sq("a1"), RED)
        clone.clear_arrows()

        assert board.piece_at(sq("e2")) == Piece.from_symbol("P")
        assert not board.layer(RasterBoard.HIGHLIGHT).any()
        assert (sq("e2"), sq("e4")) in board.arrows


class TestMarkers:
    def test_background_checker(self) -> None:
        background = RasterBoard().layer(RasterBoard.BACKGROUND)
        assert tuple(background[0, 0]) == COLORS["square_light"]
        assert tuple(background[0, SQUARE_SIZE]) == COLORS["square_dark"]
        assert tuple(background[SQUARE_SIZE, SQUARE_SIZE]) == COLORS["square_light"]

    def test_highlight_is_a_frame(self) -> None:
        board = RasterBoard()
        board.set_highlight(sq("e4"), RED)
        x, y = square_origin(sq("e4"))
        highlight = board.layer(RasterBoard.HIGHLIGHT)

        assert tuple(highlight[y, x]) == RED
        assert tuple(highlight[y + SQUARE_SIZE - 1, x + SQUARE_SIZE - 1]) == RED
        assert tuple(highlight[y + 33, x + 33]) == (0, 0, 0, 0)
        assert not highlight[:y].any()

    def test_clear_highlight(self) -> None:
        board = RasterBoard()
        board.set_highlight(sq("e4"), RED)
        board.set_highlight(sq("a1"), RED)
        board.clear_highlight(sq("e4"))

        x, y = square_origin(sq("a1"))
        assert tuple(board.layer(RasterBoard.HIGHLIGHT)[y, x]) == RED
        board.clear_highlights()
        assert not board.layer(RasterBoard.HIGHLIGHT).any()

    def test_arrow_set_tracks_dirty_flag(self) -> None:
        board = RasterBoard()
        board.prerender_arrows()
        assert not board.arrows_dirty

        board.add_arrow(sq("e2"), sq("e4"), BLUE)
        assert board.arrows_dirty
        board.add_arrow(sq("e2"), sq("e4"), RED)
        assert board.arrows == {(sq("e2"), sq("e4")): RED}

        board.prerender_arrows()
        assert not board.arrows_dirty
        board.remove_arrow(sq("e2"), sq("e4"))
        assert board.arrows_dirty
        assert board.arrows == {}

    def test_arrow_pixels(self) -> None:
        board = RasterBoard()
        board.add_arrow(sq("e2"), sq("e4"), BLUE)
        board.prerender_arrows()
        arrows = board.layer(RasterBoard.ARROWS)

        x, y = square_center(sq("e3"))
        assert tuple(arrows[y, x]) == BLUE
        assert tuple(arrows[y, x + 3]) == BLUE
        assert tuple(arrows[y, x + 10]) == (0, 0, 0, 0)
        # Arrowhead is filled just behind the tip
        tx, ty = square_center(sq("e4"))
        assert tuple(arrows[ty + 10, tx + 5]) == BLUE

    def test_removed_arrow_is_erased(self) -> None:
        board = RasterBoard()
        board.add_arrow(sq("e2"), sq("e4"), BLUE)
        board.prerender_arrows()
        board.remove_arrow(sq("e2"), sq("e4"))
        board.prerender_arrows()
        assert not board.layer(RasterBoard.ARROWS).any()

    @pytest.mark.parametrize("start, end", [("a1", "h1"), ("h8", "a1"), ("g1", "f3"), ("b1", "d2"), ("a1", "b4")])
    def test_every_arrow_shape_rasterizes(self, start: str, end: str) -> None:
        board = RasterBoard()
        board.add_arrow(sq(start), sq(end), BLUE)
        board.prerender_arrows()
        x, y = square_center(sq(end))
        assert tuple(board.layer(RasterBoard.ARROWS)[y, x]) == BLUE

    def test_zero_length_arrow_fails_to_rasterize(self) -> None:
        board = RasterBoard()
        board.add_arrow(sq("e4"), sq("e4"), BLUE)
        with pytest.raises(BoardGeometryError):
            board.prerender_arrows()


class TestRender:
    def test_render_is_opaque(self) -> None:
        image = RasterBoard().render()
        assert image.size == (BOARD_SIZE, BOARD_SIZE)
        assert image.mode == "RGBA"
        assert np.array(image)[..., 3].min() == 255

    def test_empty_board_shows_background(self) -> None:
        pixels = np.array(RasterBoard().render())
        assert tuple(pixels[10, 10]) == COLORS["square_light"]

    def test_pieces_are_drawn_over_squares(self) -> None:
        empty = np.array(RasterBoard().render())
        with_king = np.array(board_with({"e1": "K"}).render())
        x, y = square_origin(sq("e1"))
        region = (slice(y, y + SQUARE_SIZE), slice(x, x + SQUARE_SIZE))
        assert not np.array_equal(empty[region], with_king[region])
        assert np.array_equal(empty[:y], with_king[:y])

    def test_highlight_changes_frame_pixels(self) -> None:
        board = RasterBoard()
        board.set_highlight(sq("a8"), RED)
        pixels = np.array(board.render())
        assert tuple(pixels[0, 0][:3]) == RED[:3]
        assert tuple(pixels[33, 33]) == COLORS["square_light"]

    def test_arrow_changes_rendered_pixels(self) -> None:
        board = RasterBoard()
        plain = np.array(board.render())
        board.add_arrow(sq("e2"), sq("e4"), BLUE)
        marked = np.array(board.render())
        x, y = square_center(sq("e3"))
        assert not np.array_equal(plain[y, x], marked[y, x])
        assert not board.arrows_dirty

    def test_save(self, tmp_path) -> None:
        path = tmp_path / "board.png"
        RasterBoard().save(path)
        assert path.exists()
