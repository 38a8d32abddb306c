#!/usr/bin/env python3
"""
FEN Placement Decoder
=====================
Turns the piece-placement field of a FEN record into the 64
(square, piece) pairs of a board, a8 first and h1 last.
"""

from typing import Optional, Iterator, Tuple
from dataclasses import dataclass

from pieces import Piece, Square

# Skipped together with the character that follows it
ESCAPE = "\\"

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


class FenError(ValueError):
    """Raised when a placement field cannot describe a full board."""


def decode_placement(fen: str) -> Iterator[Tuple[Square, Optional[Piece]]]:
    """
    Lazily decode a FEN placement field.

    Args:
        fen: Full FEN record or just its placement field

    Yields:
        (Square, Piece or None) for all 64 squares, file a..h within
        rank 8, then rank 7, down to rank 1
    """
    file, rank = 1, 8
    chars = iter(fen)

    for char in chars:
        if char.isascii() and char.isdigit():
            run = int(char)
            if file + run > 9:
                raise FenError(f"Rank {rank} overflows in {fen!r}")
            for _ in range(run):
                yield Square(file, rank), None
                file += 1
        elif char == "/":
            if file != 9:
                raise FenError(f"Rank {rank} has {file - 1} squares in {fen!r}")
            file, rank = 1, rank - 1
        elif char == " ":
            break
        elif char == ESCAPE:
            next(chars, None)
        else:
            try:
                piece = Piece.from_symbol(char)
            except ValueError:
                raise FenError(f"Unexpected {char!r} in {fen!r}") from None
            if file > 8:
                raise FenError(f"Rank {rank} overflows in {fen!r}")
            yield Square(file, rank), piece
            file += 1

        if rank == 1 and file == 9:
            return

    raise FenError(f"Placement ends early at {Square(min(file, 8), rank)} in {fen!r}")


@dataclass(frozen=True)
class Fen:
    """A FEN record, checked on construction."""
    text: str

    def __post_init__(self):
        for _ in decode_placement(self.text):
            pass

    def squares(self) -> Iterator[Tuple[Square, Optional[Piece]]]:
        return decode_placement(self.text)

    def __iter__(self):
        return self.squares()

    def __str__(self) -> str:
        return self.text
