#!/usr/bin/env python3
"""
Chess Pieces and Sprite Catalog
===============================
Value types for squares and pieces, plus the process-wide table of
piece sprites used by the raster board.

The catalog holds one RGBA sprite per (color, kind). Sprites are read from
ASSETS_DIR (klt.png = white king, kdt.png = black king, ...). Missing files
are replaced by a token drawn with Pillow so a board can always be rendered.

Dependencies:
- python-chess: square names and piece symbol tables
- Pillow (PIL): sprite loading and drawing
- numpy: sprite pixel storage
"""

import os
import logging
from enum import Enum, IntEnum
from pathlib import Path
from typing import Optional, Dict, List, NamedTuple
from dataclasses import dataclass

import chess
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from config import ASSETS_DIR, BOARD_SETTINGS

logger = logging.getLogger("PieceCatalog")

SQUARE_SIZE = BOARD_SETTINGS["square_size"]

# =============================================================================
# SQUARES
# =============================================================================

class Square(NamedTuple):
    """A (file, rank) coordinate, both 1-based: a1 = (1, 1), h8 = (8, 8)."""
    file: int
    rank: int

    @classmethod
    def from_name(cls, name: str) -> "Square":
        """Parse an algebraic square name such as 'e4'."""
        return cls.from_chess(chess.parse_square(name.lower()))

    @classmethod
    def from_chess(cls, square: chess.Square) -> "Square":
        return cls(chess.square_file(square) + 1, chess.square_rank(square) + 1)

    @property
    def chess_square(self) -> chess.Square:
        return chess.square(self.file - 1, self.rank - 1)

    @property
    def name(self) -> str:
        return chess.square_name(self.chess_square)

    def is_valid(self) -> bool:
        return 1 <= self.file <= 8 and 1 <= self.rank <= 8

    def __str__(self) -> str:
        return self.name

# =============================================================================
# PIECES
# =============================================================================

class PieceKind(IntEnum):
    PAWN = chess.PAWN
    KNIGHT = chess.KNIGHT
    BISHOP = chess.BISHOP
    ROOK = chess.ROOK
    QUEEN = chess.QUEEN
    KING = chess.KING

    @property
    def letter(self) -> str:
        return chess.piece_symbol(self.value)

    @classmethod
    def from_letter(cls, letter: str) -> "PieceKind":
        """Kind for a letter in either case ('q' and 'Q' are both QUEEN)."""
        if len(letter) != 1 or letter.lower() not in chess.PIECE_SYMBOLS[1:]:
            raise ValueError(f"Not a piece letter: {letter!r}")
        return cls(chess.PIECE_SYMBOLS.index(letter.lower()))


class PieceColor(Enum):
    WHITE = chess.WHITE
    BLACK = chess.BLACK

    @property
    def opponent(self) -> "PieceColor":
        return PieceColor.BLACK if self is PieceColor.WHITE else PieceColor.WHITE


@dataclass(frozen=True)
class Piece:
    """
    An immutable chess piece.

    Two pieces are equal when kind and color match. Sprite pixels live in
    the PieceCatalog, never on the piece itself.
    """
    kind: PieceKind
    color: PieceColor

    @classmethod
    def from_symbol(cls, symbol: str) -> "Piece":
        """Uppercase letters are White, lowercase Black (P N B R Q K)."""
        piece = chess.Piece.from_symbol(symbol)
        return cls(PieceKind(piece.piece_type), PieceColor(piece.color))

    @property
    def symbol(self) -> str:
        return chess.Piece(self.kind.value, self.color.value).symbol()

    @property
    def unicode_symbol(self) -> str:
        return chess.Piece(self.kind.value, self.color.value).unicode_symbol()

    @property
    def sprite_filename(self) -> str:
        shade = "l" if self.color is PieceColor.WHITE else "d"
        return f"{self.kind.letter}{shade}t.png"

    @property
    def sprite(self) -> np.ndarray:
        return PieceCatalog.instance().sprite(self)

    def with_kind(self, kind: PieceKind) -> "Piece":
        """Same color, different kind (used for promotions)."""
        return Piece(kind, self.color)

    def __str__(self) -> str:
        return self.symbol

# =============================================================================
# SPRITE CATALOG
# =============================================================================

class PieceCatalog:
    """
    Read-only table of the 12 piece sprites.

    Use PieceCatalog.instance(); the table is built on first use and kept
    for the lifetime of the process.
    """

    # Fonts with chess glyphs, tried in order for drawn sprites
    GLYPH_FONT_PATHS = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
        "/System/Library/Fonts/Apple Symbols.ttf",
        "/Library/Fonts/Arial Unicode.ttf",
        "C:/Windows/Fonts/seguisym.ttf",
    ]

    _instance: Optional["PieceCatalog"] = None

    def __init__(self, assets_dir: str = ASSETS_DIR, square_size: int = SQUARE_SIZE):
        self.assets_dir = Path(assets_dir)
        self.square_size = square_size
        self.drawn: List[Piece] = []
        self._sprites: Dict[Piece, np.ndarray] = {}

        for color in PieceColor:
            for kind in PieceKind:
                piece = Piece(kind, color)
                self._sprites[piece] = self._load_sprite(piece)

        if self.drawn:
            logger.warning(
                f"⚠️ {len(self.drawn)} sprite(s) missing from {self.assets_dir}, "
                f"using drawn pieces"
            )

    @classmethod
    def instance(cls) -> "PieceCatalog":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def sprite(self, piece: Piece) -> np.ndarray:
        return self._sprites[piece]

    def __len__(self) -> int:
        return len(self._sprites)

    def _load_sprite(self, piece: Piece) -> np.ndarray:
        path = self.assets_dir / piece.sprite_filename
        size = (self.square_size, self.square_size)

        if path.exists():
            with Image.open(path) as raw:
                image = raw.convert("RGBA")
            if image.size != size:
                image = image.resize(size, Image.Resampling.LANCZOS)
        else:
            image = self._draw_sprite(piece)
            self.drawn.append(piece)

        sprite = np.array(image, dtype=np.uint8)
        sprite.flags.writeable = False
        return sprite

    def _draw_sprite(self, piece: Piece) -> Image.Image:
        """Draw a round token with the piece glyph on it."""
        q = self.square_size
        image = Image.new("RGBA", (q, q), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)

        if piece.color is PieceColor.WHITE:
            fill, ink = (245, 245, 245, 255), (40, 40, 40, 255)
        else:
            fill, ink = (30, 30, 30, 255), (220, 220, 220, 255)

        margin = q // 8
        draw.ellipse([margin, margin, q - margin - 1, q - margin - 1], fill=fill, outline=ink, width=2)

        font = self._glyph_font(int(q * 0.55))
        if isinstance(font, ImageFont.FreeTypeFont) and font.path in self.GLYPH_FONT_PATHS:
            text = piece.unicode_symbol
        else:
            text = piece.kind.letter.upper()

        bbox = draw.textbbox((0, 0), text, font=font)
        text_x = (q - (bbox[2] - bbox[0])) // 2 - bbox[0]
        text_y = (q - (bbox[3] - bbox[1])) // 2 - bbox[1]
        draw.text((text_x, text_y), text, font=font, fill=ink)
        return image

    @classmethod
    def _glyph_font(cls, size: int):
        for path in cls.GLYPH_FONT_PATHS:
            if os.path.exists(path):
                try:
                    return ImageFont.truetype(path, size)
                except OSError:
                    continue
        return ImageFont.load_default()
