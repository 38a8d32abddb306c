#!/usr/bin/env python3
"""
Lesson File Model
=================
Typed representation of a recorded chess lesson:

- cuepoints: timestamped instructions (moves, arrows, highlights, gotos)
- games: the starting position and move graph of every game in the lesson

Lesson files are JSON with the top-level keys `metadata`, `cuepoints`,
`exerciseGroup` and `games`. Only `cuepoints` and `games` are read.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Tuple, Any, Union
from dataclasses import dataclass, field

import chess

from config import COLORS
from fen import Fen, FenError
from pieces import PieceKind, Square

logger = logging.getLogger("LessonParser")


class LessonFormatError(ValueError):
    """The lesson file is not valid JSON or a record is missing/ill-typed."""

# =============================================================================
# MARKER COLORS
# =============================================================================

class MarkerColor(Enum):
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    RED = "red"

    @property
    def rgba(self) -> Tuple[int, int, int, int]:
        return COLORS[self.value]

    @classmethod
    def from_name(cls, name: str) -> "MarkerColor":
        try:
            return cls(name)
        except ValueError:
            raise LessonFormatError(f"Unknown marker color: {name!r}") from None

# =============================================================================
# GAMES AND MOVE GRAPH
# =============================================================================

@dataclass(frozen=True)
class FenEffect:
    """The move replaces the whole position."""
    fen: Fen


@dataclass(frozen=True)
class CoordinateEffect:
    """The move relocates one piece, optionally promoting it."""
    from_square: Square
    to_square: Square
    promotion: Optional[PieceKind] = None


MoveEffect = Union[FenEffect, CoordinateEffect]


@dataclass(frozen=True)
class MoveRecord:
    """A node of a game's move graph. A node whose predecessor is itself is a root."""
    move_id: int
    previous_move_id: int
    effect: MoveEffect

    @property
    def is_root(self) -> bool:
        return self.previous_move_id == self.move_id


@dataclass
class Game:
    """Initial position plus every recorded move, keyed by move id."""
    initial_fen: Fen
    moves: Dict[int, MoveRecord] = field(default_factory=dict)

# =============================================================================
# INSTRUCTIONS
# =============================================================================

@dataclass(frozen=True)
class GotoId:
    id: int
    game_index: int


@dataclass(frozen=True)
class SelectGame:
    initial_move_id: Optional[int]
    game_index: int


@dataclass(frozen=True)
class HighlightSquare:
    color: MarkerColor
    square: Square
    game_index: int


@dataclass(frozen=True)
class DrawArrow:
    color: MarkerColor
    squares: Tuple[Square, Square]
    game_index: int


@dataclass(frozen=True)
class Unmark:
    square: Square
    game_index: int


@dataclass(frozen=True)
class UnmarkAll:
    game_index: int


@dataclass(frozen=True)
class ClearAllHighlights:
    game_index: int


@dataclass(frozen=True)
class Unarrow:
    squares: Tuple[Square, Square]
    game_index: int


@dataclass(frozen=True)
class UnarrowAll:
    game_index: int


@dataclass(frozen=True)
class Move:
    """A move played in the lesson; `fen` is the position after it."""
    id: int
    move_id: int
    fen: Fen
    game_index: int


@dataclass(frozen=True)
class Nop:
    game_index: Optional[int] = None


Payload = Union[
    GotoId, SelectGame, HighlightSquare, DrawArrow, Unmark, UnmarkAll,
    ClearAllHighlights, Unarrow, UnarrowAll, Move, Nop,
]


@dataclass(frozen=True)
class Instruction:
    timestamp: float
    payload: Payload

    @property
    def game_index(self) -> Optional[int]:
        return self.payload.game_index

# =============================================================================
# FIELD PARSING
# =============================================================================

def _require(data: Any, key: str, kind: type) -> Any:
    """Fetch a required field, checking its JSON type."""
    if not isinstance(data, dict) or key not in data:
        raise LessonFormatError(f"Error deserializing {key}: missing")

    value = data[key]
    if kind is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    elif kind is float:
        valid = isinstance(value, (int, float)) and not isinstance(value, bool)
    else:
        valid = isinstance(value, kind)

    if not valid:
        raise LessonFormatError(f"Error deserializing {key}: expected {kind.__name__}, got {value!r}")
    return value


def _index(data: Any, key: str) -> int:
    value = _require(data, key, int)
    if value < 0:
        raise LessonFormatError(f"Error deserializing {key}: negative value {value}")
    return value


def _square(data: Any) -> Square:
    """Board squares are stored 0-based as {"x": file, "y": rank}."""
    square = Square(_index(data, "x") + 1, _index(data, "y") + 1)
    if not square.is_valid():
        raise LessonFormatError(f"Square out of range: {square!r}")
    return square


def _fen(text: str) -> Fen:
    try:
        return Fen(text)
    except FenError as e:
        raise LessonFormatError(str(e)) from e


def parse_line_as_can(text: str) -> Tuple[Square, Square, Optional[PieceKind]]:
    """
    Parse a compact coordinate string such as 'e2e4' or 'e7e8q'.

    Returns:
        (from_square, to_square, promotion kind or None)
    """
    try:
        move = chess.Move.from_uci(text.strip().lower())
    except ValueError:
        raise LessonFormatError(f"Unparsable coordinate string: {text!r}") from None

    if not move or move.drop is not None:
        raise LessonFormatError(f"Unparsable coordinate string: {text!r}")

    promotion = PieceKind(move.promotion) if move.promotion else None
    return Square.from_chess(move.from_square), Square.from_chess(move.to_square), promotion


def _arrow_squares(data: Any) -> Tuple[Square, Square]:
    from_square, to_square, _ = parse_line_as_can(_require(data, "lineAsCan", str))
    return from_square, to_square

# =============================================================================
# RECORD PARSING
# =============================================================================

def parse_instruction(record: Any) -> Instruction:
    """Parse one cuepoint record {name, time, data}."""
    name = _require(record, "name", str)
    timestamp = float(_require(record, "time", float))
    data = record.get("data")

    if name == "gotoId":
        payload = GotoId(id=_index(data, "id"), game_index=_index(data, "gameIndex"))
    elif name == "selectGame":
        initial = data.get("initialMoveId") if isinstance(data, dict) else None
        payload = SelectGame(
            initial_move_id=_index(data, "initialMoveId") if initial is not None else None,
            game_index=_index(data, "gameIndex"),
        )
    elif name == "highlightSquare":
        payload = HighlightSquare(
            color=MarkerColor.from_name(_require(data, "color", str)),
            square=_square(data),
            game_index=_index(data, "gameIndex"),
        )
    elif name == "drawArrow":
        payload = DrawArrow(
            color=MarkerColor.from_name(_require(data, "color", str)),
            squares=_arrow_squares(data),
            game_index=_index(data, "gameIndex"),
        )
    elif name == "unmark":
        payload = Unmark(square=_square(data), game_index=_index(data, "gameIndex"))
    elif name == "unmarkAll":
        payload = UnmarkAll(game_index=_index(data, "gameIndex"))
    elif name == "clearAllHighlights":
        payload = ClearAllHighlights(game_index=_index(data, "gameIndex"))
    elif name == "unarrow":
        payload = Unarrow(squares=_arrow_squares(data), game_index=_index(data, "gameIndex"))
    elif name == "unarrowAll":
        payload = UnarrowAll(game_index=_index(data, "gameIndex"))
    elif name == "move":
        payload = Move(
            id=_index(data, "id"),
            move_id=_index(data, "move"),
            fen=_fen(_require(data, "fen", str)),
            game_index=_index(data, "gameIndex"),
        )
    elif name == "triggerExerciseGroup":
        # Exercises are played in the lesson player, nothing is drawn
        payload = Nop()
    else:
        raise LessonFormatError(f"Unknown instruction: {name!r}")

    return Instruction(timestamp=timestamp, payload=payload)


def parse_move_record(record: Any) -> MoveRecord:
    """Parse one move {id, pm, fen | m} of a game's move graph."""
    move_id = _index(record, "id")
    previous = _require(record, "pm", int)

    if isinstance(record.get("fen"), str):
        effect: MoveEffect = FenEffect(_fen(record["fen"]))
    else:
        from_square, to_square, promotion = parse_line_as_can(_require(record, "m", str))
        effect = CoordinateEffect(from_square, to_square, promotion)

    return MoveRecord(move_id=move_id, previous_move_id=previous, effect=effect)


def parse_game(record: Any) -> Game:
    game = Game(initial_fen=_fen(_require(record, "video_start_fen", str)))
    for raw_move in _require(record, "moves", list):
        move = parse_move_record(raw_move)
        game.moves[move.move_id] = move
    return game

# =============================================================================
# LESSON
# =============================================================================

@dataclass
class Lesson:
    """All cuepoints of a lesson, in file order, plus its games."""
    instructions: List[Instruction]
    games: List[Game]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lesson":
        if not isinstance(data, dict):
            raise LessonFormatError("Lesson file must hold a JSON object")

        instructions = [parse_instruction(r) for r in _require(data, "cuepoints", list)]
        games = [parse_game(g) for g in _require(data, "games", list)]
        return cls(instructions=instructions, games=games)


def load_lesson(path: Union[str, Path]) -> Lesson:
    """
    Read and parse a lesson file.

    Raises:
        LessonFormatError: invalid JSON or malformed records
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise LessonFormatError(f"{path}: {e}") from e

    lesson = Lesson.from_dict(data)
    logger.debug(f"Loaded {path}: {len(lesson.instructions)} cuepoints, {len(lesson.games)} games")
    return lesson
