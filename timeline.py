#!/usr/bin/env python3
"""
Board Timeline
==============
Branching history of board snapshots for a lesson.

Snapshots are stored per (move id, game index) in insertion order with a
cursor on the active one. materialize() derives a missing snapshot from
its nearest stored ancestor in the game's move graph, caching every board
it builds on the way.
"""

import logging
from typing import Optional, List, Dict, NamedTuple, Sequence

from board import RasterBoard
from config import IMPLICIT_MOVE_COLOR
from fen import Fen
from lesson import CoordinateEffect, Game, MarkerColor, MoveRecord

logger = logging.getLogger("Timeline")


class TimelineError(RuntimeError):
    """The timeline was used in a way the lesson cannot recover from."""


class TimelineKey(NamedTuple):
    move_id: int
    game_index: int

# =============================================================================
# TIMELINE
# =============================================================================

class Timeline:
    """Insertion-ordered snapshot store with a cursor. Entries are never removed."""

    def __init__(self):
        self._snapshots: Dict[TimelineKey, RasterBoard] = {}
        self._order: List[TimelineKey] = []
        self._positions: Dict[TimelineKey, int] = {}
        self._cursor = 0

    def insert(self, key: TimelineKey, board: RasterBoard):
        """Store (or replace in place) the snapshot at `key` and move the cursor to it."""
        key = TimelineKey(*key)
        if key not in self._positions:
            self._positions[key] = len(self._order)
            self._order.append(key)
        self._snapshots[key] = board
        self._cursor = self._positions[key]

    def current(self) -> RasterBoard:
        if not self._order:
            raise TimelineError("No board has been shown yet")
        return self._snapshots[self._order[self._cursor]]

    def current_key(self) -> Optional[TimelineKey]:
        if not self._order:
            return None
        return self._order[self._cursor]

    def seek(self, key: TimelineKey) -> bool:
        """Move the cursor to `key`. Returns False, changing nothing, if it is not stored."""
        position = self._positions.get(TimelineKey(*key))
        if position is None:
            return False
        self._cursor = position
        return True

    def get(self, key: TimelineKey) -> Optional[RasterBoard]:
        return self._snapshots.get(TimelineKey(*key))

    def keys(self) -> List[TimelineKey]:
        return list(self._order)

    def __contains__(self, key) -> bool:
        return TimelineKey(*key) in self._positions

    def __len__(self) -> int:
        return len(self._order)

# =============================================================================
# MOVE EFFECTS
# =============================================================================

def implicit_move_color():
    return MarkerColor.from_name(IMPLICIT_MOVE_COLOR).rgba


def board_from_fen(fen: Fen) -> RasterBoard:
    board = RasterBoard()
    board.load_fen(fen.squares())
    return board


def apply_move(board: RasterBoard, record: Optional[MoveRecord]):
    """Clear markers, then play `record` on the board with its move arrow."""
    board.clear_markers()
    if record is None:
        return

    effect = record.effect
    if isinstance(effect, CoordinateEffect):
        board.move_piece(effect.from_square, effect.to_square)
        board.add_arrow(effect.from_square, effect.to_square, implicit_move_color())
        if effect.promotion is not None:
            board.promote(effect.to_square, effect.promotion)
    else:
        board.load_fen(effect.fen.squares())


def apply_opening_move(board: RasterBoard, record: Optional[MoveRecord]):
    """
    Show the move a game starts from on its initial position.

    The recorded start position usually already contains that move, so the
    piece is only relocated when its source square is still occupied.
    """
    if record is None:
        return

    effect = record.effect
    if isinstance(effect, CoordinateEffect):
        if board.piece_at(effect.from_square) is not None:
            board.move_piece(effect.from_square, effect.to_square)
        board.add_arrow(effect.from_square, effect.to_square, implicit_move_color())
        if effect.promotion is not None:
            board.promote(effect.to_square, effect.promotion)
    else:
        board.load_fen(effect.fen.squares())

# =============================================================================
# MATERIALIZATION
# =============================================================================

def materialize(timeline: Timeline, games: Sequence[Game], key: TimelineKey) -> RasterBoard:
    """
    Put the cursor on the snapshot for `key`, building it if needed.

    The ancestor chain is walked up to the nearest stored snapshot (or a
    root / unknown move) and then replayed forward, so every board on the
    way is cloned and stored exactly once.

    Raises:
        TimelineError: the move graph loops, or a board must be cloned
            before anything was shown
    """
    key = TimelineKey(*key)
    if timeline.seek(key):
        return timeline.current()

    game = games[key.game_index]
    chain: List[TimelineKey] = []
    seen = set()
    step = key
    from_root = False

    while True:
        if step in seen:
            raise TimelineError(f"Move graph of game {key.game_index} loops at move {step.move_id}")
        chain.append(step)
        seen.add(step)

        record = game.moves.get(step.move_id)
        if record is None:
            break
        if record.is_root:
            from_root = True
            break

        parent = TimelineKey(record.previous_move_id, key.game_index)
        if timeline.seek(parent):
            break
        step = parent

    for depth, step in enumerate(reversed(chain)):
        record = game.moves.get(step.move_id)
        if depth == 0 and from_root:
            board = board_from_fen(game.initial_fen)
            apply_opening_move(board, record)
        else:
            board = timeline.current().copy()
            apply_move(board, record)
        timeline.insert(step, board)

    if len(chain) > 1:
        logger.debug(f"Materialized {len(chain)} boards for move {key.move_id} of game {key.game_index}")
    return timeline.current()
