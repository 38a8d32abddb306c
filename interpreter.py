#!/usr/bin/env python3
"""
Lesson Interpreter
==================
Replays a lesson's cuepoints against the board timeline and renders one
frame per cuepoint, together with the ffmpeg concat manifest that gives
every frame its on-screen duration.

Cuepoints are applied strictly in order: each board is derived from the
one before it.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Tuple, Union
from dataclasses import dataclass

from PIL import Image

from board import RasterBoard
from config import FINAL_FRAME_SECONDS, MANIFEST_FILE
from lesson import (
    ClearAllHighlights,
    DrawArrow,
    GotoId,
    HighlightSquare,
    Lesson,
    Move,
    Nop,
    Payload,
    SelectGame,
    Unarrow,
    UnarrowAll,
    Unmark,
    UnmarkAll,
)
from pieces import Piece, Square
from timeline import (
    Timeline,
    TimelineError,
    TimelineKey,
    apply_opening_move,
    board_from_fen,
    implicit_move_color,
    materialize,
)

logger = logging.getLogger("Interpreter")

# (square, piece before, piece after)
SquareChange = Tuple[Square, Optional[Piece], Optional[Piece]]

# =============================================================================
# RESULTS
# =============================================================================

class RenderState(Enum):
    RUNNING = "running"
    DONE = "done"
    TRUNCATED = "truncated"


@dataclass
class RenderResult:
    """Outcome of one lesson render."""
    state: RenderState
    frames: int
    manifest: Optional[Path]
    truncated_at: Optional[float] = None  # Trim the paired clip to this many seconds

# =============================================================================
# FRAME SINKS
# =============================================================================

class FrameSink:
    """Receives rendered frames and manifest entries."""

    def emit(self, frame_index: int, image: Image.Image) -> str:
        """Store a frame and return the path the manifest should reference."""
        raise NotImplementedError

    def append_manifest(self, path: str, duration: float):
        raise NotImplementedError

    def finish(self) -> Optional[Path]:
        """Flush the manifest; returns its location if it was written to disk."""
        return None


class DirectoryFrameSink(FrameSink):
    """Writes 0.png, 1.png, ... and concat.txt into one directory."""

    def __init__(self, out_dir: Union[str, Path]):
        self.out_dir = Path(out_dir).resolve()
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.lines: List[str] = []

    def emit(self, frame_index: int, image: Image.Image) -> str:
        path = self.out_dir / f"{frame_index}.png"
        image.save(path)
        return str(path)

    def append_manifest(self, path: str, duration: float):
        self.lines.append(f"file '{path}'")
        self.lines.append(f"duration {duration}")

    def finish(self) -> Path:
        manifest = self.out_dir / MANIFEST_FILE
        manifest.write_text("".join(f"{line}\n" for line in self.lines), encoding="utf-8")
        return manifest

# =============================================================================
# MOVE ARROW INFERENCE
# =============================================================================

def infer_move_arrow(changes: List[SquareChange]) -> Optional[Tuple[Square, Square]]:
    """
    Guess the arrow for a position change.

    Only simple moves qualify: two or three changed squares with exactly one
    newly occupied square. The arrow starts on the vacated square whose old
    piece now stands on the target (falling back to the first vacated one,
    which covers promotions).
    """
    if not 2 <= len(changes) <= 3:
        return None

    occupied = [c for c in changes if c[2] is not None]
    vacated = [c for c in changes if c[2] is None]
    if len(occupied) != 1 or not vacated:
        return None

    target, _, piece = occupied[0]
    for square, before, _ in vacated:
        if before == piece:
            return square, target
    return vacated[0][0], target

# =============================================================================
# INTERPRETER
# =============================================================================

class Interpreter:
    """
    Runs one lesson from its first cuepoint to the last.

    render_frames() ends in DONE when every cuepoint was shown, or in
    TRUNCATED when a cuepoint refers to a game the lesson does not contain.
    """

    def __init__(self, lesson: Lesson):
        self.lesson = lesson
        self.timeline = Timeline()
        self.last_visited: Dict[int, int] = {}
        self.state = RenderState.RUNNING

    @property
    def games(self):
        return self.lesson.games

    def render_frames(self, sink: FrameSink) -> RenderResult:
        instructions = self.lesson.instructions
        truncated_at = None
        frames = 0

        logger.info(f"🎞️ Rendering {len(instructions)} cuepoints")

        for index, instruction in enumerate(instructions):
            game_index = instruction.game_index
            if game_index is not None and game_index >= len(self.games):
                logger.warning(
                    f"⚠️ Cuepoint {index} refers to game {game_index} "
                    f"({len(self.games)} loaded), stopping at {instruction.timestamp}s"
                )
                self.state = RenderState.TRUNCATED
                truncated_at = instruction.timestamp
                break

            self.apply(instruction.payload)

            is_last = index + 1 == len(instructions)
            if is_last:
                duration = FINAL_FRAME_SECONDS
            else:
                duration = instructions[index + 1].timestamp - instruction.timestamp

            path = sink.emit(index, self.timeline.current().render())
            sink.append_manifest(path, duration)
            if is_last:
                # The concat demuxer drops the last entry's duration
                sink.append_manifest(path, duration)
            frames += 1
        else:
            self.state = RenderState.DONE

        manifest = sink.finish()
        logger.info(f"✅ {frames} frames rendered ({self.state.value})")
        return RenderResult(state=self.state, frames=frames, manifest=manifest, truncated_at=truncated_at)

    def apply(self, payload: Payload):
        """Apply one cuepoint to the timeline."""
        if isinstance(payload, GotoId):
            materialize(self.timeline, self.games, TimelineKey(payload.id, payload.game_index))
        elif isinstance(payload, Move):
            self._play_move(payload)
        elif isinstance(payload, DrawArrow):
            self.timeline.current().add_arrow(*payload.squares, payload.color.rgba)
        elif isinstance(payload, HighlightSquare):
            self.timeline.current().set_highlight(payload.square, payload.color.rgba)
        elif isinstance(payload, Unmark):
            self.timeline.current().clear_highlight(payload.square)
        elif isinstance(payload, Unarrow):
            self.timeline.current().remove_arrow(*payload.squares)
        elif isinstance(payload, UnmarkAll):
            self.timeline.current().clear_markers()
        elif isinstance(payload, ClearAllHighlights):
            self.timeline.current().clear_highlights()
        elif isinstance(payload, UnarrowAll):
            self.timeline.current().clear_arrows()
        elif isinstance(payload, SelectGame):
            self._select_game(payload)
        elif isinstance(payload, Nop):
            pass
        else:
            raise TypeError(f"Unsupported cuepoint payload: {payload!r}")

    def _play_move(self, move: Move):
        board: RasterBoard = self.timeline.current().copy()
        board.clear_markers()

        changes: List[SquareChange] = []
        for square, piece in move.fen.squares():
            before = board.piece_at(square)
            if before != piece:
                changes.append((square, before, piece))
            board.place_piece(square, piece)

        arrow = infer_move_arrow(changes)
        if arrow is not None:
            board.add_arrow(*arrow, implicit_move_color())

        self.timeline.insert(TimelineKey(move.id, move.game_index), board)

    def _select_game(self, select: SelectGame):
        current = self.timeline.current_key()
        if current is not None:
            self.last_visited[current.game_index] = current.move_id

        game = self.games[select.game_index]

        if select.initial_move_id is not None:
            board = board_from_fen(game.initial_fen)
            apply_opening_move(board, game.moves.get(select.initial_move_id))
            self.timeline.insert(TimelineKey(select.initial_move_id, select.game_index), board)
            return

        last = self.last_visited.get(select.game_index)
        if last is None or not self.timeline.seek(TimelineKey(last, select.game_index)):
            raise TimelineError(f"Game {select.game_index} selected before it was ever shown")
