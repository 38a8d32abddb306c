"""Shared pytest fixtures used across the test suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from PIL import Image

from fen import STARTING_FEN
from interpreter import FrameSink
from lesson import Lesson


class RecordingSink(FrameSink):
    """Keeps frames and manifest entries in memory."""

    def __init__(self) -> None:
        self.frames: list[tuple[int, Image.Image]] = []
        self.manifest: list[tuple[str, float]] = []

    def emit(self, frame_index: int, image: Image.Image) -> str:
        self.frames.append((frame_index, image))
        return f"{frame_index}.png"

    def append_manifest(self, path: str, duration: float) -> None:
        self.manifest.append((path, duration))


def cue(name: str, time: float, **data: Any) -> dict[str, Any]:
    """Build a cuepoint record; keyword names are the lesson-file field names."""
    return {"name": name, "time": time, "data": data}


def game(moves: list[dict[str, Any]] | None = None, fen: str = STARTING_FEN) -> dict[str, Any]:
    return {"video_start_fen": fen, "moves": moves or []}


def lesson_dict(cuepoints: list[dict[str, Any]], games: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "metadata": {"title": "test"},
        "cuepoints": cuepoints,
        "exerciseGroup": [],
        "games": games if games is not None else [game()],
    }


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_lesson():
    def _make(cuepoints: list[dict[str, Any]], games: list[dict[str, Any]] | None = None) -> Lesson:
        return Lesson.from_dict(lesson_dict(cuepoints, games))

    return _make


@pytest.fixture
def write_chapter():
    """Create <course>/<chapter>/0.json; `content` may be a dict or raw text."""

    def _write(course_dir: Path, name: str, content: dict[str, Any] | str) -> Path:
        chapter = course_dir / name
        chapter.mkdir(parents=True)
        text = content if isinstance(content, str) else json.dumps(content)
        (chapter / "0.json").write_text(text, encoding="utf-8")
        return chapter

    return _write
