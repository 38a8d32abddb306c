#!/usr/bin/env python3
"""
Video Encoding Boundary
=======================
Thin wrappers around the external tools:

- probe_duration(): length of a video file (OpenCV, ffprobe as fallback)
- join_video(): ffmpeg call that lays the rendered board frames next to
  the recorded lesson clip

Dependencies:
- OpenCV: reading video metadata
- ffmpeg / ffprobe binaries on PATH (see VIDEO_SETTINGS)
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, List, Union

import cv2

from config import VIDEO_SETTINGS

logger = logging.getLogger("VideoEncoder")

PathLike = Union[str, Path]


def probe_duration(path: PathLike) -> Optional[float]:
    """
    Duration of a video in seconds.

    Returns:
        Seconds, or None if the file cannot be read
    """
    capture = cv2.VideoCapture(str(path))
    try:
        if capture.isOpened():
            fps = capture.get(cv2.CAP_PROP_FPS)
            frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT)
            if fps > 0 and frame_count > 0:
                return frame_count / fps
    finally:
        capture.release()

    # WebM files often carry no frame count, ask ffprobe for the container duration
    return _ffprobe_duration(path)


def _ffprobe_duration(path: PathLike) -> Optional[float]:
    command = [
        VIDEO_SETTINGS["ffprobe"],
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    try:
        result = subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as e:
        logger.warning(f"⚠️ ffprobe unavailable: {e}")
        return None

    first_line = result.stdout.split("\n")[0].strip()
    try:
        return float(first_line)
    except ValueError:
        return None


def build_join_command(
    clip: PathLike,
    manifest: PathLike,
    output: PathLike,
    duration: float
) -> List[str]:
    return [
        VIDEO_SETTINGS["ffmpeg"],
        "-nostdin",
        "-f", "concat",
        "-safe", "0",
        "-i", str(manifest),
        "-i", str(clip),
        "-c:a", "copy",
        "-c:v", VIDEO_SETTINGS["video_codec"],
        "-pix_fmt", VIDEO_SETTINGS["pixel_format"],
        "-filter_complex", VIDEO_SETTINGS["filter_complex"],
        "-y",
        "-loglevel", "error",
        "-threads", "0",
        "-t", str(duration),
        str(output),
    ]


def join_video(
    clip: PathLike,
    manifest: PathLike,
    output: PathLike,
    trim_at: Optional[float] = None
) -> int:
    """
    Encode the rendered frames together with the lesson clip.

    Args:
        clip: Recorded lesson video (provides audio and the top-right inset)
        manifest: concat.txt written by the interpreter
        output: Destination .mp4
        trim_at: Stop here instead of at the end of the clip

    Returns:
        ffmpeg exit code, -1 if it could not be started
    """
    duration = trim_at if trim_at is not None else probe_duration(clip)
    if duration is None:
        logger.error(f"❌ Cannot determine duration of {clip}")
        return -1

    command = build_join_command(clip, manifest, output, duration)
    try:
        result = subprocess.run(command, check=False)
    except OSError as e:
        logger.error(f"❌ ffmpeg failed to start: {e}")
        return -1

    if result.returncode != 0:
        logger.error(f"❌ ffmpeg exited with {result.returncode} for {output}")
    return result.returncode
