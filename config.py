"""
Configuration file for the Chess Lesson Renderer
Update these settings to match your asset set and machine
"""

import os

# =============================================================================
# FILE STORAGE CONFIGURATION
# =============================================================================

# Base directory of the project
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Piece sprites (klt.png, kdt.png, qlt.png, ...)
ASSETS_DIR = os.path.join(BASE_DIR, "assets")

# Log files
LOG_DIR = os.path.join(BASE_DIR, "logs")

# Files expected inside every chapter directory
LESSON_FILE = "0.json"
SOURCE_VIDEO = "video.webm"

# Manifest written next to the rendered frames
MANIFEST_FILE = "concat.txt"

# =============================================================================
# BOARD RENDERING SETTINGS
# =============================================================================

BOARD_SETTINGS = {
    "size": 536,             # Canvas side in pixels
    "square_size": 67,       # 536 / 8
    "highlight_width": 5,    # Frame drawn around a highlighted square
    "shaft_half_width": 3,   # Arrow shaft is drawn at offsets -3..3
    "flange_half_width": 1,  # Arrowhead edges are drawn at offsets -1..1
}

# RGBA colours
COLORS = {
    "square_light": (0xA6, 0x80, 0x67, 0xFF),
    "square_dark": (0x7D, 0x3E, 0x2F, 0xFF),
    "yellow": (0xDB, 0xDB, 0x00, 0xFF),
    "green": (0x27, 0xDB, 0x33, 0xFF),
    "blue": (0x33, 0x27, 0xDB, 0xFF),
    "red": (0xDB, 0x33, 0x28, 0xFF),
}

# Colour name used for arrows inferred from played moves
IMPLICIT_MOVE_COLOR = "blue"

# Duration of the last frame (there is no next cuepoint to measure against)
FINAL_FRAME_SECONDS = 1.0

# =============================================================================
# WORKER POOLS
# =============================================================================

POOL_SETTINGS = {
    "render_workers": 8,   # Chapters rendered concurrently
    "encode_workers": 4,   # ffmpeg processes running concurrently
    "queue_size": 16,      # Finished renders waiting for an encoder
}

# =============================================================================
# VIDEO ENCODING SETTINGS
# =============================================================================

VIDEO_SETTINGS = {
    "ffmpeg": "ffmpeg",
    "ffprobe": "ffprobe",
    "video_codec": "h264",
    "pixel_format": "yuv420p",
    # Recorded clip top right, rendered board bottom left, on a white canvas
    "filter_complex": (
        "[1:v]scale=460.8:259.2[top_right];"
        "[0:v]scale=588:588[left];"
        "color=white:1080x608[bg];"
        "[bg][top_right]overlay=W-w-10:10[bg1];"
        "[bg1][left]overlay=10:H-h-10"
    ),
}

# A finished video this much shorter than its clip is rendered again
RESUME_TOLERANCE_SECONDS = 1.0
