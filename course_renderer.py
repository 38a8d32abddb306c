#!/usr/bin/env python3
"""
Course Renderer
===============
Renders every chapter of every course into a finished lesson video:

1. Each chapter's lesson file (0.json) is replayed into board frames
   on a pool of render workers
2. Finished renders are queued for a separate pool of ffmpeg workers,
   which join the frames with the chapter's recorded clip (video.webm)

Layout:
    COURSES_DIR/<course>/<chapter>/0.json
    COURSES_DIR/<course>/<chapter>/video.webm
    OUTPUT_DIR/<course>/<chapter>.mp4
    OUTPUT_DIR/<course>/tmp_<chapter>/        (frames, removed after encoding)
    OUTPUT_DIR/<course>/broken_<chapter>      (lesson file could not be parsed)
    OUTPUT_DIR/<course>/panic_<chapter>       (rendering failed)

Usage:
    python course_renderer.py COURSES_DIR OUTPUT_DIR
    python course_renderer.py COURSES_DIR OUTPUT_DIR --render-workers 4 --no-encode
    python course_renderer.py --lesson 0.json --out ./frames
"""

import sys
import queue
import shutil
import logging
import argparse
import threading
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Tuple, Union
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed

from config import (
    LESSON_FILE,
    LOG_DIR,
    POOL_SETTINGS,
    RESUME_TOLERANCE_SECONDS,
    SOURCE_VIDEO,
)
from interpreter import DirectoryFrameSink, Interpreter, RenderResult
from lesson import LessonFormatError, load_lesson
from pieces import PieceCatalog
from video import join_video, probe_duration

logger = logging.getLogger("CourseRenderer")

# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(log_dir: Union[str, Path] = LOG_DIR) -> logging.Logger:
    """Configure file and console output for a rendering session."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.FileHandler(log_dir / f"render_{datetime.now().strftime('%Y%m%d')}.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    root.addHandler(console_handler)
    return logger

# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class EncodeJob:
    """A rendered chapter waiting for ffmpeg."""
    clip: Path
    manifest: Path
    output: Path
    frames_dir: Path
    trim_at: Optional[float] = None


@dataclass
class ChapterOutcome:
    """What happened to one chapter: rendered, skipped, broken or panic."""
    name: str
    status: str
    detail: str = ""
    job: Optional[EncodeJob] = None

# =============================================================================
# CHAPTER PROCESSING
# =============================================================================

def _write_marker(out_dir: Path, prefix: str, name: str, message: str) -> Path:
    marker = out_dir / f"{prefix}_{name}"
    try:
        marker.write_text(message, encoding="utf-8")
    except OSError as e:
        logger.error(f"❌ Could not write {marker}: {e}")
    return marker


def _already_encoded(output: Path, clip: Path) -> bool:
    """True when `output` covers the clip (within the resume tolerance)."""
    expected = probe_duration(clip)
    if expected is None:
        return False
    done = probe_duration(output) or 0.0
    return done >= expected - RESUME_TOLERANCE_SECONDS


def render_chapter(chapter_dir: Path, out_dir: Path) -> ChapterOutcome:
    """
    Render one chapter's frames.

    Args:
        chapter_dir: Directory holding 0.json and video.webm
        out_dir: Course output directory

    Returns:
        ChapterOutcome; `job` is set when frames were rendered
    """
    chapter_dir, out_dir = Path(chapter_dir), Path(out_dir)
    name = chapter_dir.name
    output = out_dir / f"{name}.mp4"
    frames_dir = out_dir / f"tmp_{name}"
    clip = chapter_dir / SOURCE_VIDEO

    if output.exists() and _already_encoded(output, clip):
        logger.info(f"⏭️ {name}: already encoded")
        shutil.rmtree(frames_dir, ignore_errors=True)
        return ChapterOutcome(name=name, status="skipped")

    logger.info(f"🎬 {name}: rendering")
    try:
        lesson = load_lesson(chapter_dir / LESSON_FILE)
    except LessonFormatError as e:
        logger.error(f"❌ {name}: broken lesson file: {e}")
        _write_marker(out_dir, "broken", name, str(e))
        return ChapterOutcome(name=name, status="broken", detail=str(e))

    frames_dir.mkdir(parents=True, exist_ok=True)
    result: RenderResult = Interpreter(lesson).render_frames(DirectoryFrameSink(frames_dir))

    job = EncodeJob(
        clip=clip,
        manifest=result.manifest,
        output=output,
        frames_dir=frames_dir,
        trim_at=result.truncated_at,
    )
    detail = f"{result.frames} frames"
    if result.truncated_at is not None:
        detail += f", truncated at {result.truncated_at}s"
    return ChapterOutcome(name=name, status="rendered", detail=detail, job=job)


def process_chapter(chapter_dir: Path, out_dir: Path) -> ChapterOutcome:
    """Render a chapter; any failure is recorded as a panic marker instead of raised."""
    name = Path(chapter_dir).name
    try:
        return render_chapter(chapter_dir, out_dir)
    except Exception as e:
        logger.exception(f"💥 {name}: rendering failed")
        message = f"{type(e).__name__}: {e}"
        _write_marker(Path(out_dir), "panic", name, message)
        return ChapterOutcome(name=name, status="panic", detail=message)


def render_lesson(lesson_path: Union[str, Path], out_dir: Union[str, Path]) -> RenderResult:
    """Render a single lesson file into `out_dir` (no encoding)."""
    lesson = load_lesson(lesson_path)
    return Interpreter(lesson).render_frames(DirectoryFrameSink(out_dir))

# =============================================================================
# COURSE PIPELINE
# =============================================================================

class CourseRenderer:
    """
    Two independently sized pools joined by a bounded queue: render workers
    produce EncodeJobs, encode workers run ffmpeg on them.
    """

    def __init__(
        self,
        render_workers: int = POOL_SETTINGS["render_workers"],
        encode_workers: int = POOL_SETTINGS["encode_workers"],
        queue_size: int = POOL_SETTINGS["queue_size"],
        use_processes: bool = True
    ):
        self.render_workers = render_workers
        self.encode_workers = encode_workers
        self.queue_size = queue_size
        self.use_processes = use_processes

    @staticmethod
    def discover_chapters(courses_dir: Path, out_dir: Path) -> List[Tuple[Path, Path]]:
        """(chapter dir, course output dir) for every chapter, creating output dirs."""
        chapters = []
        for course in sorted(Path(courses_dir).iterdir()):
            if not course.is_dir():
                continue
            course_out = Path(out_dir) / course.name
            course_out.mkdir(parents=True, exist_ok=True)
            for chapter in sorted(course.iterdir()):
                if chapter.is_dir():
                    chapters.append((chapter, course_out))
        return chapters

    def run(self, courses_dir: Union[str, Path], out_dir: Union[str, Path]) -> List[ChapterOutcome]:
        chapters = self.discover_chapters(Path(courses_dir), Path(out_dir))
        logger.info(f"📚 {len(chapters)} chapters found in {courses_dir}")

        # Load sprites once so forked workers inherit them
        PieceCatalog.instance()

        jobs: "queue.Queue[Optional[EncodeJob]]" = queue.Queue(maxsize=self.queue_size)
        encoders = [
            threading.Thread(target=self._encode_worker, args=(jobs,), name=f"encoder-{i}", daemon=True)
            for i in range(self.encode_workers)
        ]
        for encoder in encoders:
            encoder.start()

        executor_class = ProcessPoolExecutor if self.use_processes else ThreadPoolExecutor
        outcomes: List[ChapterOutcome] = []

        try:
            with executor_class(max_workers=self.render_workers) as pool:
                futures = [pool.submit(process_chapter, chapter, course_out) for chapter, course_out in chapters]
                for future in as_completed(futures):
                    outcome = future.result()
                    outcomes.append(outcome)
                    if outcome.job is not None and encoders:
                        jobs.put(outcome.job)
        finally:
            for _ in encoders:
                jobs.put(None)
            for encoder in encoders:
                encoder.join()

        self._log_summary(outcomes)
        return outcomes

    @staticmethod
    def _encode_worker(jobs: "queue.Queue[Optional[EncodeJob]]"):
        while True:
            job = jobs.get()
            try:
                if job is None:
                    return
                logger.info(f"🎞️ Encoding {job.output.name}")
                code = join_video(job.clip, job.manifest, job.output, job.trim_at)
                if code == 0:
                    shutil.rmtree(job.frames_dir, ignore_errors=True)
                    logger.info(f"💾 Saved: {job.output}")
                else:
                    logger.error(f"❌ Encoding failed for {job.output}, frames kept in {job.frames_dir}")
            except Exception:
                logger.exception(f"💥 Encoder crashed on {job.output}")
            finally:
                jobs.task_done()

    @staticmethod
    def _log_summary(outcomes: List[ChapterOutcome]):
        logger.info("=" * 60)
        logger.info("📊 SESSION SUMMARY")
        logger.info("=" * 60)
        for status in ("rendered", "skipped", "broken", "panic"):
            count = sum(1 for o in outcomes if o.status == status)
            logger.info(f"   {status.capitalize()}: {count}")
        logger.info("=" * 60)

# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """Command-line interface for course rendering."""
    parser = argparse.ArgumentParser(
        description="Render chess lesson chapters into videos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python course_renderer.py courses/ videos/
  python course_renderer.py courses/ videos/ --render-workers 4 --encode-workers 2
  python course_renderer.py --lesson courses/endgames/01/0.json --out frames/
        """
    )

    parser.add_argument('courses_dir', nargs='?', help='Directory of course directories')
    parser.add_argument('output_dir', nargs='?', help='Where finished videos are written')

    parser.add_argument(
        '--render-workers', '-r',
        type=int,
        default=POOL_SETTINGS["render_workers"],
        help=f'Chapters rendered at once (default: {POOL_SETTINGS["render_workers"]})'
    )

    parser.add_argument(
        '--encode-workers', '-e',
        type=int,
        default=POOL_SETTINGS["encode_workers"],
        help=f'ffmpeg processes at once (default: {POOL_SETTINGS["encode_workers"]})'
    )

    parser.add_argument(
        '--threads',
        action='store_true',
        help='Render chapters on threads instead of processes'
    )

    parser.add_argument(
        '--no-encode',
        action='store_true',
        help='Only render frames and manifests'
    )

    parser.add_argument('--lesson', help='Render a single lesson file')
    parser.add_argument('--out', default='./out', help='Frame directory for --lesson (default: ./out)')

    args = parser.parse_args()
    setup_logging()

    if args.lesson:
        try:
            result = render_lesson(args.lesson, args.out)
        except LessonFormatError as e:
            logger.error(f"❌ {e}")
            sys.exit(1)
        logger.info(f"📁 Manifest: {result.manifest}")
        if result.truncated_at is not None:
            logger.info(f"✂️ Trim clip to {result.truncated_at}s")
        sys.exit(0)

    if not args.courses_dir or not args.output_dir:
        parser.error("COURSES_DIR and OUTPUT_DIR are required unless --lesson is given")

    renderer = CourseRenderer(
        render_workers=args.render_workers,
        encode_workers=0 if args.no_encode else args.encode_workers,
        use_processes=not args.threads,
    )
    outcomes = renderer.run(args.courses_dir, args.output_dir)

    failed = [o for o in outcomes if o.status in ("broken", "panic")]
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
