import logging
import os
import subprocess
from typing import List, Sequence

from reelforge.core.errors import CompilationError

logger = logging.getLogger(__name__)

FRAME_FILTER = "scale=1280:720:force_original_aspect_ratio=decrease,pad=1280:720:(ow-iw)/2:(oh-ih)/2"
NORMALIZE_FILTER = f"fps=30,{FRAME_FILTER},format=yuv420p"


def escape_concat_path(path: str) -> str:
    """Quote a path for an ffmpeg concat list entry."""
    return "'" + path.replace("'", "'\\''") + "'"


def write_concat_list(paths: Sequence[str], list_path: str) -> str:
    with open(list_path, "w", encoding="utf-8") as f:
        for path in paths:
            f.write(f"file {escape_concat_path(os.path.abspath(path))}\n")
    return list_path


class FfmpegToolkit:
    """Thin wrapper over the ffmpeg CLI. Every failure raises CompilationError with stderr."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary

    def _run(self, args: List[str], what: str):
        cmd = [self.binary, "-y", "-loglevel", "error"] + args
        try:
            result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            raise CompilationError(f"failed to {what}: {e}")
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise CompilationError(f"failed to {what}: {stderr}")

    def extract_frame(self, video_path: str, output_path: str, last: bool = True) -> str:
        """Write the first or last frame of a clip as a still image."""
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        seek = ["-sseof", "-0.05"] if last else []
        self._run(
            seek + ["-i", video_path, "-frames:v", "1", "-vf", FRAME_FILTER, output_path],
            "extract frame",
        )
        return output_path

    def normalize_clip(self, source_path: str, output_path: str, index: int = 0) -> str:
        self._run(
            [
                "-i", source_path,
                "-an",
                "-vf", NORMALIZE_FILTER,
                "-c:v", "libx264",
                "-preset", "veryfast",
                "-crf", "22",
                "-movflags", "+faststart",
                output_path,
            ],
            f"normalize clip {index + 1}",
        )
        return output_path

    def concat(self, list_path: str, output_path: str) -> str:
        self._run(
            ["-f", "concat", "-safe", "0", "-i", list_path, "-c", "copy", "-movflags", "+faststart", output_path],
            "concatenate clips",
        )
        return output_path
