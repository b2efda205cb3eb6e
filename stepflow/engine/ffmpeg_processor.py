"""
FFmpeg processor for turning captured frames into a looping GIF.

Uses ffmpeg-python with palette-based encoding:
- split the frame stream
- generate a palette from one branch
- apply it to the other with dithering
"""

from pathlib import Path
from typing import Optional

import ffmpeg

from ..core.config import Config, get_config
from ..core.exceptions import FFmpegError, GIFGenerationError
from ..core.state import GraphState
from ..utils.logger import get_logger
from .capture_controller import FRAME_PATTERN
from .frame_renderer import default_output_path

logger = get_logger("ffmpeg_processor")


def _stderr_text(e: Exception) -> str:
    stderr = getattr(e, "stderr", None)
    if isinstance(stderr, bytes):
        return stderr.decode(errors="replace")
    return str(stderr) if stderr else str(e)


class FFmpegProcessor:
    """
    Frame sequence to GIF converter.

    Uses a two-branch palette approach:
    1. Generate an optimal color palette from the frames
    2. Apply the palette to create a high-quality GIF
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    @property
    def cmd(self) -> str:
        return str(self.config.ffmpeg_path) if self.config.ffmpeg_path else "ffmpeg"

    def encode_gif(
        self,
        frames_dir: Path,
        output_path: Path,
        fps: Optional[int] = None,
        scale_width: Optional[int] = None,
    ) -> None:
        """
        Encode ``frames_dir/frame_%05d.png`` into a looping GIF.

        Args:
            frames_dir: Directory with numbered PNG frames
            output_path: Path to output GIF file
            fps: Frame rate (default: from config)
            scale_width: Output width, height auto-scaled (default: viewport width)

        Raises:
            FFmpegError: If frames are missing
            GIFGenerationError: If encoding fails
        """
        if not frames_dir.is_dir() or not any(frames_dir.glob("frame_*.png")):
            raise FFmpegError(f"No frames found in {frames_dir}")

        fps = fps or self.config.export_fps
        scale_width = scale_width or self.config.viewport_width

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)

            input_stream = ffmpeg.input(str(frames_dir / FRAME_PATTERN), framerate=fps)
            split_outputs = input_stream.video.split()

            palette = split_outputs[0].filter(
                "palettegen",
                max_colors=256,
                stats_mode="diff",
            )
            scaled = split_outputs[1].filter("scale", w=scale_width, h=-1, flags="lanczos")

            output = ffmpeg.filter(
                [scaled, palette],
                "paletteuse",
                dither="sierra2_4a",
                diff_mode="rectangle",
            )
            output = ffmpeg.output(
                output,
                str(output_path),
                loop=0,  # Infinite loop
                **{"f": "gif"},
            )
            output.overwrite_output().run(
                cmd=self.cmd,
                capture_stdout=True,
                capture_stderr=True,
                quiet=True,
            )

            if not output_path.exists():
                raise GIFGenerationError("GIF file was not created")
            if output_path.stat().st_size == 0:
                raise GIFGenerationError("GIF file is empty")

        except (FFmpegError, GIFGenerationError):
            raise
        except ffmpeg.Error as e:
            raise GIFGenerationError(f"FFmpeg processing failed: {_stderr_text(e)}") from e
        except OSError as e:
            raise FFmpegError(f"Could not run {self.cmd}: {e}") from e

    def get_gif_info(self, gif_path: Path) -> dict:
        """
        Read GIF metadata with ffprobe.

        Raises:
            FFmpegError: If ffprobe fails
        """
        if not gif_path.exists():
            raise FFmpegError(f"GIF file not found: {gif_path}")

        try:
            probe = ffmpeg.probe(str(gif_path))
        except ffmpeg.Error as e:
            raise FFmpegError(f"ffprobe failed: {_stderr_text(e)}") from e

        video_stream = next(
            (s for s in probe.get("streams", []) if s.get("codec_type") == "video"),
            None,
        )
        if not video_stream:
            raise FFmpegError("No video stream found")

        return {
            "duration": float(probe.get("format", {}).get("duration", 0)),
            "width": int(video_stream.get("width", 0)),
            "height": int(video_stream.get("height", 0)),
            "frames": int(video_stream.get("nb_frames", 0) or 0),
        }


def transcode_to_gif_node(state: GraphState) -> GraphState:
    """
    LangGraph node: Encode captured frames into the final GIF.

    Args:
        state: Current graph state

    Returns:
        GraphState: Updated state with result_path
    """
    logger.start(state, {"frames_dir": state.get("frames_dir")})

    try:
        frames_dir = state.get("frames_dir")
        if not frames_dir:
            raise GIFGenerationError("No frames_dir in state")

        scenario = state["scenario"]
        output_path = Path(state.get("output_path") or default_output_path(scenario.id, "gif"))

        processor = FFmpegProcessor()
        processor.encode_gif(Path(frames_dir), output_path)

        state["result_path"] = str(output_path)
        state["artifacts"]["size_bytes"] = output_path.stat().st_size
        try:
            state["artifacts"]["gif_info"] = processor.get_gif_info(output_path)
        except FFmpegError as e:
            logger.warning("Could not probe GIF", {"error": str(e)})

        logger.end(state, {
            "gif_path": str(output_path),
            "gif_size_mb": round(output_path.stat().st_size / 1024 / 1024, 2),
        })
        return state

    except Exception as e:
        logger.error(state, e)
        state["errors"].append(f"GIF generation failed: {str(e)}")
        raise
