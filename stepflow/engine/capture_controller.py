"""
Capture controller: screenshots rendered frame pages with headless Chromium.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import List, Optional

import nest_asyncio
from playwright.async_api import async_playwright

from ..core.config import Config, get_config
from ..core.exceptions import FrameCaptureError
from ..core.state import GraphState
from ..utils.logger import get_logger

# Allow nested event loops for LangGraph compatibility
nest_asyncio.apply()

logger = get_logger("capture_controller")

FRAME_PATTERN = "frame_%05d.png"


def capture_frames_node(state: GraphState) -> GraphState:
    """
    Synchronous wrapper for async frame capture.
    Required for LangGraph compatibility.
    """
    return asyncio.run(_capture_frames_async(state))


async def _capture_frames_async(state: GraphState) -> GraphState:
    """
    Screenshot every rendered frame page.

    Args:
        state: Graph state containing HTML documents

    Returns:
        Updated state with frames_dir and frame_paths
    """
    logger.start(state, {"documents": len(state.get("documents") or [])})

    try:
        documents = state.get("documents")
        if not documents:
            raise FrameCaptureError("No rendered documents found in state")

        frames_dir = Path(state.get("frames_dir") or tempfile.mkdtemp(prefix="stepflow_frames_"))
        controller = CaptureController()
        paths = await controller.capture(documents, frames_dir)

        state["frames_dir"] = str(frames_dir)
        state["frame_paths"] = [str(p) for p in paths]

        logger.end(state, {"frames_dir": str(frames_dir), "frames": len(paths)})
        return state

    except Exception as e:
        logger.error(state, e, metadata={"component": "capture_controller"})
        state["errors"].append(f"Frame capture failed: {str(e)}")
        raise


class CaptureController:
    """Renders HTML frames in Chromium and saves PNG screenshots."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    def _frame_size(self) -> dict:
        # Even dimensions keep ffmpeg's encoders happy
        width = self.config.viewport_width + self.config.viewport_width % 2
        height = self.config.viewport_height + self.config.viewport_height % 2
        return {"width": width, "height": height}

    async def capture(self, documents: List[str], frames_dir: Path) -> List[Path]:
        """
        Screenshot each document into ``frames_dir`` as a numbered PNG.

        Raises:
            FrameCaptureError: If the browser cannot load or capture a frame
        """
        frames_dir.mkdir(parents=True, exist_ok=True)
        viewport = self._frame_size()
        timeout = self.config.browser_timeout_ms

        launch_args = {
            "headless": True,
            "args": ["--no-sandbox", "--disable-setuid-sandbox"],
        }
        if self.config.chromium_executable_path:
            launch_args["executable_path"] = str(self.config.chromium_executable_path)

        logger.info("Starting frame capture", {
            "frames": len(documents),
            "viewport": f"{viewport['width']}x{viewport['height']}",
        })

        paths: List[Path] = []
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(**launch_args)
            try:
                context = await browser.new_context(viewport=viewport)
                page = await context.new_page()
                page.set_default_timeout(timeout)

                for index, document in enumerate(documents):
                    path = frames_dir / (FRAME_PATTERN % index)
                    try:
                        await page.set_content(document)
                        await page.wait_for_selector("svg", timeout=timeout)
                        await page.screenshot(path=str(path), full_page=False)
                    except Exception as e:
                        raise FrameCaptureError(f"Frame {index} could not be captured: {e}") from e
                    paths.append(path)

                await context.close()
            finally:
                await browser.close()

        logger.info("Frame capture complete", {"frames": len(paths), "dir": str(frames_dir)})
        return paths
