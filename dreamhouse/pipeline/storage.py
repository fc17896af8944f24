"""
Local storage for materialized fly-through videos.

Videos are written under VIDEO_OUTPUT_DIR and addressed as
``/media/videos/{filename}``, which the API serves back as a stream.
"""

import os
import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

VIDEO_OUTPUT_DIR = os.getenv(
    "VIDEO_OUTPUT_DIR",
    os.path.join(tempfile.gettempdir(), "dreamhouse-videos"),
)
VIDEO_URL_PREFIX = "/media/videos/"


class VideoStore:
    """Writes video payloads to disk and resolves their public paths."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or VIDEO_OUTPUT_DIR)

    def _write(self, path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def save(self, project_id: str, index: int, data: bytes, extension: str = "mp4") -> str:
        """Persist a video and return its locally addressable URL."""
        filename = f"{project_id}_room{index}_{uuid4().hex[:8]}.{extension}"
        path = self.root / filename
        await asyncio.to_thread(self._write, path, data)
        logger.info(f"Saved video for {project_id} room {index}: {path} ({len(data)} bytes)")
        return f"{VIDEO_URL_PREFIX}{filename}"

    def resolve(self, filename: str) -> Optional[Path]:
        """Map a served filename back to a file, refusing anything outside root."""
        if not filename or filename != Path(filename).name:
            return None
        path = self.root / filename
        if not path.is_file():
            return None
        return path
