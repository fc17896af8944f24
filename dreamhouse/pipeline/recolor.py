"""
Recolor transaction — replace one room's image with a recolored version.

Only one recolor may be in flight per project (not per room). The slot is
claimed before the image is decoded and released on every exit path.
"""

import time
import logging
from typing import Optional

from .. import metrics
from ..presets import get_recolor_palette
from .errors import (
    RecolorBusyError,
    RecolorFailure,
    ValidationFailure,
)
from .media import verify_image
from .models import ImageState, Project
from .project_service import ProjectStore

logger = logging.getLogger(__name__)


def resolve_directive(directive: Optional[str] = None, palette: Optional[str] = None) -> str:
    """Turn a palette name or a free-text directive into the text sent to the model."""
    if palette:
        preset = get_recolor_palette(palette)
        if preset is None:
            raise ValidationFailure(f"Unknown recolor palette: {palette}")
        return preset["directive"]
    if directive and directive.strip():
        return directive.strip()
    raise ValidationFailure("A color directive or palette is required")


class RecolorService:

    def __init__(self, client, store: ProjectStore, activity):
        self.client = client
        self.store = store
        self.activity = activity
        self._in_flight: dict[str, int] = {}  # project_id → room index

    def recoloring_index(self, project_id: str) -> Optional[int]:
        """Which room of this project is being recolored, if any."""
        return self._in_flight.get(project_id)

    async def recolor(self, project_id: str, index: int, directive: str) -> Project:
        """
        Recolor room ``index`` of a project.

        Returns:
            The new project snapshot; only that room's image differs.

        Raises:
            RecolorBusyError:  another recolor is in flight on this project.
            ValidationFailure: no READY image, bad index, or undecodable image.
            RecolorFailure:    the service call failed; the old image is kept.
        """
        project = self.store.get(project_id)
        if not 0 <= index < len(project.designs):
            raise ValidationFailure(f"Room index {index} out of range for {len(project.designs)} rooms")
        if not directive or not directive.strip():
            raise ValidationFailure("A color directive is required")

        busy_index = self._in_flight.get(project_id)
        if busy_index is not None:
            raise RecolorBusyError(project_id, busy_index)

        design = project.designs[index]
        if design.image_state != ImageState.READY:
            raise ValidationFailure(
                f"{design.area} has no image to recolor (image is {design.image_state.value})"
            )

        self._in_flight[project_id] = index
        started = time.monotonic()
        logger.info(f"Recoloring {project_id} room {index} ({design.area}): {directive}")

        try:
            verify_image(design.image_url)

            try:
                new_image = await self.client.recolor_image(design.image_url, directive)
                verify_image(new_image)
            except Exception as e:
                metrics.inc_counter("recolors.failed")
                metrics.record_error("recolor", type(e).__name__, str(e), project_id)
                self.activity.record(f"Recolor failed for {design.area}.")
                raise RecolorFailure(f"Failed to recolor {design.area}: {e}") from e

            updated = self.store.update_design(project_id, index, lambda d: d.recolored(new_image))
            metrics.inc_counter("recolors.ready")
            self.activity.record(f"Recolored {design.area} with {directive}.")
            return updated
        finally:
            self._in_flight.pop(project_id, None)
            metrics.record_latency("recolor", (time.monotonic() - started) * 1000)
