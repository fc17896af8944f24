"""
Stage 2: Per-area image fan-out.

Dispatches one image request per room at once, isolates failures per room, and
reassembles the results in the skeleton's order no matter which call finishes
first.
"""

import time
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from .. import metrics
from .models import FanoutProgress, Preferences, RoomDesign

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[FanoutProgress], Union[None, Awaitable[None]]]


async def generate_room_images(
    client,
    designs: tuple[RoomDesign, ...],
    preferences: Preferences,
    on_progress: Optional[ProgressCallback] = None,
) -> list[RoomDesign]:
    """
    Request one image per room concurrently.

    A failing room becomes ``image_state=FAILED`` with its description and
    budget untouched; it never raises out of the fan-out and never stops its
    siblings. ``on_progress`` fires once per room in completion order.

    Args:
        client:      Generation client exposing ``generate_image``.
        designs:     Rooms in display order.
        preferences: The submission's preferences.
        on_progress: Optional sync or async callback.

    Returns:
        The rooms in the same order as ``designs``, each READY or FAILED.
    """
    total = len(designs)
    completed = 0

    async def _render(index: int, design: RoomDesign) -> RoomDesign:
        nonlocal completed
        started = time.monotonic()

        try:
            image_url = await client.generate_image(design.description, preferences)
            result = design.image_ready(image_url)
            metrics.inc_counter("images.ready")
        except Exception as e:
            logger.warning(f"Image generation failed for {design.area}: {e}")
            result = design.image_failed(str(e) or type(e).__name__)
            metrics.inc_counter("images.failed")
            metrics.record_error("fanout", type(e).__name__, str(e))
        finally:
            metrics.record_latency("image", (time.monotonic() - started) * 1000)

        completed += 1
        if on_progress is not None:
            progress = FanoutProgress(
                index=index,
                area=design.area,
                completed=completed,
                total=total,
                design=result,
            )
            try:
                outcome = on_progress(progress)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Progress callback failed for {design.area}: {e}", exc_info=True)

        return result

    # gather() keeps argument order, so reassembly is index-stable.
    return list(await asyncio.gather(*(_render(i, d) for i, d in enumerate(designs))))
