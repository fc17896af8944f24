"""
Room fly-through videos — Veo long-running operations.

Per-room state machine:  NONE → PENDING → READY | FAILED

  1. Preconditions (checked before any service call): image READY, video not
     already PENDING, Capability Gate AVAILABLE.
  2. Mark PENDING, submit the operation with the room image + derived prompt.
  3. Poll every POLL_INTERVAL seconds, at most MAX_POLL_ATTEMPTS times.
  4. On success download the video, store it locally, mark READY.
  5. On an operation error, transport fault or timeout mark FAILED. A rejected
     key also demotes the Capability Gate.
"""

import os
import time
import asyncio
import logging
from typing import Optional

import httpx

from .. import metrics
from ..capability import CapabilityState
from .errors import (
    CapabilityUnavailableError,
    CredentialRejectedError,
    GenerationServiceError,
    OperationNotFoundError,
    ValidationFailure,
    VideoFailureKind,
    VideoOperationFailure,
)
from .models import ImageState, Project, VideoState
from .project_service import ProjectStore
from .storage import VideoStore

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

POLL_INTERVAL = float(os.getenv("VIDEO_POLL_INTERVAL", "10"))  # seconds
MAX_POLL_ATTEMPTS = int(os.getenv("VIDEO_MAX_POLL_ATTEMPTS", "90"))  # 15 minutes max


class VideoAnimator:

    def __init__(
        self,
        client,
        store: ProjectStore,
        gate,
        activity,
        video_store: Optional[VideoStore] = None,
        poll_interval: float = POLL_INTERVAL,
        max_attempts: int = MAX_POLL_ATTEMPTS,
    ):
        self.client = client
        self.store = store
        self.gate = gate
        self.activity = activity
        self.video_store = video_store or VideoStore()
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._tasks: dict[tuple[str, int], asyncio.Task] = {}

    # ── Preconditions ────────────────────────────────────────────────────

    async def _check_preconditions(self, project_id: str, index: int) -> Project:
        # Nothing below this await yields before the caller writes PENDING.
        state = await self.gate.ensure_probed()

        project = self.store.get(project_id)
        if not 0 <= index < len(project.designs):
            raise ValidationFailure(f"Room index {index} out of range for {len(project.designs)} rooms")

        design = project.designs[index]
        if design.image_state != ImageState.READY:
            raise ValidationFailure(
                f"{design.area} has no image yet (image is {design.image_state.value})"
            )
        if design.video_state == VideoState.PENDING:
            raise ValidationFailure(f"A video for {design.area} is already being generated")
        if state != CapabilityState.AVAILABLE:
            raise CapabilityUnavailableError(
                "Video generation needs an API key with Veo access. Select a key to continue."
            )
        return project

    # ── Entry points ─────────────────────────────────────────────────────

    async def animate(self, project_id: str, index: int) -> Project:
        """
        Generate a video for one room and wait for a terminal state.

        Raises:
            ValidationFailure / CapabilityUnavailableError: before any call.
            VideoOperationFailure: the room ended FAILED.
        """
        await self._check_preconditions(project_id, index)
        self.store.update_design(project_id, index, lambda d: d.video_pending())
        return await self._run(project_id, index)

    async def start(self, project_id: str, index: int) -> asyncio.Task:
        """Check preconditions, mark PENDING, and poll in a background task."""
        await self._check_preconditions(project_id, index)
        self.store.update_design(project_id, index, lambda d: d.video_pending())

        task = asyncio.create_task(self._run_background(project_id, index))
        key = (project_id, index)
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    def _forget(self, key: tuple[str, int], task: asyncio.Task):
        # A newer poller may already own this room.
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def _run_background(self, project_id: str, index: int):
        try:
            await self._run(project_id, index)
        except VideoOperationFailure as e:
            # Already reflected in the room state.
            logger.warning(f"Background video for {project_id} room {index} failed: {e}")

    def pending(self, project_id: str) -> list[int]:
        return sorted(i for (pid, i) in self._tasks if pid == project_id)

    def cancel_project(self, project_id: str) -> int:
        """Cancel every poller attached to a project. Returns how many were cancelled."""
        cancelled = 0
        for (pid, _index), task in list(self._tasks.items()):
            if pid == project_id and not task.done():
                task.cancel()
                cancelled += 1
        if cancelled:
            logger.info(f"Cancelled {cancelled} video poller(s) for {project_id}")
        return cancelled

    def cancel_all(self) -> int:
        """Cancel every running poller (shutdown)."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        return len(tasks)

    # ── State machine ────────────────────────────────────────────────────

    async def _run(self, project_id: str, index: int) -> Project:
        project = self.store.get(project_id)
        design = project.designs[index]
        started = time.monotonic()

        try:
            video_url = await self._generate(project, index)
        except VideoOperationFailure as e:
            self._fail(project_id, index, design.area, e)
            raise
        except Exception as e:
            logger.error(f"Unexpected video error for {project_id} room {index}: {e}", exc_info=True)
            failure = VideoOperationFailure(f"Unexpected video error: {e}", VideoFailureKind.TRANSPORT)
            self._fail(project_id, index, design.area, failure)
            raise failure from e
        finally:
            metrics.record_latency("video", (time.monotonic() - started) * 1000)

        if self.store.find(project_id) is None:
            logger.info(f"Project {project_id} discarded; dropping video for {design.area}")
            return project

        updated = self.store.update_design(project_id, index, lambda d: d.video_ready(video_url))
        metrics.inc_counter("videos.ready")
        self.activity.record(f"Fly-through video ready for {design.area}.")
        logger.info(f"Video ready for {project_id} room {index}: {video_url}")
        return updated

    async def _generate(self, project: Project, index: int) -> str:
        design = project.designs[index]

        try:
            operation_name = await self.client.start_video(
                design.description, project.preferences, design.image_url
            )
        except CredentialRejectedError as e:
            raise VideoOperationFailure(str(e), VideoFailureKind.CREDENTIAL_REJECTED) from e
        except (GenerationServiceError, ValidationFailure) as e:
            raise VideoOperationFailure(f"Veo submit failed: {e}", VideoFailureKind.OPERATION_ERROR) from e
        except httpx.HTTPError as e:
            raise VideoOperationFailure(f"Veo submit failed: {e}", VideoFailureKind.TRANSPORT) from e

        logger.info(f"Veo operation for {design.area}: {operation_name}")

        for attempt in range(self.max_attempts):
            await asyncio.sleep(self.poll_interval)

            try:
                operation = await self.client.poll_video(operation_name)
            except CredentialRejectedError as e:
                raise VideoOperationFailure(str(e), VideoFailureKind.CREDENTIAL_REJECTED) from e
            except OperationNotFoundError as e:
                raise VideoOperationFailure(str(e), VideoFailureKind.OPERATION_NOT_FOUND) from e
            except (GenerationServiceError, httpx.HTTPError) as e:
                raise VideoOperationFailure(f"Veo poll failed: {e}", VideoFailureKind.TRANSPORT) from e

            logger.info(f"Veo poll #{attempt + 1} for {design.area}: done={operation.done}")
            if not operation.done:
                continue

            if operation.error_code in (401, 403):
                raise VideoOperationFailure(
                    f"Veo rejected the key: {operation.error_message}",
                    VideoFailureKind.CREDENTIAL_REJECTED,
                )
            if operation.error_code == 404:
                raise VideoOperationFailure(
                    f"Veo operation not found: {operation.error_message}",
                    VideoFailureKind.OPERATION_NOT_FOUND,
                )
            if not operation.video_uri:
                kind = VideoFailureKind.OPERATION_ERROR if operation.error_code else VideoFailureKind.NO_RESULT
                raise VideoOperationFailure(
                    f"Veo video generation failed: {operation.error_message}", kind
                )

            return await self._materialize(project.id, index, operation.video_uri)

        raise VideoOperationFailure(
            f"Veo video timed out after {self.max_attempts * self.poll_interval:.0f}s",
            VideoFailureKind.TIMEOUT,
        )

    async def _materialize(self, project_id: str, index: int, video_uri: str) -> str:
        try:
            video_bytes = await self.client.fetch_video(video_uri)
        except CredentialRejectedError as e:
            raise VideoOperationFailure(str(e), VideoFailureKind.CREDENTIAL_REJECTED) from e
        except (GenerationServiceError, httpx.HTTPError) as e:
            raise VideoOperationFailure(f"Video download failed: {e}", VideoFailureKind.TRANSPORT) from e

        if not video_bytes:
            raise VideoOperationFailure("Downloaded video is empty", VideoFailureKind.NO_RESULT)
        return await self.video_store.save(project_id, index, video_bytes)

    def _fail(self, project_id: str, index: int, area: str, error: VideoOperationFailure):
        metrics.inc_counter("videos.failed")
        metrics.record_error("video", error.kind.value, str(error), project_id)

        if error.kind == VideoFailureKind.CREDENTIAL_REJECTED:
            self.gate.demote(f"video synthesis: {error}")
            self.activity.record(f"Video key was rejected while generating {area}. Please select a new key.")
        else:
            self.activity.record(f"Video generation failed for {area}.")

        if self.store.find(project_id) is None:
            return
        self.store.update_design(project_id, index, lambda d: d.video_failed(f"{error.kind.value}: {error}"))
