"""
DesignGenerationService — Main pipeline controller.

Runs one submission through both stages:
  Stage 1: Description synthesis (one atomic call → project skeleton)
  Stage 2: Per-area images (concurrent fan-out, failures become room state)

Each run is keyed by the project id it creates. Late results from an
abandoned run only ever touch that run's own project; they never move the
active-project pointer and never land on a newer project.
"""

import time
import asyncio
import logging
from typing import Optional
from uuid import uuid4

from .. import metrics
from .errors import CredentialRejectedError, StageOneFailure
from .fanout import generate_room_images
from .models import (
    FanoutProgress,
    PipelineStatus,
    PipelineStatusResponse,
    Preferences,
    Project,
)
from .project_service import ProjectStore

logger = logging.getLogger(__name__)


def new_project_id() -> str:
    return f"project-{uuid4().hex[:12]}"


class DesignGenerationService:
    """
    Pipeline controller.

    Usage:
        service = DesignGenerationService(client, store, gate, activity)

        # Wait for both stages
        project = await service.submit(preferences)

        # Or fire-and-forget and poll get_status(run_id)
        run_id = service.submit_background(preferences)
    """

    def __init__(self, client, store: ProjectStore, gate, activity):
        self.client = client
        self.store = store
        self.gate = gate
        self.activity = activity
        self._runs: dict[str, PipelineStatusResponse] = {}
        self._active_project_id: Optional[str] = None
        self._latest_submission: Optional[str] = None
        self._tasks: set[asyncio.Task] = set()

    # ── Status ───────────────────────────────────────────────────────────

    def get_status(self, run_id: str) -> Optional[PipelineStatusResponse]:
        """Get the current status of a pipeline run, or None if unknown."""
        return self._runs.get(run_id)

    def _update_status(
        self,
        run_id: str,
        status: PipelineStatus,
        step: str = "",
        completed: int = 0,
        total: int = 0,
        project_id: Optional[str] = None,
        error: Optional[str] = None,
    ):
        self._runs[run_id] = PipelineStatusResponse(
            run_id=run_id,
            status=status,
            current_step=step,
            progress=f"{completed} of {total}" if total else "",
            completed=completed,
            total=total,
            project_id=project_id,
            error=error,
        )
        logger.info(f"[{run_id}] {status.value} → {step}")

    @property
    def active_project_id(self) -> Optional[str]:
        return self._active_project_id

    @property
    def active_project(self) -> Optional[Project]:
        """Latest snapshot of the most recent submission, once published."""
        if self._active_project_id is None:
            return None
        return self.store.find(self._active_project_id)

    @property
    def background_tasks(self) -> set:
        return set(self._tasks)

    def is_current(self, project_id: str) -> bool:
        return project_id == self._active_project_id

    # ── Submission ───────────────────────────────────────────────────────

    async def submit(self, preferences: Preferences, run_id: Optional[str] = None) -> Project:
        """
        Run both stages for one submission.

        Returns:
            The committed project. Individual rooms may carry a FAILED image.

        Raises:
            StageOneFailure: Description synthesis failed. Nothing was published.
        """
        project_id = run_id or new_project_id()
        self._latest_submission = project_id
        metrics.inc_counter("submissions")
        self.activity.record(f"Generating new design for project 'My {preferences.style} House'.")

        # ── Stage 1: Descriptions ────────────────────────────────────────
        self._update_status(project_id, PipelineStatus.DESCRIBING, "Generating design descriptions...")
        started = time.monotonic()
        try:
            concept = await self.client.generate_designs(preferences)
            skeleton = Project.from_concept(project_id, preferences, concept)
        except CredentialRejectedError as e:
            self.gate.demote(f"description synthesis: {e}")
            self.activity.record("Error generating design: the API key was rejected.")
            self._fail(project_id, e)
            raise StageOneFailure(
                f"Failed to generate house design descriptions. The API key was rejected: {e}",
                credential_rejected=True,
            ) from e
        except Exception as e:
            logger.error(f"Stage 1 failed for {project_id}: {e}", exc_info=True)
            self.activity.record("Error generating design.")
            self._fail(project_id, e)
            raise StageOneFailure(
                f"Failed to generate house design descriptions: {e}"
            ) from e
        finally:
            metrics.record_latency("descriptions", (time.monotonic() - started) * 1000)

        self.store.publish(skeleton)
        # A failed stage 1 leaves the previous project active.
        if self._latest_submission == project_id:
            self._active_project_id = project_id

        # ── Stage 2: Images ──────────────────────────────────────────────
        total = len(skeleton.designs)
        self._update_status(
            project_id, PipelineStatus.RENDERING_IMAGES,
            f"Generating images for {total} areas...", 0, total, project_id,
        )
        pending = self.store.update_designs(project_id, lambda d: d.image_pending())

        async def _on_progress(progress: FanoutProgress):
            if self.store.find(project_id) is None:
                logger.info(f"[{project_id}] project discarded, dropping image for {progress.area}")
                return
            self.store.update_design(project_id, progress.index, lambda _: progress.design)
            self._update_status(
                project_id, PipelineStatus.RENDERING_IMAGES,
                f"Generated image for {progress.area} ({progress.marker})",
                progress.completed, total, project_id,
            )
            if progress.design.image_error:
                self.activity.record(f"Image generation failed for {progress.area}.")
            if not self.is_current(project_id):
                logger.info(f"[{project_id}] superseded run finished {progress.area}")

        designs = await generate_room_images(self.client, pending.designs, preferences, on_progress=_on_progress)

        if self.store.find(project_id) is None:
            self._update_status(
                project_id, PipelineStatus.FAILED, "Project discarded before completion",
                total, total, project_id, error="Project discarded",
            )
            return pending.model_copy(update={"designs": tuple(designs)})

        # ── Commit ───────────────────────────────────────────────────────
        final = self.store.commit(project_id)
        failed = sum(1 for d in final.designs if d.image_error)
        self._update_status(
            project_id, PipelineStatus.COMPLETED,
            f"Project complete ({total - failed} of {total} images)",
            total, total, project_id,
        )
        self.activity.record(f"New project '{final.name}' was created and generated.")
        return final

    def _fail(self, run_id: str, error: Exception):
        metrics.inc_counter("submissions.failed")
        metrics.record_error("stage1", type(error).__name__, str(error), run_id)
        self._update_status(run_id, PipelineStatus.FAILED, "Design generation failed", error=str(error))

    def submit_background(self, preferences: Preferences) -> str:
        """Fire-and-forget wrapper for submit. Returns the run id to poll."""
        run_id = new_project_id()
        self._update_status(run_id, PipelineStatus.DESCRIBING, "Pipeline started — generating descriptions...")
        task = asyncio.create_task(self._run_background(preferences, run_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return run_id

    async def _run_background(self, preferences: Preferences, run_id: str):
        try:
            await self.submit(preferences, run_id=run_id)
        except StageOneFailure as e:
            # Already reflected in the run status.
            logger.warning(f"Background run {run_id} failed: {e}")
