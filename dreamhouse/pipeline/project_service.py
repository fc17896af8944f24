"""
Project collection.

Holds the latest published snapshot of every project and the ordered list of
committed projects. All changes are copy-on-write: readers holding a snapshot
never see it change, and every update publishes a new Project to listeners.

Writers:
  - the pipeline controller (publish skeleton, per-room image updates, commit)
  - the video poller and recolor transaction (index-addressed room updates)
"""

import logging
from typing import Callable, Optional

from .errors import ProjectNotFoundError
from .models import Project, RoomDesign

logger = logging.getLogger(__name__)

ProjectListener = Callable[[Project], None]


class ProjectStore:

    def __init__(self):
        self._snapshots: dict[str, Project] = {}
        self._committed: list[str] = []  # newest first
        self._listeners: list[ProjectListener] = []

    # ── Publication ──────────────────────────────────────────────────────

    def subscribe(self, listener: ProjectListener) -> Callable[[], None]:
        """Register a callback for every published snapshot. Returns an unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, project: Project):
        self._snapshots[project.id] = project
        for listener in list(self._listeners):
            try:
                listener(project)
            except Exception as e:
                logger.error(f"Project listener failed for {project.id}: {e}", exc_info=True)

    def publish(self, project: Project) -> Project:
        """Publish a new project skeleton."""
        if project.id in self._snapshots:
            raise ValueError(f"Project {project.id} already published")
        self._publish(project)
        logger.info(f"Published project {project.id} ({len(project.designs)} rooms)")
        return project

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, project_id: str) -> Project:
        project = self._snapshots.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def find(self, project_id: str) -> Optional[Project]:
        return self._snapshots.get(project_id)

    def is_committed(self, project_id: str) -> bool:
        return project_id in self._committed

    def list_projects(self) -> list[Project]:
        """Committed projects, newest first."""
        return [self._snapshots[pid] for pid in self._committed]

    # ── Writes ───────────────────────────────────────────────────────────

    def update_design(
        self,
        project_id: str,
        index: int,
        change: Callable[[RoomDesign], RoomDesign],
    ) -> Project:
        """
        Apply ``change`` to room ``index`` of the latest snapshot and publish
        the result. Other rooms and project fields are carried over untouched.
        """
        current = self.get(project_id)
        if not 0 <= index < len(current.designs):
            raise IndexError(f"room index {index} out of range for {len(current.designs)} rooms")
        updated = current.with_design(index, change(current.designs[index]))
        self._publish(updated)
        return updated

    def update_designs(
        self,
        project_id: str,
        change: Callable[[RoomDesign], RoomDesign],
    ) -> Project:
        """Apply ``change`` to every room and publish one snapshot."""
        current = self.get(project_id)
        updated = current
        for index, design in enumerate(current.designs):
            updated = updated.with_design(index, change(design))
        self._publish(updated)
        return updated

    def commit(self, project_id: str) -> Project:
        """Append a project to the committed collection. Idempotent."""
        project = self.get(project_id)
        if project_id not in self._committed:
            self._committed.insert(0, project_id)
            logger.info(f"Committed project {project_id}")
        return project

    def discard(self, project_id: str) -> Optional[Project]:
        """Forget a project entirely. Returns the last snapshot, if any."""
        if project_id in self._committed:
            self._committed.remove(project_id)
        project = self._snapshots.pop(project_id, None)
        if project is not None:
            logger.info(f"Discarded project {project_id}")
        return project
