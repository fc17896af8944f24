"""
House Design Pipeline

Orchestration for turning a set of preferences into a design project:
  Stage 1 — Descriptions: one atomic call produces every area plus trend/budget text
  Stage 2 — Images:       concurrent per-area fan-out, failures isolated per room
  Rooms   — Fly-through videos (long-running, polled) and single-room recolors
"""

from .orchestrator import DesignGenerationService
from .project_service import ProjectStore
from .models import ImageState, PipelineStatus, Preferences, Project, RoomDesign, VideoState

__all__ = [
    "DesignGenerationService",
    "ProjectStore",
    "ImageState",
    "PipelineStatus",
    "Preferences",
    "Project",
    "RoomDesign",
    "VideoState",
]
