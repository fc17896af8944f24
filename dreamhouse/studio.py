"""
DesignStudio — wires the pipeline components around one shared store and gate.
"""

import logging
from typing import Optional

from .activity import ActivityLog
from .capability import CapabilityGate, EnvCredentialProvider
from .gemini import GeminiClient
from .pipeline.animate import VideoAnimator
from .pipeline.orchestrator import DesignGenerationService
from .pipeline.project_service import ProjectStore
from .pipeline.recolor import RecolorService
from .pipeline.storage import VideoStore

logger = logging.getLogger(__name__)


class DesignStudio:
    """
    One process-wide set of collaborators.

    The Capability Gate and the project store are created here once and passed
    explicitly to every component that reads or writes them.
    """

    def __init__(
        self,
        client=None,
        gate: Optional[CapabilityGate] = None,
        store: Optional[ProjectStore] = None,
        activity: Optional[ActivityLog] = None,
        video_store: Optional[VideoStore] = None,
        **animator_opts,
    ):
        self.gate = gate or CapabilityGate(EnvCredentialProvider())
        self.client = client or GeminiClient(video_key=self.gate.provider.api_key)
        self.store = store or ProjectStore()
        self.activity = activity or ActivityLog()
        self.video_store = video_store or VideoStore()

        self.pipeline = DesignGenerationService(self.client, self.store, self.gate, self.activity)
        self.animator = VideoAnimator(
            self.client, self.store, self.gate, self.activity, self.video_store, **animator_opts
        )
        self.recolor = RecolorService(self.client, self.store, self.activity)

    def discard_project(self, project_id: str) -> bool:
        """Drop a project and cancel its video pollers. In-flight images are ignored on arrival."""
        self.animator.cancel_project(project_id)
        discarded = self.store.discard(project_id) is not None
        if discarded:
            self.activity.record(f"Project {project_id} was discarded.")
        return discarded
