"""
Exception taxonomy for the design pipeline.

Per-item failures (one room's image, one room's video) are converted to room
state by the pipeline and never raised to the submission. Only whole-stage
failures and the initiating call of a transaction propagate to the caller.
"""

from enum import Enum
from typing import Optional


class DesignGenerationError(Exception):
    """Base class for every pipeline error."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


# ── Generation service ───────────────────────────────────────────────────────

class GenerationServiceError(DesignGenerationError):
    """A call to the generation service failed or returned something unusable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class CredentialRejectedError(GenerationServiceError):
    """The service rejected the API key."""


class OperationNotFoundError(GenerationServiceError):
    """A long-running operation handle is unknown or has expired."""


# ── Stage / transaction failures ─────────────────────────────────────────────

class StageOneFailure(DesignGenerationError):
    """Description synthesis failed; no project was created."""

    def __init__(self, message: str, credential_rejected: bool = False):
        self.credential_rejected = credential_rejected
        super().__init__(message)


class VideoFailureKind(str, Enum):
    CREDENTIAL_REJECTED = "CREDENTIAL_REJECTED"
    OPERATION_NOT_FOUND = "OPERATION_NOT_FOUND"
    OPERATION_ERROR = "OPERATION_ERROR"
    NO_RESULT = "NO_RESULT"
    TRANSPORT = "TRANSPORT"
    TIMEOUT = "TIMEOUT"


class VideoOperationFailure(DesignGenerationError):
    """A room's video synthesis ended without a video."""

    def __init__(self, message: str, kind: VideoFailureKind):
        self.kind = kind
        super().__init__(message)


class RecolorFailure(DesignGenerationError):
    """The recolor call failed; the room's previous image is kept."""


# ── Local validation ─────────────────────────────────────────────────────────

class ValidationFailure(DesignGenerationError, ValueError):
    """A local precondition was not met. No remote call was made."""


class RecolorBusyError(ValidationFailure):
    """Another recolor is already in flight for the same project."""

    def __init__(self, project_id: str, index: int):
        self.project_id = project_id
        self.index = index
        super().__init__(f"Project {project_id} is already recoloring room {index}")


class CapabilityUnavailableError(ValidationFailure):
    """The privileged video capability is not currently granted."""


class ProjectNotFoundError(ValidationFailure):
    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project {project_id} not found")
