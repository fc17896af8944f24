"""
Pydantic models and enums for the house design pipeline.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ── Preferences ──────────────────────────────────────────────────────────────

class Preferences(BaseModel):
    """Immutable snapshot of one design submission."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    style: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1, description="Country / culture tag")
    bedrooms: int = Field(..., gt=0)
    bathrooms: int = Field(..., gt=0)
    stories: int = Field(..., gt=0)
    square_footage: int = Field(..., gt=0, alias="squareFootage")
    features: tuple[str, ...] = ()
    color_palette: str = Field(..., min_length=1, alias="colorPalette")
    additional_requests: str = Field("", alias="additionalRequests")

    @field_validator("features")
    @classmethod
    def _features_unique(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(value)) != len(value):
            raise ValueError("features must not contain duplicates")
        return value


# ── Per-room synthesis state ─────────────────────────────────────────────────

class ImageState(str, Enum):
    UNSTARTED = "UNSTARTED"
    PENDING = "PENDING"
    READY = "READY"
    FAILED = "FAILED"


class VideoState(str, Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    READY = "READY"
    FAILED = "FAILED"


class RoomDesign(BaseModel):
    model_config = ConfigDict(frozen=True)

    area: str = Field(..., min_length=1)
    description: str
    budget_estimate: Optional[str] = None

    image_state: ImageState = ImageState.UNSTARTED
    image_url: Optional[str] = None  # self-describing data URL
    image_error: Optional[str] = None

    video_state: VideoState = VideoState.NONE
    video_url: Optional[str] = None
    video_error: Optional[str] = None

    @model_validator(mode="after")
    def _check_states(self) -> "RoomDesign":
        if self.image_state == ImageState.READY and not self.image_url:
            raise ValueError(f"{self.area}: image READY without an image")
        if self.image_state == ImageState.FAILED and not self.image_error:
            raise ValueError(f"{self.area}: image FAILED without an error")
        if self.video_state != VideoState.NONE and self.image_state != ImageState.READY:
            raise ValueError(f"{self.area}: video requires a READY image")
        if self.video_state == VideoState.READY and not self.video_url:
            raise ValueError(f"{self.area}: video READY without a video")
        if self.video_state == VideoState.FAILED and not self.video_error:
            raise ValueError(f"{self.area}: video FAILED without an error")
        return self

    # Copy-on-write transitions. Each returns a new, validated RoomDesign.

    def _evolve(self, **changes) -> "RoomDesign":
        return RoomDesign.model_validate({**self.model_dump(), **changes})

    def image_pending(self) -> "RoomDesign":
        return self._evolve(image_state=ImageState.PENDING, image_error=None)

    def image_ready(self, image_url: str) -> "RoomDesign":
        return self._evolve(image_state=ImageState.READY, image_url=image_url, image_error=None)

    def image_failed(self, error: str) -> "RoomDesign":
        # A failed image cannot carry a video.
        return self._evolve(
            image_state=ImageState.FAILED,
            image_url=None,
            image_error=error,
            video_state=VideoState.NONE,
            video_url=None,
            video_error=None,
        )

    def recolored(self, image_url: str) -> "RoomDesign":
        """Swap the image in place; every other field (video included) is kept."""
        return self._evolve(image_url=image_url)

    def video_pending(self) -> "RoomDesign":
        return self._evolve(video_state=VideoState.PENDING, video_error=None)

    def video_ready(self, video_url: str) -> "RoomDesign":
        return self._evolve(video_state=VideoState.READY, video_url=video_url, video_error=None)

    def video_failed(self, error: str) -> "RoomDesign":
        return self._evolve(video_state=VideoState.FAILED, video_url=None, video_error=error)


# ── Stage 1 output ───────────────────────────────────────────────────────────

class Budget(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    overall_estimate: str = Field(..., alias="overallEstimate")
    summary: str = ""


class AreaConcept(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    area: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    budget_estimate: Optional[str] = Field(None, alias="budgetEstimate")


class DesignConcept(BaseModel):
    """Parsed result of the description synthesis call."""
    model_config = ConfigDict(populate_by_name=True)

    designs: list[AreaConcept] = Field(..., min_length=1)
    trend_analysis: Optional[str] = Field(None, alias="trendAnalysis")
    budget: Optional[Budget] = None


# ── Project ──────────────────────────────────────────────────────────────────

def _now() -> datetime:
    return datetime.now(timezone.utc)


class Project(BaseModel):
    """
    A published project snapshot.

    Snapshots are never mutated; every change produces a new Project via
    ``with_design``. The number and order of designs is fixed at creation.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    preferences: Preferences
    created_at: datetime = Field(default_factory=_now)
    designs: tuple[RoomDesign, ...]
    trend_analysis: Optional[str] = None
    budget: Optional[Budget] = None

    @field_validator("designs")
    @classmethod
    def _areas_unique(cls, value: tuple[RoomDesign, ...]) -> tuple[RoomDesign, ...]:
        areas = [d.area for d in value]
        if len(set(areas)) != len(areas):
            raise ValueError(f"area names must be unique: {areas}")
        return value

    @classmethod
    def from_concept(cls, project_id: str, preferences: Preferences, concept: DesignConcept) -> "Project":
        return cls(
            id=project_id,
            name=f"My {preferences.style} House",
            preferences=preferences,
            designs=tuple(
                RoomDesign(area=c.area, description=c.description, budget_estimate=c.budget_estimate)
                for c in concept.designs
            ),
            trend_analysis=concept.trend_analysis,
            budget=concept.budget,
        )

    def with_design(self, index: int, design: RoomDesign) -> "Project":
        if not 0 <= index < len(self.designs):
            raise IndexError(f"room index {index} out of range for {len(self.designs)} rooms")
        if design.area != self.designs[index].area:
            raise ValueError(
                f"room {index} is '{self.designs[index].area}', not '{design.area}'"
            )
        designs = self.designs[:index] + (design,) + self.designs[index + 1:]
        return self.model_copy(update={"designs": designs})


# ── Video operations ─────────────────────────────────────────────────────────

class VideoOperation(BaseModel):
    """One observation of a long-running video synthesis operation."""
    name: str
    done: bool = False
    video_uri: Optional[str] = None
    error_code: Optional[int] = None
    error_message: Optional[str] = None


# ── Pipeline Status ──────────────────────────────────────────────────────────

class PipelineStatus(str, Enum):
    DESCRIBING = "DESCRIBING"
    RENDERING_IMAGES = "RENDERING_IMAGES"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PipelineStatusResponse(BaseModel):
    run_id: str
    status: PipelineStatus
    current_step: str = ""
    progress: str = ""  # "N of M"
    completed: int = 0
    total: int = 0
    project_id: Optional[str] = None
    error: Optional[str] = None


class FanoutProgress(BaseModel):
    """One per-area completion reported by the fan-out executor."""
    model_config = ConfigDict(frozen=True)

    index: int
    area: str
    completed: int
    total: int
    design: RoomDesign

    @property
    def marker(self) -> str:
        return f"{self.completed} of {self.total}"


# ── API Request Models ───────────────────────────────────────────────────────

class RecolorRequest(BaseModel):
    directive: Optional[str] = Field(None, description="Free-text color directive")
    palette: Optional[str] = Field(None, description="Name of a recolor palette preset")


class GrantRequest(BaseModel):
    api_key: Optional[str] = Field(
        None, description="Key to install before granting; omit to re-read the environment"
    )
