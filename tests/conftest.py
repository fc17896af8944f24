"""
Shared fixtures and fakes for the design pipeline tests.

FakeGenerationClient stands in for GeminiClient: it records every call in
order, and lets each test inject per-area delays, failures, and scripted
video operations.
"""

import asyncio
import base64
from io import BytesIO
from typing import Optional

import pytest
from PIL import Image

from dreamhouse import metrics
from dreamhouse.activity import ActivityLog
from dreamhouse.capability import CapabilityGate, CapabilityState
from dreamhouse.pipeline.errors import GenerationServiceError
from dreamhouse.pipeline.models import (
    AreaConcept,
    Budget,
    DesignConcept,
    Preferences,
    Project,
    RoomDesign,
    VideoOperation,
)
from dreamhouse.pipeline.project_service import ProjectStore
from dreamhouse.pipeline.storage import VideoStore


AREAS = [
    "Exterior",
    "Foyer",
    "Living Room",
    "Kitchen",
    "Dining Room",
    "Master Bedroom",
    "Master Bathroom",
]


def png_data_url(color=(200, 120, 40)) -> str:
    buf = BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format="PNG")
    return f"data:image/png;base64,{base64.b64encode(buf.getvalue()).decode()}"


def make_concept(areas=AREAS) -> DesignConcept:
    return DesignConcept(
        designs=[
            AreaConcept(area=a, description=f"{a} description", budget_estimate=f"${i + 1}0,000")
            for i, a in enumerate(areas)
        ],
        trend_analysis="Wabi-sabi minimalism is trending.",
        budget=Budget(overall_estimate="$450,000", summary="Mid-range finishes throughout."),
    )


def make_project(project_id="project-test", areas=("Exterior", "Kitchen", "Foyer"), ready=True) -> Project:
    designs = []
    for a in areas:
        design = RoomDesign(area=a, description=f"{a} description")
        if ready:
            design = design.image_pending().image_ready(png_data_url())
        designs.append(design)
    return Project(
        id=project_id,
        name="My Modern House",
        preferences=make_preferences(),
        designs=tuple(designs),
    )


def make_preferences(**overrides) -> Preferences:
    data = {
        "style": "Modern",
        "country": "Japan",
        "bedrooms": 3,
        "bathrooms": 2,
        "stories": 1,
        "squareFootage": 1800,
        "features": ["Open Floor Plan"],
        "colorPalette": "Earthy & Organic",
        "additionalRequests": "",
    }
    data.update(overrides)
    return Preferences.model_validate(data)


def area_of(description: str) -> str:
    return description.rsplit(" description", 1)[0]


class FakeGenerationClient:

    def __init__(self, concept: Optional[DesignConcept] = None):
        self.concept = concept or make_concept()
        self.calls: list[tuple] = []

        self.designs_error: Optional[Exception] = None
        self.designs_gate: Optional[asyncio.Event] = None

        self.image_delays: dict[str, float] = {}
        self.image_failures: dict[str, Exception] = {}
        self.image_gates: dict[str, asyncio.Event] = {}

        self.start_video_error: Optional[Exception] = None
        self.operations: list = []  # VideoOperation or Exception, consumed per poll
        self.video_bytes = b"\x00\x00\x00\x18ftypmp42fake-video"
        self.fetch_error: Optional[Exception] = None

        self.recolor_result: Optional[str] = None
        self.recolor_error: Optional[Exception] = None
        self.recolor_gate: Optional[asyncio.Event] = None

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def generate_designs(self, preferences):
        self.calls.append(("generate_designs", preferences.style))
        if self.designs_gate is not None:
            await self.designs_gate.wait()
        if self.designs_error is not None:
            raise self.designs_error
        self.calls.append(("generate_designs_done",))
        return self.concept

    async def generate_image(self, description, preferences):
        area = area_of(description)
        self.calls.append(("generate_image", area))
        if area in self.image_gates:
            await self.image_gates[area].wait()
        await asyncio.sleep(self.image_delays.get(area, 0))
        if area in self.image_failures:
            raise self.image_failures[area]
        return png_data_url()

    async def start_video(self, description, preferences, image_url):
        self.calls.append(("start_video", area_of(description)))
        if self.start_video_error is not None:
            raise self.start_video_error
        return "models/veo/operations/op-123"

    async def poll_video(self, operation_name):
        self.calls.append(("poll_video", operation_name))
        if not self.operations:
            return VideoOperation(name=operation_name, done=False)
        outcome = self.operations.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def fetch_video(self, video_uri):
        self.calls.append(("fetch_video", video_uri))
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.video_bytes

    async def recolor_image(self, image_url, directive):
        self.calls.append(("recolor_image", directive))
        if self.recolor_gate is not None:
            await self.recolor_gate.wait()
        if self.recolor_error is not None:
            raise self.recolor_error
        return self.recolor_result or png_data_url((20, 60, 200))


class FakeCredentialProvider:

    def __init__(self, granted: bool = True):
        self.granted = granted
        self.probes = 0
        self.grant_requests = 0

    def api_key(self) -> str:
        return "fake-key" if self.granted else ""

    async def has_grant(self) -> bool:
        self.probes += 1
        return self.granted

    async def request_grant(self, api_key=None):
        self.grant_requests += 1
        self.granted = True


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def client():
    return FakeGenerationClient()


@pytest.fixture
def provider():
    return FakeCredentialProvider(granted=True)


@pytest.fixture
def gate(provider):
    return CapabilityGate(provider)


@pytest.fixture
def available_gate(gate):
    gate._set(CapabilityState.AVAILABLE)
    return gate


@pytest.fixture
def store():
    return ProjectStore()


@pytest.fixture
def activity():
    return ActivityLog()


@pytest.fixture
def video_store(tmp_path):
    return VideoStore(str(tmp_path / "videos"))


@pytest.fixture
def service_error():
    return GenerationServiceError("Gemini API error 500: internal", 500)
