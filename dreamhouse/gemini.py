"""
Gemini integration — every call the design pipeline makes to the generation service.

- Descriptions: Gemini 2.5 Pro (JSON mode with a response schema)
- Room images: Imagen 4 via the :predict endpoint
- Fly-through videos: Veo via :predictLongRunning + operation polling
- Recolor: Gemini image editing (inline image in, inline image out)

All calls go through the public Generative Language REST API with httpx.
"""

import os
import json
import base64
import logging
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from .presets import DESIGN_AREAS
from .pipeline.errors import (
    CredentialRejectedError,
    GenerationServiceError,
    OperationNotFoundError,
)
from .pipeline.media import DEFAULT_IMAGE_MIME, decode_data_url, encode_data_url
from .pipeline.models import DesignConcept, Preferences, VideoOperation

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY", "")
API_BASE = "https://generativelanguage.googleapis.com/v1beta"

TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-2.5-pro")
IMAGE_MODEL = os.getenv("IMAGEN_MODEL", "imagen-4.0-generate-001")
IMAGE_EDIT_MODEL = os.getenv("GEMINI_IMAGE_EDIT_MODEL", "gemini-2.5-flash-image-preview")
VIDEO_MODEL = os.getenv("VEO_MODEL", "veo-3.0-fast-generate-001")

TEXT_TIMEOUT = 120
IMAGE_TIMEOUT = 120
VIDEO_TIMEOUT = 60
DOWNLOAD_TIMEOUT = 180

# Messages the API uses when a key is missing, invalid, or not entitled.
_REJECTED_KEY_MARKERS = ("API_KEY_INVALID", "API key not valid", "PERMISSION_DENIED")
# AI Studio reports an unselected / unentitled key on Veo as a missing entity.
_UNSELECTED_KEY_MARKER = "Requested entity was not found"


# ── Prompts ──────────────────────────────────────────────────────────────────

DESCRIPTION_PROMPT = """You are a world-class architect and interior designer creating a concept for a client's dream home.
Based on the following JSON preferences, generate a detailed and inspiring description for each key area of the house.
The areas should include: {areas}.
For each area, describe the architectural style, materials, color palette, furniture, lighting, and overall ambiance in a compelling way,
and give a rough cost estimate for building and furnishing it in the client's country.
Also provide a short analysis of current design trends in that country that the concept draws on,
and an overall budget estimate with a one-paragraph summary.
Ensure the design is cohesive and reflects all the client's preferences.

Client Preferences:
{preferences}"""

DESCRIPTION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "designs": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "area": {
                        "type": "STRING",
                        "description": "The name of the house area, e.g., 'Exterior', 'Living Room', 'Kitchen'.",
                    },
                    "description": {
                        "type": "STRING",
                        "description": "A detailed, evocative description of this specific area of the house.",
                    },
                    "budgetEstimate": {
                        "type": "STRING",
                        "description": "Estimated cost range for this area, with currency.",
                    },
                },
                "required": ["area", "description"],
            },
        },
        "trendAnalysis": {"type": "STRING"},
        "budget": {
            "type": "OBJECT",
            "properties": {
                "overallEstimate": {"type": "STRING"},
                "summary": {"type": "STRING"},
            },
            "required": ["overallEstimate", "summary"],
        },
    },
    "required": ["designs"],
}

IMAGE_PROMPT = """Create a photorealistic, ultra-high-quality architectural visualization.
Style: {style}.
Color Palette: {palette}.
Description: {description}.
The image should be bright, inviting, and look like a professional architectural rendering from a top design magazine. Use cinematic lighting and 8k resolution detail."""

VIDEO_PROMPT = """A smooth, cinematic fly-through of this {style} home, gliding slowly through the space shown in the image.
{description}
Steady gimbal camera movement, natural light, photorealistic architectural film, no people."""

RECOLOR_PROMPT = """Recolor this room using a palette of {directive}.
Keep the architecture, layout, furniture placement, materials, lighting, and camera angle exactly the same.
Only change the colors of walls, textiles, and decor. Return the edited photorealistic image."""


# ── Helpers ──────────────────────────────────────────────────────────────────

def _model_url(model: str, method: str) -> str:
    return f"{API_BASE}/models/{model}:{method}"


def _parse_json_response(text: str):
    """Parse JSON from a Gemini response, handling markdown code blocks."""
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        if "```" in text:
            json_block = text.split("```")[1]
            if json_block.startswith("json"):
                json_block = json_block[4:]
            try:
                return json.loads(json_block.strip())
            except json.JSONDecodeError:
                pass
        raise GenerationServiceError(f"Gemini returned invalid JSON: {text[:200]}")


def _raise_for_status(resp: httpx.Response, unselected_key_rejects: bool = False, operation: bool = False):
    """Translate an API error response into the pipeline's error taxonomy."""
    if resp.status_code < 400:
        return

    status = resp.status_code
    text = resp.text[:500]

    if status in (401, 403) or any(marker in text for marker in _REJECTED_KEY_MARKERS):
        raise CredentialRejectedError(f"Gemini API rejected the key ({status}): {text}", status)
    if status == 404 and unselected_key_rejects and _UNSELECTED_KEY_MARKER in text:
        raise CredentialRejectedError(f"Gemini API key is not entitled to {VIDEO_MODEL}: {text}", status)
    if status == 404 and operation:
        raise OperationNotFoundError(f"Operation not found or expired: {text}", status)
    raise GenerationServiceError(f"Gemini API error {status}: {text}", status)


def _first_text(result: dict) -> str:
    candidates = result.get("candidates") or []
    if not candidates:
        raise GenerationServiceError("Gemini returned no candidates.")
    for part in candidates[0].get("content", {}).get("parts", []):
        if "text" in part:
            return part["text"]
    raise GenerationServiceError("Gemini response contained no text.")


def _first_inline_image(result: dict) -> str:
    candidates = result.get("candidates") or []
    if not candidates:
        raise GenerationServiceError("Gemini returned no candidates for the image edit.")
    for part in candidates[0].get("content", {}).get("parts", []):
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or DEFAULT_IMAGE_MIME
            return f"data:{mime_type};base64,{inline['data']}"
    raise GenerationServiceError("Gemini response contained no image data.")


def _parse_operation(data: dict) -> VideoOperation:
    operation = VideoOperation(name=data.get("name", ""), done=bool(data.get("done")))
    if not operation.done:
        return operation

    error = data.get("error")
    if error:
        operation.error_code = error.get("code")
        operation.error_message = error.get("message") or "Unknown Veo error"
        return operation

    video_response = (data.get("response") or {}).get("generateVideoResponse") or {}
    samples = video_response.get("generatedSamples") or []
    if samples:
        operation.video_uri = (samples[0].get("video") or {}).get("uri")
    if not operation.video_uri:
        reasons = video_response.get("raiMediaFilteredReasons") or []
        operation.error_message = (
            f"Content filtered: {reasons[0]}" if reasons
            else "Veo completed but no video URI in response"
        )
    return operation


# ═════════════════════════════════════════════════════════════════════════════
# Client
# ═════════════════════════════════════════════════════════════════════════════

class GeminiClient:
    """
    Generation service client.

    Args:
        api_key:   Key for description, image and recolor calls.
        video_key: Callable returning the key for the privileged video path
                   (usually the Capability Gate provider's ``api_key``).
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        video_key: Optional[Callable[[], str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._video_key = video_key
        self._transport = transport

    def _key(self) -> str:
        key = self._api_key or GEMINI_API_KEY
        if not key:
            raise CredentialRejectedError("GEMINI_API_KEY not set")
        return key

    def _video_api_key(self) -> str:
        key = self._video_key() if self._video_key else self._key()
        if not key:
            raise CredentialRejectedError("No API key selected for video generation")
        return key

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport, follow_redirects=True)

    async def _post(self, url: str, body: dict, key: str, timeout: float, **status_opts) -> dict:
        async with self._client(timeout) as client:
            resp = await client.post(url, params={"key": key}, json=body)
        _raise_for_status(resp, **status_opts)
        return resp.json()

    # ── 1. Description synthesis ─────────────────────────────────────────

    async def generate_designs(self, preferences: Preferences) -> DesignConcept:
        """Generate per-area descriptions plus trend and budget text in one call."""
        prompt = DESCRIPTION_PROMPT.format(
            areas=", ".join(DESIGN_AREAS),
            preferences=preferences.model_dump_json(by_alias=True, indent=2),
        )
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": DESCRIPTION_SCHEMA,
                "temperature": 0.7,
            },
        }

        logger.info(f"Requesting design descriptions from {TEXT_MODEL} ({preferences.style}, {preferences.country})")
        result = await self._post(_model_url(TEXT_MODEL, "generateContent"), body, self._key(), TEXT_TIMEOUT)

        data = _parse_json_response(_first_text(result))
        if isinstance(data, list):
            data = {"designs": data}
        try:
            return DesignConcept.model_validate(data)
        except ValidationError as e:
            raise GenerationServiceError(f"Unparsable design payload: {e}")

    # ── 2. Room image ────────────────────────────────────────────────────

    async def generate_image(self, description: str, preferences: Preferences) -> str:
        """Render one area. Returns a data URL."""
        prompt = IMAGE_PROMPT.format(
            style=preferences.style,
            palette=preferences.color_palette,
            description=description,
        )
        body = {
            "instances": [{"prompt": prompt}],
            "parameters": {"sampleCount": 1, "aspectRatio": "16:9"},
        }

        result = await self._post(_model_url(IMAGE_MODEL, "predict"), body, self._key(), IMAGE_TIMEOUT)

        predictions = result.get("predictions") or []
        if not predictions or not predictions[0].get("bytesBase64Encoded"):
            raise GenerationServiceError("No image was generated.")

        prediction = predictions[0]
        image_bytes = base64.b64decode(prediction["bytesBase64Encoded"])
        return encode_data_url(prediction.get("mimeType") or DEFAULT_IMAGE_MIME, image_bytes)

    # ── 3. Fly-through video (long-running) ──────────────────────────────

    async def start_video(self, description: str, preferences: Preferences, image_url: str) -> str:
        """Submit a video operation seeded with the room image. Returns the operation name."""
        mime_type, payload = decode_data_url(image_url)
        body = {
            "instances": [{
                "prompt": VIDEO_PROMPT.format(style=preferences.style, description=description),
                "image": {
                    "bytesBase64Encoded": base64.b64encode(payload).decode("utf-8"),
                    "mimeType": mime_type,
                },
            }],
            "parameters": {"aspectRatio": "16:9"},
        }

        result = await self._post(
            _model_url(VIDEO_MODEL, "predictLongRunning"),
            body,
            self._video_api_key(),
            VIDEO_TIMEOUT,
            unselected_key_rejects=True,
        )

        name = result.get("name")
        if not name:
            raise GenerationServiceError(f"Veo submit returned no operation name: {result}")
        logger.info(f"Veo operation submitted: {name}")
        return name

    async def poll_video(self, operation_name: str) -> VideoOperation:
        async with self._client(VIDEO_TIMEOUT) as client:
            resp = await client.get(f"{API_BASE}/{operation_name}", params={"key": self._video_api_key()})
        _raise_for_status(resp, operation=True)
        return _parse_operation(resp.json())

    async def fetch_video(self, video_uri: str) -> bytes:
        """Download a finished video. The file URI needs the API key."""
        async with self._client(DOWNLOAD_TIMEOUT) as client:
            resp = await client.get(video_uri, params={"key": self._video_api_key()})
        _raise_for_status(resp)
        return resp.content

    # ── 4. Recolor ───────────────────────────────────────────────────────

    async def recolor_image(self, image_url: str, directive: str) -> str:
        """Edit an existing room image to a new color scheme. Returns a data URL."""
        mime_type, payload = decode_data_url(image_url)
        body = {
            "contents": [{
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": mime_type,
                            "data": base64.b64encode(payload).decode("utf-8"),
                        }
                    },
                    {"text": RECOLOR_PROMPT.format(directive=directive)},
                ]
            }],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

        result = await self._post(_model_url(IMAGE_EDIT_MODEL, "generateContent"), body, self._key(), IMAGE_TIMEOUT)
        return _first_inline_image(result)
