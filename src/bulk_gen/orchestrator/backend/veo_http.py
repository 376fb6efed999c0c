"""HTTP client for long-running video generation on the Gemini API."""

from __future__ import annotations

import base64
import json
import logging
import mimetypes
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

from bulk_gen.config import DEFAULT_API_BASE_URL
from bulk_gen.orchestrator.backend.base import ExecutionError
from bulk_gen.orchestrator.models import Artifact, GenerationSpec

logger = logging.getLogger(__name__)

SCENE_PLANNER_INSTRUCTION = (
    "You are a creative scriptwriter. Generate a list of distinct scene prompts for a video "
    "based on a topic. The prompts should be concise, descriptive, and suitable for a "
    "text-to-video AI model. Respond ONLY with a valid JSON array of strings, where each "
    "string is a single scene's prompt."
)


class VeoHttpBackend:
    """Submit a generation operation, poll it until done, and return the video link."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_API_BASE_URL,
        planner_model: str = "gemini-2.5-flash",
        operation_poll_seconds: float = 10.0,
        request_timeout_seconds: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.planner_model = planner_model
        self.operation_poll_seconds = operation_poll_seconds
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(request_timeout_seconds, connect=10.0),
            headers={"x-goog-api-key": api_key},
            transport=transport,
        )

    def generate(self, spec: GenerationSpec) -> Artifact:
        instance: dict[str, Any] = {"prompt": spec.prompt}
        if spec.input_type.needs_image and spec.image_path is not None:
            instance["image"] = _image_payload(spec.image_path)
        operation = self._post_json(
            f"models/{spec.model}:predictLongRunning",
            {
                "instances": [instance],
                "parameters": {
                    "aspectRatio": spec.aspect_ratio,
                    "sampleCount": spec.output_count,
                },
            },
        )
        operation_name = operation.get("name")
        if not isinstance(operation_name, str) or not operation_name:
            raise ExecutionError("Generation request returned no operation name.")
        logger.info("Submitted generation operation %s", operation_name)

        while not operation.get("done"):
            self._sleep(self.operation_poll_seconds)
            operation = self._get_json(operation_name)

        error = operation.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ExecutionError(f"API Error: {message}")

        uri = _first_video_uri(operation.get("response") or {})
        if uri is None:
            raise ExecutionError("Video generation succeeded but no download link was provided.")
        return Artifact(uri=uri)

    def plan_scenes(self, topic: str, scene_count: int) -> list[str]:
        payload = self._post_json(
            f"models/{self.planner_model}:generateContent",
            {
                "systemInstruction": {"parts": [{"text": SCENE_PLANNER_INSTRUCTION}]},
                "contents": [
                    {
                        "parts": [
                            {
                                "text": (
                                    f"Create a compelling story with exactly {scene_count} "
                                    f'scenes about "{topic}".'
                                ),
                            },
                        ],
                    },
                ],
                "generationConfig": {
                    "responseMimeType": "application/json",
                    "responseSchema": {
                        "type": "ARRAY",
                        "items": {
                            "type": "STRING",
                            "description": "A single, concise prompt for one video scene.",
                        },
                    },
                },
            },
        )
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
            prompts = json.loads(text.strip())
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as error:
            raise ExecutionError("Failed to generate prompts from AI.") from error
        if not isinstance(prompts, list) or any(not isinstance(item, str) for item in prompts):
            raise ExecutionError("API returned an invalid prompt array structure.")
        return prompts

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> VeoHttpBackend:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(path, json=payload)
        except httpx.TimeoutException as error:
            raise ExecutionError(f"Timeout calling {path}", transient=True) from error
        except httpx.HTTPError as error:
            raise ExecutionError(f"HTTP error calling {path}: {error}", transient=True) from error
        return _json_or_raise(response)

    def _get_json(self, path: str) -> dict[str, Any]:
        try:
            response = self._client.get(path)
        except httpx.TimeoutException as error:
            raise ExecutionError(f"Timeout calling {path}", transient=True) from error
        except httpx.HTTPError as error:
            raise ExecutionError(f"HTTP error calling {path}: {error}", transient=True) from error
        return _json_or_raise(response)


def _json_or_raise(response: httpx.Response) -> dict[str, Any]:
    if not response.is_success:
        status = response.status_code
        raise ExecutionError(
            f"HTTP {status} from {response.request.url.path}: {_error_message(response)}",
            transient=status == 429 or status >= 500,
        )
    try:
        payload = response.json()
    except json.JSONDecodeError as error:
        raise ExecutionError("Generation service returned invalid JSON.") from error
    if not isinstance(payload, dict):
        raise ExecutionError("Generation service returned an unexpected payload.")
    return payload


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except json.JSONDecodeError:
        return response.text[:200] or response.reason_phrase
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return str(payload["error"].get("message", response.reason_phrase))
    return response.reason_phrase


def _image_payload(image_path: Path) -> dict[str, str]:
    try:
        raw = image_path.read_bytes()
    except OSError as error:
        raise ExecutionError(f"Cannot read input image {image_path}: {error}") from error
    mime_type = mimetypes.guess_type(image_path.name)[0] or "image/png"
    return {
        "bytesBase64Encoded": base64.b64encode(raw).decode("ascii"),
        "mimeType": mime_type,
    }


def _first_video_uri(response: dict[str, Any]) -> str | None:
    samples = (response.get("generateVideoResponse") or {}).get("generatedSamples") or []
    for sample in samples:
        uri = (sample.get("video") or {}).get("uri")
        if uri:
            return str(uri)
    return None
