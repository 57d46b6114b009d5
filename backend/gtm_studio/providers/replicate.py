"""
Replicate media-model client.

Replicate blocks direct browser calls, so predictions go through the image
generation service: POST {IMAGE_GEN_URL}/api/replicate with
{"model": ..., "input": {...}} and a JSON reply {"output": ...}.

Each model family takes differently shaped inputs; the helpers below build
them. Video models get a longer timeout than image/audio models.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from gtm_studio.config import ProviderConfig
from gtm_studio.models.model_catalog import is_video_model, recommended_model
from gtm_studio.services.errors import ProviderError, ProviderTimeoutError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "replicate"

# (width, height) -> aspect ratio for models that only accept a ratio
_ASPECT_RATIOS: dict[tuple[int, int], str] = {
    (720, 1280): "9:16",
    (1080, 1920): "9:16",
    (1280, 720): "16:9",
    (1024, 1024): "1:1",
    (1024, 768): "4:3",
    (768, 1024): "3:4",
    (2048, 2048): "1:1",
    (2560, 1600): "16:10",
}


def aspect_ratio_for(width: int, height: int) -> str:
    return _ASPECT_RATIOS.get((width, height), "1:1")


def build_image_input(prompt: str, model_id: str, options: dict[str, Any]) -> dict[str, Any]:
    width = int(options.get("width") or 1024)
    height = int(options.get("height") or 1024)

    if "flux-1.1-pro-ultra" in model_id:
        return {
            "prompt": prompt,
            "aspect_ratio": aspect_ratio_for(width, height),
            "raw": bool(options.get("raw", False)),
            "safety_tolerance": options.get("safety_tolerance") or 3,
            "output_format": options.get("output_format") or "png",
        }
    if "imagen-4" in model_id:
        return {
            "prompt": prompt,
            "aspect_ratio": aspect_ratio_for(width, height),
            "safety_filter_level": "block_medium_and_above",
        }

    payload: dict[str, Any] = {
        "prompt": prompt,
        "width": width,
        "height": height,
        "num_outputs": options.get("num_outputs") or 1,
    }
    if "flux-schnell" in model_id:
        payload["num_inference_steps"] = min(int(options.get("num_inference_steps") or 4), 4)
    else:
        payload["negative_prompt"] = options.get("negative_prompt")
        payload["guidance_scale"] = options.get("guidance_scale") or 7.5
        payload["num_inference_steps"] = options.get("num_inference_steps") or 25
    return payload


def build_video_input(image_url: str, model_id: str, options: dict[str, Any]) -> dict[str, Any]:
    if "pixverse" in model_id:
        return {
            "image": image_url,
            "prompt": options.get("prompt") or "cinematic motion, smooth camera movement",
            "quality": options.get("quality") or "720p",
            "aspect_ratio": options.get("aspect_ratio") or "16:9",
            "duration": options.get("duration") or 5,
            "motion_mode": options.get("motion_mode") or "normal",
            "negative_prompt": options.get("negative_prompt") or "",
            "style": options.get("style") or "None",
            "effect": options.get("effect") or "None",
        }
    if "wan-2.1" in model_id:
        payload = {
            "image": image_url,
            "prompt": options.get("prompt") or "the image comes to life with natural motion",
            "num_frames": options.get("num_frames") or 81,
            "max_area": options.get("max_area") or "1280x720",
            "frames_per_second": options.get("fps") or 16,
            "sample_steps": options.get("sample_steps") or 30,
            "sample_guide_scale": options.get("sample_guide_scale") or 6,
            "sample_shift": options.get("sample_shift") or 8,
        }
        if options.get("fast_mode"):
            payload["fast_mode"] = options["fast_mode"]
        return payload
    # Stable Video Diffusion
    return {
        "input_image": image_url,
        "fps": options.get("fps") or 25,
        "motion_bucket_id": options.get("motion_bucket_id") or 127,
        "cond_aug": options.get("cond_aug") or 0.02,
    }


def first_output_url(output: Any) -> str:
    """Models return either a URL string or a list of URLs."""
    if isinstance(output, list):
        output = output[0] if output else None
    if isinstance(output, str) and output.strip():
        return output.strip()
    raise ProviderError(
        f"Replicate returned no usable output: {output!r}", provider=PROVIDER_NAME
    )


class ReplicateClient:
    """Runs Replicate predictions through the image generation service."""

    def __init__(
        self,
        base_url: str | None = None,
        image_timeout_s: float | None = None,
        video_timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or ProviderConfig.IMAGE_GEN_URL).rstrip("/")
        self._image_timeout_s = image_timeout_s or ProviderConfig.REPLICATE_IMAGE_TIMEOUT_S
        self._video_timeout_s = video_timeout_s or ProviderConfig.REPLICATE_VIDEO_TIMEOUT_S
        self._transport = transport

    def timeout_for(self, model_id: str) -> float:
        return self._video_timeout_s if is_video_model(model_id) else self._image_timeout_s

    async def run(self, model_id: str, model_input: dict[str, Any]) -> Any:
        timeout_s = self.timeout_for(model_id)
        url = f"{self._base_url}/api/replicate"
        logger.info("Replicate prediction %s (timeout %.0fs)", model_id, timeout_s)

        try:
            async with httpx.AsyncClient(timeout=timeout_s, transport=self._transport) as client:
                resp = await client.post(url, json={"model": model_id, "input": model_input})
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Replicate request for {model_id} timed out after {timeout_s:.0f}s. "
                "The generation is taking longer than expected, possibly due to queue.",
                timeout_s=timeout_s,
                provider=PROVIDER_NAME,
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                f"Image generation service at {self._base_url} is not reachable: {e}",
                provider=PROVIDER_NAME,
            ) from e

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error") or resp.reason_phrase
            except ValueError:
                detail = resp.reason_phrase
            raise ProviderError(
                f"Image service error for {model_id}: {detail}",
                provider=PROVIDER_NAME,
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise ProviderError(
                f"Image service returned malformed JSON for {model_id}", provider=PROVIDER_NAME
            ) from e
        if not isinstance(body, dict) or "output" not in body:
            raise ProviderError(
                f"Image service response for {model_id} has no output", provider=PROVIDER_NAME
            )
        return body["output"]

    async def generate_image(
        self, prompt: str, model_id: str | None = None, options: dict[str, Any] | None = None
    ) -> list[str]:
        model_id = model_id or recommended_model("generate-image").id
        output = await self.run(model_id, build_image_input(prompt, model_id, options or {}))
        if isinstance(output, list):
            return [str(u) for u in output]
        return [first_output_url(output)]

    async def generate_contextual_image(
        self,
        prompt: str,
        reference_image: str,
        model_id: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> str:
        model_id = model_id or recommended_model("contextual-image").id
        options = options or {}
        output = await self.run(
            model_id,
            {
                "prompt": prompt,
                "reference_image": reference_image,
                "style_reference": options.get("style_reference"),
                "character_consistency": options.get("character_consistency", True),
                "local_editing": options.get("local_editing", False),
                "width": options.get("width") or 1024,
                "height": options.get("height") or 1024,
            },
        )
        return first_output_url(output)

    async def generate_video(
        self, image_url: str, model_id: str | None = None, options: dict[str, Any] | None = None
    ) -> str:
        model_id = model_id or recommended_model("create-video").id
        output = await self.run(model_id, build_video_input(image_url, model_id, options or {}))
        return first_output_url(output)

    async def generate_audio(
        self, prompt: str, model_id: str | None = None, options: dict[str, Any] | None = None
    ) -> str:
        model_id = model_id or recommended_model("generate-audio").id
        options = options or {}
        output = await self.run(
            model_id,
            {"prompt": prompt, "duration": options.get("duration") or 30},
        )
        return first_output_url(output)
