"""
Model catalog: the external models action nodes can invoke.

Language models are served through OpenRouter, media models through the
Replicate proxy. Costs are rough per-call estimates in USD (per 1M tokens
for language models) and only feed the cost estimator.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


MediaType = Literal["text", "image", "video", "audio", "contextual", "vision"]


class ModelSpec(BaseModel):
    id: str
    name: str
    provider: str
    media_type: MediaType
    cost: float


# ---------------------------------------------------------------------------
# Replicate (media)
# ---------------------------------------------------------------------------

REPLICATE_MODELS: dict[str, list[ModelSpec]] = {
    "image": [
        ModelSpec(id="black-forest-labs/flux-1.1-pro-ultra", name="FLUX 1.1 Pro Ultra",
                  provider="Black Forest Labs", media_type="image", cost=0.06),
        ModelSpec(id="google/imagen-4", name="Imagen 4",
                  provider="Google", media_type="image", cost=0.0005),
        ModelSpec(id="black-forest-labs/flux-schnell", name="FLUX Schnell",
                  provider="Black Forest Labs", media_type="image", cost=0.00036),
        ModelSpec(id="stability-ai/sdxl", name="SDXL",
                  provider="Stability AI", media_type="image", cost=0.00032),
    ],
    "video": [
        ModelSpec(id="pixverse/pixverse-v4.5", name="PixVerse v4.5",
                  provider="PixVerse", media_type="video", cost=0.40),
        ModelSpec(id="wavespeedai/wan-2.1-i2v-720p", name="Wan 2.1 I2V 720p",
                  provider="WaveSpeed AI", media_type="video", cost=0.20),
        ModelSpec(id="stability-ai/stable-video-diffusion", name="Stable Video Diffusion",
                  provider="Stability AI", media_type="video", cost=0.15),
    ],
    "audio": [
        ModelSpec(id="riffusion/riffusion", name="Riffusion",
                  provider="Riffusion", media_type="audio", cost=0.002),
        ModelSpec(id="suno-ai/bark", name="Bark",
                  provider="Suno AI", media_type="audio", cost=0.0015),
        ModelSpec(id="stackadoc/stable-audio-open-1.0", name="Stable Audio Open 1.0",
                  provider="Stability AI", media_type="audio", cost=0.002),
    ],
    "contextual": [
        ModelSpec(id="black-forest-labs/flux-kontext-dev", name="FLUX Kontext Dev",
                  provider="Black Forest Labs", media_type="contextual", cost=0.0005),
    ],
}

# ---------------------------------------------------------------------------
# OpenRouter (language)
# ---------------------------------------------------------------------------

OPENROUTER_MODELS: dict[str, list[ModelSpec]] = {
    "fast": [
        ModelSpec(id="deepseek/deepseek-r1-0528-qwen3-8b:free", name="DeepSeek R1 8B (Free)",
                  provider="DeepSeek", media_type="text", cost=0.0),
        ModelSpec(id="google/gemini-2.5-flash", name="Gemini 2.5 Flash",
                  provider="Google", media_type="text", cost=0.38),
    ],
    "balanced": [
        ModelSpec(id="anthropic/claude-sonnet-4", name="Claude Sonnet 4",
                  provider="Anthropic", media_type="text", cost=9.0),
        ModelSpec(id="openai/gpt-4o-mini", name="GPT-4o Mini",
                  provider="OpenAI", media_type="text", cost=0.45),
    ],
    "premium": [
        ModelSpec(id="anthropic/claude-opus-4", name="Claude Opus 4",
                  provider="Anthropic", media_type="text", cost=45.0),
        ModelSpec(id="openai/gpt-4o", name="GPT-4o",
                  provider="OpenAI", media_type="text", cost=7.5),
    ],
}

DEFAULT_TEXT_MODEL = "openai/gpt-4o-mini"

# Action id -> (catalog, category, index)
_RECOMMENDED: dict[str, tuple[dict[str, list[ModelSpec]], str, int]] = {
    "generate-image": (REPLICATE_MODELS, "image", 0),
    "contextual-image": (REPLICATE_MODELS, "contextual", 0),
    "create-video": (REPLICATE_MODELS, "video", 0),
    "generate-audio": (REPLICATE_MODELS, "audio", 0),
    "generate-script": (OPENROUTER_MODELS, "balanced", 0),
    "analyze-metrics": (OPENROUTER_MODELS, "balanced", 0),
    "post-social": (OPENROUTER_MODELS, "fast", 0),
    "generate-report": (OPENROUTER_MODELS, "premium", 0),
    "generate-variation": (OPENROUTER_MODELS, "balanced", 1),
}

_VIDEO_MARKERS = ("video", "i2v", "wan-2.1", "pixverse")


def recommended_model(action_id: str) -> ModelSpec:
    """Default model for an action; GPT-4o Mini when nothing better is known."""
    entry = _RECOMMENDED.get(action_id)
    if entry is None:
        return find_model(DEFAULT_TEXT_MODEL)  # type: ignore[return-value]
    catalog, category, index = entry
    return catalog[category][index]


def find_model(model_id: str) -> ModelSpec | None:
    for catalog in (REPLICATE_MODELS, OPENROUTER_MODELS):
        for specs in catalog.values():
            for spec in specs:
                # Replicate ids may carry a ":<version>" suffix
                if model_id == spec.id or model_id.split(":", 1)[0] == spec.id:
                    return spec
    return None


def is_video_model(model_id: str) -> bool:
    lowered = model_id.lower()
    return any(marker in lowered for marker in _VIDEO_MARKERS)


def estimate_media_cost(model_id: str, media_type: MediaType) -> float:
    """Per-call cost for a media model, falling back to the first model of that type."""
    spec = find_model(model_id)
    if spec is not None:
        return spec.cost
    fallback = REPLICATE_MODELS.get(media_type)
    return fallback[0].cost if fallback else 0.0
