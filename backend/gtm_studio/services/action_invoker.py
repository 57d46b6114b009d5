"""
Action invoker: runs action nodes against external model providers.

Action ids map to async handler functions through a registry populated at
import time with the @action decorator. Callers can register further
actions without touching the scheduler:

    @action("summarize-comments")
    async def _summarize(request: ActionRequest, context: WorkflowContext,
                         providers: Providers) -> dict[str, Any]:
        ...
        return {"type": "summary", ...}

Every handler returns a result payload tagged with a `type`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

from gtm_studio.models.model_catalog import recommended_model
from gtm_studio.providers.openrouter import OpenRouterClient
from gtm_studio.providers.replicate import ReplicateClient
from gtm_studio.services.errors import NodeValidationError
from gtm_studio.services.workflow_context import WorkflowContext

logger = logging.getLogger(__name__)


class Invoker(Protocol):
    async def invoke(
        self,
        action_id: str,
        model_id: str | None,
        model_provider: str | None,
        config: dict[str, Any],
        context: WorkflowContext,
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class ActionRequest:
    action_id: str
    model_id: str | None = None
    model_provider: str | None = None
    config: dict[str, Any] = field(default_factory=dict)

    def model_or_default(self) -> str:
        return self.model_id or self.config.get("model") or recommended_model(self.action_id).id


@dataclass
class Providers:
    openrouter: OpenRouterClient = field(default_factory=OpenRouterClient)
    replicate: ReplicateClient = field(default_factory=ReplicateClient)


ActionHandler = Callable[[ActionRequest, WorkflowContext, Providers], Awaitable[dict[str, Any]]]

_actions: dict[str, ActionHandler] = {}


def action(action_id: str):
    """Decorator that registers an async handler for an action id."""
    def decorator(fn: ActionHandler) -> ActionHandler:
        _actions[action_id] = fn
        return fn
    return decorator


def registered_actions() -> list[str]:
    return sorted(_actions)


class ActionInvoker:
    """Default invoker: dispatches to registered handlers with shared provider clients."""

    def __init__(
        self,
        providers: Providers | None = None,
        handlers: dict[str, ActionHandler] | None = None,
    ):
        self.providers = providers or Providers()
        self._handlers = handlers if handlers is not None else _actions

    async def invoke(
        self,
        action_id: str,
        model_id: str | None,
        model_provider: str | None,
        config: dict[str, Any],
        context: WorkflowContext,
    ) -> dict[str, Any]:
        handler = self._handlers.get(action_id)
        if handler is None:
            raise NodeValidationError(f"Unknown action: {action_id}")
        request = ActionRequest(
            action_id=action_id,
            model_id=model_id,
            model_provider=model_provider,
            config=dict(config or {}),
        )
        return await handler(request, context, self.providers)


# ---------------------------------------------------------------------------
# Upstream lookups
# ---------------------------------------------------------------------------


def _upstream_image_url(context: WorkflowContext) -> str | None:
    """The image produced on this branch, else the first image of the run."""
    url = context.get_variable("image_url")
    if url:
        return url
    for image in context.results_of_type("image"):
        if image.get("url"):
            return image["url"]
    return None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Language model actions (OpenRouter)
# ---------------------------------------------------------------------------

_SCRIPT_BRIEFS = {
    "viral_hook": "Generate 5 viral Christian video hooks that grab attention immediately. "
                  "Make them emotional and relatable.",
    "bible_verse": "Select an inspiring Bible verse about faith or hope. "
                   "Include the verse reference.",
    "testimony": "Write a short, powerful testimony story about transformation through faith. "
                 "30-60 seconds when spoken.",
    "prayer": "Write a short, heartfelt prayer for peace and guidance. "
              "Make it personal and relatable.",
}


@action("generate-script")
async def _generate_script(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    script_type = request.config.get("type")
    brief = _SCRIPT_BRIEFS.get(script_type) or request.config.get("prompt") \
        or "Write engaging content for social media"
    model = request.model_or_default()

    content = await providers.openrouter.generate_video_script(brief, model)
    context.set_variable("generated_prompt", content)
    return {
        "type": "script",
        "subtype": script_type,
        "content": content,
        "model": model,
        "config": request.config,
    }


@action("generate-variation")
async def _generate_variation(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    prompt = request.config.get("prompt")
    if not prompt:
        raise NodeValidationError("generate-variation requires a 'prompt' in config")
    model = request.model_or_default()
    content = await providers.openrouter.complete(prompt, model)
    return {"type": "script", "subtype": "variation", "content": content, "model": model}


@action("post-social")
async def _post_social(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    media = {
        "images": [r["url"] for r in context.results_of_type("image") if r.get("url")],
        "videos": [r["url"] for r in context.results_of_type("video") if r.get("url")],
        "scripts": [r["content"] for r in context.results_of_type("script") if r.get("content")],
    }
    platform = request.config.get("platform")

    if request.config.get("bulk"):
        return {
            "type": "social_post",
            "bulk": True,
            "platform": platform or "multi",
            "media": media,
            "scheduled": _now(),
            "count": len(media["videos"]) or len(media["images"]),
        }

    platform = platform or "tiktok"
    caption = await providers.openrouter.generate_social_caption(
        media["scripts"][0] if media["scripts"] else "Christian content",
        platform,
        request.model_id,
    )
    return {
        "type": "social_post",
        "platform": platform,
        "caption": caption,
        "media": (media["videos"] or media["images"] or [None])[0],
        "scheduled": _now(),
        "posted": False,
    }


@action("analyze-metrics")
async def _analyze_metrics(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    task = context.task or {"id": "workflow-task", "name": context.workflow.name}
    analysis = await providers.openrouter.analyze_task_metrics(task, request.model_id)
    return {"type": "metrics", "analysis": analysis, "timestamp": _now()}


@action("generate-report")
async def _generate_report(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    report = await providers.openrouter.generate_task_report(
        {"task": context.task, "results": context.results}, request.model_id
    )
    return {"type": "report", "content": report, "timestamp": _now()}


@action("audience-segmentation")
async def _audience_segmentation(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    segments = request.config.get("segments") or ["young-adults", "families", "seniors"]
    return {
        "type": "segments",
        "segments": list(segments),
        "recommendations": request.config.get("recommendations")
        or "Focus on family-oriented content",
    }


# ---------------------------------------------------------------------------
# Media actions (Replicate)
# ---------------------------------------------------------------------------


@action("generate-image")
async def _generate_image(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    config = request.config
    prompt = config.get("prompt") or context.get_variable("generated_prompt") \
        or "Beautiful landscape"
    if config.get("style"):
        prompt = f"{prompt}, {config['style']} style"
    model = request.model_or_default()

    urls = await providers.replicate.generate_image(
        prompt,
        model,
        {"width": 1080, "height": 1920, **config},
    )
    context.set_variable("image_url", urls[0])
    return {"type": "image", "url": urls[0], "prompt": prompt, "model": model, "config": config}


@action("contextual-image")
async def _contextual_image(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    reference = _upstream_image_url(context)
    if not reference:
        raise NodeValidationError("No reference image found for contextual generation")
    prompt = request.config.get("prompt") or "Transform with artistic style"
    model = request.model_or_default()

    url = await providers.replicate.generate_contextual_image(
        prompt, reference, model, request.config
    )
    context.set_variable("image_url", url)
    return {
        "type": "image",
        "subtype": "contextual",
        "url": url,
        "source_image": reference,
        "prompt": prompt,
        "model": model,
        "config": request.config,
    }


@action("create-video")
async def _create_video(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    image_url = _upstream_image_url(context)
    if not image_url:
        raise NodeValidationError("No image found for video generation")
    config = request.config
    motion_prompt = (
        f"{config['motion']} motion, professional quality"
        if config.get("motion")
        else "Smooth cinematic motion, subtle animation"
    )
    model = request.model_or_default()

    url = await providers.replicate.generate_video(
        image_url,
        model,
        {
            "prompt": motion_prompt,
            "quality": config.get("quality") or "720p",
            "duration": config.get("duration") or 5,
            "aspect_ratio": config.get("aspectRatio") or "9:16",
            **config,
        },
    )
    context.set_variable("video_url", url)
    return {"type": "video", "url": url, "source_image": image_url, "model": model, "config": config}


@action("generate-audio")
async def _generate_audio(
    request: ActionRequest, context: WorkflowContext, providers: Providers
) -> dict[str, Any]:
    prompt = request.config.get("prompt") or "Peaceful meditation music"
    model = request.model_or_default()
    url = await providers.replicate.generate_audio(prompt, model, request.config)
    context.set_variable("audio_url", url)
    return {"type": "audio", "url": url, "prompt": prompt, "model": model, "config": request.config}
