"""
OpenRouter language-model client.

OpenRouter speaks the OpenAI chat-completions protocol, so the official
`openai` SDK is pointed at the OpenRouter base URL.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from gtm_studio.config import ProviderConfig
from gtm_studio.models.model_catalog import recommended_model
from gtm_studio.services.errors import ProviderError, ProviderTimeoutError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openrouter"

_SCRIPT_PROMPT = """Create a compelling video script for a TikTok video about: {details}

Format the response as:
HOOK: (first 3 seconds)
PROBLEM: (identify pain point)
SOLUTION: (introduce the app)
DEMO: (quick feature showcase)
CTA: (call to action)

Keep it under 60 seconds when read aloud."""

_CAPTION_PROMPT = """Write an engaging {platform} caption for: {content}

Include:
- Attention-grabbing first line
- Relevant hashtags (5-10)
- Call to action
- Emoji usage appropriate for {platform}

Keep it concise and platform-appropriate."""

_METRICS_PROMPT = """Analyze the following task performance data and provide insights:

{data}

Provide:
1. Key performance indicators
2. Trends and patterns
3. Actionable recommendations
4. Predicted outcomes
5. Risk factors"""

_METRICS_SYSTEM = "You are a data analyst specializing in social media marketing and GTM campaigns."

_REPORT_PROMPT = """Generate a comprehensive report for the following GTM task:

{data}

Include:
1. Executive Summary
2. Progress Status
3. Key Achievements
4. Challenges & Solutions
5. Next Steps
6. Resource Requirements"""


class OpenRouterClient:
    """Thin async wrapper around chat completions with provider error mapping."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url or ProviderConfig.OPENROUTER_BASE_URL
        self._timeout_s = timeout_s or ProviderConfig.OPENROUTER_TIMEOUT_S
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                api_key = self._api_key or ProviderConfig.get_openrouter_key()
            except ValueError as e:
                raise ProviderError(str(e), provider=PROVIDER_NAME) from e
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=self._base_url,
                timeout=self._timeout_s,
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> str:
        model = model or recommended_model("generate-script").id
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        logger.info("OpenRouter completion with %s (%d chars)", model, len(prompt))
        try:
            response = await self._get_client().chat.completions.create(
                model=model,
                messages=messages,
            )
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(
                f"OpenRouter request to {model} timed out",
                timeout_s=self._timeout_s,
                provider=PROVIDER_NAME,
            ) from e
        except openai.APIStatusError as e:
            raise ProviderError(
                f"OpenRouter returned {e.status_code} for {model}: {e.message}",
                provider=PROVIDER_NAME,
                status_code=e.status_code,
            ) from e
        except openai.APIError as e:
            raise ProviderError(
                f"OpenRouter request to {model} failed: {e}", provider=PROVIDER_NAME
            ) from e

        if not response.choices or response.choices[0].message.content is None:
            raise ProviderError(
                f"OpenRouter returned no content for {model}", provider=PROVIDER_NAME
            )
        return response.choices[0].message.content.strip()

    async def generate_video_script(self, details: str, model: str | None = None) -> str:
        return await self.complete(_SCRIPT_PROMPT.format(details=details), model)

    async def generate_social_caption(
        self, content: str, platform: str = "tiktok", model: str | None = None
    ) -> str:
        prompt = _CAPTION_PROMPT.format(platform=platform, content=content)
        return await self.complete(prompt, model or recommended_model("post-social").id)

    async def analyze_task_metrics(self, task_data: Any, model: str | None = None) -> str:
        prompt = _METRICS_PROMPT.format(data=json.dumps(task_data, indent=2, default=str))
        return await self.complete(
            prompt,
            model or recommended_model("analyze-metrics").id,
            system_prompt=_METRICS_SYSTEM,
        )

    async def generate_task_report(self, task_info: Any, model: str | None = None) -> str:
        prompt = _REPORT_PROMPT.format(data=json.dumps(task_info, indent=2, default=str))
        return await self.complete(prompt, model or recommended_model("generate-report").id)
