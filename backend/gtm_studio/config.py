"""
Runtime configuration for GTM Studio.

Values come from the environment (or backend/.env).
"""

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class ProviderConfig:
    """Settings for the language-model and media-model providers"""

    # OpenRouter (language models)
    OPENROUTER_API_KEY: Optional[str] = os.getenv("OPENROUTER_API_KEY")
    OPENROUTER_BASE_URL: str = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    OPENROUTER_TIMEOUT_S: float = _env_float("OPENROUTER_TIMEOUT_S", 120.0)

    # Replicate proxy (image / video / audio models)
    IMAGE_GEN_URL: str = os.getenv(
        "IMAGE_GEN_URL", "https://cc-image-gen-service-production.up.railway.app"
    )
    # Video generation queues far longer than images
    REPLICATE_IMAGE_TIMEOUT_S: float = _env_float("REPLICATE_IMAGE_TIMEOUT_S", 10 * 60)
    REPLICATE_VIDEO_TIMEOUT_S: float = _env_float("REPLICATE_VIDEO_TIMEOUT_S", 25 * 60)

    @classmethod
    def get_openrouter_key(cls) -> str:
        """
        Get the OpenRouter API key.

        Raises:
            ValueError: If the key is not set
        """
        api_key = cls.OPENROUTER_API_KEY
        if not api_key:
            raise ValueError(
                "OPENROUTER_API_KEY not found. "
                "Please set it in your environment or .env file."
            )
        return api_key


class PersistenceConfig:
    """Settings for the execution log written after each run"""

    PERSIST_EXECUTIONS: bool = _env_flag("WORKFLOW_PERSIST_EXECUTIONS")
