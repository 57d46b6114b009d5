"""
Shared test doubles for the workflow engine tests.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from gtm_studio.config import PersistenceConfig
from gtm_studio.services.errors import ProviderError


class StubInvoker:
    """
    Invoker double keyed on `config["name"]` (falling back to the action id).

    - payloads: name -> result payload (default: a script payload naming the node)
    - delays:   name -> seconds to sleep before answering
    - failures: names that raise ProviderError
    - fail_variants: batch variant numbers that raise ProviderError
    - sets:     name -> {variable: value} written to the context before answering
    """

    def __init__(
        self,
        payloads: dict[str, Any] | None = None,
        delays: dict[str, float] | None = None,
        failures: set[str] | None = None,
        fail_variants: set[int] | None = None,
        sets: dict[str, dict[str, Any]] | None = None,
    ):
        self.payloads = payloads or {}
        self.delays = delays or {}
        self.failures = failures or set()
        self.fail_variants = fail_variants or set()
        self.sets = sets or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.events: list[tuple[str, str]] = []

    def count(self, name: str) -> int:
        return sum(1 for action_id, config in self.calls if config.get("name", action_id) == name)

    async def invoke(self, action_id, model_id, model_provider, config, context):
        name = config.get("name", action_id)
        self.calls.append((action_id, dict(config)))
        self.events.append((name, "start"))
        await asyncio.sleep(self.delays.get(name, 0))
        self.events.append((name, "end"))

        if name in self.failures:
            raise ProviderError(f"Intentional failure from {name}", provider="stub")
        if config.get("variant") in self.fail_variants:
            raise ProviderError(f"Variant {config['variant']} failed", provider="stub")
        for key, value in self.sets.get(name, {}).items():
            context.set_variable(key, value)
        if name in self.payloads:
            return self.payloads[name]
        if action_id == "generate-variation":
            return {"type": "script", "content": f"variation {config.get('variant')}"}
        return {"type": "script", "content": name}


@pytest.fixture
def make_invoker():
    return StubInvoker


@pytest.fixture(autouse=True)
def no_execution_log(monkeypatch):
    """Never write execution logs to Supabase from tests."""
    monkeypatch.setattr(PersistenceConfig, "PERSIST_EXECUTIONS", False)
