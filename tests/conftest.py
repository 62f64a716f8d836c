from __future__ import annotations

from typing import Any

import pytest

from multiroom.agents.prompt_library import AgentPromptLibrary
from multiroom.aggregator.synthesizer import KnowledgeSynthesizer
from multiroom.core.orchestrator import MultiAgentOrchestrator
from multiroom.models.routing_models import RoutingConfig
from multiroom.rooms.executor import RoomExecutor
from multiroom.routing.router import MultiProviderRouter


def _routing_doc() -> dict[str, Any]:
    return {
        "providers": {
            "claude": {"name": "claude", "api_key_env": "ANTHROPIC_API_KEY", "model": "claude-test", "priority": 1,
                       "room_path": "~/rooms/claude", "fallback_provider": "openai"},
            "openai": {"name": "openai", "api_key_env": "OPENAI_API_KEY", "model": "gpt-test", "priority": 2,
                       "room_path": "/tmp/rooms/openai", "fallback_provider": "claude"},
            "gemini": {"name": "gemini", "api_key_env": "GOOGLE_API_KEY", "model": "gemini-test", "priority": 3},
            "grok": {"name": "grok", "api_key_env": "XAI_API_KEY", "model": "grok-test", "priority": 4},
        },
        "routing_rules": {
            "keyword_to_provider": {
                "test": {"primary": "claude", "fallback": "openai", "confidence": 0.9},
                "analyze": {"primary": "claude", "fallback": "openai", "confidence": 0.8},
                "build": {"primary": "openai", "fallback": "claude", "confidence": 0.6},
                "code": {"primary": "openai", "fallback": "claude", "confidence": 0.8},
                "design": {"primary": "gemini", "fallback": "openai", "confidence": 0.8},
                "news": {"primary": "grok", "fallback": "claude", "confidence": 0.85},
            },
            "task_type_mapping": {
                "testing": {"preferred": "claude", "secondary": "openai"},
                "code_generation": {"preferred": "openai", "secondary": "claude"},
                "multimodal": {"preferred": "gemini", "secondary": "openai"},
                "real_time": {"preferred": "claude", "secondary": "grok"},
                "reasoning": {"preferred": "claude", "secondary": "openai"},
            },
        },
        "execution_rules": {
            "parallel_execution": {"enabled": True, "max_parallel_rooms": 3},
            "context_isolation": {"enabled": True, "auto_compact_threshold": 0.8},
            "fallback_strategy": "retry_with_fallback",
        },
    }


@pytest.fixture
def routing_doc() -> dict[str, Any]:
    return _routing_doc()


@pytest.fixture
def routing_config(routing_doc) -> RoutingConfig:
    return RoutingConfig.model_validate(routing_doc)


@pytest.fixture
def two_provider_env() -> dict[str, str]:
    return {"ANTHROPIC_API_KEY": "sk-ant", "OPENAI_API_KEY": "sk-oai"}


class FakeGateway:
    """Stands in for ProviderGateway; behaviour is looked up per provider."""

    def __init__(self, provider: str, behaviours: dict[str, Any], calls: list[dict[str, Any]], **kwargs: Any) -> None:
        self.provider = provider
        self._behaviours = behaviours
        self._calls = calls
        self.kwargs = kwargs

    async def execute(self, prompt: str, options=None) -> str:
        self._calls.append({"provider": self.provider, "prompt": prompt, **self.kwargs})
        behaviour = self._behaviours.get(self.provider, f"# {self.provider} result\n\nDone.")
        if callable(behaviour):
            behaviour = await behaviour(prompt)
        if isinstance(behaviour, BaseException):
            raise behaviour
        return behaviour


@pytest.fixture
def gateway_calls() -> list[dict[str, Any]]:
    return []


@pytest.fixture
def gateway_behaviours() -> dict[str, Any]:
    return {}


@pytest.fixture
def fake_gateway_factory(gateway_behaviours, gateway_calls):
    def _factory(provider: str, **kwargs: Any) -> FakeGateway:
        return FakeGateway(provider, gateway_behaviours, gateway_calls, **kwargs)

    return _factory


@pytest.fixture
def make_orchestrator(tmp_path, routing_config, two_provider_env, fake_gateway_factory):
    """Build an orchestrator over tmp_path/work with fake gateways."""

    def _make(config: RoutingConfig | None = None, env: dict[str, str] | None = None) -> MultiAgentOrchestrator:
        work_dir = tmp_path / "work"
        router = MultiProviderRouter(config or routing_config, env=two_provider_env if env is None else env)
        executor = RoomExecutor(work_dir, gateway_factory=fake_gateway_factory)
        return MultiAgentOrchestrator(
            router,
            executor,
            KnowledgeSynthesizer(work_dir),
            AgentPromptLibrary(tmp_path / "agents"),
        )

    return _make
