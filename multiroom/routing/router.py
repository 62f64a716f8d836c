"""MultiProviderRouter: lexical task classification and provider route selection.

Routing happens in three passes, stopping at the first that yields routes:
1. Keyword rules, in rule-table order, one route per distinct provider
2. Task-type mapping for the inferred task type (confidence 0.7)
3. Hard-coded default provider `claude` (confidence 0.5)

Keyword matching is deliberately loose: a keyword is present when any
whitespace-separated token of the lower-cased task contains it as a substring
("test" matches "testing" and "testosterone").
"""

from __future__ import annotations

from collections.abc import Mapping
import os
from pathlib import Path

import structlog

from multiroom.core.config_loader import load_routing_config
from multiroom.models.routing_models import (
    ProviderProfile,
    RouteDecision,
    RoutingConfig,
    TaskAnalysis,
    TaskType,
)

log = structlog.get_logger(__name__)

DEFAULT_PROVIDER = "claude"
TASK_TYPE_CONFIDENCE = 0.7
DEFAULT_ROUTE_CONFIDENCE = 0.5

# First matching category wins.
_TASK_TYPE_KEYWORDS: tuple[tuple[TaskType, frozenset[str]], ...] = (
    (TaskType.testing, frozenset({"test", "validate", "verify"})),
    (TaskType.code_generation, frozenset({"code", "build", "implement"})),
    (TaskType.multimodal, frozenset({"image", "design", "visual"})),
    (TaskType.real_time, frozenset({"real-time", "news", "current", "latest", "live"})),
    (TaskType.reasoning, frozenset({"reason", "analyze", "explain", "plan"})),
)


class NoProvidersAvailableError(RuntimeError):
    """No configured provider is both enabled and has its credential set."""


class MultiProviderRouter:
    """Pure classifier over an immutable routing config and an environment snapshot."""

    def __init__(self, config: RoutingConfig, *, env: Mapping[str, str] | None = None) -> None:
        self._config = config
        environ = os.environ if env is None else env
        self._enabled_providers: list[str] = []

        for name, profile in config.providers.items():
            if not profile.enabled:
                continue
            if environ.get(profile.api_key_env):
                self._enabled_providers.append(name)
                log.info("provider_ready", provider=name, model=profile.model)
            else:
                log.warning("provider_missing_credential", provider=name, api_key_env=profile.api_key_env)

        if not self._enabled_providers:
            raise NoProvidersAvailableError("No providers available. Set at least ANTHROPIC_API_KEY.")

    @classmethod
    def from_path(cls, path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> MultiProviderRouter:
        return cls(load_routing_config(path), env=env)

    @property
    def config(self) -> RoutingConfig:
        return self._config

    def classify(self, task_description: str) -> TaskAnalysis:
        """Analyze a task and determine its ordered provider routes."""
        keywords = self._extract_keywords(task_description)
        task_type = self._infer_task_type(keywords)
        routes = self._determine_routes(keywords, task_type)
        parallelizable = len(routes) > 1 and self._config.execution_rules.parallel_execution.enabled

        log.info(
            "task_classified",
            keywords=keywords,
            task_type=task_type.value,
            routes=[r.provider for r in routes],
            parallelizable=parallelizable,
        )
        return TaskAnalysis(keywords=keywords, task_type=task_type, routes=routes, parallelizable=parallelizable)

    def _extract_keywords(self, text: str) -> list[str]:
        words = text.lower().split()
        return [kw for kw in self._config.routing_rules.keyword_to_provider if any(kw in w for w in words)]

    @staticmethod
    def _infer_task_type(keywords: list[str]) -> TaskType:
        found = set(keywords)
        for task_type, members in _TASK_TYPE_KEYWORDS:
            if found & members:
                return task_type
        return TaskType.reasoning

    def _determine_routes(self, keywords: list[str], task_type: TaskType) -> list[RouteDecision]:
        routes: list[RouteDecision] = []
        seen: set[str] = set()
        rules = self._config.routing_rules

        for keyword in keywords:
            rule = rules.keyword_to_provider.get(keyword)
            if rule is None or rule.primary in seen or not self._is_available(rule.primary):
                continue
            routes.append(
                RouteDecision(
                    provider=rule.primary,
                    confidence=rule.confidence,
                    reason=f"Keyword '{keyword}' matched",
                    fallback=rule.fallback if self._is_available(rule.fallback) else None,
                )
            )
            seen.add(rule.primary)

        if not routes:
            mapping = rules.task_type_mapping.get(task_type.value)
            if mapping is not None and self._is_available(mapping.preferred):
                routes.append(
                    RouteDecision(
                        provider=mapping.preferred,
                        confidence=TASK_TYPE_CONFIDENCE,
                        reason=f"Task type '{task_type.value}' preferred",
                        fallback=mapping.secondary if self._is_available(mapping.secondary) else None,
                    )
                )

        if not routes and self._is_available(DEFAULT_PROVIDER):
            routes.append(
                RouteDecision(
                    provider=DEFAULT_PROVIDER,
                    confidence=DEFAULT_ROUTE_CONFIDENCE,
                    reason="Default fallback",
                    fallback=None,
                )
            )

        return routes

    def _is_available(self, provider: str | None) -> bool:
        return provider is not None and provider in self._enabled_providers

    def is_enabled(self, provider: str) -> bool:
        return self._is_available(provider)

    def get_provider_config(self, name: str) -> ProviderProfile | None:
        return self._config.providers.get(name)

    def get_enabled_providers(self) -> list[str]:
        return list(self._enabled_providers)

    def can_run_parallel(self) -> bool:
        return len(self._enabled_providers) > 1 and self._config.execution_rules.parallel_execution.enabled

    def get_max_parallel_rooms(self) -> int:
        return min(self._config.execution_rules.parallel_execution.max_parallel_rooms, len(self._enabled_providers))
