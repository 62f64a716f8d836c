"""Orchestration: analyze -> route -> execute rooms -> synthesize."""

from __future__ import annotations

from collections.abc import Mapping
import os
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field

from multiroom.aggregator.synthesizer import KnowledgeSynthesizer
from multiroom.agents.prompt_library import AgentPromptLibrary
from multiroom.core.settings import Settings
from multiroom.models.execution_models import RoomConfig, RoomResult, RoomTask
from multiroom.models.routing_models import RouteDecision, TaskAnalysis
from multiroom.providers.gateway import ProviderEndpoint, UnknownProviderError
from multiroom.rooms.executor import RoomExecutor
from multiroom.routing.router import MultiProviderRouter

log = structlog.get_logger(__name__)

RETRY_WITH_FALLBACK = "retry_with_fallback"

RunMode = Literal["dry_run", "parallel", "sequential", "none"]


class OrchestrationReport(BaseModel):
    task: str
    analysis: TaskAnalysis
    mode: RunMode
    results: list[RoomResult] = Field(default_factory=list)
    final_output: Path | None = None

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful


def _expand_room_path(room_path: str) -> str:
    home = os.environ.get("HOME") or os.environ.get("USERPROFILE") or ""
    return room_path.replace("~", home, 1) if room_path.startswith("~") else room_path


class MultiAgentOrchestrator:
    """Wires the router, the room executor and the synthesizer together."""

    def __init__(
        self,
        router: MultiProviderRouter,
        executor: RoomExecutor,
        synthesizer: KnowledgeSynthesizer,
        prompts: AgentPromptLibrary,
    ) -> None:
        self._router = router
        self._executor = executor
        self._synthesizer = synthesizer
        self._prompts = prompts
        self._register_rooms()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        env: Mapping[str, str] | None = None,
        endpoints: Mapping[str, ProviderEndpoint] | None = None,
    ) -> MultiAgentOrchestrator:
        router = MultiProviderRouter.from_path(settings.ROUTING_CONFIG_PATH, env=env)
        executor = RoomExecutor(
            settings.WORK_DIR,
            endpoints=endpoints,
            env=env,
            timeout_s=settings.PROVIDER_TIMEOUT_S,
            max_parallel=router.get_max_parallel_rooms(),
        )
        return cls(
            router,
            executor,
            KnowledgeSynthesizer(settings.WORK_DIR),
            AgentPromptLibrary(settings.AGENTS_DIR),
        )

    @property
    def router(self) -> MultiProviderRouter:
        return self._router

    @property
    def executor(self) -> RoomExecutor:
        return self._executor

    @property
    def synthesizer(self) -> KnowledgeSynthesizer:
        return self._synthesizer

    def _register_rooms(self) -> None:
        for provider in self._router.get_enabled_providers():
            profile = self._router.get_provider_config(provider)
            if profile is None:
                continue
            self._executor.register_room(
                provider,
                RoomConfig(
                    room_path=_expand_room_path(profile.room_path),
                    model=profile.model,
                    api_key_env=profile.api_key_env,
                ),
            )

    def analyze(self, task: str, *, provider: str | None = None) -> TaskAnalysis:
        """Classify a task without calling any provider or touching storage."""
        analysis = self._router.classify(task)
        if provider is None:
            return analysis
        if not self._router.is_enabled(provider):
            raise UnknownProviderError(f"Provider not enabled: {provider}", provider=provider)
        forced = RouteDecision(provider=provider, confidence=1.0, reason=f"Provider '{provider}' forced", fallback=None)
        return analysis.model_copy(update={"routes": [forced], "parallelizable": False})

    async def run(
        self,
        task: str,
        *,
        provider: str | None = None,
        parallel: bool | None = None,
        dry_run: bool = False,
        analysis: TaskAnalysis | None = None,
    ) -> OrchestrationReport:
        """Execute `task` end to end. A precomputed `analysis` skips classification."""
        task = task.strip()
        if not task:
            raise ValueError("Task content cannot be empty")

        if analysis is None:
            analysis = self.analyze(task, provider=provider)
        if dry_run:
            return OrchestrationReport(task=task, analysis=analysis, mode="dry_run")
        if not analysis.routes:
            log.warning("orchestrator_no_routes", task=task[:100])
            return OrchestrationReport(task=task, analysis=analysis, mode="none")

        room_tasks = [
            RoomTask(
                provider=route.provider,
                task=task,
                agent_prompt=self._prompts.get_prompt(route.provider, analysis.task_type.value),
            )
            for route in analysis.routes
        ]

        if analysis.parallelizable and parallel is not False:
            mode: RunMode = "parallel"
            results = await self._executor.run_parallel(room_tasks)
        else:
            mode = "sequential"
            results = []
            for room_task in room_tasks:
                results.append(
                    await self._executor.run_in_context(room_task.provider, room_task.task, room_task.agent_prompt)
                )

        results.extend(await self._retry_with_fallbacks(task, analysis, results))

        final_output = self._synthesizer.run()
        report = OrchestrationReport(
            task=task, analysis=analysis, mode=mode, results=results, final_output=final_output
        )
        log.info(
            "orchestrator_completed",
            mode=mode,
            total=len(results),
            successful=report.successful,
            failed=report.failed,
            final_output=str(final_output) if final_output else None,
        )
        return report

    async def _retry_with_fallbacks(
        self, task: str, analysis: TaskAnalysis, results: list[RoomResult]
    ) -> list[RoomResult]:
        if self._router.config.execution_rules.fallback_strategy != RETRY_WITH_FALLBACK:
            return []

        attempted = {r.provider for r in results}
        retried: list[RoomResult] = []
        for route, result in zip(analysis.routes, results):
            if result.success or not route.fallback or route.fallback in attempted:
                continue
            if self._executor.get_room(route.fallback) is None:
                continue
            attempted.add(route.fallback)
            log.info("orchestrator_fallback", provider=route.provider, fallback=route.fallback)
            retried.append(
                await self._executor.run_in_context(
                    route.fallback,
                    task,
                    self._prompts.get_prompt(route.fallback, analysis.task_type.value),
                )
            )
        return retried

    def cleanup(self) -> int:
        return self._executor.cleanup()
