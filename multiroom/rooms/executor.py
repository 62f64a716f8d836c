"""RoomExecutor: runs tasks against providers in isolated execution rooms.

Each execution owns exactly two files in the shared working directory, both
derived from its unique execution id:

    agent-<provider>-<millis>-<suffix>-output.md    raw completion or failure document
    agent-<provider>-<millis>-<suffix>-complete.flag  ISO timestamp, or FAILED

Provider and storage failures are contained per execution: they become a
failed record and a failed RoomResult, never an exception out of
run_in_context/run_parallel. The working directory is created on first write.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from pathlib import Path
import time
from typing import Any, Protocol
from uuid import uuid4

import structlog

from multiroom.models.execution_models import (
    ExecutionRecord,
    ExecutionStatus,
    RoomConfig,
    RoomEvent,
    RoomResult,
    RoomTask,
)
from multiroom.providers.gateway import ProviderEndpoint, ProviderGateway, ProviderOptions

log = structlog.get_logger(__name__)

OUTPUT_SUFFIX = "-output.md"
FLAG_SUFFIX = "-complete.flag"
FILE_PREFIX = "agent-"
FAILED_MARKER = "FAILED"

RoomObserver = Callable[[RoomEvent], None]

ISOLATION_INSTRUCTIONS = """## ISOLATION RULES (CRITICAL)
- Work autonomously in isolated context
- Focus ONLY on this specific task
- Write comprehensive output suitable for aggregation
- Do NOT attempt to communicate with other agents"""

OUTPUT_INSTRUCTIONS = """## OUTPUT INSTRUCTIONS
Provide a complete, well-structured response that can be aggregated with other agent outputs.
Include:
1. What you did
2. Key findings or results
3. Any code, configurations, or artifacts produced
4. Recommendations or next steps"""


class RoomNotRegisteredError(LookupError):
    """No execution room is registered for the requested provider."""


class CompletionGateway(Protocol):
    async def execute(self, prompt: str, options: ProviderOptions | None = None) -> str: ...


GatewayFactory = Callable[..., CompletionGateway]


def build_isolated_prompt(task: str, agent_prompt: str) -> str:
    return f"{agent_prompt}\n\n{ISOLATION_INSTRUCTIONS}\n\n## YOUR TASK\n{task}\n\n{OUTPUT_INSTRUCTIONS}\n"


def failure_document(provider: str, error: str) -> str:
    return f"# Execution Failed\n\nProvider: {provider}\nError: {error}\n"


def _is_room_file(name: str, suffix: str) -> bool:
    return name.startswith(FILE_PREFIX) and name.endswith(suffix)


class RoomExecutor:
    """Manages execution rooms and the records of every execution in this process."""

    def __init__(
        self,
        work_dir: str | Path,
        *,
        gateway_factory: GatewayFactory | None = None,
        endpoints: Mapping[str, ProviderEndpoint] | None = None,
        env: Mapping[str, str] | None = None,
        timeout_s: float | None = None,
        max_parallel: int | None = None,
    ) -> None:
        self._work_dir = Path(work_dir)
        self._gateway_factory = gateway_factory or ProviderGateway
        self._endpoints = endpoints
        self._env = env
        self._timeout_s = timeout_s
        self._semaphore = asyncio.Semaphore(max_parallel) if max_parallel else None
        self._rooms: dict[str, RoomConfig] = {}
        self._executions: dict[str, ExecutionRecord] = {}
        self._observers: list[RoomObserver] = []

    @property
    def work_dir(self) -> Path:
        return self._work_dir

    # -------------------------------------------------------------------------
    # Rooms and observers
    # -------------------------------------------------------------------------
    def register_room(self, provider: str, config: RoomConfig) -> None:
        self._rooms[provider] = config
        log.info("room_registered", provider=provider, model=config.model)

    def get_room(self, provider: str) -> RoomConfig | None:
        return self._rooms.get(provider)

    def subscribe(self, observer: RoomObserver) -> Callable[[], None]:
        """Register a progress observer; returns a callable that unsubscribes it."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _emit(self, kind: str, *, provider: str | None = None, execution_id: str | None = None, **payload: Any) -> None:
        if not self._observers:
            return
        event = RoomEvent(kind=kind, provider=provider, execution_id=execution_id, payload=payload)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:  # observers must never break an execution
                log.warning("room_observer_failed", kind=kind, provider=provider, exc_info=True)

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------
    def _new_execution_id(self, provider: str) -> str:
        return f"{provider}-{int(time.time() * 1000)}-{uuid4().hex[:6]}"

    def output_path(self, execution_id: str) -> Path:
        return self._work_dir / f"{FILE_PREFIX}{execution_id}{OUTPUT_SUFFIX}"

    def flag_path(self, execution_id: str) -> Path:
        return self._work_dir / f"{FILE_PREFIX}{execution_id}{FLAG_SUFFIX}"

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------
    async def run_in_context(self, provider: str, task: str, agent_prompt: str) -> RoomResult:
        """Run one task in the provider's room and persist its output."""
        room = self._rooms.get(provider)
        if room is None:
            raise RoomNotRegisteredError(f"No room registered for provider: {provider}")

        execution_id = self._new_execution_id(provider)
        output_file = self.output_path(execution_id)
        flag_file = self.flag_path(execution_id)

        record = ExecutionRecord(
            id=execution_id,
            provider=provider,
            task=task,
            status=ExecutionStatus.running,
            started_at=datetime.now(timezone.utc),
        )
        self._executions[execution_id] = record
        start = time.perf_counter()

        log.info("room_started", provider=provider, execution_id=execution_id)
        self._emit("room_start", provider=provider, execution_id=execution_id, task=task)

        try:
            prompt = build_isolated_prompt(task, agent_prompt)
            gateway = self._gateway_factory(
                provider,
                model=room.model,
                endpoints=self._endpoints,
                env=self._env,
                timeout_s=self._timeout_s,
            )
            if self._semaphore is not None:
                async with self._semaphore:
                    output = await gateway.execute(prompt)
            else:
                output = await gateway.execute(prompt)

            self._work_dir.mkdir(parents=True, exist_ok=True)
            output_file.write_text(output, encoding="utf-8")
            flag_file.write_text(datetime.now(timezone.utc).isoformat(), encoding="utf-8")
        except asyncio.CancelledError:
            self._fail(record, output_file, flag_file, "Execution cancelled")
            raise
        except Exception as e:  # provider and storage failures are contained in this room
            error = str(e) or e.__class__.__name__
            document = self._fail(record, output_file, flag_file, error)
            duration_ms = (time.perf_counter() - start) * 1000.0
            log.warning("room_failed", provider=provider, execution_id=execution_id, error=error)
            self._emit("room_complete", provider=provider, execution_id=execution_id, success=False, error=error)
            return RoomResult(
                room_id=execution_id,
                provider=provider,
                success=False,
                output=document,
                duration_ms=duration_ms,
                output_file=output_file,
                error=error,
            )

        record.status = ExecutionStatus.completed
        record.ended_at = datetime.now(timezone.utc)
        record.output = output
        duration_ms = (time.perf_counter() - start) * 1000.0

        log.info("room_completed", provider=provider, execution_id=execution_id, duration_ms=duration_ms)
        self._emit("room_complete", provider=provider, execution_id=execution_id, success=True)
        return RoomResult(
            room_id=execution_id,
            provider=provider,
            success=True,
            output=output,
            duration_ms=duration_ms,
            output_file=output_file,
        )

    def _fail(self, record: ExecutionRecord, output_file: Path, flag_file: Path, error: str) -> str:
        document = failure_document(record.provider, error)
        try:
            self._work_dir.mkdir(parents=True, exist_ok=True)
            output_file.write_text(document, encoding="utf-8", errors="replace")
            flag_file.write_text(FAILED_MARKER, encoding="utf-8")
        except OSError:
            log.error("room_failure_not_persisted", execution_id=record.id, exc_info=True)
        record.status = ExecutionStatus.failed
        record.ended_at = datetime.now(timezone.utc)
        record.error = error
        return document

    async def _run_contained(self, item: RoomTask) -> RoomResult:
        try:
            return await self.run_in_context(item.provider, item.task, item.agent_prompt)
        except RoomNotRegisteredError as e:
            log.warning("room_not_registered", provider=item.provider)
            self._emit("room_complete", provider=item.provider, success=False, error=str(e))
            return RoomResult(
                provider=item.provider,
                success=False,
                output=failure_document(item.provider, str(e)),
                error=str(e),
            )

    async def run_parallel(self, tasks: list[RoomTask]) -> list[RoomResult]:
        """Fan out every task concurrently and wait for all of them to settle.

        Results keep the order of `tasks`, not completion order.
        """
        log.info("parallel_started", count=len(tasks))
        self._emit("parallel_start", count=len(tasks))

        results = list(await asyncio.gather(*(self._run_contained(t) for t in tasks)))

        successful = sum(1 for r in results if r.success)
        log.info("parallel_completed", count=len(results), successful=successful, failed=len(results) - successful)
        self._emit(
            "parallel_complete",
            count=len(results),
            successful=successful,
            failed=len(results) - successful,
        )
        return results

    # -------------------------------------------------------------------------
    # Reads and cleanup
    # -------------------------------------------------------------------------
    def read_room_output(self, execution_id: str) -> str | None:
        path = self.output_path(execution_id)
        if path.exists():
            return path.read_text(encoding="utf-8")
        return None

    def is_complete(self, execution_id: str) -> bool:
        return self.flag_path(execution_id).exists()

    def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        return record.model_copy() if record is not None else None

    def list_outputs(self) -> list[str]:
        if not self._work_dir.exists():
            return []
        return sorted(p.name for p in self._work_dir.iterdir() if p.is_file() and _is_room_file(p.name, OUTPUT_SUFFIX))

    def cleanup(self) -> int:
        """Delete every output and completion flag in the working directory. Irreversible."""
        removed = 0
        if self._work_dir.exists():
            for path in self._work_dir.iterdir():
                if path.is_file() and (_is_room_file(path.name, OUTPUT_SUFFIX) or _is_room_file(path.name, FLAG_SUFFIX)):
                    path.unlink()
                    removed += 1
        log.info("workdir_cleaned", work_dir=str(self._work_dir), removed=removed)
        return removed
