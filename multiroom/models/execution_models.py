"""Pydantic models for room executions and their results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class RoomConfig(BaseModel):
    """Execution context registered for one provider."""

    room_path: str = ""
    model: str | None = None
    api_key_env: str | None = None


class ExecutionRecord(BaseModel):
    """One attempt to run a task against one provider.

    Owned by the RoomExecutor; moves pending -> running -> completed|failed once.
    """

    id: str
    provider: str
    task: str
    status: ExecutionStatus = ExecutionStatus.pending
    started_at: datetime | None = None
    ended_at: datetime | None = None
    output: str | None = None
    error: str | None = None


class RoomTask(BaseModel):
    provider: str
    task: str
    agent_prompt: str = ""


class RoomResult(BaseModel):
    room_id: str | None = None
    provider: str
    success: bool
    output: str
    duration_ms: float = Field(default=0.0, ge=0.0)
    output_file: Path | None = None
    error: str | None = None


RoomEventKind = Literal["room_start", "room_complete", "parallel_start", "parallel_complete"]


class RoomEvent(BaseModel):
    """Progress notification delivered to executor subscribers."""

    kind: RoomEventKind
    provider: str | None = None
    execution_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
