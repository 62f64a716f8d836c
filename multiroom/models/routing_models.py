"""Pydantic models for provider profiles, routing rules and routing decisions."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class TaskType(str, Enum):
    testing = "testing"
    code_generation = "code_generation"
    multimodal = "multimodal"
    real_time = "real_time"
    reasoning = "reasoning"
    optimization = "optimization"


class ProviderProfile(BaseModel):
    """Static description of one provider as declared in the routing document."""

    name: str = Field(..., min_length=1)
    api_key_env: str = Field(..., min_length=1)
    model: str
    enabled: bool = True
    priority: int = 0
    strengths: list[str] = Field(default_factory=list)
    room_path: str = ""
    # Weak reference to another profile; unknown names are treated as unavailable.
    fallback_provider: str | None = None


class RoutingRule(BaseModel):
    primary: str
    fallback: str | None = None
    confidence: float = Field(..., ge=0.0, le=1.0)


class TaskTypeMapping(BaseModel):
    preferred: str
    secondary: str | None = None


class RoutingRules(BaseModel):
    # Key order is significant: keyword extraction follows it.
    keyword_to_provider: dict[str, RoutingRule] = Field(default_factory=dict)
    task_type_mapping: dict[str, TaskTypeMapping] = Field(default_factory=dict)


class ParallelExecutionPolicy(BaseModel):
    enabled: bool = True
    max_parallel_rooms: int = Field(default=4, ge=1)


class ContextIsolationPolicy(BaseModel):
    enabled: bool = True
    auto_compact_threshold: float = Field(default=0.8, ge=0.0)


class ExecutionRules(BaseModel):
    parallel_execution: ParallelExecutionPolicy = Field(default_factory=ParallelExecutionPolicy)
    context_isolation: ContextIsolationPolicy = Field(default_factory=ContextIsolationPolicy)
    fallback_strategy: str = "retry_with_fallback"


class RoutingConfig(BaseModel):
    """The validated routing document consumed by the router."""

    providers: dict[str, ProviderProfile]
    routing_rules: RoutingRules = Field(default_factory=RoutingRules)
    execution_rules: ExecutionRules = Field(default_factory=ExecutionRules)


class RouteDecision(BaseModel):
    provider: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str
    fallback: str | None = None


class TaskAnalysis(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    task_type: TaskType = TaskType.reasoning
    routes: list[RouteDecision] = Field(default_factory=list)
    parallelizable: bool = False
