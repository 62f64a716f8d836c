from __future__ import annotations

from pydantic import BaseModel, Field


class RoomOutput(BaseModel):
    """A persisted room output recovered from the working directory."""

    provider: str
    execution_id: str
    content: str
    timestamp: int


class SynthesisSection(BaseModel):
    provider: str
    title: str
    content: str


class SynthesisMetadata(BaseModel):
    total_providers: int = Field(default=0, ge=0)
    synthesized_at: str
    # Milliseconds between the earliest and latest collected output.
    total_duration: int = Field(default=0, ge=0)


class SynthesisResult(BaseModel):
    summary: str
    sections: list[SynthesisSection] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)
    metadata: SynthesisMetadata
