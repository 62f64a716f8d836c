"""Agent prompt library: markdown agent prompts keyed by provider and task type."""

from __future__ import annotations

from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

DEFAULT_AGENT = "va-fullstack-developer"

AGENT_MAP: dict[str, dict[str, str]] = {
    "claude": {
        "testing": "tdd-validation-agent",
        "reasoning": "va-debugger",
        "code_generation": "va-fullstack-developer",
    },
    "openai": {
        "code_generation": "va-frontend-developer",
        "optimization": "va-performance-engineer",
    },
    "gemini": {
        "multimodal": "va-ui-designer",
    },
    "grok": {
        "real_time": "va-data-researcher",
    },
}


class AgentPromptLibrary:
    """Resolves `<agents_dir>/<agent-name>.md`, with a generic prompt when the file is absent."""

    def __init__(self, agents_dir: str | Path, *, agent_map: dict[str, dict[str, str]] | None = None) -> None:
        self._agents_dir = Path(agents_dir)
        self._agent_map = AGENT_MAP if agent_map is None else agent_map

    def agent_name(self, provider: str, task_type: str) -> str:
        return self._agent_map.get(provider, {}).get(task_type, DEFAULT_AGENT)

    def get_prompt(self, provider: str, task_type: str) -> str:
        name = self.agent_name(provider, task_type)
        path = self._agents_dir / f"{name}.md"
        if path.is_file():
            return path.read_text(encoding="utf-8")
        log.debug("agent_prompt_missing", agent=name, path=str(path))
        return f"You are a {task_type} specialist. Complete the task thoroughly and provide detailed output."
