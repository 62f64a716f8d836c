from __future__ import annotations

from multiroom.agents.prompt_library import DEFAULT_AGENT, AgentPromptLibrary


def test_agent_name_lookup(tmp_path):
    library = AgentPromptLibrary(tmp_path)

    assert library.agent_name("claude", "testing") == "tdd-validation-agent"
    assert library.agent_name("openai", "optimization") == "va-performance-engineer"
    assert library.agent_name("gemini", "testing") == DEFAULT_AGENT
    assert library.agent_name("mistral", "reasoning") == DEFAULT_AGENT


def test_prompt_read_from_agents_dir(tmp_path):
    (tmp_path / "va-ui-designer.md").write_text("You design interfaces.", encoding="utf-8")

    assert AgentPromptLibrary(tmp_path).get_prompt("gemini", "multimodal") == "You design interfaces."


def test_generic_prompt_when_file_missing(tmp_path):
    prompt = AgentPromptLibrary(tmp_path / "absent").get_prompt("grok", "real_time")

    assert prompt == "You are a real_time specialist. Complete the task thoroughly and provide detailed output."


def test_custom_agent_map(tmp_path):
    (tmp_path / "reviewer.md").write_text("Review carefully.", encoding="utf-8")
    library = AgentPromptLibrary(tmp_path, agent_map={"claude": {"reasoning": "reviewer"}})

    assert library.get_prompt("claude", "reasoning") == "Review carefully."
    assert library.agent_name("claude", "testing") == DEFAULT_AGENT
