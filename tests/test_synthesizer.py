"""Tests for KnowledgeSynthesizer collection, extraction and report rendering."""
from __future__ import annotations

from multiroom.aggregator.synthesizer import KnowledgeSynthesizer
from multiroom.models.synthesis_models import RoomOutput


def _output(provider: str, content: str, timestamp: int = 1700000000000) -> RoomOutput:
    return RoomOutput(provider=provider, execution_id=f"{provider}-{timestamp}", content=content, timestamp=timestamp)


# =============================================================================
# Collection
# =============================================================================

def test_collect_outputs_missing_dir_returns_empty(tmp_path):
    assert KnowledgeSynthesizer(tmp_path / "does-not-exist").collect_outputs() == []


def test_collect_outputs_parses_filename(tmp_path):
    content = "# Title\n\nBody with ünïcode"
    (tmp_path / "agent-openai-1700000000000-output.md").write_text(content, encoding="utf-8")

    outputs = KnowledgeSynthesizer(tmp_path).collect_outputs()

    assert len(outputs) == 1
    out = outputs[0]
    assert out.provider == "openai"
    assert out.timestamp == 1700000000000
    assert out.execution_id == "openai-1700000000000"
    assert out.content == content


def test_collect_outputs_sorted_and_skips_non_conforming(tmp_path):
    (tmp_path / "agent-grok-1700000000300-ab12cd-output.md").write_text("grok", encoding="utf-8")
    (tmp_path / "agent-claude-1700000000100-output.md").write_text("claude", encoding="utf-8")
    (tmp_path / "agent-openai-1700000000200-output.md").write_text("openai", encoding="utf-8")
    (tmp_path / "agent-openai-1700000000200-complete.flag").write_text("x", encoding="utf-8")
    (tmp_path / "final-output.md").write_text("old report", encoding="utf-8")
    (tmp_path / "agent-broken-output.md").write_text("?", encoding="utf-8")
    (tmp_path / "agent-claude-notanumber-output.md").write_text("?", encoding="utf-8")

    outputs = KnowledgeSynthesizer(tmp_path).collect_outputs()

    assert [o.provider for o in outputs] == ["claude", "openai", "grok"]
    assert outputs[-1].execution_id == "grok-1700000000300-ab12cd"


# =============================================================================
# Synthesis
# =============================================================================

def test_recommendations_aggregated_with_provider_tags():
    outputs = [
        _output("claude", "# Plan\n\nIntro\n\n## Recommendations\n- do X\n- do Y\n"),
        _output("openai", "# Other\n\nNo recommendations here."),
    ]

    result = KnowledgeSynthesizer("unused").synthesize(outputs)

    assert result.recommendations == ["[claude] do X", "[claude] do Y"]


def test_recommendations_stop_at_next_section_and_accept_variants():
    content = (
        "## Next Steps\n"
        "* migrate the schema\n"
        "plain line is ignored\n"
        "  - indented bullet\n"
        "## Appendix\n"
        "- not a recommendation\n"
    )

    result = KnowledgeSynthesizer("unused").synthesize([_output("gemini", content)])

    assert result.recommendations == ["[gemini] migrate the schema", "[gemini] indented bullet"]


def test_section_titles_use_first_top_level_heading_or_default():
    outputs = [
        _output("claude", "Intro text\n\n## Sub heading\n\n# Real Title\n\nmore"),
        _output("openai", "## Only second level\n\ntext"),
    ]

    result = KnowledgeSynthesizer("unused").synthesize(outputs)

    assert [s.title for s in result.sections] == ["Real Title", "openai Output"]
    assert result.sections[0].content == outputs[0].content


def test_section_title_stops_at_crlf():
    result = KnowledgeSynthesizer("unused").synthesize([_output("claude", "# Report\r\n\r\nbody\r\n")])

    assert result.sections[0].title == "Report"


def test_artifacts_keep_only_significant_code_blocks():
    big = "```python\n" + "x = 1\n" * 30 + "```"
    small = "```\nprint(1)\n```"
    outputs = [_output("openai", f"Code:\n\n{small}\n\n{big}\n")]

    result = KnowledgeSynthesizer("unused").synthesize(outputs)

    assert result.artifacts == [f"[openai] {big[:50]}..."]


def test_summary_uses_first_paragraph_truncated():
    long_paragraph = "a" * 300
    outputs = [
        _output("claude", "First paragraph.\n\nSecond paragraph."),
        _output("grok", long_paragraph),
    ]

    result = KnowledgeSynthesizer("unused").synthesize(outputs)

    assert result.summary == (
        "# Synthesized Results\n\n"
        "**CLAUDE**: First paragraph....\n\n"
        f"**GROK**: {'a' * 200}..."
    )


def test_metadata_duration_spans_timestamps():
    outputs = [_output("claude", "a", 1000), _output("openai", "b", 4500), _output("grok", "c", 2000)]

    result = KnowledgeSynthesizer("unused").synthesize(outputs)

    assert result.metadata.total_providers == 3
    assert result.metadata.total_duration == 3500
    assert result.metadata.synthesized_at


def test_metadata_for_empty_outputs():
    result = KnowledgeSynthesizer("unused").synthesize([])

    assert result.metadata.total_providers == 0
    assert result.metadata.total_duration == 0
    assert result.summary == "# Synthesized Results\n\n"


# =============================================================================
# Report writing
# =============================================================================

def test_write_final_output_renders_sections_and_metadata(tmp_path):
    synth = KnowledgeSynthesizer(tmp_path)
    result = synth.synthesize(
        [
            _output("claude", "# Review\n\nLooks fine.\n\n## Recommendations\n- add tests\n"),
            _output("openai", "Plain answer."),
        ]
    )
    (tmp_path / "final-output.md").write_text("stale", encoding="utf-8")

    path = synth.write_final_output(result)

    text = path.read_text(encoding="utf-8")
    assert path == tmp_path / "final-output.md"
    assert text.startswith("# Synthesized Results\n\n")
    assert "## Review (CLAUDE)\n\n# Review" in text
    assert "## openai Output (OPENAI)\n\nPlain answer.\n\n---\n\n" in text
    assert "## Aggregated Recommendations\n\n- [claude] add tests\n" in text
    assert "- **Providers Used**: 2\n" in text
    assert "- **Artifacts Found**: 0\n" in text
    assert "stale" not in text


def test_write_final_output_omits_empty_recommendations(tmp_path):
    synth = KnowledgeSynthesizer(tmp_path)

    path = synth.write_final_output(synth.synthesize([_output("openai", "Plain answer.")]))

    assert "Aggregated Recommendations" not in path.read_text(encoding="utf-8")


def test_run_without_outputs_writes_nothing(tmp_path):
    synth = KnowledgeSynthesizer(tmp_path)

    assert synth.run() is None
    assert not (tmp_path / "final-output.md").exists()


def test_run_collects_and_writes_without_consuming_inputs(tmp_path):
    (tmp_path / "agent-claude-1700000000000-output.md").write_text("# A\n\nbody", encoding="utf-8")

    path = KnowledgeSynthesizer(tmp_path).run()

    assert path == tmp_path / "final-output.md"
    assert "## A (CLAUDE)" in path.read_text(encoding="utf-8")
    assert (tmp_path / "agent-claude-1700000000000-output.md").exists()
    # The report itself is never collected as an input.
    assert len(KnowledgeSynthesizer(tmp_path).collect_outputs()) == 1
