"""KnowledgeSynthesizer: merges persisted room outputs into one report."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import re

import structlog

from multiroom.models.synthesis_models import (
    RoomOutput,
    SynthesisMetadata,
    SynthesisResult,
    SynthesisSection,
)

log = structlog.get_logger(__name__)

FINAL_OUTPUT_NAME = "final-output.md"
OUTPUT_GLOB = "agent-*-output.md"
OUTPUT_SUFFIX = "-output.md"

SUMMARY_CHARS = 200
ARTIFACT_MIN_CHARS = 100
ARTIFACT_PREVIEW_CHARS = 50

_TITLE_RE = re.compile(r"^#\s+([^\r\n]+)", re.MULTILINE)
_RECOMMENDATIONS_RE = re.compile(
    r"##\s*(Recommendations?|Next Steps?|Suggestions?)\s*\n(.*?)(?=\n##|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)


class KnowledgeSynthesizer:
    """Reads room outputs from the working directory and writes `final-output.md`."""

    def __init__(self, work_dir: str | Path) -> None:
        self._work_dir = Path(work_dir)

    @property
    def work_dir(self) -> Path:
        return self._work_dir

    def collect_outputs(self) -> list[RoomOutput]:
        """Collect every room output, oldest first.

        Files whose names do not parse as agent-<provider>-<millis>[...]-output.md
        are skipped with a warning.
        """
        if not self._work_dir.is_dir():
            return []

        outputs: list[RoomOutput] = []
        for path in self._work_dir.glob(OUTPUT_GLOB):
            if not path.is_file():
                continue
            stem = path.name[: -len(OUTPUT_SUFFIX)]
            parts = stem.split("-")
            if len(parts) < 3 or not parts[2].isdigit():
                log.warning("synthesis_skipped_malformed_output", file=path.name)
                continue
            outputs.append(
                RoomOutput(
                    provider=parts[1],
                    execution_id=stem[len("agent-"):],
                    content=path.read_text(encoding="utf-8"),
                    timestamp=int(parts[2]),
                )
            )

        return sorted(outputs, key=lambda o: o.timestamp)

    def synthesize(self, outputs: list[RoomOutput]) -> SynthesisResult:
        sections = [
            SynthesisSection(
                provider=o.provider,
                title=self._extract_title(o.content) or f"{o.provider} Output",
                content=o.content,
            )
            for o in outputs
        ]

        timestamps = [o.timestamp for o in outputs]
        total_duration = max(timestamps) - min(timestamps) if timestamps else 0

        return SynthesisResult(
            summary=self._generate_summary(outputs),
            sections=sections,
            recommendations=self._extract_recommendations(outputs),
            artifacts=self._extract_artifacts(outputs),
            metadata=SynthesisMetadata(
                total_providers=len(outputs),
                synthesized_at=datetime.now(timezone.utc).isoformat(),
                total_duration=total_duration,
            ),
        )

    @staticmethod
    def _generate_summary(outputs: list[RoomOutput]) -> str:
        summaries = []
        for o in outputs:
            first_paragraph = o.content.split("\n\n")[0]
            summaries.append(f"**{o.provider.upper()}**: {first_paragraph[:SUMMARY_CHARS]}...")
        return "# Synthesized Results\n\n" + "\n\n".join(summaries)

    @staticmethod
    def _extract_title(content: str) -> str | None:
        match = _TITLE_RE.search(content)
        return match.group(1) if match else None

    @staticmethod
    def _extract_recommendations(outputs: list[RoomOutput]) -> list[str]:
        recommendations: list[str] = []
        for o in outputs:
            match = _RECOMMENDATIONS_RE.search(o.content)
            if not match:
                continue
            for line in match.group(2).split("\n"):
                stripped = line.strip()
                if stripped.startswith(("-", "*")):
                    recommendations.append(f"[{o.provider}] {stripped[1:].strip()}")
        return recommendations

    @staticmethod
    def _extract_artifacts(outputs: list[RoomOutput]) -> list[str]:
        artifacts: list[str] = []
        for o in outputs:
            for block in _CODE_BLOCK_RE.findall(o.content):
                if len(block) > ARTIFACT_MIN_CHARS:
                    artifacts.append(f"[{o.provider}] {block[:ARTIFACT_PREVIEW_CHARS]}...")
        return artifacts

    def write_final_output(self, result: SynthesisResult) -> Path:
        """Render the report and write it to `final-output.md`, replacing any previous one."""
        lines = [f"{result.summary}\n\n", "---\n\n"]

        for section in result.sections:
            lines.append(f"## {section.title} ({section.provider.upper()})\n\n")
            lines.append(f"{section.content}\n\n")
            lines.append("---\n\n")

        if result.recommendations:
            lines.append("## Aggregated Recommendations\n\n")
            lines.extend(f"- {rec}\n" for rec in result.recommendations)
            lines.append("\n")

        lines.append("## Synthesis Metadata\n\n")
        lines.append(f"- **Providers Used**: {result.metadata.total_providers}\n")
        lines.append(f"- **Synthesized At**: {result.metadata.synthesized_at}\n")
        lines.append(f"- **Artifacts Found**: {len(result.artifacts)}\n")

        self._work_dir.mkdir(parents=True, exist_ok=True)
        output_path = self._work_dir / FINAL_OUTPUT_NAME
        output_path.write_text("".join(lines), encoding="utf-8")
        return output_path

    def run(self) -> Path | None:
        """Collect, synthesize and write. Returns None when there is nothing to synthesize."""
        outputs = self.collect_outputs()
        if not outputs:
            log.warning("synthesis_no_outputs", work_dir=str(self._work_dir))
            return None

        log.info("synthesis_collected", count=len(outputs), providers=[o.provider for o in outputs])
        result = self.synthesize(outputs)
        output_path = self.write_final_output(result)
        log.info(
            "synthesis_written",
            path=str(output_path),
            recommendations=len(result.recommendations),
            artifacts=len(result.artifacts),
        )
        return output_path
