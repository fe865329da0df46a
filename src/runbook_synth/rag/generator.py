"""
Checklist generation

Renders the checklist prompt from alert context and retrieved runbook
sections, calls the text-generation provider and parses the response into
an ordered DynamicChecklist.
"""

import asyncio
import logging
import re
from typing import Optional

from ..config import GenerationSettings
from ..errors import GenerationParseError, TransientExternalError, ValidationError
from ..llm_client import LLMProvider
from ..models import (
    ChecklistStep,
    DynamicChecklist,
    EnrichedContext,
    GenerationConfig,
    RetrievedChunk,
    StepPriority,
)
from ..observability.tracer import add_event, set_attribute, trace_async
from .prompts import PromptManager

logger = logging.getLogger(__name__)

MAX_SUMMARY_LENGTH = 200

_STEP_PATTERN = re.compile(
    r"^\s*(?:#{1,6}\s*)?(?:[-*]\s+)?(?:\*\*)?"
    r"(?:Step\s+(?P<step>\d+)(?:\*\*)?\s*[:.)\-]|(?P<num>\d+)[.)](?=\s))"
    r"(?:\*\*)?\s*(?P<text>.*)$",
    re.IGNORECASE,
)
_FIELD_PATTERN = re.compile(
    r"^\s*(?:[-*]\s+)?(?:\*\*)?"
    r"(?P<field>rationale|why|current(?:\s+value)?|expected(?:\s+value)?|priority|commands?)"
    r"(?:\*\*)?\s*:(?:\*\*)?\s*(?P<value>.*)$",
    re.IGNORECASE,
)
_FENCE_OPEN_PATTERN = re.compile(r"^\s*(?:`{3,}[^`]*|~{3,}.*)$")
_FENCE_CLOSE_PATTERN = re.compile(r"^\s*(?:`{3,}|~{3,})\s*$")
_INLINE_CODE = re.compile(r"`([^`]+)`")
_LIST_BULLET = re.compile(r"^\s*[-*+]\s+")
_URGENT_WORDS = ("urgent", "critical", "immediately")


def _clean(text: str) -> str:
    return text.strip().strip("*").strip()


def _commands_from(value: str) -> list[str]:
    inline = [c.strip() for c in _INLINE_CODE.findall(value) if c.strip()]
    if inline:
        return inline
    value = _clean(value)
    return [value] if value else []


def _default_priority(instruction: str) -> StepPriority:
    lowered = instruction.lower()
    if any(word in lowered for word in _URGENT_WORDS):
        return StepPriority.HIGH
    return StepPriority.MEDIUM


class _StepBuilder:
    def __init__(self, instruction: str):
        self.instruction = instruction
        self.rationale: Optional[str] = None
        self.current_value: Optional[str] = None
        self.expected_value: Optional[str] = None
        self.priority: Optional[StepPriority] = None
        self.commands: list[str] = []

    def apply_field(self, field: str, value: str) -> None:
        field = field.lower()
        if field in ("rationale", "why"):
            self.rationale = _clean(value) or None
        elif field.startswith("current"):
            self.current_value = _clean(value) or None
        elif field.startswith("expected"):
            self.expected_value = _clean(value) or None
        elif field == "priority":
            try:
                self.priority = StepPriority(_clean(value).upper())
            except ValueError:
                logger.debug(f"Ignoring unknown step priority: {value!r}")
        else:
            self.commands.extend(_commands_from(value))

    def build(self, order: int) -> ChecklistStep:
        return ChecklistStep(
            order=order,
            instruction=self.instruction,
            rationale=self.rationale,
            current_value=self.current_value,
            expected_value=self.expected_value,
            priority=self.priority or _default_priority(self.instruction),
            commands=self.commands,
        )


def parse_steps(response: str) -> list[ChecklistStep]:
    """
    Parse step markers out of a model response

    Recognizes ``Step N:``, ``**Step N:**``, ``N.`` and ``N)`` markers.
    A marker with nothing after it takes its instruction from the next
    plain line. Steps are renumbered 1..n in the order they appear.

    Raises:
        GenerationParseError: if the response has text but no step markers
    """
    builders: list[_StepBuilder] = []
    in_fence = False

    for line in response.splitlines():
        if in_fence:
            if _FENCE_CLOSE_PATTERN.match(line):
                in_fence = False
            elif builders and line.strip():
                builders[-1].commands.append(line.strip())
            continue
        if _FENCE_OPEN_PATTERN.match(line):
            in_fence = True
            continue

        step_match = _STEP_PATTERN.match(line)
        if step_match:
            builders.append(_StepBuilder(_clean(step_match.group("text"))))
            continue

        field_match = _FIELD_PATTERN.match(line)
        if field_match:
            if builders:
                builders[-1].apply_field(field_match.group("field"), field_match.group("value"))
            continue

        if builders and not builders[-1].instruction:
            builders[-1].instruction = _clean(_LIST_BULLET.sub("", line))

    builders = [builder for builder in builders if builder.instruction]
    if not builders and response.strip():
        raise GenerationParseError("No checklist steps found in model response")

    return [builder.build(order) for order, builder in enumerate(builders, start=1)]


def extract_summary(response: str, alert_title: str) -> str:
    """First non-blank line ahead of the steps, else a generic summary"""
    for line in response.splitlines():
        if _STEP_PATTERN.match(line):
            break
        text = _clean(line.strip().lstrip("#"))
        if text:
            if len(text) > MAX_SUMMARY_LENGTH:
                text = text[: MAX_SUMMARY_LENGTH - 3] + "..."
            return text
    return f"Troubleshooting checklist for {alert_title}"


def distinct_sources(chunks: list[RetrievedChunk]) -> list[str]:
    return list(dict.fromkeys(item.chunk.source_path for item in chunks))


class ChecklistGenerator:
    """
    Turns an enriched alert and its retrieved runbook sections into a
    DynamicChecklist using the configured LLM provider.
    """

    def __init__(
        self,
        provider: LLMProvider,
        prompt_manager: Optional[PromptManager] = None,
        settings: Optional[GenerationSettings] = None,
    ):
        if provider is None:
            raise ValidationError("provider cannot be None")
        self.provider = provider
        self.prompt_manager = prompt_manager or PromptManager()
        self.settings = settings or GenerationSettings()

    def build_prompt(self, context: EnrichedContext, chunks: list[RetrievedChunk]) -> str:
        return self.prompt_manager.render_template(
            self.settings.prompt_template,
            {
                "alert": context.alert,
                "resource": context.resource,
                "metrics": context.recent_metrics,
                "logs": context.recent_logs,
                "chunks": chunks,
            },
        )

    @trace_async("rag.generate")
    async def generate(
        self, context: EnrichedContext, chunks: list[RetrievedChunk]
    ) -> DynamicChecklist:
        """
        Generate a checklist for an alert

        Provider failures and timeouts propagate; an unparsable response
        yields a checklist without steps.
        """
        if context is None or chunks is None:
            raise ValidationError("context and chunks are required")

        alert = context.alert
        prompt = self.build_prompt(context, chunks)
        generation_config = GenerationConfig(
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )
        set_attribute("alert.id", alert.id)
        set_attribute("generation.chunks", len(chunks))
        set_attribute("generation.provider", self.provider.provider_id)

        try:
            response = await asyncio.wait_for(
                self.provider.generate_text(prompt, generation_config),
                timeout=self.settings.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"Generation for alert {alert.id} timed out after {self.settings.timeout_seconds}s"
            )
            raise TransientExternalError(
                f"Text generation timed out after {self.settings.timeout_seconds}s"
            ) from e

        response = response or ""
        try:
            steps = parse_steps(response)
        except GenerationParseError as e:
            logger.warning(f"Could not parse checklist for alert {alert.id}: {e}")
            add_event("checklist_parse_failed", {"response.length": len(response)})
            steps = []

        checklist = DynamicChecklist(
            alert_id=alert.id,
            summary=extract_summary(response, alert.title),
            steps=steps,
            source_runbooks=distinct_sources(chunks),
            llm_provider_used=self.provider.provider_id,
            severity=alert.severity,
            labels=dict(alert.labels),
        )
        set_attribute("checklist.steps", len(steps))
        logger.info(f"Generated checklist with {len(steps)} step(s) for alert {alert.id}")
        return checklist
