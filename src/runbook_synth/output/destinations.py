"""
Checklist delivery destinations

Each destination turns a DynamicChecklist into its channel's payload and
delivers it once. Failures are raised as TransientExternalError (5xx,
transport) or PermanentExternalError (4xx); retrying is the dispatcher's
job.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from ..config import WebhookConfig
from ..errors import (
    PermanentExternalError,
    TransientExternalError,
    ValidationError,
    classify_status,
)
from ..models import AlertSeverity, DynamicChecklist, isoformat_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

PAGERDUTY_EVENTS_ENDPOINT = "https://events.pagerduty.com/v2/enqueue"
PAGERDUTY_ROUTING_KEY_HEADER = "X-Routing-Key"
PAGERDUTY_SEVERITY = {
    AlertSeverity.CRITICAL: "critical",
    AlertSeverity.WARNING: "warning",
    AlertSeverity.INFO: "info",
}

# Slack allows at most 50 blocks and 3000 characters per text object
SLACK_MAX_STEP_BLOCKS = 45
SLACK_MAX_TEXT = 3000
SLACK_MAX_HEADER = 150

_SLACK_PRIORITY_EMOJI = {"HIGH": ":red_circle:", "MEDIUM": ":large_orange_circle:", "LOW": ":white_circle:"}


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


class WebhookDestination:
    """Base destination posting JSON over HTTP"""

    type = "generic"

    def __init__(
        self,
        config: WebhookConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.config = config
        self._transport = transport
        self._timeout = timeout

    @property
    def name(self) -> str:
        return self.config.name

    def build_payload(self, checklist: DynamicChecklist) -> dict[str, Any]:
        return checklist.to_dict()

    def request_headers(self) -> dict[str, str]:
        return dict(self.config.headers)

    async def send(self, checklist: DynamicChecklist) -> int:
        """Deliver once; returns the 2xx HTTP status on success"""
        payload = self.build_payload(checklist)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self.config.url, json=payload, headers=self.request_headers()
                )
        except httpx.TransportError as e:
            raise TransientExternalError(
                f"Connection error sending to {self.name}: {e}"
            ) from e

        # Redirects are not followed, so a 3xx never reached the receiver.
        if not response.is_success:
            raise classify_status(
                response.status_code,
                f"{self.name} returned HTTP {response.status_code}: {response.text[:200]}",
            )
        return response.status_code


class GenericWebhookDestination(WebhookDestination):
    """POSTs the checklist JSON unchanged"""


class SlackWebhookDestination(WebhookDestination):
    """Slack incoming webhook with Block Kit formatting"""

    type = "slack"

    def _step_block(self, step) -> dict[str, Any]:
        emoji = _SLACK_PRIORITY_EMOJI.get(step.priority.value, "")
        text = f"{emoji} *{step.order}. {step.instruction}*"
        if step.rationale:
            text += f"\n_{step.rationale}_"
        if step.current_value or step.expected_value:
            text += f"\n*Current:* {step.current_value or 'n/a'}  *Expected:* {step.expected_value or 'n/a'}"
        if step.commands:
            commands = "\n".join(step.commands)
            text += f"\n```{commands}```"
        return {"type": "section", "text": {"type": "mrkdwn", "text": _truncate(text, SLACK_MAX_TEXT)}}

    def build_payload(self, checklist: DynamicChecklist) -> dict[str, Any]:
        severity = checklist.severity.value if checklist.severity else "UNKNOWN"
        title = f":rotating_light: Troubleshooting checklist: {checklist.alert_id}"

        blocks: list[dict[str, Any]] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": _truncate(title, SLACK_MAX_HEADER), "emoji": True},
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": _truncate(f"*Severity:* {severity}\n{checklist.summary}", SLACK_MAX_TEXT),
                },
            },
            {"type": "divider"},
        ]

        steps = checklist.steps[:SLACK_MAX_STEP_BLOCKS]
        blocks.extend(self._step_block(step) for step in steps)
        if len(checklist.steps) > len(steps):
            remaining = len(checklist.steps) - len(steps)
            blocks.append(
                {"type": "section", "text": {"type": "mrkdwn", "text": f"_...and {remaining} more step(s)_"}}
            )

        sources = ", ".join(checklist.source_runbooks) or "none"
        blocks.append(
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": _truncate(
                            f"Sources: {sources} | Generated by {checklist.llm_provider_used} "
                            f"at {isoformat_utc(checklist.generated_at)}",
                            SLACK_MAX_TEXT,
                        ),
                    }
                ],
            }
        )

        return {
            "text": f"Troubleshooting checklist for alert {checklist.alert_id}: {checklist.summary}",
            "blocks": blocks,
        }


class PagerDutyWebhookDestination(WebhookDestination):
    """PagerDuty Events API v2 trigger events"""

    type = "pagerduty"

    def __init__(
        self,
        config: WebhookConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(config, transport, timeout)
        routing_key = None
        for header, value in config.headers.items():
            if header.lower() == PAGERDUTY_ROUTING_KEY_HEADER.lower():
                routing_key = value
        if not routing_key:
            raise ValidationError(
                f"PagerDuty destination '{config.name}' needs a {PAGERDUTY_ROUTING_KEY_HEADER} header"
            )
        self.routing_key = routing_key

    def request_headers(self) -> dict[str, str]:
        return {
            key: value
            for key, value in self.config.headers.items()
            if key.lower() != PAGERDUTY_ROUTING_KEY_HEADER.lower()
        }

    def build_payload(self, checklist: DynamicChecklist) -> dict[str, Any]:
        severity = PAGERDUTY_SEVERITY.get(checklist.severity, "info")
        summary = checklist.summary or f"Troubleshooting checklist for alert {checklist.alert_id}"
        return {
            "routing_key": self.routing_key,
            "event_action": "trigger",
            "dedup_key": f"runbook-synth-{checklist.alert_id}",
            "payload": {
                "summary": _truncate(summary, 1024),
                "source": "runbook-synth",
                "severity": severity,
                "timestamp": isoformat_utc(checklist.generated_at),
                "custom_details": checklist.to_dict(),
            },
        }


class FileDestination(WebhookDestination):
    """Writes each checklist as a JSON file into a local directory"""

    type = "file"

    SUCCESS_STATUS = 200

    @property
    def output_dir(self) -> Path:
        url = self.config.url
        if url.startswith("file://"):
            url = url[len("file://"):]
        return Path(url)

    def filename(self, checklist: DynamicChecklist) -> str:
        timestamp = utc_now().strftime("%Y%m%d-%H%M%S-%f")
        return f"checklist-{checklist.alert_id}-{timestamp}.json"

    def _write(self, target: Path, payload: dict[str, Any]) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)

    async def send(self, checklist: DynamicChecklist) -> int:
        target = self.output_dir / self.filename(checklist)
        try:
            await asyncio.to_thread(self._write, target, self.build_payload(checklist))
        except OSError as e:
            raise PermanentExternalError(f"IO error writing {target}: {e}") from e
        logger.debug(f"Wrote checklist for alert {checklist.alert_id} to {target}")
        return self.SUCCESS_STATUS


DESTINATION_TYPES: dict[str, type[WebhookDestination]] = {
    "generic": GenericWebhookDestination,
    "slack": SlackWebhookDestination,
    "pagerduty": PagerDutyWebhookDestination,
    "file": FileDestination,
}


def create_destination(
    config: WebhookConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> WebhookDestination:
    """Build the destination class registered for config.type"""
    destination_cls = DESTINATION_TYPES.get(config.type.lower())
    if destination_cls is None:
        raise ValidationError(
            f"Unknown webhook type '{config.type}'. "
            f"Supported types are: {', '.join(DESTINATION_TYPES)}"
        )
    return destination_cls(config, transport=transport)
