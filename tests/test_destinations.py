"""
Test suite for checklist delivery destinations
"""

import json
import threading

import httpx
import pytest

from runbook_synth.config import WebhookConfig
from runbook_synth.errors import PermanentExternalError, TransientExternalError, ValidationError
from runbook_synth.models import AlertSeverity, ChecklistStep, DynamicChecklist, StepPriority
from runbook_synth.output.destinations import (
    FileDestination,
    GenericWebhookDestination,
    PagerDutyWebhookDestination,
    SlackWebhookDestination,
    create_destination,
)


@pytest.fixture
def checklist():
    return DynamicChecklist(
        alert_id="alert-001",
        summary="Memory pressure on app-server-01",
        steps=[
            ChecklistStep(
                order=1,
                instruction="Check memory consumers",
                rationale="Find the leaking process",
                priority=StepPriority.HIGH,
                commands=["ps aux --sort=-%mem | head"],
            ),
            ChecklistStep(order=2, instruction="Restart the service", expected_value="RSS below 2GB"),
        ],
        source_runbooks=["linux/memory.md"],
        llm_provider_used="mock",
        severity=AlertSeverity.CRITICAL,
        labels={"team": "platform"},
    )


class RecordingTransport:
    """Collects requests and answers with a fixed status"""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="accepted")

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def webhook(type_: str = "generic", **kwargs) -> WebhookConfig:
    kwargs.setdefault("url", "https://hooks.example.com/checklists")
    return WebhookConfig(name=f"{type_}-hook", type=type_, **kwargs)


class TestGenericWebhookDestination:
    @pytest.mark.asyncio
    async def test_posts_checklist_json(self, checklist):
        recorder = RecordingTransport(202)
        destination = GenericWebhookDestination(
            webhook(headers={"Authorization": "Bearer t"}), transport=recorder.transport
        )

        status = await destination.send(checklist)

        assert status == 202
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://hooks.example.com/checklists"
        assert request.headers["Authorization"] == "Bearer t"
        assert recorder.payload() == checklist.to_dict()
        assert "severity" not in recorder.payload()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error",
        [
            (500, TransientExternalError),
            (503, TransientExternalError),
            (400, PermanentExternalError),
            (404, PermanentExternalError),
            (302, PermanentExternalError),
        ],
    )
    async def test_error_statuses_are_classified(self, checklist, status, error):
        destination = GenericWebhookDestination(webhook(), transport=RecordingTransport(status).transport)

        with pytest.raises(error) as exc_info:
            await destination.send(checklist)

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_connection_errors_are_transient(self, checklist):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        destination = GenericWebhookDestination(webhook(), transport=httpx.MockTransport(refuse))

        with pytest.raises(TransientExternalError):
            await destination.send(checklist)


class TestSlackWebhookDestination:
    def test_block_kit_payload(self, checklist):
        payload = SlackWebhookDestination(webhook("slack")).build_payload(checklist)

        blocks = payload["blocks"]
        assert "alert-001" in payload["text"]
        assert blocks[0]["type"] == "header"
        assert "*Severity:* CRITICAL" in blocks[1]["text"]["text"]
        assert blocks[2] == {"type": "divider"}
        assert "*1. Check memory consumers*" in blocks[3]["text"]["text"]
        assert "```ps aux --sort=-%mem | head```" in blocks[3]["text"]["text"]
        assert "*Expected:* RSS below 2GB" in blocks[4]["text"]["text"]
        assert blocks[-1]["type"] == "context"
        assert "linux/memory.md" in blocks[-1]["elements"][0]["text"]

    def test_long_checklists_stay_within_block_limit(self, checklist):
        steps = [ChecklistStep(order=i, instruction=f"Step {i}") for i in range(1, 61)]
        big = checklist.model_copy(update={"steps": steps})

        blocks = SlackWebhookDestination(webhook("slack")).build_payload(big)["blocks"]

        assert len(blocks) <= 50
        assert "15 more step(s)" in blocks[-2]["text"]["text"]

    @pytest.mark.asyncio
    async def test_sends_to_incoming_webhook(self, checklist):
        recorder = RecordingTransport()
        destination = SlackWebhookDestination(webhook("slack"), transport=recorder.transport)

        assert await destination.send(checklist) == 200
        assert "blocks" in recorder.payload()


class TestPagerDutyWebhookDestination:
    def test_requires_routing_key(self):
        with pytest.raises(ValidationError):
            PagerDutyWebhookDestination(webhook("pagerduty"))

    @pytest.mark.asyncio
    async def test_trigger_event(self, checklist):
        recorder = RecordingTransport(202)
        destination = PagerDutyWebhookDestination(
            webhook("pagerduty", headers={"x-routing-key": "R0UT1NG", "X-Extra": "1"}),
            transport=recorder.transport,
        )

        await destination.send(checklist)

        payload = recorder.payload()
        assert payload["routing_key"] == "R0UT1NG"
        assert payload["event_action"] == "trigger"
        assert payload["dedup_key"] == "runbook-synth-alert-001"
        assert payload["payload"]["severity"] == "critical"
        assert payload["payload"]["summary"] == "Memory pressure on app-server-01"
        assert payload["payload"]["custom_details"]["alertId"] == "alert-001"
        headers = recorder.requests[0].headers
        assert "x-routing-key" not in headers
        assert headers["X-Extra"] == "1"


class TestFileDestination:
    @pytest.mark.asyncio
    async def test_writes_checklist_file(self, checklist, temp_dir):
        output_dir = temp_dir / "out"
        destination = FileDestination(webhook("file", url=f"file://{output_dir}"))

        assert await destination.send(checklist) == 200

        files = list(output_dir.glob("checklist-alert-001-*.json"))
        assert len(files) == 1
        assert json.loads(files[0].read_text(encoding="utf-8")) == checklist.to_dict()

    @pytest.mark.asyncio
    async def test_write_runs_off_the_event_loop_thread(self, checklist, temp_dir):
        writer_threads = []

        class RecordingFileDestination(FileDestination):
            def _write(self, target, payload):
                writer_threads.append(threading.current_thread())
                super()._write(target, payload)

        destination = RecordingFileDestination(webhook("file", url=str(temp_dir / "out")))

        await destination.send(checklist)

        assert writer_threads and writer_threads[0] is not threading.current_thread()

    @pytest.mark.asyncio
    async def test_unwritable_directory_is_permanent(self, checklist, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        destination = FileDestination(webhook("file", url=str(blocker / "out")))

        with pytest.raises(PermanentExternalError):
            await destination.send(checklist)


class TestCreateDestination:
    @pytest.mark.parametrize(
        "type_,cls",
        [
            ("generic", GenericWebhookDestination),
            ("SLACK", SlackWebhookDestination),
            ("file", FileDestination),
        ],
    )
    def test_builds_registered_types(self, type_, cls):
        url = "/tmp/checklists" if type_ == "file" else "https://hooks.example.com/x"
        assert type(create_destination(webhook(type_, url=url))) is cls

    def test_unknown_type(self):
        with pytest.raises(ValidationError, match="Unknown webhook type"):
            create_destination(webhook("teams"))
