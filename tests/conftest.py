"""
Pytest configuration and shared fixtures for runbook-synth tests

Provides common fixtures for configuration, providers, alerts, chunks and
runbook documents.
"""

import tempfile
from pathlib import Path
from typing import Any

import pytest

from runbook_synth import config as config_module
from runbook_synth.config import LLMConfig, LLMRouterConfig, SynthConfig
from runbook_synth.llm_client import MockLLMProvider
from runbook_synth.models import (
    Alert,
    AlertSeverity,
    EnrichedContext,
    ResourceMetadata,
    RetrievedChunk,
    RunbookChunk,
)
from runbook_synth.observability.config import TelemetryConfig
from runbook_synth.observability.metrics import reset_metrics

MEMORY_RUNBOOK = """---
title: High Memory Usage
tags: [memory, oom, linux]
applicable_shapes: ["VM.Standard.*", "BM.*"]
---
# High Memory Usage

Use this runbook when a compute instance reports sustained memory pressure.

## Check memory consumers

Identify the processes holding the most resident memory and compare them
against the service baseline recorded in the capacity dashboard.

```bash
ps aux --sort=-%mem | head -n 15
free -m
```

## Inspect the OOM killer

Look for recent OOM killer activity in the kernel ring buffer. Repeated
kills of the same service usually point at a leak rather than load.

```bash
dmesg -T | grep -i "killed process"
```
"""

DISK_RUNBOOK = """---
title: Disk Full
tags: [disk, storage]
applicable_shapes: ["all"]
---
## Find large files

Locate the largest directories on the full filesystem before deleting
anything, and confirm nothing listed is still held open by a process.

```bash
du -xh / --max-depth=2 | sort -rh | head -n 20
```
"""


@pytest.fixture
def test_config():
    """Configuration with the mock provider and telemetry switched off"""
    return SynthConfig(
        llm=LLMConfig(
            default="mock",
            routers={"mock": LLMRouterConfig(provider="mock", embedding_dimensions=64)},
        ),
        telemetry=TelemetryConfig(enabled=False),
    )


@pytest.fixture
def mock_provider():
    return MockLLMProvider(LLMRouterConfig(provider="mock", embedding_dimensions=64))


@pytest.fixture
def sample_alert():
    return Alert(
        id="alert-001",
        title="High memory utilization on app-server-01",
        message="Memory usage above 95% for 10 minutes",
        severity=AlertSeverity.CRITICAL,
        source_service="monitoring",
        dimensions={"resourceId": "ocid1.instance.oc1..app01", "memory": "95"},
        labels={"team": "platform", "env": "prod"},
    )


@pytest.fixture
def sample_resource():
    return ResourceMetadata(
        resource_id="ocid1.instance.oc1..app01",
        display_name="app-server-01",
        shape="VM.Standard.E4.Flex",
        availability_domain="AD-1",
    )


@pytest.fixture
def enriched_context(sample_alert, sample_resource):
    return EnrichedContext(alert=sample_alert, resource=sample_resource)


@pytest.fixture
def make_chunk():
    """Factory for RunbookChunk instances"""

    def _make(
        chunk_id: str = "chunk-1",
        source_path: str = "runbooks/memory.md",
        content: str = "Check memory consumers with ps.",
        **kwargs: Any,
    ) -> RunbookChunk:
        return RunbookChunk(id=chunk_id, source_path=source_path, content=content, **kwargs)

    return _make


@pytest.fixture
def retrieved_chunks(make_chunk):
    return [
        RetrievedChunk.from_scores(
            make_chunk("c1", "runbooks/memory.md", "Check memory consumers", section_title="Memory"),
            0.8,
            0.2,
        ),
        RetrievedChunk.from_scores(
            make_chunk("c2", "runbooks/memory.md", "Inspect the OOM killer", section_title="OOM"),
            0.7,
            0.0,
        ),
        RetrievedChunk.from_scores(
            make_chunk("c3", "runbooks/disk.md", "Find large files", section_title="Disk"),
            0.5,
            0.0,
        ),
    ]


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for testing"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def runbook_root(temp_dir):
    """Runbook tree with one bucket holding two markdown runbooks"""
    bucket = temp_dir / "runbooks" / "ops"
    (bucket / "linux").mkdir(parents=True)
    (bucket / "linux" / "memory.md").write_text(MEMORY_RUNBOOK, encoding="utf-8")
    (bucket / "disk.md").write_text(DISK_RUNBOOK, encoding="utf-8")
    (bucket / "notes.txt").write_text("not a runbook", encoding="utf-8")
    return temp_dir / "runbooks"


@pytest.fixture(autouse=True)
def reset_global_state():
    """Keep the process-wide config and metrics collector isolated per test"""
    yield
    config_module._config = None
    reset_metrics()


def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line(
        "markers", "integration: Integration tests across multiple components"
    )
