"""
runbook-synth - alert-driven troubleshooting checklists

Turns an incoming operational alert into a ranked, LLM-generated
troubleshooting checklist grounded in your runbooks, then delivers it to
chat, incident and webhook destinations.
"""

__version__ = "0.1.0"

# Core API exports
from .config import SynthConfig
from .models import Alert, AlertSeverity, DynamicChecklist, WebhookResult
from .services import Services, build_services

__all__ = [
    "Alert",
    "AlertSeverity",
    "DynamicChecklist",
    "WebhookResult",
    "SynthConfig",
    "Services",
    "build_services",
    "__version__",
]
