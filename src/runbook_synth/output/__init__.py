"""
Checklist delivery
"""

from .destinations import (
    FileDestination,
    GenericWebhookDestination,
    PagerDutyWebhookDestination,
    SlackWebhookDestination,
    WebhookDestination,
    create_destination,
)
from .dispatcher import DispatchEngine

__all__ = [
    "DispatchEngine",
    "WebhookDestination",
    "GenericWebhookDestination",
    "SlackWebhookDestination",
    "PagerDutyWebhookDestination",
    "FileDestination",
    "create_destination",
]
