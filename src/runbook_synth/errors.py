"""
Exception taxonomy for runbook-synth

Validation problems are raised synchronously at the call site. External
service failures are split into transient (worth retrying) and permanent
ones so the dispatcher can decide whether to try again.
"""

from typing import Optional


class RunbookSynthError(Exception):
    """Base class for all runbook-synth errors"""


class ValidationError(RunbookSynthError, ValueError):
    """Malformed input or configuration"""


class ExternalServiceError(RunbookSynthError):
    """A call to an external collaborator failed"""

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientExternalError(ExternalServiceError):
    """5xx response or transport failure"""

    retryable = True


class PermanentExternalError(ExternalServiceError):
    """4xx response, retrying will not help"""


class GenerationParseError(RunbookSynthError):
    """LLM output could not be turned into checklist steps"""


def classify_status(status_code: int, message: str) -> ExternalServiceError:
    """Build the matching error for a non-2xx HTTP status"""
    if status_code >= 500:
        return TransientExternalError(message, status_code)
    return PermanentExternalError(message, status_code)
