"""
Pipeline and provider exceptions.

Every failure the pipeline can produce is a PipelineError carrying a stable
code and a human-readable message. StoryPipeline turns these into tagged
results; nothing below the facade catches them generically.
"""
from enum import Enum
from typing import Optional

import httpx


class PipelineError(Exception):
    """Base exception for pipeline errors."""

    code = "PIPELINE_ERROR"

    def __init__(self, message: str, provider: Optional[str] = None):
        self.message = message
        self.provider = provider
        super().__init__(f"[{provider}] {message}" if provider else message)


class ValidationFailed(PipelineError):
    """Bad or missing input. No network call was attempted."""

    code = "VALIDATION_FAILED"


class GenerationFailed(ValidationFailed):
    """Storyboard generation refused the input (empty source text)."""

    code = "GENERATION_FAILED"


class ErrorKind(str, Enum):
    """Classification of transient upstream failures."""
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    NETWORK = "network"
    SERVER = "server"


class UpstreamTransient(PipelineError):
    """Timeout / 5xx / network / rate limit. Eligible for retry."""

    code = "UPSTREAM_TRANSIENT"

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, provider)
        self.kind = kind
        self.status_code = status_code


class UpstreamPermanent(PipelineError):
    """4xx other than 429, bad credentials, malformed provider reply. Never retried."""

    code = "UPSTREAM_PERMANENT"

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, provider)
        self.status_code = status_code


class ParseFailed(PipelineError):
    """Model output could not be parsed, even after repair."""

    code = "PARSE_FAILED"


class PersistenceFailed(PipelineError):
    """Record Store / Blob Store write error."""

    code = "PERSISTENCE_FAILED"


class MissingExternalReference(PipelineError):
    """A video task record has no provider task id to poll with."""

    code = "MISSING_EXTERNAL_REFERENCE"


class TaskNotFound(PipelineError):
    """No video task record under the given id."""

    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        super().__init__(f"任务不存在: {task_id}")
        self.task_id = task_id


def classify_http_error(exc: Exception, provider: Optional[str] = None) -> PipelineError:
    """
    Map an httpx exception onto the pipeline taxonomy.

    429 (or a message mentioning 429) is a rate limit, 5xx is a server error,
    timeouts and transport errors are transient; any other HTTP status is permanent.
    """
    if isinstance(exc, PipelineError):
        return exc

    if isinstance(exc, httpx.TimeoutException):
        return UpstreamTransient(f"Request timed out: {exc}", ErrorKind.TIMEOUT, provider)

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return UpstreamTransient("Rate limited (429)", ErrorKind.RATE_LIMIT, provider, status)
        if status >= 500:
            return UpstreamTransient(f"Server error ({status})", ErrorKind.SERVER, provider, status)
        return UpstreamPermanent(f"HTTP {status}: {exc.response.text[:200]}", provider, status)

    if isinstance(exc, httpx.TransportError):
        return UpstreamTransient(f"Network error: {exc}", ErrorKind.NETWORK, provider)

    if "429" in str(exc):
        return UpstreamTransient(str(exc), ErrorKind.RATE_LIMIT, provider, 429)

    return UpstreamPermanent(str(exc) or exc.__class__.__name__, provider)
