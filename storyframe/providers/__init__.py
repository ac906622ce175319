"""
Providers Layer.

HTTP clients for the three generative services:
- Chat completion (storyboards, character cards)
- Image generation (scene candidates)
- Image-to-video (signed task submission and polling)

Clients raise the pipeline exception taxonomy; fallback decisions live in
the services layer.
"""
from .exceptions import (
    PipelineError,
    ValidationFailed,
    GenerationFailed,
    ErrorKind,
    UpstreamTransient,
    UpstreamPermanent,
    ParseFailed,
    PersistenceFailed,
    MissingExternalReference,
    TaskNotFound,
    classify_http_error,
)
from .signing import sign_request
from .llm import ChatCompletionClient
from .images import ImageGenerationClient
from .video import VideoGenerationClient

__all__ = [
    # Exceptions
    "PipelineError",
    "ValidationFailed",
    "GenerationFailed",
    "ErrorKind",
    "UpstreamTransient",
    "UpstreamPermanent",
    "ParseFailed",
    "PersistenceFailed",
    "MissingExternalReference",
    "TaskNotFound",
    "classify_http_error",

    # Signing
    "sign_request",

    # Clients
    "ChatCompletionClient",
    "ImageGenerationClient",
    "VideoGenerationClient",
]
