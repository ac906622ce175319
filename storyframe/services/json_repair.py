"""
Two-stage parsing of model output: strict JSON, then a bounded repair.
"""
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from storyframe.providers.exceptions import ParseFailed

# First "{" through the last "}" (greedy), the same span the model is asked to emit.
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")


class ParseStatus(str, Enum):
    OK = "ok"
    REPAIRED = "repaired"
    FAILED = "failed"


@dataclass
class ParseOutcome:
    status: ParseStatus
    value: Optional[Any] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not ParseStatus.FAILED

    def unwrap(self) -> Any:
        if not self.ok:
            raise ParseFailed(self.error or "unparseable model output")
        return self.value


def parse_model_json(text: Optional[str]) -> ParseOutcome:
    """Parse a JSON object from raw model text."""
    if not text or not text.strip():
        return ParseOutcome(ParseStatus.FAILED, error="empty model output")

    try:
        return ParseOutcome(ParseStatus.OK, json.loads(text))
    except json.JSONDecodeError as e:
        strict_error = str(e)

    match = _OBJECT_SPAN.search(text)
    if not match:
        return ParseOutcome(ParseStatus.FAILED, error=f"no JSON object found ({strict_error})")

    try:
        return ParseOutcome(ParseStatus.REPAIRED, json.loads(match.group(0)))
    except json.JSONDecodeError as e:
        return ParseOutcome(ParseStatus.FAILED, error=f"repair failed: {e}")
