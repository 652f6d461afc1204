from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Any
from app.core.workflow import ExecutionStage

USAGE_LIMIT_CODE = "USAGE_LIMIT_REACHED"

# Whole reply the CLI agent sends in place of an answer when throttled, e.g.
# "Claude AI usage limit reached|1760000000".
USAGE_LIMIT_SENTINEL = re.compile(r"^claude ai usage limit reached(?:\|\d+)?$", re.IGNORECASE)

# Lower-case phrases that identify provider throttling. Matching is plain
# substring containment, so a provider wording change can slip through.
USAGE_LIMIT_PATTERNS = (
    "usage limit reached",
    "claude ai usage limit",
    "api usage limit",
    "rate limit",
    "quota exceeded",
    "usage quota",
    "monthly limit",
    "api limit exceeded",
    "claude code process exited with code 1",
    "anthropic api error",
)


class PipelineError(Exception):
    """Base class for errors raised by the pipeline controller and its agents."""


class UsageLimitError(PipelineError):
    code = USAGE_LIMIT_CODE
    retryable = False
    should_exit = True

    def __init__(self, message: str = "Claude AI usage limit reached"):
        super().__init__(message)


class StageExecutionError(PipelineError):
    """An agent step reported failure without raising."""

    def __init__(self, stage: ExecutionStage, message: str):
        super().__init__(f"{stage.display_name} failed: {message}")
        self.stage = stage


class MandatoryStageFailure(PipelineError):
    def __init__(self, stage: ExecutionStage, message: str, missing_artifact: str | None = None):
        super().__init__(message)
        self.stage = stage
        self.missing_artifact = missing_artifact


@dataclass(frozen=True)
class UsageLimitSignal:
    is_usage_limit: bool

    def __bool__(self) -> bool:
        return self.is_usage_limit


def _matches_catalog(text: str) -> bool:
    text = text.lower()
    return any(pattern in text for pattern in USAGE_LIMIT_PATTERNS)


def _field(err: Any, name: str) -> Any:
    if isinstance(err, dict):
        return err.get(name)
    return getattr(err, name, None)


def classify(err: Any) -> UsageLimitSignal:
    """Decide whether ``err`` is provider throttling rather than a real defect.

    Accepts exceptions, mappings or any other value. Structured markers win;
    otherwise both the ``message`` field and ``str(err)`` are checked against
    ``USAGE_LIMIT_PATTERNS``.
    """
    if err is None:
        return UsageLimitSignal(False)

    if _field(err, "code") == USAGE_LIMIT_CODE or _field(err, "retryable") is False:
        return UsageLimitSignal(True)

    message = _field(err, "message")
    if isinstance(message, str) and _matches_catalog(message):
        return UsageLimitSignal(True)

    try:
        text = str(err)
    except Exception:
        return UsageLimitSignal(False)
    return UsageLimitSignal(_matches_catalog(text))


def is_usage_limit_sentinel(text: str) -> bool:
    return bool(USAGE_LIMIT_SENTINEL.match((text or "").strip()))


def message_signals_usage_limit(message: Any) -> bool:
    """Check the text of a provider error notice against the phrase catalog."""
    try:
        text = str(message)
    except Exception:
        return False
    return _matches_catalog(text)
