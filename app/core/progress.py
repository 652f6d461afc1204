from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional
from app.core.workflow import ExecutionStage


class ProgressKind(str, Enum):
    MESSAGE = "message"
    STAGE_STARTED = "stage_started"
    STAGE_COMPLETED = "stage_completed"
    STAGE_SKIPPED = "stage_skipped"
    STAGE_FAILED = "stage_failed"
    RUN_FINISHED = "run_finished"


class MessageCategory(str, Enum):
    INFO = "info"
    TOOL = "tool"
    TRANSITION = "transition"


@dataclass(frozen=True)
class ProgressRecord:
    kind: ProgressKind
    message: str
    stage: Optional[ExecutionStage] = None
    level: str = "info"
    category: MessageCategory = MessageCategory.INFO
    details: dict = field(default_factory=dict)


ProgressObserver = Callable[[ProgressRecord], None]


def null_observer(record: ProgressRecord) -> None:
    return None
