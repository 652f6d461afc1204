from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional

EventType = Literal["chat", "workflow", "file", "complete", "error"]
ChatRole = Literal["user", "assistant", "tool", "system"]
WorkflowState = Literal["idle", "running", "completed", "error"]
FileKind = Literal["markdown", "typescript", "json", "text"]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Envelope(WireModel):
    type: EventType
    data: Any
    timestamp: int


class ChatMessage(WireModel):
    id: str
    role: ChatRole
    content: str
    stage: Optional[int] = None
    stage_name: Optional[str] = Field(None, alias="stageName")
    timestamp: int


class WorkflowStatus(WireModel):
    current_stage: int = Field(..., alias="currentStage")
    stage_name: str = Field(..., alias="stageName")
    stage_description: str = Field(..., alias="stageDescription")
    progress: int = Field(..., ge=0, le=100)
    status: WorkflowState
    total_stages: int = Field(..., alias="totalStages")


class FileContent(WireModel):
    id: str
    name: str
    path: str
    content: str
    kind: FileKind
    size: int
    modified_at: int = Field(..., alias="modifiedAt")


class CompletePayload(WireModel):
    success: bool
    status: str
    total_stages: int = Field(..., alias="totalStages")
    completed_stages: int = Field(..., alias="completedStages")
    degraded_stages: List[int] = Field(default_factory=list, alias="degradedStages")
    artifacts: Dict[str, bool]
    summary: str


class ErrorPayload(WireModel):
    error: str
    details: Optional[str] = None
    recoverable: bool = False
