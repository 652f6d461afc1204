from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from app.core.config import PipelineConfig
from app.core.workflow import ExecutionStage


class InspectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    work_dir: Optional[str] = Field(None, alias="workDir")


class InspectionResponse(BaseModel):
    next_stage: ExecutionStage
    next_stage_name: str
    existing_artifacts: List[str] = []
    rationale: str
    config_usable: bool
    config_path: Optional[str] = None
    needs_fresh_config: bool


class RunCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    config: PipelineConfig
    start_stage: Optional[ExecutionStage] = Field(None, alias="startStage")


class RunAccepted(BaseModel):
    task_id: str
    work_dir: str
    start_stage: Optional[ExecutionStage] = None


class RunStatusResponse(BaseModel):
    task_id: str
    state: str
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None


class StreamRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input: str = Field(..., examples=["Test the search box on https://example.com"])
    work_dir: Optional[str] = Field(None, alias="workDir")


class ArtifactInfo(BaseModel):
    path: str
    size: int
    last_modified: datetime


class ArtifactsResponse(BaseModel):
    work_dir: str
    artifacts: List[ArtifactInfo]
