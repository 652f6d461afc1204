from datetime import datetime
from pathlib import Path
from typing import Optional
from fastapi import APIRouter, Depends, Query
from app.api.routes_runs import get_settings
from app.core.config import Settings
from app.core.workflow import WELL_KNOWN_ARTIFACTS
from app.schemas.runs import ArtifactInfo, ArtifactsResponse

router = APIRouter(prefix="/artifacts")

@router.get("", response_model=ArtifactsResponse)
def list_artifacts(work_dir: Optional[str] = Query(None, alias="workDir"), cfg: Settings = Depends(get_settings)):
    root = Path(work_dir or cfg.work_dir)
    artifacts = []
    for name in WELL_KNOWN_ARTIFACTS:
        path = root / name
        if path.is_file():
            stat = path.stat()
            artifacts.append(ArtifactInfo(
                path=name,
                size=stat.st_size,
                last_modified=datetime.fromtimestamp(stat.st_mtime),
            ))
    return ArtifactsResponse(work_dir=str(root), artifacts=artifacts)
