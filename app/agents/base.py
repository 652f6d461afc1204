from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from app.core.config import PipelineConfig
from app.core.workflow import STAGE_INFO, ExecutionStage

log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z]*\n(.*?)```", re.DOTALL)


@dataclass
class StepOutcome:
    stage: ExecutionStage
    ok: bool
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    artifact_path: Optional[str] = None

    @property
    def error(self) -> Optional[str]:
        return None if self.ok else self.message


class BaseAgent:
    """One pipeline stage backed by the external agent.

    ``execute`` receives the upstream artifact paths for its stage and, on
    success, must have written its output artifact before returning.
    """
    stage: ExecutionStage

    def __init__(self, config: PipelineConfig, executor):
        self.config = config
        self.executor = executor
        self.work_dir = Path(config.work_dir)

    @property
    def output_name(self) -> str:
        return STAGE_INFO[self.stage].output

    @property
    def log_extra(self) -> Dict[str, str]:
        return {"work_dir": str(self.work_dir), "stage": self.stage.name}

    @property
    def output_path(self) -> Path:
        return self.work_dir / self.output_name

    def execute(self, *inputs: Path) -> StepOutcome:
        raise NotImplementedError

    def _read_input(self, path: Path) -> str:
        path = Path(path)
        candidates = [path] if path.is_absolute() else [self.work_dir / path, Path.cwd() / path]
        for candidate in candidates:
            if candidate.is_file():
                log.info("Read input %s", candidate, extra=self.log_extra)
                return candidate.read_text(encoding="utf-8")
        raise FileNotFoundError(f"Input file not found: {path}")

    def _persist_output(self, content: str, extract_code: bool = False) -> Path:
        """Write the agent reply to the output artifact unless the agent already saved it."""
        if self.output_path.exists():
            return self.output_path
        if not content.strip():
            raise RuntimeError(f"Agent produced no content for {self.output_name}")
        if extract_code:
            match = _FENCE_RE.search(content)
            if match:
                content = match.group(1)
        log.info("Agent did not save %s, writing its reply instead", self.output_name, extra=self.log_extra)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_path.write_text(content, encoding="utf-8")
        return self.output_path

    def _ok(self, message: str, **data) -> StepOutcome:
        return StepOutcome(self.stage, True, message, data, str(self.output_path))

    def _failed(self, message: str) -> StepOutcome:
        return StepOutcome(self.stage, False, message)
