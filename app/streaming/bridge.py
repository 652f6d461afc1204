"""Render one pipeline run as an ordered stream of wire envelopes.

The bridge is the controller's progress observer: every ``ProgressRecord``
becomes a ``chat`` event, stage-bearing records also refresh the ``workflow``
status, and completed stages trigger a ``file`` snapshot of the artifacts.
The run always ends with exactly one ``complete`` or ``error`` envelope.
Closing the stream only stops emission; the run itself keeps going.
"""
from __future__ import annotations
import logging
import time
import traceback
import uuid
from pathlib import Path
from typing import Any, Callable, Optional
from pydantic import BaseModel
from app.core.artifacts import inspect
from app.core.config import PipelineConfig, Settings, settings as default_settings
from app.core.engine import PipelineController, RunReport, RunStatus
from app.core.progress import MessageCategory, ProgressKind, ProgressRecord
from app.core.workflow import STAGE_INFO, TOTAL_STAGES, WELL_KNOWN_ARTIFACTS, ExecutionStage
from app.schemas.events import (
    ChatMessage,
    CompletePayload,
    Envelope,
    ErrorPayload,
    FileContent,
    WorkflowStatus,
)

log = logging.getLogger(__name__)

Sink = Callable[[dict], None]

_FILE_KINDS = {".md": "markdown", ".ts": "typescript", ".json": "json"}


def _now_ms() -> int:
    return int(time.time() * 1000)


def file_kind(name: str) -> str:
    return _FILE_KINDS.get(Path(name).suffix, "text")


def snapshot_artifacts(work_dir: Path) -> list[FileContent]:
    files = []
    for name in WELL_KNOWN_ARTIFACTS:
        path = Path(work_dir) / name
        if not path.is_file():
            continue
        try:
            stat = path.stat()
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.warning("Could not read %s: %s", path, e)
            continue
        files.append(FileContent(
            id=f"file_{name}",
            name=name,
            path=str(path),
            content=content,
            kind=file_kind(name),
            size=stat.st_size,
            modifiedAt=int(stat.st_mtime * 1000),
        ))
    return files


class StreamingBridge:
    def __init__(
        self,
        send: Sink,
        settings: Optional[Settings] = None,
        registry_factory: Optional[Callable[[PipelineConfig], Any]] = None,
        snapshot_delay_s: Optional[float] = None,
    ):
        self.send = send
        self.settings = settings or default_settings
        self.registry_factory = registry_factory
        self.snapshot_delay_s = self.settings.file_snapshot_delay_s if snapshot_delay_s is None else snapshot_delay_s
        self.session_id = f"session_{uuid.uuid4().hex[:12]}"
        self.work_dir: Optional[Path] = None
        self.current_stage = int(ExecutionStage.SITE_ANALYSIS)
        self.completed = False
        self.stream_closed = False
        self._counter = 0

    def mark_stream_closed(self) -> None:
        self.stream_closed = True

    @property
    def progress(self) -> int:
        if self.completed:
            return 100
        return round(self.current_stage / TOTAL_STAGES * 100)

    def _emit(self, event_type: str, data: Any) -> None:
        if self.stream_closed:
            return
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True, mode="json")
        elif isinstance(data, list):
            data = [d.model_dump(by_alias=True, mode="json") if isinstance(d, BaseModel) else d for d in data]
        envelope = Envelope(type=event_type, data=data, timestamp=_now_ms())
        try:
            self.send(envelope.model_dump(mode="json"))
        except Exception as e:
            log.warning("Stream sink failed, dropping further events: %s", e,
                        extra={"work_dir": str(self.work_dir), "stage": "-"})
            self.stream_closed = True

    def _chat(self, role: str, content: str, stage: Optional[int] = None) -> None:
        self._counter += 1
        self._emit("chat", ChatMessage(
            id=f"{self.session_id}_msg_{self._counter}",
            role=role,
            content=content,
            stage=stage,
            stageName=ExecutionStage(stage).display_name if stage else None,
            timestamp=_now_ms(),
        ))

    def _workflow(self, name: str, description: str, status: str) -> None:
        self._emit("workflow", WorkflowStatus(
            currentStage=self.current_stage,
            stageName=name,
            stageDescription=description,
            progress=self.progress,
            status=status,
            totalStages=TOTAL_STAGES,
        ))

    def _send_files(self) -> None:
        if self.stream_closed or self.work_dir is None:
            return
        self._emit("file", snapshot_artifacts(self.work_dir))

    def __call__(self, record: ProgressRecord) -> None:
        if self.stream_closed:
            return

        if record.stage is not None:
            self.current_stage = max(self.current_stage, int(record.stage))
        if record.kind == ProgressKind.RUN_FINISHED and record.details.get("status") != RunStatus.USAGE_LIMIT.value:
            self.completed = True

        if record.category == MessageCategory.TOOL:
            role = "tool"
        elif record.stage is not None or record.category == MessageCategory.TRANSITION:
            role = "assistant"
        else:
            role = "system"

        if record.stage is not None or record.kind == ProgressKind.RUN_FINISHED:
            stage = ExecutionStage(self.current_stage)
            if self.completed:
                status = "completed"
            elif record.level == "error":
                status = "error"
            else:
                status = "running"
            self._workflow(stage.display_name, stage.description, status)

        self._chat(role, record.message, int(record.stage) if record.stage is not None else None)

        if record.kind == ProgressKind.STAGE_COMPLETED:
            if self.snapshot_delay_s:
                time.sleep(self.snapshot_delay_s)
            self._send_files()

    def run(self, config: PipelineConfig, start_stage: Optional[ExecutionStage] = None) -> Optional[RunReport]:
        """Run the pipeline for ``config``. Never raises; failures become an ``error`` envelope."""
        self.work_dir = Path(config.work_dir)
        self.completed = False
        try:
            inspection = inspect(self.work_dir)
            start = ExecutionStage(start_stage or inspection.next_stage)
            self.current_stage = int(start)

            self._workflow("Preparing", "Inspecting existing artifacts and configuration", "running")
            self._chat("system", f"Starting test generation for {config.target_url}")
            self._chat("system", f"Starting at stage {int(start)} ({start.display_name}): {inspection.rationale}")

            registry = self.registry_factory(config) if self.registry_factory else None
            controller = PipelineController(config, registry=registry, observer=self, settings=self.settings)
            report = controller.run(start)

            self._send_files()
            completed = sum(1 for stage in ExecutionStage if report.artifacts.get(STAGE_INFO[stage].output))
            self._emit("complete", CompletePayload(
                success=report.status != RunStatus.USAGE_LIMIT,
                status=report.status.value,
                totalStages=TOTAL_STAGES,
                completedStages=completed,
                degradedStages=[int(s) for s in report.degraded_stages],
                artifacts=report.artifacts,
                summary=self._summary(report),
            ))
            return report
        except Exception as e:
            log.exception("Streamed run failed", extra={"work_dir": str(self.work_dir), "stage": "-"})
            self._chat("system", f"Run failed: {e}")
            self._emit("error", ErrorPayload(error=str(e), details=traceback.format_exc(), recoverable=False))
            return None

    @staticmethod
    def _summary(report: RunReport) -> str:
        if report.status == RunStatus.USAGE_LIMIT:
            return "Stopped at the provider usage limit; rerun later to resume"
        if report.degraded_stages:
            names = ", ".join(s.display_name for s in report.degraded_stages)
            return f"Test generation finished with warnings ({names} failed)"
        return "Test generation finished"
