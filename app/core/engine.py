from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
from app.core.artifacts import artifact_presence, read_execution_result
from app.core.config import DegradedStagePolicy, PipelineConfig, Settings, settings as default_settings
from app.core.errors import MandatoryStageFailure, StageExecutionError, classify
from app.core.progress import MessageCategory, ProgressKind, ProgressObserver, ProgressRecord, null_observer
from app.core.workflow import (
    ARTIFACT_LABELS,
    STAGE_INFO,
    TOTAL_STAGES,
    ExecutionStage,
)

log = logging.getLogger(__name__)

_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class RunStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"
    USAGE_LIMIT = "usage_limit"


@dataclass
class RunReport:
    start_stage: ExecutionStage
    status: RunStatus = RunStatus.COMPLETED
    invoked_stages: list[ExecutionStage] = field(default_factory=list)
    skipped_stages: list[ExecutionStage] = field(default_factory=list)
    degraded_stages: list[ExecutionStage] = field(default_factory=list)
    artifacts: dict[str, bool] = field(default_factory=dict)


class PipelineController:
    """Runs the five stages in order, resuming from checkpoint files in the work dir.

    Progress is reported twice: to the module logger and, as typed
    ``ProgressRecord`` values, to the injected observer.
    """

    def __init__(
        self,
        config: PipelineConfig,
        registry=None,
        observer: Optional[ProgressObserver] = None,
        settings: Optional[Settings] = None,
    ):
        self.config = config
        self.settings = settings or default_settings
        self.work_dir = Path(config.work_dir)
        if registry is None:
            from app.agents.registry import AgentRegistry
            registry = AgentRegistry.default(config, self.settings)
        self.registry = registry
        self.observer = observer or null_observer

    def _notify(self, record: ProgressRecord) -> None:
        try:
            self.observer(record)
        except Exception:
            log.exception("Progress observer failed", extra={"work_dir": str(self.work_dir), "stage": "-"})

    def _say(
        self,
        message: str,
        stage: Optional[ExecutionStage] = None,
        level: str = "info",
        kind: ProgressKind = ProgressKind.MESSAGE,
        category: MessageCategory = MessageCategory.INFO,
        **details,
    ) -> None:
        log.log(_LEVELS[level], message, extra={"work_dir": str(self.work_dir), "stage": stage.name if stage else "-"})
        self._notify(ProgressRecord(kind, message, stage, level, category, details))

    def _path(self, name: str) -> Path:
        return self.work_dir / name

    def run(self, start_stage: ExecutionStage = ExecutionStage.SITE_ANALYSIS) -> RunReport:
        start_stage = ExecutionStage(start_stage)
        report = RunReport(start_stage=start_stage)
        self._say(f"Starting pipeline for {self.config.target_url} from stage {int(start_stage)}")
        try:
            try:
                self.work_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise MandatoryStageFailure(start_stage, f"Cannot prepare work dir {self.work_dir}: {e}") from e
            self._say(f"Work dir ready: {self.work_dir}")

            if self._run_stages(start_stage, report):
                if report.degraded_stages:
                    report.status = RunStatus.COMPLETED_WITH_WARNINGS
                self._say(
                    "Pipeline finished" + (" with warnings" if report.degraded_stages else ""),
                    kind=ProgressKind.RUN_FINISHED,
                    category=MessageCategory.TRANSITION,
                    status=report.status.value,
                )
            else:
                report.status = RunStatus.USAGE_LIMIT
                self._say(
                    "Pipeline stopped at the usage limit; rerun later to resume from the saved artifacts",
                    level="warning",
                    kind=ProgressKind.RUN_FINISHED,
                    status=report.status.value,
                )
        finally:
            report.artifacts = self._summarize()

        if report.degraded_stages and self.settings.degraded_stage_policy == DegradedStagePolicy.FAIL:
            stage = report.degraded_stages[0]
            raise MandatoryStageFailure(stage, f"Best-effort stage {stage.display_name} failed")
        return report

    def _run_stages(self, start_stage: ExecutionStage, report: RunReport) -> bool:
        """Returns False when the run stopped on a usage limit."""
        for stage in (ExecutionStage.SITE_ANALYSIS, ExecutionStage.SCENARIO_GENERATION, ExecutionStage.CASE_GENERATION):
            if stage < start_stage:
                self._skip(stage, report, f"reusing {STAGE_INFO[stage].output}")
            elif not self._invoke(stage, report):
                return False

        execution = ExecutionStage.EXECUTION
        if execution < start_stage:
            self._skip(execution, report, f"start stage is {int(start_stage)}, using {STAGE_INFO[execution].output}")
        elif self._path(STAGE_INFO[execution].output).exists():
            self._skip(execution, report, f"existing {STAGE_INFO[execution].output} found")
        elif not self._invoke(execution, report):
            return False

        reason = self._calibration_blocker()
        if reason:
            self._skip(ExecutionStage.CALIBRATION, report, reason)
            return True
        return self._invoke(ExecutionStage.CALIBRATION, report)

    def _calibration_blocker(self) -> Optional[str]:
        calibration = STAGE_INFO[ExecutionStage.CALIBRATION]
        results = self._path(calibration.inputs[0])
        if self._path(calibration.output).exists():
            return f"existing {calibration.output} found"
        if not results.exists():
            return f"{results.name} not available"
        passed = read_execution_result(results)
        if passed is None:
            return f"{results.name} could not be parsed"
        if not passed:
            return "tests did not pass"
        return None

    def _skip(self, stage: ExecutionStage, report: RunReport, reason: str) -> None:
        report.skipped_stages.append(stage)
        self._say(
            f"Skipping stage {int(stage)} ({stage.display_name}): {reason}",
            stage=stage,
            kind=ProgressKind.STAGE_SKIPPED,
            category=MessageCategory.TRANSITION,
            reason=reason,
        )

    def _require_inputs(self, stage: ExecutionStage) -> list[Path]:
        paths = [self._path(name) for name in STAGE_INFO[stage].inputs]
        for path in paths:
            if not path.is_file():
                message = f"Stage {int(stage)} ({stage.display_name}) needs {path.name}, which is missing: {path}"
                self._say(message, stage=stage, level="error", kind=ProgressKind.STAGE_FAILED)
                raise MandatoryStageFailure(stage, message, missing_artifact=str(path))
        return paths

    def _invoke(self, stage: ExecutionStage, report: RunReport) -> bool:
        """Run one agent step. Returns False when the run must stop on a usage limit."""
        info = STAGE_INFO[stage]
        inputs = self._require_inputs(stage)

        self._say(
            f"Stage {int(stage)}/{TOTAL_STAGES}: {stage.display_name}",
            stage=stage,
            kind=ProgressKind.STAGE_STARTED,
            category=MessageCategory.TRANSITION,
        )
        self._say(f"Waiting on the agent: {stage.description}", stage=stage, category=MessageCategory.TOOL)
        report.invoked_stages.append(stage)

        try:
            outcome = self.registry.get(stage).execute(*inputs)
            if not outcome.ok:
                raise StageExecutionError(stage, outcome.message)
        except Exception as e:
            if classify(e):
                self._say(
                    f"Usage limit reached during stage {int(stage)} ({stage.display_name}), stopping",
                    stage=stage,
                    level="warning",
                    kind=ProgressKind.STAGE_FAILED,
                    usage_limit=True,
                )
                return False
            self._say(
                f"Stage {int(stage)} ({stage.display_name}) failed: {e}",
                stage=stage,
                level="error" if info.mandatory else "warning",
                kind=ProgressKind.STAGE_FAILED,
            )
            if info.mandatory:
                raise MandatoryStageFailure(stage, str(e)) from e
            report.degraded_stages.append(stage)
            return True

        self._say(
            f"Stage {int(stage)} ({stage.display_name}) completed: {outcome.artifact_path or info.output}",
            stage=stage,
            kind=ProgressKind.STAGE_COMPLETED,
            category=MessageCategory.TRANSITION,
            artifact=outcome.artifact_path,
        )
        return True

    def _summarize(self) -> dict[str, bool]:
        presence = artifact_presence(self.work_dir)
        self._say(f"Artifacts in {self.work_dir}:")
        for name, present in presence.items():
            mark = "present" if present else "missing"
            self._say(f"  [{mark}] {name} ({ARTIFACT_LABELS[name]})")
        return presence
