from __future__ import annotations
import logging
from typing import Optional
from app.tasks.celery_app import celery_app
from app.core.artifacts import inspect
from app.core.config import PipelineConfig
from app.core.engine import PipelineController, RunReport
from app.core.workflow import ExecutionStage

log = logging.getLogger(__name__)


def report_to_dict(report: RunReport) -> dict:
    return {
        "start_stage": int(report.start_stage),
        "status": report.status.value,
        "invoked_stages": [int(s) for s in report.invoked_stages],
        "skipped_stages": [int(s) for s in report.skipped_stages],
        "degraded_stages": [int(s) for s in report.degraded_stages],
        "artifacts": report.artifacts,
    }


def execute_pipeline(config: PipelineConfig, start_stage: Optional[int] = None, registry=None) -> dict:
    work_dir = config.work_dir
    if start_stage is None:
        inspection = inspect(work_dir)
        stage = inspection.next_stage
        log.info("Resuming: %s", inspection.rationale, extra={"work_dir": work_dir, "stage": stage.name})
    else:
        stage = ExecutionStage(start_stage)

    log.info("Starting pipeline", extra={"work_dir": work_dir, "stage": stage.name})
    try:
        report = PipelineController(config, registry=registry).run(stage)
    except Exception:
        log.exception("Pipeline failed", extra={"work_dir": work_dir, "stage": stage.name})
        raise
    log.info("Pipeline finished: %s", report.status.value, extra={"work_dir": work_dir, "stage": "-"})
    return report_to_dict(report)


@celery_app.task(name="run_pipeline")
def run_pipeline(config_data: dict, start_stage: Optional[int] = None) -> dict:
    config = PipelineConfig.model_validate(config_data)
    return execute_pipeline(config, start_stage)
