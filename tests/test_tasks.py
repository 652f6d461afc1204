"""Background task tests: the Celery task body runs eagerly with fake agents."""
from unittest.mock import patch
from app.core.workflow import ANALYSIS_FILE
from app.tasks.pipeline import execute_pipeline, run_pipeline
from conftest import write_artifacts


def test_execute_pipeline_resumes_from_inspected_stage(pipeline_config, make_registry, work_dir):
    write_artifacts(work_dir, ANALYSIS_FILE)

    result = execute_pipeline(pipeline_config, registry=make_registry())

    assert result["start_stage"] == 2
    assert result["status"] == "completed"
    assert result["skipped_stages"] == [1]
    assert result["invoked_stages"] == [2, 3, 4, 5]
    assert result["artifacts"][ANALYSIS_FILE] is True


def test_execute_pipeline_explicit_start(pipeline_config, make_registry):
    result = execute_pipeline(pipeline_config, 1, registry=make_registry())

    assert result["invoked_stages"] == [1, 2, 3, 4, 5]


def test_task_rebuilds_config_from_aliases(pipeline_config):
    with patch("app.tasks.pipeline.execute_pipeline", return_value={"status": "completed"}) as execute:
        result = run_pipeline.run(pipeline_config.model_dump(by_alias=True), 3)

    assert result == {"status": "completed"}
    config, start = execute.call_args[0]
    assert config == pipeline_config
    assert start == 3
