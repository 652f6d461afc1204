"""Shared fixtures: a pipeline config in a temp work dir and scriptable fake agents."""
import json
from pathlib import Path
import pytest
from app.agents.base import StepOutcome
from app.agents.registry import AgentRegistry
from app.core.config import PipelineConfig
from app.core.errors import UsageLimitError
from app.core.workflow import STAGE_INFO, TEST_RESULTS_FILE, ExecutionStage

PASSING_RESULTS = json.dumps({"success": True, "attempts": 1})


class FakeAgent:
    """Stands in for an agent step; writes its output file on success."""

    def __init__(self, stage, work_dir, behavior="ok", content=None):
        self.stage = stage
        self.work_dir = Path(work_dir)
        self.behavior = behavior
        self.content = content
        self.calls = []

    def execute(self, *inputs):
        self.calls.append(inputs)
        if self.behavior == "usage_limit":
            raise UsageLimitError()
        if self.behavior == "usage_limit_message":
            return StepOutcome(self.stage, False, "Claude AI usage limit reached")
        if self.behavior == "fail":
            return StepOutcome(self.stage, False, "agent could not finish")
        if self.behavior == "crash":
            raise RuntimeError("agent crashed")

        output = self.work_dir / STAGE_INFO[self.stage].output
        if self.content is not None:
            content = self.content
        elif output.name == TEST_RESULTS_FILE:
            content = PASSING_RESULTS
        else:
            content = f"# output of stage {int(self.stage)}\n"
        output.write_text(content, encoding="utf-8")
        return StepOutcome(self.stage, True, "done", {}, str(output))


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def pipeline_config(work_dir):
    return PipelineConfig(
        targetUrl="https://example.com",
        siteName="example.com",
        testRequirements=["search works"],
        testTypes=["functional"],
        workDir=str(work_dir),
    )


@pytest.fixture
def make_registry(work_dir):
    """Build an AgentRegistry of FakeAgents; pass ``{stage: behavior}`` overrides."""
    def factory(behaviors=None, contents=None):
        behaviors = behaviors or {}
        contents = contents or {}
        return AgentRegistry(mapping={
            stage: FakeAgent(stage, work_dir, behaviors.get(stage, "ok"), contents.get(stage))
            for stage in ExecutionStage
        })
    return factory


def write_artifacts(work_dir, *names, results=None):
    for name in names:
        (Path(work_dir) / name).write_text("x", encoding="utf-8")
    if results is not None:
        (Path(work_dir) / TEST_RESULTS_FILE).write_text(
            results if isinstance(results, str) else json.dumps(results), encoding="utf-8"
        )
