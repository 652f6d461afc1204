"""Unit tests for work-dir inspection and resume-stage inference."""
import json
from unittest.mock import patch
import pytest
from app.core.artifacts import (
    STAGE_TABLE,
    ArtifactInspector,
    ArtifactState,
    artifact_presence,
    execution_succeeded,
    flatten_tests,
    inspect,
    read_execution_result,
)
from app.core.workflow import (
    ANALYSIS_FILE,
    CALIBRATION_FILE,
    CONFIG_FILE,
    SCENARIOS_FILE,
    TEST_CASES_FILE,
    TEST_RESULTS_FILE,
    ExecutionStage,
)
from conftest import write_artifacts


def write_config(work_dir, **fields):
    (work_dir / CONFIG_FILE).write_text(json.dumps(fields), encoding="utf-8")


class TestResumeScenarios:
    """Concrete work dirs and the stage a resumed run starts from."""

    def test_empty_dir_starts_with_analysis(self, work_dir):
        """No artifacts and no config: stage 1, config required."""
        result = inspect(work_dir)

        assert result.next_stage == ExecutionStage.SITE_ANALYSIS
        assert result.existing_artifacts == []
        assert result.needs_fresh_config is True
        assert result.config_usable is False
        assert "configuration required" in result.rationale

    def test_missing_dir_is_created(self, tmp_path):
        target = tmp_path / "new" / "nested"
        result = inspect(target)

        assert target.is_dir()
        assert result.next_stage == ExecutionStage.SITE_ANALYSIS

    def test_analysis_with_good_config_continues_with_scenarios(self, work_dir):
        write_artifacts(work_dir, ANALYSIS_FILE)
        write_config(work_dir, targetUrl="https://a.com", testRequirements=["x"], testTypes=["functional"])

        result = inspect(work_dir)

        assert result.next_stage == ExecutionStage.SCENARIO_GENERATION
        assert result.config_usable is True
        assert result.needs_fresh_config is False
        assert result.config_path == str(work_dir / CONFIG_FILE)
        assert ANALYSIS_FILE in result.existing_artifacts
        assert CONFIG_FILE in result.existing_artifacts

    def test_stage_two_config_without_site_name_is_usable(self, work_dir):
        """siteName is derived from the URL, so it is not required."""
        write_artifacts(work_dir, ANALYSIS_FILE)
        write_config(work_dir, targetUrl="https://a.com", testRequirements=["x"], testTypes=["ux"])

        assert inspect(work_dir).config_usable is True

    def test_stage_two_config_with_empty_requirements_needs_reconfiguration(self, work_dir):
        write_artifacts(work_dir, ANALYSIS_FILE)
        write_config(work_dir, targetUrl="https://a.com", testRequirements=[], testTypes=["functional"])

        result = inspect(work_dir)

        assert result.next_stage == ExecutionStage.SCENARIO_GENERATION
        assert result.needs_fresh_config is True
        assert result.config_usable is False
        assert "incomplete" in result.rationale

    def test_unreadable_config_needs_reconfiguration(self, work_dir):
        (work_dir / CONFIG_FILE).write_text("{not json", encoding="utf-8")

        result = inspect(work_dir)

        assert result.needs_fresh_config is True
        assert "unreadable" in result.rationale

    def test_failing_results_rerun_execution(self, work_dir):
        write_artifacts(work_dir, ANALYSIS_FILE, SCENARIOS_FILE, TEST_CASES_FILE, results={"success": False})

        result = inspect(work_dir)

        assert result.next_stage == ExecutionStage.EXECUTION
        assert result.needs_fresh_config is False

    def test_passing_results_continue_with_calibration(self, work_dir):
        write_artifacts(work_dir, ANALYSIS_FILE, SCENARIOS_FILE, TEST_CASES_FILE, results={"success": True})

        assert inspect(work_dir).next_stage == ExecutionStage.CALIBRATION

    def test_test_cases_only_continue_with_execution(self, work_dir):
        write_artifacts(work_dir, TEST_CASES_FILE)

        result = inspect(work_dir)

        assert result.next_stage == ExecutionStage.EXECUTION
        # later stages run from artifacts alone
        assert result.needs_fresh_config is False

    def test_calibration_report_wins(self, work_dir):
        write_artifacts(work_dir, CALIBRATION_FILE)

        assert inspect(work_dir).next_stage == ExecutionStage.CALIBRATION

    def test_inspection_failure_falls_back_to_ground_state(self, work_dir):
        with patch.object(ArtifactInspector, "state", side_effect=PermissionError("denied")):
            result = inspect(work_dir)

        assert result.next_stage == ExecutionStage.SITE_ANALYSIS
        assert result.needs_fresh_config is True
        assert result.existing_artifacts == []
        assert "inspection failed" in result.rationale


class TestStageTable:
    """The resume table covers every artifact state exactly once."""

    def test_table_is_total(self):
        assert set(STAGE_TABLE) == set(ArtifactState.all())
        # 64 flag combinations minus the 16 that claim passing results without a results file

        assert len(STAGE_TABLE) == 48

    @pytest.mark.parametrize("state", ArtifactState.all())
    def test_most_advanced_artifact_wins(self, state):
        stage, rationale = STAGE_TABLE[state]

        assert rationale
        if state.has_calibration:
            assert stage == ExecutionStage.CALIBRATION
        elif state.has_results:
            expected = ExecutionStage.CALIBRATION if state.results_passed else ExecutionStage.EXECUTION
            assert stage == expected
        elif state.has_test_cases:
            assert stage == ExecutionStage.EXECUTION
        elif state.has_scenarios:
            assert stage == ExecutionStage.CASE_GENERATION
        elif state.has_analysis:
            assert stage == ExecutionStage.SCENARIO_GENERATION
        else:
            assert stage == ExecutionStage.SITE_ANALYSIS

    @pytest.mark.parametrize("state", ArtifactState.all())
    def test_filesystem_agrees_with_table(self, tmp_path, state):
        """Materialize each state on disk and inspect it."""
        names = [
            name for flag, name in (
                (state.has_analysis, ANALYSIS_FILE),
                (state.has_scenarios, SCENARIOS_FILE),
                (state.has_test_cases, TEST_CASES_FILE),
                (state.has_calibration, CALIBRATION_FILE),
            ) if flag
        ]
        results = {"success": state.results_passed} if state.has_results else None
        write_artifacts(tmp_path, *names, results=results)

        observed, _ = ArtifactInspector(tmp_path).state()

        assert observed == state
        assert inspect(tmp_path).next_stage == STAGE_TABLE[state][0]


class TestExecutionResultShapes:
    """All three accepted result shapes decide success the same way."""

    def test_success_flag(self):
        assert execution_succeeded({"success": True}) is True
        assert execution_succeeded({"success": False}) is False

    def test_stats_shape(self):
        assert execution_succeeded({"stats": {"expected": 3, "unexpected": 0}}) is True
        assert execution_succeeded({"stats": {"expected": 3, "unexpected": 1}}) is False
        assert execution_succeeded({"stats": {"expected": 0, "unexpected": 0}}) is False

    def test_suites_shape(self):
        passing = {"suites": [{"specs": [{"title": "login", "tests": [{"status": "expected"}]}],
                               "suites": [{"specs": [{"title": "search", "tests": [{"status": "expected"}]}]}]}]}
        failing = {"suites": [{"specs": [{"title": "login", "tests": [{"status": "unexpected"}]}]}]}

        assert execution_succeeded(passing) is True
        assert execution_succeeded(failing) is False
        assert execution_succeeded({"suites": []}) is False

    def test_unknown_shapes_fail(self):
        assert execution_succeeded({}) is False
        assert execution_succeeded([1, 2]) is False
        assert execution_succeeded(None) is False

    def test_flatten_nested_suites(self):
        suites = [{"specs": [{"title": "a", "tests": [{"status": "expected"}, {"status": "skipped"}]}],
                   "suites": [{"specs": [{"title": "b", "tests": [{"status": "unexpected"}]}]}]}]

        assert flatten_tests(suites) == [
            {"name": "a", "status": "expected"},
            {"name": "a", "status": "skipped"},
            {"name": "b", "status": "unexpected"},
        ]

    def test_flatten_ignores_malformed_entries(self):
        assert flatten_tests([None, "x", {"specs": ["bad", {"tests": [1]}]}]) == []
        assert flatten_tests(None) == []

    def test_unparsable_results_file(self, tmp_path):
        path = tmp_path / TEST_RESULTS_FILE
        path.write_text("<html>oops</html>", encoding="utf-8")

        assert read_execution_result(path) is None
        assert read_execution_result(tmp_path / "missing.json") is None

    def test_unparsable_results_rerun_execution(self, work_dir):
        write_artifacts(work_dir, TEST_CASES_FILE, results="not json")

        assert inspect(work_dir).next_stage == ExecutionStage.EXECUTION


def test_artifact_presence_lists_every_well_known_file(work_dir):
    write_artifacts(work_dir, ANALYSIS_FILE, CALIBRATION_FILE)

    presence = artifact_presence(work_dir)

    assert len(presence) == 6
    assert presence[ANALYSIS_FILE] is True
    assert presence[CALIBRATION_FILE] is True
    assert presence[SCENARIOS_FILE] is False
