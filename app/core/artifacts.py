"""Work-dir inspection.

The checkpoint files in a work dir are the only persistent pipeline state.
``ArtifactState`` captures which of them exist (plus whether the execution
result reports success) and ``STAGE_TABLE`` maps every possible state to the
stage a resumed run should start from.
"""
from __future__ import annotations
import itertools
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple, Optional
from app.core.config import config_sufficient_for
from app.core.workflow import (
    ANALYSIS_FILE,
    CALIBRATION_FILE,
    CONFIG_FILE,
    SCENARIOS_FILE,
    TEST_CASES_FILE,
    TEST_RESULTS_FILE,
    WELL_KNOWN_ARTIFACTS,
    ExecutionStage,
)

log = logging.getLogger(__name__)

EXPECTED_STATUS = "expected"


class ArtifactState(NamedTuple):
    has_analysis: bool
    has_scenarios: bool
    has_test_cases: bool
    has_results: bool
    results_passed: bool
    has_calibration: bool

    @classmethod
    def all(cls) -> list["ArtifactState"]:
        # results_passed is only meaningful when has_results is set
        return [
            cls(*flags)
            for flags in itertools.product((False, True), repeat=len(cls._fields))
            if flags[3] or not flags[4]
        ]


def resolve_next_stage(state: ArtifactState) -> tuple[ExecutionStage, str]:
    """Most advanced artifact wins."""
    if state.has_calibration:
        return ExecutionStage.CALIBRATION, "calibration report found, calibration can be re-run"
    if state.has_results:
        if state.results_passed:
            return ExecutionStage.CALIBRATION, "passing test results found, continuing with calibration"
        return ExecutionStage.EXECUTION, "test results missing, unreadable or failing, re-running tests"
    if state.has_test_cases:
        return ExecutionStage.EXECUTION, "test cases found, continuing with test execution"
    if state.has_scenarios:
        return ExecutionStage.CASE_GENERATION, "test scenarios found, continuing with test case generation"
    if state.has_analysis:
        return ExecutionStage.SCENARIO_GENERATION, "site analysis found, continuing with scenario generation"
    return ExecutionStage.SITE_ANALYSIS, "no artifacts found, starting with site analysis"


STAGE_TABLE: dict[ArtifactState, tuple[ExecutionStage, str]] = {
    state: resolve_next_stage(state) for state in ArtifactState.all()
}


def flatten_tests(suites: Any) -> list[dict]:
    """Flatten a Playwright suite/spec/test tree into ``{"name", "status"}`` entries."""
    tests: list[dict] = []

    def walk(suite: Any) -> None:
        if not isinstance(suite, dict):
            return
        for spec in suite.get("specs") or []:
            if not isinstance(spec, dict):
                continue
            for test in spec.get("tests") or []:
                if isinstance(test, dict):
                    tests.append({"name": spec.get("title", ""), "status": test.get("status")})
        for child in suite.get("suites") or []:
            walk(child)

    for suite in suites or []:
        walk(suite)
    return tests


def execution_succeeded(results: Any) -> bool:
    """Read success from any of the accepted execution-result shapes."""
    if not isinstance(results, dict):
        return False
    if isinstance(results.get("success"), bool):
        return results["success"]
    stats = results.get("stats")
    if isinstance(stats, dict):
        expected = stats.get("expected")
        unexpected = stats.get("unexpected")
        return unexpected == 0 and isinstance(expected, int) and expected > 0
    if "suites" in results:
        tests = flatten_tests(results.get("suites"))
        return len(tests) > 0 and all(t["status"] == EXPECTED_STATUS for t in tests)
    return False


def read_execution_result(path: Path) -> Optional[bool]:
    """Return success of the results file, or None when it cannot be read or parsed."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.warning("Could not parse %s: %s", path, e)
        return None
    return execution_succeeded(data)


@dataclass
class InspectionResult:
    next_stage: ExecutionStage
    existing_artifacts: list[str] = field(default_factory=list)
    rationale: str = ""
    config_usable: bool = False
    config_path: Optional[str] = None
    needs_fresh_config: bool = True

    @classmethod
    def ground_state(cls, rationale: str) -> "InspectionResult":
        return cls(next_stage=ExecutionStage.SITE_ANALYSIS, rationale=rationale)


class ArtifactInspector:
    def __init__(self, work_dir: Path | str):
        self.work_dir = Path(work_dir)

    def state(self) -> tuple[ArtifactState, list[str]]:
        present = {p.name for p in self.work_dir.iterdir() if p.is_file()}
        has_results = TEST_RESULTS_FILE in present
        results_passed = bool(has_results and read_execution_result(self.work_dir / TEST_RESULTS_FILE))
        state = ArtifactState(
            has_analysis=ANALYSIS_FILE in present,
            has_scenarios=SCENARIOS_FILE in present,
            has_test_cases=TEST_CASES_FILE in present,
            has_results=has_results,
            results_passed=results_passed,
            has_calibration=CALIBRATION_FILE in present,
        )
        existing = [name for name in WELL_KNOWN_ARTIFACTS if name in present]
        return state, existing

    def inspect(self) -> InspectionResult:
        """Infer where a run in this work dir should start. Never raises."""
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            state, existing = self.state()
            next_stage, rationale = STAGE_TABLE[state]
            needs_fresh_config = next_stage in (ExecutionStage.SITE_ANALYSIS, ExecutionStage.SCENARIO_GENERATION)

            result = InspectionResult(
                next_stage=next_stage,
                existing_artifacts=existing,
                rationale=rationale,
                needs_fresh_config=needs_fresh_config,
            )
            if CONFIG_FILE in existing:
                self._check_config(result)
            elif needs_fresh_config:
                result.rationale += "; configuration required"
            return result
        except Exception as e:
            log.warning("Work dir inspection failed, starting from stage 1: %s", e,
                        extra={"work_dir": str(self.work_dir), "stage": "-"})
            return InspectionResult.ground_state("inspection failed, starting with site analysis")

    def _check_config(self, result: InspectionResult) -> None:
        config_path = self.work_dir / CONFIG_FILE
        try:
            raw = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            result.needs_fresh_config = True
            result.rationale += "; configuration file unreadable, reconfiguration required"
            return

        if config_sufficient_for(raw, result.next_stage):
            result.needs_fresh_config = False
            result.config_usable = True
            result.config_path = str(config_path)
            result.rationale += "; configuration valid"
        else:
            result.needs_fresh_config = True
            result.rationale += "; configuration incomplete, reconfiguration required"


def inspect(work_dir: Path | str) -> InspectionResult:
    return ArtifactInspector(work_dir).inspect()


def log_inspection(result: InspectionResult) -> None:
    log.info("Existing artifacts: %s", ", ".join(result.existing_artifacts) or "none")
    log.info("Configuration: %s", result.config_path or ("missing" if result.needs_fresh_config else "not needed"))
    log.info("Conclusion: %s", result.rationale)
    log.info("Starting stage: %d - %s", result.next_stage, result.next_stage.display_name)


def artifact_presence(work_dir: Path | str) -> dict[str, bool]:
    root = Path(work_dir)
    return {name: (root / name).is_file() for name in WELL_KNOWN_ARTIFACTS}
