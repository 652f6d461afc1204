from dataclasses import dataclass
from enum import IntEnum


class ExecutionStage(IntEnum):
    SITE_ANALYSIS = 1
    SCENARIO_GENERATION = 2
    CASE_GENERATION = 3
    EXECUTION = 4
    CALIBRATION = 5

    @property
    def display_name(self) -> str:
        return STAGE_INFO[self].name

    @property
    def description(self) -> str:
        return STAGE_INFO[self].description


TOTAL_STAGES = len(ExecutionStage)

# Checkpoint artifact names, relative to the work dir. Renaming any of these
# breaks resume for existing work dirs.
ANALYSIS_FILE = "website-analysis.md"
SCENARIOS_FILE = "test-scenarios.md"
TEST_CASES_FILE = "generated-tests.spec.ts"
TEST_RESULTS_FILE = "test-results.json"
CALIBRATION_FILE = "calibration-report.md"
CONFIG_FILE = "test-config.json"

# Auxiliary output of the execution stage, not a checkpoint.
TEST_REPORT_FILE = "test-report.md"

WELL_KNOWN_ARTIFACTS = (
    ANALYSIS_FILE,
    SCENARIOS_FILE,
    TEST_CASES_FILE,
    TEST_RESULTS_FILE,
    CALIBRATION_FILE,
    CONFIG_FILE,
)

ARTIFACT_LABELS = {
    ANALYSIS_FILE: "site analysis",
    SCENARIOS_FILE: "test scenarios",
    TEST_CASES_FILE: "test cases",
    TEST_RESULTS_FILE: "test results (JSON)",
    CALIBRATION_FILE: "calibration report",
    CONFIG_FILE: "configuration",
}


@dataclass(frozen=True)
class StageInfo:
    name: str
    description: str
    inputs: tuple[str, ...]
    output: str
    mandatory: bool


STAGE_INFO = {
    ExecutionStage.SITE_ANALYSIS: StageInfo(
        "Analyze target", "Analyzing site structure and test needs", (), ANALYSIS_FILE, True
    ),
    ExecutionStage.SCENARIO_GENERATION: StageInfo(
        "Design scenarios", "Generating a test strategy from the analysis", (ANALYSIS_FILE,), SCENARIOS_FILE, True
    ),
    ExecutionStage.CASE_GENERATION: StageInfo(
        "Author tests", "Turning scenarios into Playwright test code", (SCENARIOS_FILE,), TEST_CASES_FILE, True
    ),
    ExecutionStage.EXECUTION: StageInfo(
        "Run tests", "Running the tests and collecting results", (TEST_CASES_FILE,), TEST_RESULTS_FILE, False
    ),
    ExecutionStage.CALIBRATION: StageInfo(
        "Calibrate", "Reviewing earlier artifacts against passing results", (TEST_RESULTS_FILE,), CALIBRATION_FILE, False
    ),
}

