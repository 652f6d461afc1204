import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from app.agents.base import BaseAgent, StepOutcome
from app.core.artifacts import execution_succeeded
from app.core.errors import UsageLimitError
from app.core.workflow import ANALYSIS_FILE, SCENARIOS_FILE, TEST_CASES_FILE, ExecutionStage

log = logging.getLogger(__name__)


class CalibrationAgent(BaseAgent):
    """Reviews the analysis, scenarios and tests against a passing run."""
    stage = ExecutionStage.CALIBRATION

    def execute(self, *inputs: Path) -> StepOutcome:
        try:
            results = json.loads(self._read_input(inputs[0]))
            if not execution_succeeded(results):
                return self._failed("Test results do not report success, nothing to calibrate")

            reply = self.executor.execute_prompt(self.build_prompt(results), self.output_name)
            if not self.output_path.exists():
                self._persist_output(self._fallback_report(results, reply))
            return self._ok(f"Calibration report written to {self.output_name}")
        except UsageLimitError:
            raise
        except Exception as e:
            log.exception("Calibration failed: %s", e, extra=self.log_extra)
            return self._failed(str(e))

    def _optional(self, name: str) -> Optional[str]:
        path = self.work_dir / name
        return path.read_text(encoding="utf-8") if path.is_file() else None

    def build_prompt(self, results: dict) -> str:
        sections = []
        for title, name, lang in (
            ("Original site analysis", ANALYSIS_FILE, "markdown"),
            ("Original test scenarios", SCENARIOS_FILE, "markdown"),
            ("Executed test cases", TEST_CASES_FILE, "typescript"),
        ):
            content = self._optional(name)
            body = f"```{lang}\n{content}\n```" if content is not None else f"({name} is missing)"
            sections.append(f"## {title}\n{body}")

        return f"""Calibrate the earlier pipeline outputs against the passing test run below.

## Test run
Attempts: {results.get("attempts", 1)}
Auto-fixed issues: {results.get("fixedIssues") or "none"}
```
{results.get("details") or results.get("rawOutput") or "no details"}
```

{chr(10).join(sections)}

Report on: gaps in the site analysis, scenario coverage and priorities, selector robustness of the
tests, how well automatic fixing worked, and concrete follow-ups.
Save the report with the Write tool to {self.output_path}.
"""

    def _fallback_report(self, results: dict, reply: str) -> str:
        return (
            "# Calibration Report\n\n"
            f"- **Calibrated at**: {datetime.now(timezone.utc).isoformat()}\n"
            f"- **Test attempts**: {results.get('attempts', 1)}\n"
            f"- **Auto-fixed**: {'yes' if results.get('fixedIssues') else 'no'}\n\n"
            "## Analysis\n\n"
            f"{reply}\n"
        )
