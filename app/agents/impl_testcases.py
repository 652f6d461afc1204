import logging
from pathlib import Path
from app.agents.base import BaseAgent, StepOutcome
from app.core.errors import UsageLimitError
from app.core.workflow import ExecutionStage

log = logging.getLogger(__name__)


class CaseAuthoringAgent(BaseAgent):
    stage = ExecutionStage.CASE_GENERATION

    def execute(self, *inputs: Path) -> StepOutcome:
        try:
            log.info("Generating Playwright test code", extra=self.log_extra)
            scenarios = self._read_input(inputs[0])
            reply = self.executor.execute_prompt(self.build_prompt(scenarios), self.output_name)
            self._persist_output(reply, extract_code=True)
            return self._ok(f"Test cases written to {self.output_name}")
        except UsageLimitError:
            raise
        except Exception as e:
            log.exception("Test case generation failed: %s", e, extra=self.log_extra)
            return self._failed(str(e))

    def build_prompt(self, scenarios: str) -> str:
        return f"""Convert the test scenarios below into a Playwright test suite written in TypeScript
(@playwright/test) against {self.config.target_url}. Save it with the Write tool to {self.output_path}.

Rules:
- one test() per scenario, titled with the scenario id and name
- prefer role and text selectors over CSS paths
- wait on visible state, never on fixed sleeps
- every test ends with at least one expect()

=== Test scenarios ===
{scenarios}
"""
