import logging
from pathlib import Path
from app.agents.base import BaseAgent, StepOutcome
from app.core.errors import UsageLimitError
from app.core.workflow import ExecutionStage

log = logging.getLogger(__name__)


class SiteAnalysisAgent(BaseAgent):
    stage = ExecutionStage.SITE_ANALYSIS

    def execute(self, *inputs: Path) -> StepOutcome:
        url = self.config.target_url
        try:
            log.info("Analyzing site %s", url, extra=self.log_extra)
            reply = self.executor.execute_prompt(self.build_prompt(url), self.output_name)
            self._persist_output(reply)
            return self._ok(f"Site analysis written to {self.output_name}", url=url)
        except UsageLimitError:
            raise
        except Exception as e:
            log.exception("Site analysis failed: %s", e, extra=self.log_extra)
            return self._failed(str(e))

    def build_prompt(self, url: str) -> str:
        return f"""Analyze the website {url} with the Playwright browser tools and save the result
with the Write tool to {self.output_path}. Do not only describe it: the file must exist.

Steps:
1. Open {url}.
2. Identify every interactive element (inputs, buttons, links, forms).
3. Record the page title, URL and main content areas.
4. Work out the likely user journeys.

File layout:
# Site Analysis Report
## Basic information
## Page structure
## Interactive elements
## User journeys
## Testing recommendations
"""


class ScenarioDesignAgent(BaseAgent):
    stage = ExecutionStage.SCENARIO_GENERATION

    def execute(self, *inputs: Path) -> StepOutcome:
        try:
            log.info("Generating test scenarios", extra=self.log_extra)
            analysis = self._read_input(inputs[0])
            reply = self.executor.execute_prompt(self.build_prompt(analysis), self.output_name)
            self._persist_output(reply)
            return self._ok(f"Test scenarios written to {self.output_name}")
        except UsageLimitError:
            raise
        except Exception as e:
            log.exception("Scenario generation failed: %s", e, extra=self.log_extra)
            return self._failed(str(e))

    def build_prompt(self, analysis: str) -> str:
        cfg = self.config
        requirements = "\n".join(f"{i}. {req}" for i, req in enumerate(cfg.test_requirements, 1)) or "(none given)"
        return f"""Design end-to-end test scenarios for {cfg.site_name or cfg.target_url} ({cfg.target_url})
from the site analysis below, and save them with the Write tool to {self.output_path}.

Test requirements:
{requirements}

Test types: {", ".join(cfg.test_types)}
Maximum number of scenarios: {cfg.max_test_cases}
Priority: {cfg.priority}

Each scenario needs an id, name, priority, preconditions, numbered steps and the expected outcome.

=== Site analysis ===
{analysis}
"""
