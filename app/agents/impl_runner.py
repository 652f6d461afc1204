import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from app.agents.base import BaseAgent, StepOutcome
from app.core.config import settings
from app.core.errors import UsageLimitError
from app.core.workflow import TEST_REPORT_FILE, ExecutionStage

log = logging.getLogger(__name__)

SUCCESS_MARKERS = ("all tests passed", "tests passed", "test passed", "passed", "✅", "completed successfully")
FAILURE_MARKERS = ("test failed", "tests failed", "failed", "❌", "timeout", "not found", "exception", "error")
_SCENARIO_RE = re.compile(r"scenario\s*\d+", re.IGNORECASE)
_ERROR_RE = re.compile(r"error[:\s]+(.+?)(?:\n|$)", re.IGNORECASE)


def score_reply(reply: str) -> Dict[str, Any]:
    """Judge from the agent's free-text reply whether the suite ran successfully."""
    text = reply.lower()
    result: Dict[str, Any] = {"success": False, "error": "", "details": reply}

    scenarios = len(_SCENARIO_RE.findall(reply))
    if any(marker in text for marker in SUCCESS_MARKERS) or scenarios >= 2:
        result["success"] = True
        if scenarios >= 2:
            result["details"] = f"Detected {scenarios} executed scenarios. {reply}"
    elif any(marker in text for marker in FAILURE_MARKERS):
        match = _ERROR_RE.search(reply)
        result["error"] = match.group(1).strip() if match else "Agent reported failures"
    elif len(reply) > 500:
        result["success"] = True
    else:
        result["error"] = "Agent reply too short, the suite probably did not run"
    return result


class ExecutionAgent(BaseAgent):
    """Runs the generated suite through the agent's Playwright tools, letting it fix failures between attempts."""
    stage = ExecutionStage.EXECUTION

    def __init__(self, config, executor, max_attempts: Optional[int] = None):
        super().__init__(config, executor)
        self.max_attempts = max_attempts or settings.test_run_max_attempts

    def execute(self, *inputs: Path) -> StepOutcome:
        try:
            test_file = self._resolve(inputs[0])
            outcome = self._run_attempts(test_file)
            self._write_report(outcome)
            if not outcome["success"]:
                return self._failed(
                    f"Tests still failing after {outcome['attempts']} attempts: {outcome['error'] or 'unknown error'}"
                )
            self._write_results(outcome)
            return self._ok(f"Tests passed after {outcome['attempts']} attempt(s)", attempts=outcome["attempts"])
        except UsageLimitError:
            raise
        except Exception as e:
            log.exception("Test execution failed: %s", e, extra=self.log_extra)
            return self._failed(str(e))

    def _resolve(self, path: Path) -> Path:
        path = Path(path)
        for candidate in (path, self.work_dir / path.name):
            if candidate.is_file():
                return candidate.resolve()
        raise FileNotFoundError(f"Test file not found: {path}")

    def _run_attempts(self, test_file: Path) -> Dict[str, Any]:
        last_error = ""
        result: Dict[str, Any] = {"success": False, "error": "", "details": ""}
        attempt = 0
        while attempt < self.max_attempts:
            attempt += 1
            log.info("Test run attempt %d/%d", attempt, self.max_attempts, extra=self.log_extra)
            try:
                reply = self.executor.execute_prompt(self.build_prompt(test_file, last_error, attempt))
                result = score_reply(reply)
                result["rawOutput"] = reply
            except UsageLimitError:
                raise
            except Exception as e:
                result = {"success": False, "error": str(e), "details": ""}

            if result["success"]:
                break
            last_error = result.get("error") or result.get("rawOutput") or "unknown error"
            log.warning("Attempt %d failed: %s", attempt, last_error[:200], extra=self.log_extra)

        result["attempts"] = attempt
        result["fixedIssues"] = last_error if result["success"] and attempt > 1 else None
        return result

    def build_prompt(self, test_file: Path, last_error: str, attempt: int) -> str:
        source = test_file.read_text(encoding="utf-8")
        prompt = f"""Execute the Playwright test suite below with the Playwright browser tools.

Test file: {test_file}

```typescript
{source}
```

"""
        if attempt == 1:
            return prompt + (
                "Run every test in order, highest priority first. For each one record passed, failed or "
                "skipped with the error details, then finish with the overall pass rate."
            )
        return prompt + f"""This is attempt {attempt}. The previous attempt failed with:

```
{last_error}
```

Find the cause (selectors, waits, page loading, test logic), fix the test file with the Write tool
at {test_file}, then run the suite again."""

    def _write_results(self, outcome: Dict[str, Any]) -> None:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "success": outcome["success"],
            "attempts": outcome["attempts"],
            "fixedIssues": outcome.get("fixedIssues"),
            "details": outcome.get("details"),
            "error": outcome.get("error"),
            "rawOutput": outcome.get("rawOutput"),
        }
        self.output_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        log.info("Test results saved to %s", self.output_path, extra=self.log_extra)

    def _write_report(self, outcome: Dict[str, Any]) -> None:
        status = "passed" if outcome["success"] else "failed"
        lines = [
            "# Test Execution Report",
            "",
            f"- **Run at**: {datetime.now(timezone.utc).isoformat()}",
            f"- **Status**: {status}",
            f"- **Attempts**: {outcome['attempts']}",
            f"- **Auto-fixed**: {'yes' if outcome.get('fixedIssues') else 'no'}",
            "",
            "## Details",
            "```",
            outcome.get("details") or outcome.get("rawOutput") or "no output",
            "```",
        ]
        if outcome.get("error"):
            lines += ["", "## Error", "```", outcome["error"], "```"]
        report = self.work_dir / TEST_REPORT_FILE
        report.write_text("\n".join(lines) + "\n", encoding="utf-8")
