"""Claude Agent SDK wrapper shared by every pipeline stage."""
from __future__ import annotations
import asyncio
import dataclasses
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional
from claude_agent_sdk import AssistantMessage, ClaudeAgentOptions, ResultMessage, TextBlock, query
from app.core.config import Settings, settings as default_settings
from app.core.errors import (
    PipelineError,
    UsageLimitError,
    classify,
    is_usage_limit_sentinel,
    message_signals_usage_limit,
)

log = logging.getLogger(__name__)

LOG_DIR = "logs"


def _jsonable(message: Any) -> Any:
    if dataclasses.is_dataclass(message) and not isinstance(message, type):
        return {"type": type(message).__name__, **dataclasses.asdict(message)}
    return repr(message)


def extract_text(message: Any) -> str:
    if isinstance(message, AssistantMessage):
        return "".join(block.text for block in message.content if isinstance(block, TextBlock))
    return ""


def signals_usage_limit(message: Any) -> bool:
    """Throttling arrives as an errored result or as the bare sentinel reply.

    Tool results and successful results echo page content, so they are never
    matched against the phrase catalog.
    """
    if isinstance(message, ResultMessage):
        return bool(message.is_error) and message_signals_usage_limit(message.result or "")
    if isinstance(message, AssistantMessage):
        return is_usage_limit_sentinel(extract_text(message))
    return False


class ClaudeExecutor:
    def __init__(
        self,
        work_dir: Path | str,
        timeout_ms: Optional[int] = None,
        settings: Settings = default_settings,
        query_fn: Callable[..., Any] = query,
    ):
        self.work_dir = Path(work_dir)
        self.timeout_s = (timeout_ms or settings.agent_timeout_ms) / 1000
        self.settings = settings
        self._query = query_fn

    def _options(self) -> ClaudeAgentOptions:
        return ClaudeAgentOptions(
            max_turns=self.settings.agent_max_turns,
            permission_mode=self.settings.agent_permission_mode,
            cwd=str(self.work_dir),
            continue_conversation=True,
            mcp_servers={
                "playwright": {
                    "type": "stdio",
                    "command": self.settings.playwright_mcp_command,
                    "args": list(self.settings.playwright_mcp_args),
                }
            },
        )

    async def _collect(self, prompt: str, message_log: list) -> str:
        chunks: list[str] = []
        result_text = ""
        async for message in self._query(prompt=prompt, options=self._options()):
            message_log.append({
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "message": _jsonable(message),
            })
            if signals_usage_limit(message):
                log.warning("Agent reported a usage limit", extra={"work_dir": str(self.work_dir), "stage": "-"})
                raise UsageLimitError()
            chunks.append(extract_text(message))
            if isinstance(message, ResultMessage) and isinstance(message.result, str):
                result_text = message.result
        text = "".join(chunks).strip()
        return text or result_text.strip()

    def execute_prompt(self, prompt: str, expected_file: Optional[str] = None) -> str:
        """Run one agent query to completion and return its text output.

        Raises UsageLimitError when the provider throttles the call.
        """
        log.info("Calling agent (prompt length %d)", len(prompt), extra={"work_dir": str(self.work_dir), "stage": "-"})
        if expected_file:
            log.info("Expecting agent to write %s", expected_file)

        message_log: list = []
        try:
            text = asyncio.run(asyncio.wait_for(self._collect(prompt, message_log), timeout=self.timeout_s))
        except UsageLimitError:
            raise
        except asyncio.TimeoutError as e:
            raise PipelineError(f"Agent call timed out after {self.timeout_s:.0f}s") from e
        except Exception as e:
            if classify(e):
                log.error("Agent usage limit reached, stopping gracefully")
                raise UsageLimitError("Claude AI usage limit reached - stopping gracefully") from e
            log.error("Agent call failed: %s", e)
            raise
        finally:
            self._write_message_log(message_log)

        if expected_file and not (self.work_dir / expected_file).exists():
            log.warning("Agent did not create expected file %s", expected_file)
        return text

    def _write_message_log(self, message_log: list) -> None:
        try:
            log_dir = self.work_dir / LOG_DIR
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
            content = json.dumps(message_log, indent=2, ensure_ascii=False, default=str)
            (log_dir / f"message-{stamp}.json").write_text(content, encoding="utf-8")
            (log_dir / "message.json").write_text(content, encoding="utf-8")
        except OSError as e:
            log.error("Failed to write agent message log: %s", e)
