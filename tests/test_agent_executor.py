"""Unit tests for ClaudeExecutor with a fake query function (no SDK subprocess)."""
import asyncio
import json
from typing import Any
import pytest
from claude_agent_sdk import AssistantMessage, ResultMessage, TextBlock, ToolResultBlock, UserMessage
from app.agents.executor import ClaudeExecutor, extract_text
from app.core.config import Settings
from app.core.errors import PipelineError, UsageLimitError


def result_message(result=None, is_error=False):
    return ResultMessage(
        subtype="error_during_execution" if is_error else "success",
        duration_ms=1000,
        duration_api_ms=800,
        is_error=is_error,
        num_turns=1,
        session_id="test-session",
        result=result,
    )


def fake_query(*messages, error=None, delay=0.0):
    seen = {}

    async def query(*args: Any, **kwargs: Any) -> Any:
        seen.update(kwargs)
        if delay:
            await asyncio.sleep(delay)
        for msg in messages:
            yield msg
        if error is not None:
            raise error

    query.seen = seen
    return query


def make_executor(work_dir, query_fn, timeout_ms=5000):
    return ClaudeExecutor(work_dir, timeout_ms=timeout_ms, settings=Settings(), query_fn=query_fn)


class TestExecutePrompt:

    def test_collects_assistant_text(self, work_dir):
        query = fake_query(
            AssistantMessage(content=[TextBlock(text="First part. ")], model="claude-sonnet-4-20250514"),
            AssistantMessage(content=[TextBlock(text="Second part.")], model="claude-sonnet-4-20250514"),
            result_message("ignored when text exists"),
        )

        text = make_executor(work_dir, query).execute_prompt("analyze")

        assert text == "First part. Second part."
        assert query.seen["prompt"] == "analyze"

    def test_falls_back_to_result_text(self, work_dir):
        query = fake_query(result_message("final answer"))

        assert make_executor(work_dir, query).execute_prompt("x") == "final answer"

    def test_options_wire_playwright_and_work_dir(self, work_dir):
        query = fake_query(result_message("ok"))

        make_executor(work_dir, query).execute_prompt("x")

        options = query.seen["options"]
        assert options.cwd == str(work_dir)
        assert "playwright" in options.mcp_servers
        assert options.max_turns == Settings().agent_max_turns

    def test_errored_result_with_usage_limit_text(self, work_dir):
        query = fake_query(result_message("API usage limit reached for this organization", is_error=True))

        with pytest.raises(UsageLimitError):
            make_executor(work_dir, query).execute_prompt("x")

    def test_sentinel_reply_is_usage_limit(self, work_dir):
        query = fake_query(
            AssistantMessage(content=[TextBlock(text="Claude AI usage limit reached|1700000000")], model="m"),
            result_message("Claude AI usage limit reached|1700000000"),
        )

        with pytest.raises(UsageLimitError):
            make_executor(work_dir, query).execute_prompt("x")

    def test_errored_result_without_usage_limit_text(self, work_dir):
        query = fake_query(result_message("max turns reached", is_error=True))

        assert make_executor(work_dir, query).execute_prompt("x") == "max turns reached"

    def test_page_content_mentioning_limits_is_not_throttling(self, work_dir):
        """Page snapshots and the final result may quote rate-limit text from the target site."""
        text = "The login form has a rate limit banner"
        query = fake_query(
            UserMessage(content=[ToolResultBlock(
                tool_use_id="tool_1",
                content="- banner: Rate limit exceeded. Monthly limit reached, quota exceeded.",
            )]),
            AssistantMessage(content=[TextBlock(text=text)], model="m"),
            result_message(text),
        )

        assert make_executor(work_dir, query).execute_prompt("x") == text

    def test_sdk_error_classified_as_usage_limit(self, work_dir):
        query = fake_query(error=RuntimeError("Claude Code process exited with code 1"))

        with pytest.raises(UsageLimitError):
            make_executor(work_dir, query).execute_prompt("x")

    def test_other_errors_propagate(self, work_dir):
        query = fake_query(error=ConnectionError("socket closed"))

        with pytest.raises(ConnectionError):
            make_executor(work_dir, query).execute_prompt("x")

    def test_timeout(self, work_dir):
        query = fake_query(result_message("late"), delay=1.0)

        with pytest.raises(PipelineError, match="timed out"):
            make_executor(work_dir, query, timeout_ms=10).execute_prompt("x")

    def test_message_log_written_even_on_failure(self, work_dir):
        query = fake_query(result_message("partial"), error=ConnectionError("socket closed"))

        with pytest.raises(ConnectionError):
            make_executor(work_dir, query).execute_prompt("x")

        log_file = work_dir / "logs" / "message.json"
        entries = json.loads(log_file.read_text())
        assert len(entries) == 1
        assert entries[0]["message"]["type"] == "ResultMessage"
        assert len(list((work_dir / "logs").glob("message-*.json"))) == 1


def test_extract_text_ignores_non_assistant_messages():
    assert extract_text(result_message("x")) == ""
    assert extract_text(AssistantMessage(content=[TextBlock(text="hi")], model="m")) == "hi"
