from __future__ import annotations
import json
import re
from enum import Enum
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from app.core.workflow import CONFIG_FILE, ExecutionStage


class DegradedStagePolicy(str, Enum):
    TOLERATE = "tolerate"
    FAIL = "fail"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    app_name: str = "e2e-pipeline"
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    log_level: str = "INFO"

    redis_url: str = "redis://localhost:6379/0"

    work_dir: str = "claude-agents-output"

    agent_timeout_ms: int = 600_000
    agent_max_turns: int = 50
    agent_permission_mode: str = "bypassPermissions"
    playwright_mcp_command: str = "npx"
    playwright_mcp_args: list[str] = ["@playwright/mcp@latest"]

    test_run_max_attempts: int = 3
    file_snapshot_delay_s: float = 0.5
    degraded_stage_policy: DegradedStagePolicy = DegradedStagePolicy.TOLERATE


settings = Settings()


class PipelineConfig(BaseModel):
    """User intent for one run, stored as ``test-config.json`` in the work dir."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    target_url: str = Field(..., alias="targetUrl", examples=["https://example.com"])
    site_name: str = Field("", alias="siteName")
    test_requirements: list[str] = Field(default_factory=list, alias="testRequirements")
    test_types: list[str] = Field(default_factory=lambda: ["functional", "ux"], alias="testTypes")
    max_test_cases: int = Field(10, alias="maxTestCases")
    priority: Literal["low", "medium", "high"] = "medium"
    timeout: int = 600_000
    work_dir: str = Field(settings.work_dir, alias="workDir")
    verbose: bool = False

    @classmethod
    def load(cls, path: Path) -> "PipelineConfig":
        return cls.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))

    def save(self, work_dir: Path | None = None) -> Path:
        target_dir = Path(work_dir or self.work_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / CONFIG_FILE
        path.write_text(json.dumps(self.model_dump(by_alias=True), indent=2, ensure_ascii=False), encoding="utf-8")
        return path

    @classmethod
    def from_prompt(cls, text: str, work_dir: str | None = None) -> "PipelineConfig":
        """Build a config from a free-text request such as "test login on example.com"."""
        target_url = extract_url(text)
        if not target_url:
            raise ValueError("No target URL found in input")
        return cls(
            targetUrl=target_url,
            siteName=site_name_from_url(target_url),
            testRequirements=[text.strip()],
            testTypes=["functional", "ux"],
            workDir=work_dir or settings.work_dir,
            verbose=True,
        )


_URL_RE = re.compile(r"(https?://[^\s]+)", re.IGNORECASE)
_DOMAIN_RE = re.compile(r"\b((?:[a-z0-9-]+\.)+(?:com|cn|org|net|io|dev|app)(?:/[^\s]*)?)", re.IGNORECASE)


def extract_url(text: str) -> str | None:
    match = _URL_RE.search(text or "")
    if match:
        return match.group(1)
    match = _DOMAIN_RE.search(text or "")
    if match:
        return f"https://{match.group(1)}"
    return None


def site_name_from_url(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host[4:] if host.startswith("www.") else host


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def config_sufficient_for(raw: Any, stage: ExecutionStage) -> bool:
    """Check a raw config mapping against the fields ``stage`` needs."""
    if not isinstance(raw, dict):
        return False
    if stage == ExecutionStage.SITE_ANALYSIS:
        return bool(raw.get("targetUrl"))
    if stage == ExecutionStage.SCENARIO_GENERATION:
        return (
            bool(raw.get("targetUrl"))
            and _non_empty_list(raw.get("testRequirements"))
            and _non_empty_list(raw.get("testTypes"))
        )
    # Later stages only consume upstream artifacts.
    return True
