from dataclasses import dataclass
from typing import Dict, Optional
from app.core.config import PipelineConfig, Settings, settings as default_settings
from app.core.workflow import ExecutionStage
from app.agents.base import BaseAgent
from app.agents.executor import ClaudeExecutor
from app.agents.impl_analysis import SiteAnalysisAgent, ScenarioDesignAgent
from app.agents.impl_testcases import CaseAuthoringAgent
from app.agents.impl_runner import ExecutionAgent
from app.agents.impl_calibration import CalibrationAgent

@dataclass
class AgentRegistry:
    mapping: Dict[ExecutionStage, BaseAgent]

    def get(self, stage: ExecutionStage) -> BaseAgent:
        return self.mapping[stage]

    @staticmethod
    def default(config: PipelineConfig, settings: Optional[Settings] = None) -> "AgentRegistry":
        settings = settings or default_settings
        executor = ClaudeExecutor(config.work_dir, timeout_ms=config.timeout, settings=settings)
        return AgentRegistry(mapping={
            ExecutionStage.SITE_ANALYSIS: SiteAnalysisAgent(config, executor),
            ExecutionStage.SCENARIO_GENERATION: ScenarioDesignAgent(config, executor),
            ExecutionStage.CASE_GENERATION: CaseAuthoringAgent(config, executor),
            ExecutionStage.EXECUTION: ExecutionAgent(config, executor, settings.test_run_max_attempts),
            ExecutionStage.CALIBRATION: CalibrationAgent(config, executor),
        })
