"""
Base Agent class - all stage agents inherit from this
"""

from abc import ABC, abstractmethod
from enum import Enum
from collections import deque
from typing import Deque, Dict, Any, Optional, Type
import logging
import time
from datetime import datetime

from pydantic import ValidationError

from .context import AgentContext
from .policy import Stage, render_stage_prompt
from .schemas import StageModel
from ..tools.llm_gateway import GatewayOutputError, GatewayTransportError, LLMGateway, UserContent


class AgentState(Enum):
    """Per-invocation execution states"""
    IDLE = 'idle'
    RENDERING = 'rendering'
    AWAITING_MODEL = 'awaiting_model'
    PARSING = 'parsing'
    FALLBACK = 'fallback'
    DONE = 'done'


class BaseAgent(ABC):
    """
    Abstract base class for all Porter stage agents.

    Each agent must define:
    - stage / output_model: which prompt to render and how to validate
    - build_user_content(): what the model sees as the user turn
    - fallback(): deterministic output when the model answer is unusable

    Provides built-in:
    - One buffered JSON gateway call per invocation (never retried)
    - Fallback on malformed output, propagation of transport errors
    - Execution history tracking
    - logging
    """
    stage: Stage
    output_model: Type[StageModel]

    def __init__(self, agent_id: str, gateway: LLMGateway, config: Optional[Dict] = None):
        self.agent_id = agent_id
        self.gateway = gateway
        self.state = AgentState.IDLE
        self.config = config or {}
        self.logger = self._setup_logger()

        self.max_tokens = self.config.get('max_tokens', 1200)
        self.temperature = self.config.get('temperature', 0.7)

        # Execution tracking, most recent runs only
        self.history_limit = self.config.get('history_limit', 100)
        self.execution_history: Deque[Dict[str, Any]] = deque(maxlen=self.history_limit)

        # Metrics
        self.total_executions = 0
        self.successful_executions = 0
        self.fallback_executions = 0
        self.failed_executions = 0
        self.total_execution_time = 0.0

    def _setup_logger(self) -> logging.Logger:
        """Setup agent-specific logger"""
        logger = logging.getLogger(f"Agent.{self.agent_id}")
        logger.setLevel(logging.INFO)

        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                f'%(asctime)s - {self.agent_id} - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    @abstractmethod
    def build_user_content(self, context: AgentContext, upstream: Dict[str, Any]) -> UserContent:
        """
        Build the user turn for this stage

        Args:
            context: Request context
            upstream: Outputs of earlier stages keyed by stage name

        Returns:
            UserContent (text plus optional image)
        """
        pass

    @abstractmethod
    def fallback(self, context: AgentContext, upstream: Dict[str, Any]) -> Dict[str, Any]:
        """Deterministic output used when the model answer can't be used"""
        pass

    def render_prompt(self, context: AgentContext) -> str:
        return render_stage_prompt(self.stage, context.user_role, context.language)

    def postprocess(self, output: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        """Hook applied to both validated and fallback output"""
        return output

    async def run(self, context: AgentContext, upstream: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Main entry point with fallback handling and state management

        Args:
            context: Request context
            upstream: Outputs of earlier stages

        Returns:
            Stage output as a plain dict

        Raises:
            GatewayTransportError: the model could not be reached
        """
        upstream = upstream or {}
        start_time = time.time()
        self.total_executions += 1

        self.state = AgentState.RENDERING
        system_prompt = self.render_prompt(context)
        user_content = self.build_user_content(context, upstream)

        self.logger.info(
            f"Starting {self.stage.value} ({context.user_role.value}, {context.language.value})"
        )

        try:
            self.state = AgentState.AWAITING_MODEL
            raw = await self.gateway.complete(
                system_prompt,
                user_content,
                json_output=True,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )

            self.state = AgentState.PARSING
            output = self.output_model.model_validate(raw).to_record()
            self.successful_executions += 1
            outcome = 'success'

        except GatewayTransportError as e:
            self.failed_executions += 1
            self._record(start_time, 'failed', error=str(e))
            self.state = AgentState.IDLE
            self.logger.error(f"Model unreachable ({e.reason}): {e}")
            raise

        except (GatewayOutputError, ValidationError) as e:
            self.state = AgentState.FALLBACK
            self.logger.warning(f"Unusable model output, using fallback: {e}")
            output = self.fallback(context, upstream)
            self.fallback_executions += 1
            outcome = 'fallback'

        output = self.postprocess(output, context)

        execution_time = self._record(start_time, outcome)
        self.state = AgentState.DONE
        self.logger.info(f"Execution finished ({outcome}) in {execution_time:.2f}s")

        return output

    def _record(self, start_time: float, outcome: str, error: Optional[str] = None) -> float:
        execution_time = time.time() - start_time
        self.total_execution_time += execution_time

        entry = {
            'timestamp': datetime.now().isoformat(),
            'execution_time': round(execution_time, 3),
            'state': outcome
        }
        if error:
            entry['error'] = error
        self.execution_history.append(entry)

        return execution_time

    def get_metrics(self) -> Dict[str, Any]:
        """Get agent performance metrics"""
        avg_time = (self.total_execution_time / self.total_executions
                    if self.total_executions > 0 else 0)

        success_rate = (self.successful_executions / self.total_executions * 100
                        if self.total_executions > 0 else 0)

        return {
            'agent_id': self.agent_id,
            'total_executions': self.total_executions,
            'successful': self.successful_executions,
            'fallbacks': self.fallback_executions,
            'failed': self.failed_executions,
            'success_rate': round(success_rate, 2),
            'avg_execution_time': round(avg_time, 3),
            'total_time': round(self.total_execution_time, 3)
        }

    def reset_metrics(self):
        """Reset performance metrics"""
        self.total_executions = 0
        self.successful_executions = 0
        self.fallback_executions = 0
        self.failed_executions = 0
        self.total_execution_time = 0.0
        self.execution_history.clear()
        self.logger.info("Metrics reset")
