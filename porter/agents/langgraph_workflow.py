"""
LangGraph Workflow
Orchestrates the stage agents using a graph-based state machine

Visual workflow:
    User Query (+ screenshot, role, language, history)
        ↓
    Context Reader
        ↓
    Analyzer
        ↓
    Consolidator
        ↓
    Response envelope

The streaming mode skips the graph: one model call, tokens out as they arrive.
"""

from langgraph.graph import StateGraph, END
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
import json
import logging
import time
from datetime import datetime

from .analyzer_agent import AnalyzerAgent
from .consolidator_agent import ConsolidatorAgent
from .context import AgentContext
from .context_reader_agent import ContextReaderAgent
from .policy import DASHBOARD_ANALYSIS_EXAMPLE, DEFAULT_MAX_WORDS, build_streaming_system_prompt
from .state_schema import PipelineState
from ..tools.llm_gateway import GatewayTransportError, LLMGateway, UserContent

logger = logging.getLogger(__name__)

STREAMING_STAGE = 'streaming'
STREAMING_HISTORY_TURNS = 3


class PipelineAbortError(Exception):
    """A stage could not reach the model; the run produced nothing"""

    def __init__(self, stage: str, agents_invoked: List[str], cause: Exception):
        super().__init__(f"Pipeline aborted at {stage}: {cause}")
        self.stage = stage
        self.agents_invoked = list(agents_invoked)
        self.cause = cause


class PorterWorkflow:
    """
    LangGraph-powered stage pipeline

    Args:
        gateway: Shared LLMGateway
        config: Optional overrides, per stage ('context_reader', 'analyzer',
            'consolidator') plus 'max_words', 'streaming_max_tokens' and
            'streaming_temperature'
    """

    def __init__(self, gateway: LLMGateway, config: Optional[Dict] = None):
        self.gateway = gateway
        self.config = config or {}
        self.max_words = self.config.get('max_words', DEFAULT_MAX_WORDS)

        # Initialize all agents
        self.agents = self._initialize_agents()

        # Build graph
        self.workflow = self._build_graph()

        # Compile into runnable app
        self.app = self.workflow.compile()

    def _initialize_agents(self) -> Dict:
        """Initialize all agent instances"""

        consolidator_config = {'max_words': self.max_words, **self.config.get('consolidator', {})}

        return {
            'context_reader': ContextReaderAgent(self.gateway, self.config.get('context_reader')),
            'analyzer': AnalyzerAgent(self.gateway, self.config.get('analyzer')),
            'consolidator': ConsolidatorAgent(self.gateway, consolidator_config)
        }

    def _build_graph(self) -> StateGraph:
        """
        Build LangGraph workflow

        Graph structure:
            start → context_reader → analyzer → consolidator → END
        """

        # Create graph with state schema
        workflow = StateGraph(PipelineState)

        # Add nodes (agents)
        workflow.add_node("context_reader", self._context_reader_node)
        workflow.add_node("analyzer", self._analyzer_node)
        workflow.add_node("consolidator", self._consolidator_node)

        # Set entry point
        workflow.set_entry_point("context_reader")

        # Add edges (strictly sequential)
        workflow.add_edge("context_reader", "analyzer")
        workflow.add_edge("analyzer", "consolidator")
        workflow.add_edge("consolidator", END)

        return workflow

    # ==================== Node Functions ====================

    async def _run_stage(self, name: str, state: PipelineState, upstream: Dict[str, Any]) -> Dict[str, Any]:
        start_time = time.time()
        invoked = state['agents_invoked'] + [name]

        try:
            output = await self.agents[name].run(state['context'], upstream)
        except GatewayTransportError as e:
            raise PipelineAbortError(name, invoked, e) from e

        return {
            'agents_invoked': invoked,
            'execution_times': {**state['execution_times'], name: round(time.time() - start_time, 3)},
            'output': output
        }

    async def _context_reader_node(self, state: PipelineState) -> Dict[str, Any]:
        """Node 1: Read dashboard context and user intent"""

        result = await self._run_stage('context_reader', state, {})
        summary = result['output'].get('contextSummary', '')
        logger.info(f"Context Reader complete: {summary[:80]}")

        return {
            'reader_output': result['output'],
            'agents_invoked': result['agents_invoked'],
            'execution_times': result['execution_times']
        }

    async def _analyzer_node(self, state: PipelineState) -> Dict[str, Any]:
        """Node 2: Findings, issues, recommendations"""

        result = await self._run_stage('analyzer', state, {
            'context_reader': state['reader_output']
        })
        findings = result['output']['analysis'].get('keyFindings', [])
        logger.info(f"Analyzer complete: {len(findings)} findings")

        return {
            'analyzer_output': result['output'],
            'agents_invoked': result['agents_invoked'],
            'execution_times': result['execution_times']
        }

    async def _consolidator_node(self, state: PipelineState) -> Dict[str, Any]:
        """Node 3: Spoken answer, next steps and UI intent"""

        result = await self._run_stage('consolidator', state, {
            'context_reader': state['reader_output'],
            'analyzer': state['analyzer_output']
        })
        intent = result['output']['frontendIntent'].get('action')
        logger.info(f"Consolidator complete: intent={intent}")

        return {
            'consolidator_output': result['output'],
            'agents_invoked': result['agents_invoked'],
            'execution_times': result['execution_times']
        }

    # ==================== Main Execution ====================

    async def run(self, context: AgentContext) -> Dict[str, Any]:
        """Execute the detailed pipeline and return only the envelope"""
        envelope, _ = await self.run_with_metadata(context)
        return envelope

    async def run_with_metadata(self, context: AgentContext) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Execute the detailed pipeline

        Args:
            context: Validated request context

        Returns:
            (envelope, metadata): envelope is {success, chatResponse, keyInsights,
            nextSteps, frontendIntent, language}; metadata is {processingTime,
            agentsInvoked, stageTimings} for this run only

        Raises:
            PipelineAbortError: a stage could not reach the model
        """
        logger.info(
            f"Detailed run for {context.user_role.value} in {context.language.value}: "
            f"'{context.user_query[:80]}'"
        )

        overall_start = time.time()

        # Initialize state
        initial_state: PipelineState = {
            'context': context,
            'timestamp': datetime.now().isoformat(),
            'reader_output': None,
            'analyzer_output': None,
            'consolidator_output': None,
            'agents_invoked': [],
            'execution_times': {}
        }

        try:
            final_state = await self.app.ainvoke(initial_state)
        except PipelineAbortError as e:
            logger.error(
                f"Pipeline aborted at {e.stage} after {time.time() - overall_start:.2f}s "
                f"(invoked: {e.agents_invoked})"
            )
            raise

        total_time = time.time() - overall_start
        metadata = {
            'processingTime': round(total_time, 3),
            'agentsInvoked': final_state['agents_invoked'],
            'stageTimings': final_state['execution_times']
        }

        logger.info(
            f"Pipeline complete in {total_time:.2f}s "
            f"(agents: {', '.join(final_state['agents_invoked'])})"
        )

        output = final_state['consolidator_output']
        envelope = {
            'success': True,
            'chatResponse': output['chatResponse'],
            'keyInsights': output['keyInsights'],
            'nextSteps': output['nextSteps'],
            'frontendIntent': output['frontendIntent'],
            'language': output['language']
        }
        return envelope, metadata

    def _streaming_user_content(self, context: AgentContext) -> UserContent:
        parts = [f"User Query: {context.user_query}"]

        dashboard = context.dashboard_json()
        if dashboard:
            parts.append(f"Dashboard Context: {dashboard}")

        history = context.recent_history(STREAMING_HISTORY_TURNS)
        if history:
            parts.append(
                f"Recent conversation: {json.dumps(history, indent=2, ensure_ascii=False)}"
            )

        parts.append(
            f"Provide a helpful response in {context.language.display_name}. "
            "If an image of the dashboard is provided, incorporate its contents and "
            "ONLY describe the data the user is interested in."
        )
        parts.append(f"ONE SHOT EXAMPLE:\n{DASHBOARD_ANALYSIS_EXAMPLE}")

        return UserContent(text="\n\n".join(parts), image_url=context.screenshot_url)

    async def stream(self, context: AgentContext) -> AsyncIterator[str]:
        """
        Single-pass streaming answer

        The model stream is open when this returns, so connection failures
        raise here rather than halfway through the response.

        Raises:
            PipelineAbortError: the model could not be reached
        """
        logger.info(
            f"Streaming run for {context.user_role.value} in {context.language.value}: "
            f"'{context.user_query[:80]}'"
        )

        system_prompt = build_streaming_system_prompt(
            context.user_role, context.language, self.max_words
        )

        try:
            fragments = await self.gateway.complete(
                system_prompt,
                self._streaming_user_content(context),
                streaming=True,
                max_tokens=self.config.get('streaming_max_tokens', 600),
                temperature=self.config.get('streaming_temperature', 0.7)
            )
        except GatewayTransportError as e:
            logger.error(f"Streaming run could not start: {e}")
            raise PipelineAbortError(STREAMING_STAGE, [STREAMING_STAGE], e) from e

        return self._relay(fragments)

    async def _relay(self, fragments: AsyncIterator[str]) -> AsyncIterator[str]:
        start_time = time.time()
        try:
            async for fragment in fragments:
                yield fragment
        except GatewayTransportError as e:
            logger.error(f"Streaming run failed mid-stream: {e}")
            raise PipelineAbortError(STREAMING_STAGE, [STREAMING_STAGE], e) from e

        logger.info(
            f"Streaming run complete in {time.time() - start_time:.2f}s "
            f"(agents: {STREAMING_STAGE})"
        )

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-agent metrics"""
        return {name: agent.get_metrics() for name, agent in self.agents.items()}

    def visualize(self):
        """
        Generate Mermaid diagram of workflow

        Can be rendered in documentation
        """

        mermaid = """
graph TD
    start([User Query]) --> A[Context Reader]
    A --> B[Analyzer]
    B --> C[Consolidator]
    C --> End([Response Envelope])
"""

        return mermaid
