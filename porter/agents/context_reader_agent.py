"""
Context Reader Agent
Reads the dashboard (snapshot and/or screenshot) and pins down what the user is asking
"""

import json
from typing import Dict, Any, Optional

from .base_agent import BaseAgent
from .context import AgentContext
from .policy import Stage
from .schemas import ContextReaderOutput
from ..tools.llm_gateway import LLMGateway, UserContent

HISTORY_TURNS = 3


class ContextReaderAgent(BaseAgent):
    """
    Stage 1 of the detailed pipeline

    Input:
        AgentContext (query, dashboard snapshot, screenshot, history)

    Output:
        {
            "visualContext": {"metrics": [...], "charts": [...], "anomalies": [...], "timeframe": "..."},
            "userIntent": {"primaryQuestion": "...", "urgencyLevel": "medium", ...},
            "contextSummary": "..."
        }
    """
    stage = Stage.CONTEXT_READER
    output_model = ContextReaderOutput

    def __init__(self, gateway: LLMGateway, config: Optional[Dict] = None):
        config = {'max_tokens': 1500, **(config or {})}
        super().__init__("context_reader", gateway, config)

    def build_user_content(self, context: AgentContext, upstream: Dict[str, Any]) -> UserContent:
        parts = [f"User Query: {context.user_query}"]

        dashboard = context.dashboard_json()
        if dashboard:
            parts.append(f"Dashboard Data:\n{dashboard}")

        history = context.recent_history(HISTORY_TURNS)
        if history:
            parts.append(
                f"Recent Conversation:\n{json.dumps(history, indent=2, ensure_ascii=False)}"
            )

        if context.screenshot_url:
            parts.append("A screenshot of the current dashboard view is attached.")

        parts.append(
            "Extract the visual context and the user's intent relevant to this query."
        )

        # Only this stage looks at the screenshot
        return UserContent(text="\n\n".join(parts), image_url=context.screenshot_url)

    def fallback(self, context: AgentContext, upstream: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'visualContext': {
                'metrics': [],
                'charts': [],
                'anomalies': [],
                'timeframe': 'current'
            },
            'userIntent': {
                'primaryQuestion': context.user_query,
                'specificMetrics': [],
                'terminals': [],
                'timeframe': '',
                'urgencyLevel': 'medium'
            },
            'contextSummary': f"User asked: {context.user_query}"
        }
