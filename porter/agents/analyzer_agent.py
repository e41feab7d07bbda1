"""
Analyzer Agent
Turns the extracted dashboard context into findings, issues and recommendations
"""

import json
from typing import Dict, Any, Optional

from .base_agent import BaseAgent
from .context import AgentContext
from .policy import Stage
from .schemas import AnalyzerOutput
from ..tools.llm_gateway import LLMGateway, UserContent


class AnalyzerAgent(BaseAgent):
    """
    Stage 2 of the detailed pipeline

    Input:
        AgentContext + Context Reader output

    Output:
        {
            "analysis": {"keyFindings": [...], "trends": [...], "issuesDetected": [...], ...},
            "recommendations": {"immediate": [...], "shortTerm": [...], "longTerm": [...]},
            "suggestedNextSteps": [{"action": "...", "description": "...", "benefit": "..."}]
        }
    """
    stage = Stage.ANALYZER
    output_model = AnalyzerOutput

    def __init__(self, gateway: LLMGateway, config: Optional[Dict] = None):
        config = {'max_tokens': 1200, **(config or {})}
        super().__init__("analyzer", gateway, config)

    def build_user_content(self, context: AgentContext, upstream: Dict[str, Any]) -> UserContent:
        reader_output = upstream.get(Stage.CONTEXT_READER.value, {})

        parts = [
            f"User Query: {context.user_query}",
            f"Context Reader Output:\n{json.dumps(reader_output, indent=2, ensure_ascii=False)}",
        ]

        dashboard = context.dashboard_json()
        if dashboard:
            parts.append(f"Dashboard Data:\n{dashboard}")

        parts.append(
            "Analyze this data to identify findings, trends, issues and recommendations "
            "relevant to the user's query."
        )

        return UserContent(text="\n\n".join(parts))

    def fallback(self, context: AgentContext, upstream: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'analysis': {
                'keyFindings': [],
                'trends': [],
                'issuesDetected': [],
                'benchmarkComparison': ''
            },
            'recommendations': {
                'immediate': [],
                'shortTerm': [],
                'longTerm': []
            },
            'suggestedNextSteps': [
                {
                    'action': 'Show more details',
                    'description': 'View detailed breakdown of the current metrics',
                    'benefit': 'Better understanding of the data'
                }
            ]
        }
