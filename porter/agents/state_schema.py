"""
LangGraph State Schema
Defines what information flows between stage agents
"""
from typing import TypedDict, List, Dict, Any, Optional

from .context import AgentContext


class PipelineState(TypedDict):
    """
    Shared state that flows through the detailed pipeline

    Each node:
    1. Reads the context and earlier stage outputs
    2. Adds its own output
    3. Passes state to the next node
    """

    # Request
    context: AgentContext               # Immutable request context
    timestamp: str                      # When the request started

    # Stage outputs (plain dicts, camelCase keys)
    reader_output: Optional[Dict[str, Any]]
    analyzer_output: Optional[Dict[str, Any]]
    consolidator_output: Optional[Dict[str, Any]]

    # Metadata
    agents_invoked: List[str]           # Stages that ran, in order
    execution_times: Dict[str, float]   # Seconds per stage
