"""
Consolidator Agent
Merges reader context and analysis into the spoken answer the user hears

Produces:
- chatResponse (spoken, word-limited)
- key insights
- next steps the assistant can take
- a frontend intent for the dashboard UI
"""

import json
import re
from typing import Dict, Any, Optional

from .base_agent import BaseAgent
from .context import AgentContext
from .policy import DEFAULT_MAX_WORDS, Stage, build_consolidator_prompt
from .schemas import ConsolidatorOutput
from ..tools.llm_gateway import LLMGateway, UserContent

SENTENCE_END = re.compile(r'[.!?。！？؟।॥]')
ELLIPSIS = '…'


# Scripts written without spaces count one word per character
_UNSPACED = r'぀-ヿ㐀-䶿一-鿿豈-﫿'
_CJK_PUNCTUATION = r'　-〿＀-￯'
WORD = re.compile(rf'[{_UNSPACED}]|[^\s{_UNSPACED}{_CJK_PUNCTUATION}]+')


def limit_words(text: str, max_words: int = DEFAULT_MAX_WORDS) -> str:
    """
    Hard word ceiling for spoken text

    Words are whitespace-separated tokens, except in Chinese and Japanese
    text where each character counts as a word. Over the limit, the text is
    cut back to the last sentence end in the second half of the kept words;
    without one, the cut is marked with an ellipsis.
    """
    text = text.strip()
    words = list(WORD.finditer(text))
    if len(words) <= max_words:
        return text

    clipped = text[:words[max_words - 1].end()]

    last_end = None
    for match in SENTENCE_END.finditer(clipped):
        last_end = match.end()

    if last_end is not None and last_end >= len(clipped) // 2:
        return clipped[:last_end]

    return clipped.rstrip(',;:') + ELLIPSIS


class ConsolidatorAgent(BaseAgent):
    """
    Stage 3 of the detailed pipeline

    Input: AgentContext + Context Reader and Analyzer outputs
    Output: chatResponse, keyInsights, nextSteps, frontendIntent, language
    """
    stage = Stage.CONSOLIDATOR
    output_model = ConsolidatorOutput

    def __init__(self, gateway: LLMGateway, config: Optional[Dict] = None):
        config = {'max_tokens': 1200, **(config or {})}
        super().__init__("consolidator", gateway, config)
        self.max_words = self.config.get('max_words', DEFAULT_MAX_WORDS)

    def render_prompt(self, context: AgentContext) -> str:
        return build_consolidator_prompt(context.user_role, context.language, self.max_words)

    def build_user_content(self, context: AgentContext, upstream: Dict[str, Any]) -> UserContent:
        reader_output = upstream.get(Stage.CONTEXT_READER.value, {})
        analyzer_output = upstream.get(Stage.ANALYZER.value, {})

        text = f"""User Query: {context.user_query}

Context Reader Output:
{json.dumps(reader_output, indent=2, ensure_ascii=False)}

Analyzer Output:
{json.dumps(analyzer_output, indent=2, ensure_ascii=False)}

Write the final response in {context.language.display_name}."""

        return UserContent(text=text)

    def fallback(self, context: AgentContext, upstream: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'chatResponse': (
                f"I understand you're asking about: {context.user_query}. "
                "Let me help you with that."
            ),
            'keyInsights': [],
            'nextSteps': [
                {
                    'id': '1',
                    'action': 'Show more details',
                    'detail': 'View detailed breakdown of current metrics',
                    'category': 'analysis'
                }
            ],
            'frontendIntent': {
                'action': 'none',
                'parameters': None,
                'targetComponent': None,
                'confidence': None
            },
            'language': context.language.value
        }

    def postprocess(self, output: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        output['chatResponse'] = limit_words(output['chatResponse'], self.max_words)
        output['language'] = context.language.value
        return output
