"""Shared pytest fixtures and fakes."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from porter.agents.context import AgentContext
from porter.voice.speech_queue import AudioPlayer, AudioUnit
from porter.voice.synthesis_client import SynthesisError


# =============================================================================
# Fakes
# =============================================================================


class FakeGateway:
    """
    Stands in for LLMGateway

    `responses` are consumed one per buffered call: a dict is returned, an
    exception instance is raised. Streaming calls yield `fragments`, then
    raise `stream_error` if set; `open_error` is raised before streaming.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        fragments: Optional[List[str]] = None,
        stream_error: Optional[Exception] = None,
        open_error: Optional[Exception] = None,
    ):
        self.responses = list(responses or [])
        self.fragments = list(fragments or [])
        self.stream_error = stream_error
        self.open_error = open_error
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system_prompt, user_content, *, streaming=False,
                       json_output=False, max_tokens=1200, temperature=0.7):
        self.calls.append({
            'system_prompt': system_prompt,
            'user_content': user_content,
            'streaming': streaming,
            'json_output': json_output,
            'max_tokens': max_tokens,
            'temperature': temperature,
        })

        if streaming:
            if self.open_error:
                raise self.open_error
            return self._stream()

        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def _stream(self):
        for fragment in self.fragments:
            await asyncio.sleep(0)
            yield fragment
        if self.stream_error:
            raise self.stream_error


class FakeSynthesizer:
    """
    Stands in for ElevenLabsSynthesizer

    Per-text delays make completions arrive out of order; texts in
    `failures` raise SynthesisError, texts in `empty` produce no audio.
    """

    def __init__(self, delays=None, default_delay=0.01, failures=(), empty=()):
        self.delays = dict(delays or {})
        self.default_delay = default_delay
        self.failures = set(failures)
        self.empty = set(empty)
        self.started: List[str] = []
        self.completed: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def synthesize_stream(self, text, language='en'):
        self.started.append(text)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(text, self.default_delay))
            if text in self.failures:
                raise SynthesisError(f"synthesis failed for {text!r}", status_code=500)
            self.completed.append(text)
            if text in self.empty:
                return
            yield text.encode('utf-8')
        finally:
            self.in_flight -= 1


class RecordingPlayer(AudioPlayer):
    """Records units in the order they were played"""

    def __init__(self, play_delay: float = 0.0):
        self.play_delay = play_delay
        self.played: List[AudioUnit] = []
        self.stop_calls = 0
        self.playing = asyncio.Event()

    @property
    def played_texts(self) -> List[str]:
        return [unit.text for unit in self.played]

    async def play(self, unit: AudioUnit) -> None:
        self.playing.set()
        if self.play_delay:
            await asyncio.sleep(self.play_delay)
        self.played.append(unit)

    async def stop(self) -> None:
        self.stop_calls += 1


class FakeTranscriber:
    def __init__(self, result=None, error=None):
        self.result = result or {'text': 'Show me Tuas throughput', 'detectedLanguage': 'en'}
        self.error = error
        self.calls = []

    async def transcribe(self, audio, language='en', filename='audio.webm', content_type=None):
        self.calls.append({'audio': audio, 'language': language, 'filename': filename})
        if self.error:
            raise self.error
        return self.result


async def fragments_of(*parts):
    """Async iterator over the given fragments"""
    for part in parts:
        await asyncio.sleep(0)
        yield part


# =============================================================================
# Data Fixtures
# =============================================================================


@pytest.fixture
def dashboard_data():
    return {
        'reportId': 'ops-weekly',
        'reportName': 'Port Operations Weekly',
        'currentMetrics': {
            'berthUtilization': '87%',
            'avgTurnaroundHours': 21.5,
            'teuThroughput': 412000
        },
        'filters': {'terminal': 'Tuas'},
        'lastUpdated': '2024-11-04T08:00:00Z'
    }


@pytest.fixture
def context(dashboard_data):
    return AgentContext.build(
        user_query="How is berth utilization trending at Tuas?",
        language='en',
        user_role='middle_management',
        dashboard_data=dashboard_data,
        conversation_history=[
            {'role': 'user', 'content': 'Hi Porter'},
            {'role': 'assistant', 'content': 'Hello! How can I help?'},
        ],
        screenshot_url='data:image/png;base64,iVBORw0KGgo='
    )


@pytest.fixture
def reader_output():
    return {
        'visualContext': {
            'metrics': [{'name': 'Berth Utilization', 'value': '87%', 'trend': 'up'}],
            'charts': [{'type': 'line', 'title': 'Weekly Utilization', 'keyInsights': ['Rising since Monday']}],
            'anomalies': [],
            'timeframe': 'this week'
        },
        'userIntent': {
            'primaryQuestion': 'Berth utilization trend at Tuas',
            'specificMetrics': ['berth utilization'],
            'terminals': ['Tuas'],
            'timeframe': 'this week',
            'urgencyLevel': 'medium'
        },
        'contextSummary': 'Utilization at Tuas is 87% and rising.'
    }


@pytest.fixture
def analyzer_output():
    return {
        'analysis': {
            'keyFindings': ['Utilization is above the 85% warning threshold'],
            'trends': ['Up 4 points week over week'],
            'issuesDetected': [{
                'category': 'capacity',
                'severity': 'high',
                'description': 'Berths near saturation',
                'impact': 'Risk of vessel waiting time'
            }],
            'benchmarkComparison': 'Above the 80% target'
        },
        'recommendations': {
            'immediate': ['Re-sequence midweek arrivals'],
            'shortTerm': ['Shift feeder calls to Pasir Panjang'],
            'longTerm': ['Bring new Tuas berths online']
        },
        'suggestedNextSteps': [{
            'action': 'Compare terminals',
            'description': 'Tuas vs Pasir Panjang utilization',
            'benefit': 'Find spare capacity'
        }]
    }


@pytest.fixture
def consolidator_output():
    return {
        'chatResponse': 'Berth utilization at Tuas is 87% and climbing. That is above our warning level, so midweek arrivals need attention.',
        'keyInsights': ['Utilization at 87%', 'Above the 85% threshold'],
        'nextSteps': [
            {'id': 'a', 'action': 'Compare terminals', 'detail': 'Tuas vs Pasir Panjang', 'category': 'comparison'},
            {'id': 'b', 'action': 'Filter to this week', 'detail': 'Narrow the dashboard', 'category': 'filter'}
        ],
        'frontendIntent': {
            'action': 'highlight_metric',
            'parameters': {'metric': 'berthUtilization'},
            'targetComponent': 'utilization-card',
            'confidence': 0.8
        },
        'language': 'en'
    }


# =============================================================================
# Fake Fixtures
# =============================================================================


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def make_synthesizer():
    return FakeSynthesizer


@pytest.fixture
def player():
    return RecordingPlayer()


@pytest.fixture
def make_player():
    return RecordingPlayer


@pytest.fixture
def make_transcriber():
    return FakeTranscriber


@pytest.fixture
def fragments():
    return fragments_of
