"""Tests for the stage agents and their output shapes."""
import pytest

from porter.agents.analyzer_agent import AnalyzerAgent
from porter.agents.base_agent import AgentState
from porter.agents.consolidator_agent import ConsolidatorAgent, limit_words
from porter.agents.context import AgentContext
from porter.agents.context_reader_agent import ContextReaderAgent
from porter.agents.schemas import FrontendIntent, Severity
from porter.tools.llm_gateway import GatewayOutputError, GatewayTransportError


# =============================================================================
# Context Reader
# =============================================================================


@pytest.mark.asyncio
async def test_reader_returns_validated_output(make_gateway, context, reader_output):
    gateway = make_gateway([reader_output])
    agent = ContextReaderAgent(gateway)

    result = await agent.run(context)

    assert result == reader_output
    assert agent.state is AgentState.DONE
    assert gateway.calls[0]['json_output'] is True
    assert gateway.calls[0]['max_tokens'] == 1500


@pytest.mark.asyncio
async def test_reader_attaches_screenshot_and_dashboard(make_gateway, context, reader_output):
    gateway = make_gateway([reader_output])

    await ContextReaderAgent(gateway).run(context)

    content = gateway.calls[0]['user_content']
    assert content.image_url == context.screenshot_url
    assert 'How is berth utilization trending at Tuas?' in content.text
    assert 'berthUtilization' in content.text


@pytest.mark.asyncio
async def test_reader_fallback_on_malformed_output(make_gateway, context):
    agent = ContextReaderAgent(make_gateway([GatewayOutputError("bad json")]))

    result = await agent.run(context)

    assert result['contextSummary'] == f"User asked: {context.user_query}"
    assert result['userIntent']['primaryQuestion'] == context.user_query
    assert result['userIntent']['urgencyLevel'] == 'medium'
    assert result['visualContext'] == {'metrics': [], 'charts': [], 'anomalies': [], 'timeframe': 'current'}
    assert agent.get_metrics()['fallbacks'] == 1


@pytest.mark.asyncio
async def test_reader_fills_optional_fields(make_gateway, context):
    gateway = make_gateway([{
        'userIntent': {'primaryQuestion': 'Utilization?', 'urgencyLevel': 'HIGH'},
        'contextSummary': 'Short',
        'visualContext': {'metrics': [{'name': 'TEU', 'value': 412000}]}
    }])

    result = await ContextReaderAgent(gateway).run(context)

    assert result['userIntent']['urgencyLevel'] == 'high'
    assert result['userIntent']['terminals'] == []
    assert result['visualContext']['metrics'] == [{'name': 'TEU', 'value': '412000', 'trend': 'stable'}]
    assert result['visualContext']['timeframe'] == 'current'


# =============================================================================
# Analyzer
# =============================================================================


@pytest.mark.asyncio
async def test_analyzer_sees_reader_output_but_not_image(make_gateway, context, reader_output, analyzer_output):
    gateway = make_gateway([analyzer_output])

    result = await AnalyzerAgent(gateway).run(context, {'context_reader': reader_output})

    assert result == analyzer_output
    content = gateway.calls[0]['user_content']
    assert content.image_url is None
    assert 'Utilization at Tuas is 87% and rising.' in content.text


@pytest.mark.asyncio
async def test_analyzer_fallback_on_schema_violation(make_gateway, context, reader_output):
    agent = AnalyzerAgent(make_gateway([{'recommendations': {}}]))

    result = await agent.run(context, {'context_reader': reader_output})

    assert result['analysis']['keyFindings'] == []
    assert result['analysis']['issuesDetected'] == []
    assert result['recommendations'] == {'immediate': [], 'shortTerm': [], 'longTerm': []}
    assert [step['action'] for step in result['suggestedNextSteps']] == ['Show more details']


@pytest.mark.asyncio
async def test_analyzer_rejects_unknown_severity(make_gateway, context, analyzer_output):
    analyzer_output['analysis']['issuesDetected'][0]['severity'] = 'catastrophic'
    agent = AnalyzerAgent(make_gateway([analyzer_output]))

    result = await agent.run(context)

    assert result['analysis']['issuesDetected'] == []


def test_severity_is_ordered():
    assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
    assert max([Severity('medium'), Severity('CRITICAL'), Severity.LOW]) is Severity.CRITICAL


# =============================================================================
# Consolidator
# =============================================================================


@pytest.mark.asyncio
async def test_consolidator_overwrites_language(make_gateway, consolidator_output):
    context = AgentContext.build("Quel est le taux d'occupation ?", language='fr')
    consolidator_output['language'] = 'en'

    result = await ConsolidatorAgent(make_gateway([consolidator_output])).run(context)

    assert result['language'] == 'fr'
    assert result['frontendIntent']['action'] == 'highlight_metric'


@pytest.mark.asyncio
async def test_consolidator_normalizes_intent_and_steps(make_gateway, context, consolidator_output):
    consolidator_output['frontendIntent'] = {'action': 'launch_rocket', 'confidence': 1.7}
    consolidator_output['nextSteps'] = [
        {'action': 'Compare terminals', 'category': 'comparison'},
        {'id': 7, 'action': 'Show report', 'category': 'REPORT'},
        {'action': 'Filter data', 'category': 'filter'},
    ]

    result = await ConsolidatorAgent(make_gateway([consolidator_output])).run(context)

    assert result['frontendIntent']['action'] == 'none'
    assert result['frontendIntent']['confidence'] == 1.0
    assert [step['id'] for step in result['nextSteps']] == ['1', '7', '3']
    assert result['nextSteps'][1]['category'] == 'report'


@pytest.mark.asyncio
async def test_consolidator_truncates_long_answer(make_gateway, context, consolidator_output):
    consolidator_output['chatResponse'] = ' '.join(["Throughput rose again."] * 100)

    result = await ConsolidatorAgent(make_gateway([consolidator_output])).run(context)

    assert len(result['chatResponse'].split()) <= 150
    assert result['chatResponse'].endswith('.')


@pytest.mark.asyncio
async def test_consolidator_fallback_respects_word_limit(make_gateway):
    context = AgentContext.build(' '.join(['utilization'] * 300), language='es')
    agent = ConsolidatorAgent(make_gateway([GatewayOutputError("empty")]))

    result = await agent.run(context)

    assert result['chatResponse'].startswith("I understand you're asking about:")
    assert len(result['chatResponse'].split()) <= 150
    assert result['frontendIntent']['action'] == 'none'
    assert result['nextSteps'][0]['category'] == 'analysis'
    assert result['language'] == 'es'


@pytest.mark.asyncio
async def test_fallback_is_deterministic(make_gateway, context):
    first = await ConsolidatorAgent(make_gateway([GatewayOutputError("x")])).run(context)
    second = await ConsolidatorAgent(make_gateway([{'keyInsights': 'nope'}])).run(context)

    assert first == second
    assert first['chatResponse'] == (
        f"I understand you're asking about: {context.user_query}. Let me help you with that."
    )


# =============================================================================
# Base agent behaviour
# =============================================================================


@pytest.mark.asyncio
async def test_transport_error_propagates(make_gateway, context):
    agent = ContextReaderAgent(make_gateway([GatewayTransportError("connection refused")]))

    with pytest.raises(GatewayTransportError):
        await agent.run(context)

    metrics = agent.get_metrics()
    assert metrics['failed'] == 1
    assert metrics['successful'] == 0
    assert agent.execution_history[-1]['state'] == 'failed'


@pytest.mark.asyncio
async def test_one_gateway_call_per_run(make_gateway, context, reader_output):
    gateway = make_gateway([reader_output, reader_output])
    agent = ContextReaderAgent(gateway)

    await agent.run(context)
    await agent.run(context)

    assert len(gateway.calls) == 2
    assert agent.get_metrics()['total_executions'] == 2

    agent.reset_metrics()
    assert agent.get_metrics()['total_executions'] == 0
    assert len(agent.execution_history) == 0


@pytest.mark.asyncio
async def test_execution_history_keeps_only_recent_runs(make_gateway, context, reader_output):
    agent = ContextReaderAgent(make_gateway([reader_output] * 3), {'history_limit': 2})

    for _ in range(3):
        await agent.run(context)

    assert len(agent.execution_history) == 2
    assert agent.get_metrics()['total_executions'] == 3


def test_frontend_intent_defaults_to_none():
    intent = FrontendIntent.model_validate({})
    assert intent.to_record() == {
        'action': 'none', 'parameters': None, 'targetComponent': None, 'confidence': None
    }


# =============================================================================
# Word limit
# =============================================================================


def test_limit_words_leaves_short_text_alone():
    assert limit_words("  Throughput is steady.  ", 150) == "Throughput is steady."


def test_limit_words_cuts_at_sentence_end():
    text = "One two three four five six. Seven eight nine ten eleven twelve"
    assert limit_words(text, 8) == "One two three four five six."


def test_limit_words_adds_ellipsis_without_sentence_end():
    text = ' '.join(f"w{i}" for i in range(20))
    result = limit_words(text, 10)

    assert result == ' '.join(f"w{i}" for i in range(10)) + '…'
    assert len(result.split()) == 10


def test_limit_words_ignores_early_sentence_end():
    text = "Yes. " + ' '.join(f"w{i}" for i in range(20))
    assert limit_words(text, 10).endswith('…')


def test_limit_words_counts_chinese_characters():
    text = "泊位利用率很高。" * 30

    result = limit_words(text, 150)

    assert result == "泊位利用率很高。" * 21


def test_limit_words_leaves_short_chinese_alone():
    assert limit_words("泊位利用率为百分之八十七。", 150) == "泊位利用率为百分之八十七。"


def test_limit_words_mixed_script_counts_both():
    text = "Tuas 泊位已满 and more words here"
    assert limit_words(text, 5) == "Tuas 泊位已满…"
