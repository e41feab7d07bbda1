"""Tests for prompt rendering."""
import pytest

from porter.agents.context import Language, UserRole
from porter.agents.policy import (
    FRONTEND_INTENTS,
    ROLE_INSTRUCTIONS,
    Stage,
    build_analyzer_prompt,
    build_consolidator_prompt,
    build_context_reader_prompt,
    build_streaming_system_prompt,
    render_stage_prompt,
)


@pytest.mark.parametrize("stage", list(Stage))
def test_prompts_are_deterministic(stage):
    first = render_stage_prompt(stage, UserRole.TOP_MANAGEMENT, Language.FR)
    second = render_stage_prompt(stage, UserRole.TOP_MANAGEMENT, Language.FR)
    assert first == second


@pytest.mark.parametrize("role", list(UserRole))
def test_prompts_carry_role_instructions(role):
    description = ROLE_INSTRUCTIONS[role]['description']

    assert description in build_context_reader_prompt(role, Language.EN)
    assert description in build_analyzer_prompt(role, Language.EN)
    assert description in build_consolidator_prompt(role, Language.EN)
    assert description in build_streaming_system_prompt(role, Language.EN)


def test_roles_render_different_prompts():
    top = build_consolidator_prompt(UserRole.TOP_MANAGEMENT, Language.EN)
    frontline = build_consolidator_prompt(UserRole.FRONTLINE_OPERATIONS, Language.EN)
    assert top != frontline


def test_consolidator_prompt_states_language_and_word_limit():
    prompt = build_consolidator_prompt(UserRole.MIDDLE_MANAGEMENT, Language.ZH_CN, max_words=80)

    assert 'Simplified Chinese' in prompt
    assert '"language": "zh-CN"' in prompt
    assert '80 words' in prompt
    for intent in FRONTEND_INTENTS:
        assert f'"{intent}"' in prompt


def test_streaming_prompt_names_response_language():
    prompt = build_streaming_system_prompt(UserRole.FRONTLINE_OPERATIONS, Language.AR)
    assert 'Respond in Arabic' in prompt
    assert '150 words' in prompt


def test_stage_prompts_embed_output_schema():
    assert '"contextSummary"' in build_context_reader_prompt(UserRole.MIDDLE_MANAGEMENT, Language.EN)
    assert '"issuesDetected"' in build_analyzer_prompt(UserRole.MIDDLE_MANAGEMENT, Language.EN)
    assert '"frontendIntent"' in build_consolidator_prompt(UserRole.MIDDLE_MANAGEMENT, Language.EN)


def test_render_stage_prompt_accepts_stage_name():
    assert render_stage_prompt('analyzer', UserRole.MIDDLE_MANAGEMENT, Language.ES) == \
        build_analyzer_prompt(UserRole.MIDDLE_MANAGEMENT, Language.ES)
