"""Tests for sentence boundary detection."""
import pytest

from porter.voice.sentence_segmenter import SentenceSegmenter, segment_stream


def test_decimal_point_is_not_a_boundary():
    segmenter = SentenceSegmenter()

    assert segmenter.feed("3.14 is pi") == []
    assert segmenter.flush() == "3.14 is pi"


def test_boundary_needs_following_whitespace():
    segmenter = SentenceSegmenter()

    assert segmenter.feed("Hello world. How") == ["Hello world."]
    assert segmenter.buffer == "How"


def test_terminator_at_end_of_buffer_waits_for_next_fragment():
    segmenter = SentenceSegmenter()

    assert segmenter.feed("Throughput is 3.") == []
    assert segmenter.feed("5 million TEU. Next") == ["Throughput is 3.5 million TEU."]
    assert segmenter.flush() == "Next"


def test_several_boundaries_emit_one_unit_up_to_the_last():
    segmenter = SentenceSegmenter()

    assert segmenter.feed("One. Two! Three") == ["One. Two!"]
    assert segmenter.buffer == "Three"


def test_newline_counts_as_whitespace():
    segmenter = SentenceSegmenter()
    assert segmenter.feed("Done.\nNext") == ["Done."]


@pytest.mark.parametrize("text, unit, rest", [
    ("Berths are full! Check", "Berths are full!", "Check"),
    ("Is Tuas busy? Yes", "Is Tuas busy?", "Yes"),
    ("Really?! Yes", "Really?!", "Yes"),
    ("泊位已满。 请检查", "泊位已满。", "请检查"),
    ("泊位已满！ 请检查", "泊位已满！", "请检查"),
    ("泊位满了吗？ 是的", "泊位满了吗？", "是的"),
    ("هل الرصيف ممتلئ؟ نعم", "هل الرصيف ممتلئ؟", "نعم"),
    ("बर्थ भरा है। जाँचें", "बर्थ भरा है।", "जाँचें"),
    ("बर्थ भरा है॥ जाँचें", "बर्थ भरा है॥", "जाँचें"),
])
def test_terminators_across_scripts(text, unit, rest):
    segmenter = SentenceSegmenter()

    assert segmenter.feed(text) == [unit]
    assert segmenter.buffer == rest


def test_terminator_inside_word_is_not_a_boundary():
    segmenter = SentenceSegmenter()

    assert segmenter.feed("Visit psa.com.sg today") == []
    assert segmenter.feed("泊位已满。请检查") == []


def test_flush_returns_nothing_for_empty_or_blank_buffer():
    segmenter = SentenceSegmenter()
    assert segmenter.flush() is None

    segmenter.feed("Done. ")
    assert segmenter.flush() is None


def test_flush_clears_buffer():
    segmenter = SentenceSegmenter()
    segmenter.feed("No terminator here")

    assert segmenter.flush() == "No terminator here"
    assert segmenter.flush() is None


@pytest.mark.asyncio
async def test_segment_stream_flushes_single_final_unit(fragments):
    units = [u async for u in segment_stream(fragments("The rate is 3.", "14 today. ", "Vessels wait", "ing"))]

    assert units == ["The rate is 3.14 today.", "Vessels waiting"]


@pytest.mark.asyncio
async def test_segment_stream_without_terminators_emits_one_unit(fragments):
    units = [u async for u in segment_stream(fragments("No ", "punctuation ", "at all"))]
    assert units == ["No punctuation at all"]
