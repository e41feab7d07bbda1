"""
Sentence Segmentation
Cuts a token stream into speakable units as soon as a sentence boundary shows up
"""
import re
from typing import AsyncIterator, List, Optional

# Latin, CJK, Arabic and Devanagari sentence terminators
TERMINATORS = '.!?。！？؟।॥'

# A terminator run only counts once whitespace follows it. A run at the very
# end of the buffer stays undecided until more text (or the end) arrives.
BOUNDARY = re.compile(r'[.!?。！？؟।॥]+(?=\s)')


class SentenceSegmenter:
    """
    Incremental boundary detector

    Usage:
        segmenter = SentenceSegmenter()
        for fragment in fragments:
            for unit in segmenter.feed(fragment):
                speak(unit)
        tail = segmenter.flush()
    """

    def __init__(self):
        self._buffer = ''

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, fragment: str) -> List[str]:
        """Append a fragment; return the unit completed by it, if any"""
        if not fragment:
            return []

        self._buffer += fragment

        last_boundary = None
        for match in BOUNDARY.finditer(self._buffer):
            last_boundary = match.end()

        if last_boundary is None:
            return []

        unit = self._buffer[:last_boundary].strip()
        self._buffer = self._buffer[last_boundary:].lstrip()

        return [unit] if unit else []

    def flush(self) -> Optional[str]:
        """End of stream: whatever is left, if anything"""
        remainder = self._buffer.strip()
        self._buffer = ''
        return remainder or None

    def reset(self):
        self._buffer = ''


async def segment_stream(fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    """Async form: fragments in, sentence units out, tail flushed at the end"""
    segmenter = SentenceSegmenter()

    async for fragment in fragments:
        for unit in segmenter.feed(fragment):
            yield unit

    tail = segmenter.flush()
    if tail:
        yield tail
