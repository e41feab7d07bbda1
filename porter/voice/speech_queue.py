"""
Streaming Speech Queue
Synthesizes sentences in parallel and plays them back strictly in order

    text → [pending sentences] → synthesis (≤ N in flight)
                                      ↓ completes in any order
                                 reorder buffer (by sequence number)
                                      ↓ admitted in order
                              [pending audio] → player (one at a time)

Every sentence gets a sequence number when it is enqueued. A finished
synthesis only reaches the audio queue once every earlier sequence number
has been admitted, so playback order is enqueue order regardless of which
synthesis returned first. A failed synthesis admits a skip marker.
"""
import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Deque, Dict, List, Optional

from .sentence_segmenter import SentenceSegmenter
from .synthesis_client import AUDIO_CONTENT_TYPE, SynthesisError

logger = logging.getLogger(__name__)


class PlaybackError(Exception):
    """The player could not play a unit"""


@dataclass(frozen=True)
class QueuedSentence:
    seq: int
    text: str


@dataclass(frozen=True)
class AudioUnit:
    seq: int
    text: str
    audio: bytes
    content_type: str = AUDIO_CONTENT_TYPE


class SpeechState(Enum):
    IDLE = 'idle'
    SYNTHESIZING = 'synthesizing'
    PLAYING = 'playing'
    STOPPED = 'stopped'


class CancellationToken:
    """One per generation of queued speech; stop() cancels the current one"""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True


class AudioPlayer(ABC):
    """Where finished audio goes"""

    @abstractmethod
    async def play(self, unit: AudioUnit) -> None:
        """Return once the unit has finished playing"""

    @abstractmethod
    async def stop(self) -> None:
        """Halt whatever is playing right now"""


class RelayAudioPlayer(AudioPlayer):
    """
    Hands units to a consumer instead of a speaker

    Used by the HTTP layer: each unit is put on `sink` in playback order and
    counts as played once the consumer has taken it.
    """

    def __init__(self, sink: Optional[asyncio.Queue] = None):
        self.sink = sink if sink is not None else asyncio.Queue()

    async def play(self, unit: AudioUnit) -> None:
        await self.sink.put(unit)

    async def stop(self) -> None:
        pass


class StreamingSpeechQueue:
    """
    Bounded-concurrency synthesis with serial, ordered playback

    Args:
        synthesizer: Anything with `synthesize_stream(text, language)` yielding bytes
        player: AudioPlayer
        language: Language code (or Language member) passed to the synthesizer
        max_concurrency: Maximum syntheses in flight
        guard_delay: Seconds to stay STOPPED after stop() before accepting text again
    """

    def __init__(
        self,
        synthesizer,
        player: AudioPlayer,
        language: Any = 'en',
        max_concurrency: int = 3,
        guard_delay: float = 0.1,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self.synthesizer = synthesizer
        self.player = player
        self.language = language
        self.max_concurrency = max_concurrency
        self.guard_delay = guard_delay

        self.state = SpeechState.IDLE

        self._pending: Deque[QueuedSentence] = deque()
        self._reorder: Dict[int, Optional[AudioUnit]] = {}
        self._audio: Deque[AudioUnit] = deque()
        self._in_flight: Dict[int, asyncio.Task] = {}

        self._next_seq = 0
        self._next_admit_seq = 0

        self._token = CancellationToken()
        self._wakeup = asyncio.Event()
        self._runner: Optional[asyncio.Task] = None
        self._playback: Optional[asyncio.Task] = None
        self._current: Optional[AudioUnit] = None

        # Metrics
        self.played_count = 0
        self.skipped_count = 0
        self.peak_in_flight = 0

    # ==================== Inspection ====================

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def current(self) -> Optional[AudioUnit]:
        return self._current

    @property
    def is_active(self) -> bool:
        return self._runner is not None and not self._runner.done()

    # ==================== Producer side ====================

    def enqueue(self, text: str) -> Optional[int]:
        """
        Queue one sentence for synthesis

        Returns:
            The sentence's sequence number, or None when it was ignored
            (empty text, or the queue is stopped)
        """
        if self.state is SpeechState.STOPPED:
            logger.debug("Queue stopped, ignoring sentence")
            return None

        text = text.strip()
        if not text:
            return None

        seq = self._next_seq
        self._next_seq += 1
        self._pending.append(QueuedSentence(seq, text))

        if not self.is_active:
            self._runner = asyncio.create_task(self._run(self._token))
        self._wakeup.set()

        return seq

    async def consume(
        self,
        fragments: AsyncIterator[str],
        on_fragment: Optional[Callable[[str], Any]] = None,
    ) -> str:
        """
        Feed a token stream through sentence segmentation into the queue

        `on_fragment` sees every fragment in arrival order (it may be a
        coroutine function). Returns the full text.
        """
        token = self._token
        segmenter = SentenceSegmenter()
        parts: List[str] = []

        async for fragment in fragments:
            parts.append(fragment)

            if on_fragment is not None:
                result = on_fragment(fragment)
                if inspect.isawaitable(result):
                    await result

            for unit in segmenter.feed(fragment):
                if not token.cancelled:
                    self.enqueue(unit)

        tail = segmenter.flush()
        if tail and not token.cancelled:
            self.enqueue(tail)

        return ''.join(parts)

    async def drain(self):
        """Wait until everything queued so far has played (or was stopped)"""
        runner = self._runner
        if runner is not None and not runner.done():
            await asyncio.wait({runner})

    # ==================== Scheduling loop ====================

    async def _run(self, token: CancellationToken):
        try:
            while not token.cancelled:
                self._wakeup.clear()

                while self._pending and len(self._in_flight) < self.max_concurrency:
                    sentence = self._pending.popleft()
                    self._in_flight[sentence.seq] = asyncio.create_task(
                        self._synthesize(sentence, token)
                    )
                    self.peak_in_flight = max(self.peak_in_flight, len(self._in_flight))

                if self._playback is None and self._audio:
                    unit = self._audio.popleft()
                    self._playback = asyncio.create_task(self._play(unit, token))

                if self._is_drained():
                    break

                self.state = SpeechState.PLAYING if self._playback else SpeechState.SYNTHESIZING
                await self._wakeup.wait()
        finally:
            if not token.cancelled:
                self.state = SpeechState.IDLE

    def _is_drained(self) -> bool:
        return not (
            self._pending or self._audio or self._reorder
            or self._in_flight or self._playback
        )

    async def _synthesize(self, sentence: QueuedSentence, token: CancellationToken):
        unit = None
        try:
            chunks = []
            async for chunk in self.synthesizer.synthesize_stream(sentence.text, self.language):
                if token.cancelled:
                    return
                chunks.append(chunk)

            audio = b''.join(chunks)
            if audio:
                unit = AudioUnit(seq=sentence.seq, text=sentence.text, audio=audio)
            else:
                logger.warning(f"Empty audio for sentence {sentence.seq}, skipping")

        except SynthesisError as e:
            logger.warning(f"Synthesis failed for sentence {sentence.seq}, skipping: {e}")

        except Exception:
            # Still admits a skip marker below
            logger.exception(f"Unexpected synthesis error for sentence {sentence.seq}, skipping")

        finally:
            self._in_flight.pop(sentence.seq, None)

        if token.cancelled:
            return

        self._admit(sentence.seq, unit)
        self._wakeup.set()

    def _admit(self, seq: int, unit: Optional[AudioUnit]):
        """Release completed units in sequence order; None marks a skipped sentence"""
        self._reorder[seq] = unit

        while self._next_admit_seq in self._reorder:
            ready = self._reorder.pop(self._next_admit_seq)
            self._next_admit_seq += 1

            if ready is None:
                self.skipped_count += 1
            else:
                self._audio.append(ready)

    async def _play(self, unit: AudioUnit, token: CancellationToken):
        self._current = unit
        try:
            await self.player.play(unit)
            if not token.cancelled:
                self.played_count += 1
        except PlaybackError as e:
            logger.warning(f"Playback failed for sentence {unit.seq}: {e}")
        finally:
            if self._current is unit:
                self._current = None
            if self._playback is asyncio.current_task():
                self._playback = None
            self._wakeup.set()

    # ==================== Stop ====================

    async def stop(self):
        """
        Silence everything: drop queued text and audio, cancel in-flight
        synthesis, halt playback. Safe to call repeatedly or when idle.
        """
        self._token.cancel()
        self.state = SpeechState.STOPPED

        self._pending.clear()
        self._audio.clear()
        self._reorder.clear()
        self._next_admit_seq = self._next_seq

        tasks = list(self._in_flight.values())
        self._in_flight.clear()
        for task in tasks:
            task.cancel()

        playback = self._playback
        self._playback = None
        if playback is not None:
            try:
                await self.player.stop()
            except PlaybackError as e:
                logger.warning(f"Player did not stop cleanly: {e}")
            playback.cancel()
            tasks.append(playback)
        self._current = None

        runner = self._runner
        self._runner = None
        if runner is not None and not runner.done():
            runner.cancel()
            tasks.append(runner)

        self._wakeup.set()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._token = CancellationToken()

        if self.guard_delay > 0:
            await asyncio.sleep(self.guard_delay)

        if self.state is SpeechState.STOPPED:
            self.state = SpeechState.IDLE
            logger.info("Speech stopped")
