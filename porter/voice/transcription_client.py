"""
Speech transcription via OpenAI Whisper
"""
import logging
import re
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

# Our language codes → Whisper's
WHISPER_LANGUAGES = {
    'en': 'en',
    'zh-CN': 'zh',
    'es': 'es',
    'fr': 'fr',
    'ar': 'ar',
    'hi': 'hi',
}

_SCRIPT_PATTERNS = [
    ('zh-CN', re.compile(r'[一-鿿]')),
    ('ar', re.compile(r'[؀-ۿ]')),
    ('hi', re.compile(r'[ऀ-ॿ]')),
]

_SPANISH_WORDS = re.compile(r'\b(el|la|los|las|un|una|es|está|por|para|con)\b', re.IGNORECASE)
_FRENCH_WORDS = re.compile(r'\b(le|la|les|un|une|est|dans|pour|avec|être)\b', re.IGNORECASE)


class TranscriptionError(Exception):
    """Audio could not be transcribed"""


def detect_language(text: str) -> str:
    """
    Guess the language code of a transcript

    Script ranges decide Chinese, Arabic and Hindi. Spanish and French are
    spotted by common function words, Spanish first; anything else is English.
    """
    for code, pattern in _SCRIPT_PATTERNS:
        if pattern.search(text):
            return code

    if _SPANISH_WORDS.search(text):
        return 'es'

    if _FRENCH_WORDS.search(text):
        return 'fr'

    return 'en'


class WhisperTranscriber:
    """Speech-to-text for one uploaded clip"""

    def __init__(self, client: AsyncOpenAI, model: str = 'whisper-1'):
        self.client = client
        self.model = model

    async def transcribe(
        self,
        audio: bytes,
        language: Any = 'en',
        filename: str = 'audio.webm',
        content_type: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Returns:
            {'text': ..., 'detectedLanguage': ...}

        Raises:
            TranscriptionError: empty audio or provider failure
        """
        if not audio:
            raise TranscriptionError("Audio file is empty")

        code = getattr(language, 'value', language)
        upload = (filename, audio, content_type) if content_type else (filename, audio)

        try:
            result = await self.client.audio.transcriptions.create(
                model=self.model,
                file=upload,
                language=WHISPER_LANGUAGES.get(code, 'en')
            )
        except openai.OpenAIError as e:
            logger.error(f"Transcription failed: {e}")
            raise TranscriptionError(f"Failed to transcribe audio: {e}") from e

        text = result.text or ''
        detected = detect_language(text)
        logger.info(f"Transcribed {len(audio)} bytes ({detected}): '{text[:60]}'")

        return {
            'text': text,
            'detectedLanguage': detected
        }
