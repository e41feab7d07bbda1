"""
ElevenLabs speech synthesis client

One voice per supported language, all on the multilingual model. Audio is
streamed back as MP3 chunks.
"""
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.elevenlabs.io/v1"
DEFAULT_MODEL = "eleven_multilingual_v2"
AUDIO_CONTENT_TYPE = "audio/mpeg"


class SynthesisError(Exception):
    """Synthesis of one text failed; nothing playable came back"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class VoiceConfig:
    language: str
    voice_id: str
    voice_name: str


VOICE_CONFIGS: Dict[str, VoiceConfig] = {
    'en': VoiceConfig('en', 'aFxDLa1A1dSRlzW8nziT', 'Lim'),
    'zh-CN': VoiceConfig('zh-CN', 'fQj4gJSexpu8RDE2Ii5m', 'Yu'),
    'es': VoiceConfig('es', '5IDdqnXnlsZ1FCxoOFYg', 'Jesus'),
    'ar': VoiceConfig('ar', 'LXrTqFIgiubkrMkwvOUr', 'Masry'),
    'fr': VoiceConfig('fr', 'kENkNtk0xyzG09WW40xE', 'Marcel'),
    'hi': VoiceConfig('hi', 'bUTE2M5LdnqaUCd5tJB3', 'Vihan'),
}

VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}


def voice_for(language: Any) -> VoiceConfig:
    """Voice for a language code (or Language member), English when unknown"""
    code = getattr(language, 'value', language)
    return VOICE_CONFIGS.get(code, VOICE_CONFIGS['en'])


class ElevenLabsSynthesizer:
    """Streaming text-to-speech over the ElevenLabs REST API"""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("ElevenLabs API key is required")

        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "xi-api-key": self.api_key,
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def synthesize_stream(self, text: str, language: Any = 'en') -> AsyncIterator[bytes]:
        """
        Stream audio for one text

        Raises:
            SynthesisError: provider rejected the request or was unreachable
        """
        if not text.strip():
            return

        voice = voice_for(language)
        body = {
            "text": text,
            "model_id": self.model,
            "voice_settings": VOICE_SETTINGS,
        }

        client = await self._get_client()

        try:
            async with client.stream(
                "POST",
                f"/text-to-speech/{voice.voice_id}/stream",
                json=body,
            ) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise SynthesisError(
                        f"ElevenLabs streaming error: {response.status_code}",
                        status_code=response.status_code
                    )

                async for chunk in response.aiter_bytes(chunk_size=4096):
                    if chunk:
                        yield chunk

        except httpx.TimeoutException as e:
            raise SynthesisError(f"ElevenLabs request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs connection error: {e}")
            raise SynthesisError(f"Could not reach ElevenLabs: {e}") from e

    async def synthesize(self, text: str, language: Any = 'en') -> bytes:
        """Whole clip for one text"""
        chunks = []
        async for chunk in self.synthesize_stream(text, language):
            chunks.append(chunk)
        return b"".join(chunks)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
