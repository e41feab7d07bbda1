"""
Language-Model Gateway
Thin wrapper around one chat-completion call

Text (plus at most one image) goes in; a JSON object, a string, or a
stream of text fragments comes out. Every failure is a GatewayError with a
reason code. The gateway never retries: that is the caller's decision.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import openai
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

REASON_TRANSPORT = 'transport'
REASON_INVALID_OUTPUT = 'invalid_output'
REASON_TIMEOUT = 'timeout'


class GatewayError(Exception):
    """Base class for every gateway failure"""

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class GatewayTransportError(GatewayError):
    """Provider, network or timeout failure - nothing usable came back"""

    def __init__(self, message: str, reason: str = REASON_TRANSPORT):
        super().__init__(message, reason)


class GatewayOutputError(GatewayError):
    """The model answered, but not with the structure we asked for"""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message, REASON_INVALID_OUTPUT)
        self.raw = raw


@dataclass(frozen=True)
class UserContent:
    """User turn payload: text and an optional image (URL or data URL)"""
    text: str
    image_url: Optional[str] = None

    def to_message_content(self) -> Union[str, List[Dict[str, Any]]]:
        if not self.image_url:
            return self.text
        return [
            {'type': 'text', 'text': self.text},
            {'type': 'image_url', 'image_url': {'url': self.image_url}},
        ]


class LLMGateway:
    """
    One instance per process, injected wherever a model call is needed

    Args:
        client: Configured AsyncOpenAI client
        model: Chat model name
        timeout: Per-call timeout in seconds
    """

    def __init__(self, client: AsyncOpenAI, model: str = 'gpt-4o', timeout: float = 30.0):
        self.client = client
        self.model = model
        self.timeout = timeout

    async def complete(
        self,
        system_prompt: str,
        user_content: UserContent,
        *,
        streaming: bool = False,
        json_output: bool = False,
        max_tokens: int = 1200,
        temperature: float = 0.7,
    ) -> Union[Dict[str, Any], str, AsyncIterator[str]]:
        """
        Run one completion

        Returns:
            dict when json_output is set, str otherwise, or an async iterator
            of text fragments when streaming (the provider stream is already
            open when this returns)

        Raises:
            GatewayTransportError: provider/network failure or timeout
            GatewayOutputError: empty or non-JSON output in JSON mode
        """
        if streaming and json_output:
            raise ValueError("Structured output is not available in streaming mode")

        request = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_content.to_message_content()},
            ],
            'temperature': temperature,
            'max_tokens': max_tokens,
        }

        if streaming:
            stream = await self._create(stream=True, **request)
            return self._iter_fragments(stream)

        if json_output:
            request['response_format'] = {'type': 'json_object'}

        response = await self._create(**request)
        content = response.choices[0].message.content if response.choices else None

        if not json_output:
            return content or ''

        return self._parse_json(content)

    async def _create(self, **request):
        try:
            return await asyncio.wait_for(
                self.client.chat.completions.create(**request),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, openai.APITimeoutError) as e:
            logger.error(f"Model call timed out after {self.timeout}s")
            raise GatewayTransportError(
                f"Model call timed out after {self.timeout}s", reason=REASON_TIMEOUT
            ) from e
        except openai.OpenAIError as e:
            logger.error(f"Model call failed: {e}")
            raise GatewayTransportError(f"Model provider error: {e}") from e

    async def _iter_fragments(self, stream) -> AsyncIterator[str]:
        """
        Yield non-empty content deltas in arrival order

        The gateway timeout applies to each wait for the next chunk, so a
        stream that stalls mid-response fails instead of hanging.
        """
        chunks = stream.__aiter__()
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), timeout=self.timeout)
                except StopAsyncIteration:
                    break

                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except asyncio.TimeoutError as e:
            logger.error(f"Model stream stalled for {self.timeout}s")
            raise GatewayTransportError(
                f"Model stream stalled for {self.timeout}s", reason=REASON_TIMEOUT
            ) from e
        except openai.APITimeoutError as e:
            raise GatewayTransportError("Model stream timed out", reason=REASON_TIMEOUT) from e
        except openai.OpenAIError as e:
            logger.error(f"Model stream failed: {e}")
            raise GatewayTransportError(f"Model stream error: {e}") from e

    @staticmethod
    def _parse_json(content: Optional[str]) -> Dict[str, Any]:
        if not content or not content.strip():
            raise GatewayOutputError("Model returned empty output", raw=content)

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise GatewayOutputError(f"Model returned invalid JSON: {e}", raw=content) from e

        if not isinstance(parsed, dict):
            raise GatewayOutputError(
                f"Expected a JSON object, got {type(parsed).__name__}", raw=content
            )

        return parsed
