"""
Porter HTTP API

Endpoints:
    GET  /                      health
    GET  /api/chat-detailed     usage
    POST /api/chat-detailed     multi-stage pipeline, JSON envelope
    POST /api/chat              single-pass streaming text
    POST /api/chat/voice        streaming text plus ordered sentence audio (NDJSON)
    POST /api/voice/speak       text → chunked MP3
    POST /api/voice/transcribe  audio upload → text

Run with: uvicorn porter.api.main:app
"""
import asyncio
import base64
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from openai import AsyncOpenAI

from .schemas import ChatDetailedRequest, ChatRequest, SpeakRequest, TranscriptionResponse
from ..agents.context import AgentContext, InvalidContextError, Language
from ..agents.langgraph_workflow import PipelineAbortError, PorterWorkflow
from ..config.settings import configure_logging, settings
from ..tools.llm_gateway import LLMGateway
from ..voice.speech_queue import AudioUnit, RelayAudioPlayer, StreamingSpeechQueue
from ..voice.synthesis_client import AUDIO_CONTENT_TYPE, ElevenLabsSynthesizer, SynthesisError
from ..voice.transcription_client import TranscriptionError, WhisperTranscriber

logger = logging.getLogger(__name__)

router = APIRouter()


# ==================== Helpers ====================

def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'success': False, 'error': message, **extra})


def _abort_response(e: PipelineAbortError) -> JSONResponse:
    extra = {'details': str(e)} if settings.is_development() else {}
    return _error(500, "Failed to process chat message", **extra)


def _build_context(req: ChatDetailedRequest) -> AgentContext:
    return AgentContext.build(
        user_query=req.message or '',
        language=req.language,
        user_role=req.user_role,
        dashboard_data=req.dashboard_data,
        conversation_history=req.conversation_history,
        screenshot_url=req.screenshot_url
    )


def _service(request: Request, name: str):
    return getattr(request.app.state, name, None)


def _audio_event(unit: AudioUnit) -> Dict[str, Any]:
    return {
        'type': 'audio',
        'seq': unit.seq,
        'text': unit.text,
        'contentType': unit.content_type,
        'data': base64.b64encode(unit.audio).decode('ascii')
    }


# ==================== Endpoints ====================

@router.get("/")
async def health_check():
    return {"status": "active", "system": "Porter AI", "environment": settings.ENVIRONMENT}


@router.get("/api/chat-detailed")
async def chat_detailed_usage():
    return {
        'endpoint': '/api/chat-detailed',
        'method': 'POST',
        'description': 'Multi-stage analysis: Context Reader → Analyzer → Consolidator',
        'body': {
            'message': 'string (required)',
            'language': 'string (default: English)',
            'userRole': 'top_management | middle_management | frontline_operations',
            'dashboardData': 'object (optional)',
            'conversationHistory': 'array of {role, content} (optional)',
            'screenshotUrl': 'string (optional, URL or data URL)'
        },
        'response': ['success', 'chatResponse', 'keyInsights', 'nextSteps', 'frontendIntent', 'language']
    }


@router.post("/api/chat-detailed")
async def chat_detailed(req: ChatDetailedRequest, request: Request):
    """Full pipeline; all-or-nothing envelope"""
    try:
        context = _build_context(req)
    except InvalidContextError as e:
        return _error(400, str(e))

    workflow: Optional[PorterWorkflow] = _service(request, 'workflow')
    if workflow is None:
        return _error(503, "Language model is not configured")

    try:
        envelope, metadata = await workflow.run_with_metadata(context)
    except PipelineAbortError as e:
        logger.error(f"Detailed chat failed: {e}")
        return _abort_response(e)

    logger.info(f"Detailed chat metadata: {metadata}")

    return envelope


@router.post("/api/chat")
async def chat(req: ChatRequest, request: Request):
    """Streaming answer as raw text chunks or NDJSON lines"""
    try:
        context = _build_context(req)
    except InvalidContextError as e:
        return _error(400, str(e))

    workflow: Optional[PorterWorkflow] = _service(request, 'workflow')
    if workflow is None:
        return _error(503, "Language model is not configured")

    try:
        fragments = await workflow.stream(context)
    except PipelineAbortError as e:
        return _abort_response(e)

    ndjson = req.stream_format == "ndjson"

    async def body() -> AsyncIterator[str]:
        try:
            async for fragment in fragments:
                if ndjson:
                    yield json.dumps({'type': 'text', 'data': fragment}, ensure_ascii=False) + "\n"
                else:
                    yield fragment
        except PipelineAbortError as e:
            # Headers are already out; end the stream early
            logger.error(f"Chat stream interrupted: {e}")
            if ndjson:
                yield json.dumps({'type': 'error', 'data': 'Response interrupted'}) + "\n"

    return StreamingResponse(
        body(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
    )


@router.post("/api/chat/voice")
async def chat_voice(req: ChatRequest, request: Request):
    """
    Streaming answer with speech

    NDJSON events: {"type": "text"} per fragment as it arrives,
    {"type": "audio"} per sentence in sentence order, then {"type": "done"}.
    """
    try:
        context = _build_context(req)
    except InvalidContextError as e:
        return _error(400, str(e))

    workflow: Optional[PorterWorkflow] = _service(request, 'workflow')
    synthesizer = _service(request, 'synthesizer')
    if workflow is None or synthesizer is None:
        return _error(503, "Language model or speech synthesis is not configured")

    try:
        fragments = await workflow.stream(context)
    except PipelineAbortError as e:
        return _abort_response(e)

    events: asyncio.Queue = asyncio.Queue()
    speech = StreamingSpeechQueue(
        synthesizer,
        RelayAudioPlayer(events),
        language=context.language,
        max_concurrency=settings.SYNTHESIS_CONCURRENCY,
        guard_delay=settings.STOP_GUARD_DELAY
    )

    async def produce():
        finished = False
        try:
            await speech.consume(
                fragments,
                on_fragment=lambda fragment: events.put_nowait({'type': 'text', 'data': fragment})
            )
            await speech.drain()
            events.put_nowait({
                'type': 'done',
                'played': speech.played_count,
                'skipped': speech.skipped_count
            })
            finished = True
        except PipelineAbortError as e:
            logger.error(f"Voice chat stream interrupted: {e}")
            events.put_nowait({'type': 'error', 'data': 'Response interrupted'})
        except Exception:
            logger.exception("Voice chat failed")
            events.put_nowait({'type': 'error', 'data': 'Response interrupted'})
        finally:
            if not finished:
                await speech.stop()
            events.put_nowait(None)

    async def body() -> AsyncIterator[str]:
        producer = asyncio.create_task(produce())
        try:
            while True:
                item = await events.get()
                if item is None:
                    break
                if isinstance(item, AudioUnit):
                    item = _audio_event(item)
                yield json.dumps(item, ensure_ascii=False) + "\n"
        finally:
            # Client went away before the end
            if not producer.done():
                await speech.stop()
                producer.cancel()

    return StreamingResponse(
        body(),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache"}
    )


@router.post("/api/voice/speak")
async def speak(req: SpeakRequest, request: Request):
    """Chunked MP3 for one text"""
    if not req.text or not req.text.strip():
        return JSONResponse(status_code=400, content={'error': 'Text is required'})

    try:
        language = Language.parse(req.language)
    except InvalidContextError as e:
        return JSONResponse(status_code=400, content={'error': str(e)})

    synthesizer: Optional[ElevenLabsSynthesizer] = _service(request, 'synthesizer')
    if synthesizer is None:
        return JSONResponse(status_code=503, content={'error': 'Speech synthesis is not configured'})

    audio = synthesizer.synthesize_stream(req.text, language)

    # Pull the first chunk now so provider errors still get a status code
    try:
        first = await audio.__anext__()
    except StopAsyncIteration:
        first = b''
    except SynthesisError as e:
        logger.error(f"Speech synthesis failed: {e}")
        return JSONResponse(status_code=500, content={'error': 'Failed to synthesize speech'})

    async def body() -> AsyncIterator[bytes]:
        if not first:
            return
        yield first
        try:
            async for chunk in audio:
                yield chunk
        except SynthesisError as e:
            logger.error(f"Speech stream interrupted: {e}")

    return StreamingResponse(body(), media_type=AUDIO_CONTENT_TYPE)


@router.post("/api/voice/transcribe")
async def transcribe(
    request: Request,
    audio: Optional[UploadFile] = File(None),
    language: str = Form('en'),
):
    """Audio upload → {text, detectedLanguage}"""
    if audio is None:
        return JSONResponse(status_code=400, content={'error': 'Audio file is required'})

    transcriber: Optional[WhisperTranscriber] = _service(request, 'transcriber')
    if transcriber is None:
        return JSONResponse(status_code=503, content={'error': 'Transcription is not configured'})

    data = await audio.read()

    try:
        result = await transcriber.transcribe(
            data,
            language,
            filename=audio.filename or 'audio.webm',
            content_type=audio.content_type
        )
    except TranscriptionError as e:
        logger.error(f"Transcription failed: {e}")
        return JSONResponse(status_code=500, content={'error': 'Failed to transcribe audio'})

    return TranscriptionResponse(**result).model_dump(by_alias=True)


# ==================== App factory ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build provider clients once per process unless they were injected"""
    configure_logging()
    owned = []

    if app.state.workflow is None or app.state.transcriber is None:
        if settings.OPENAI_API_KEY:
            client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL or None,
                timeout=settings.GATEWAY_TIMEOUT
            )
            owned.append(client)

            if app.state.workflow is None:
                gateway = LLMGateway(client, model=settings.DEFAULT_MODEL, timeout=settings.GATEWAY_TIMEOUT)
                app.state.workflow = PorterWorkflow(gateway, {
                    'max_words': settings.MAX_RESPONSE_WORDS,
                    'context_reader': {'max_tokens': settings.READER_MAX_TOKENS},
                    'analyzer': {'max_tokens': settings.ANALYZER_MAX_TOKENS},
                    'consolidator': {'max_tokens': settings.CONSOLIDATOR_MAX_TOKENS},
                    'streaming_max_tokens': settings.STREAMING_MAX_TOKENS,
                    'streaming_temperature': settings.DEFAULT_TEMPERATURE
                })
            if app.state.transcriber is None:
                app.state.transcriber = WhisperTranscriber(client, model=settings.TRANSCRIPTION_MODEL)
        else:
            logger.warning("OPENAI_API_KEY not set; chat and transcription endpoints are disabled")

    if app.state.synthesizer is None:
        if settings.ELEVENLABS_API_KEY:
            app.state.synthesizer = ElevenLabsSynthesizer(
                settings.ELEVENLABS_API_KEY,
                base_url=settings.ELEVENLABS_BASE_URL,
                model=settings.SYNTHESIS_MODEL,
                timeout=settings.SYNTHESIS_TIMEOUT
            )
            owned.append(app.state.synthesizer)
        else:
            logger.warning("ELEVENLABS_API_KEY not set; speech endpoints are disabled")

    logger.info(f"Porter API ready ({settings.ENVIRONMENT})")
    yield

    for resource in owned:
        await resource.close()


def create_app(
    workflow: Optional[PorterWorkflow] = None,
    synthesizer: Optional[ElevenLabsSynthesizer] = None,
    transcriber: Optional[WhisperTranscriber] = None,
) -> FastAPI:
    app = FastAPI(title="Porter AI API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.workflow = workflow
    app.state.synthesizer = synthesizer
    app.state.transcriber = transcriber

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("porter.api.main:app", host="0.0.0.0", port=8000)
