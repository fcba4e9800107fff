import json
import uuid
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Tuple
from datetime import datetime
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from agents import ExecutionManager
from config import config
from core.credentials import CredentialResolver, EnvCredentialResolver, resolve_credentials
from core.errors import (
    InvalidConfig,
    MissingCredential,
    NoEnabledAgents,
    TrinityError,
)
from core.execution_config import ExecutionConfig, default_config, parse_config
from core.llm import ProviderLLMService
from core.logging_config import configure_logging
from core.presets import TRINITY_PRESETS, build_execution_config
from core.types import ExecutionMode, StreamEventType
from storage.memory import MessageSink, MessageStore, message_store

logger = structlog.get_logger()

# Precondition and config problems are the caller's; everything else is upstream.
CLIENT_ERRORS = (NoEnabledAgents, MissingCredential, InvalidConfig)

execution_manager: Optional[ExecutionManager] = None
credential_resolver: Optional[CredentialResolver] = None


def get_execution_manager() -> ExecutionManager:
    global execution_manager
    if execution_manager is None:
        execution_manager = ExecutionManager(
            ProviderLLMService(),
            stagger_seconds=config.stagger_seconds,
        )
    return execution_manager


def get_credential_resolver() -> CredentialResolver:
    global credential_resolver
    if credential_resolver is None:
        credential_resolver = EnvCredentialResolver(config.provider_keys())
    return credential_resolver


def get_message_store() -> MessageStore:
    return message_store


# Request/Response Models
class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"] = "user"
    content: str


class TrinityRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1, description="Conversation, oldest first")
    thread_id: Optional[str] = Field(default=None, description="Thread to persist messages under")
    user_id: Optional[str] = Field(default=None, description="User whose provider keys are used")
    execution_mode: Optional[ExecutionMode] = Field(default=None, description="Overrides preset and custom config")
    preset: Optional[str] = Field(default=None, description="Name of a Trinity preset")
    custom_config: Optional[Dict[str, Any]] = Field(default=None, description="Custom config overrides")
    interleave: bool = Field(default=False, description="Streaming only: forward agent events as they arrive")


# Initialize FastAPI
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(config.log_level)
    logger.info("Trinity API starting", providers=config.configured_providers())
    yield
    if execution_manager is not None and isinstance(execution_manager.llm, ProviderLLMService):
        await execution_manager.llm.aclose()
    logger.info("Trinity API shutting down")


app = FastAPI(
    title="Trinity Multi-Agent Orchestrator",
    description="""
    Runs three specialized agents on the same conversation and blends their answers:
    - **Analytical Agent**: Logic, structure, evidence-based conclusions
    - **Creative Agent**: Alternative perspectives and novel ideas
    - **Factual Agent**: Accuracy, verification, sources
    - **Orchestrator**: Resolves conflicts and merges the answers

    Supports parallel, sequential and hybrid execution, and streaming.
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TrinityError)
async def trinity_error_handler(request: Request, exc: TrinityError) -> JSONResponse:
    status_code = 400 if isinstance(exc, CLIENT_ERRORS) else 502
    logger.warning(
        "Request failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    content: Dict[str, Any] = {"error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, MissingCredential):
        content["providers"] = exc.providers
    if isinstance(exc, InvalidConfig):
        content["errors"] = json.loads(json.dumps(exc.errors, default=str))
    return JSONResponse(status_code=status_code, content=content)


def _build_config(request: TrinityRequest) -> ExecutionConfig:
    execution_mode = request.execution_mode
    if execution_mode is None and not request.preset and not request.custom_config:
        execution_mode = ExecutionMode(config.execution_mode)
    base = default_config().model_copy(update={"timeout_ms": config.timeout_ms})
    execution_config = build_execution_config(
        execution_mode=execution_mode,
        preset=request.preset,
        custom=request.custom_config,
        base=parse_config(base),
    )
    if not execution_config.enabled_specializations():
        raise NoEnabledAgents()
    return execution_config


def _last_user_content(messages: List[ChatMessage]) -> Optional[str]:
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return None


def _answer_source(
    composite: Dict[str, Any], execution_config: ExecutionConfig
) -> Tuple[str, str]:
    """Model and provider credited with the final answer.

    Args:
        composite: ``CompositeResult.to_dict()`` output, as returned by
            ``/trinity/execute`` and carried by ``trinity_complete``.
        execution_config: Config the run used.
    """
    answered_by = composite["meta"].get("answered_by")
    if answered_by:
        for result in composite["agent_results"]:
            if result["specialization"] == answered_by:
                return result["metadata"]["model"], result["metadata"]["provider"]
    return execution_config.orchestrator.model, execution_config.orchestrator.provider


# API Endpoints
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "providers": config.configured_providers(),
        "execution_mode": config.execution_mode,
    }


@app.post("/trinity/execute")
async def execute_trinity(
    request: TrinityRequest,
    manager: ExecutionManager = Depends(get_execution_manager),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    store: MessageSink = Depends(get_message_store),
):
    """
    Run the agents and return the blended answer.

    Blocks until every agent has settled and the orchestrator has finished.
    """
    execution_config = _build_config(request)
    credentials = resolve_credentials(resolver, request.user_id or "anonymous", execution_config)
    thread_id = request.thread_id or str(uuid.uuid4())

    question = _last_user_content(request.messages)
    if question is not None:
        store.persist(thread_id, "user", question)

    history = [m.model_dump() for m in request.messages]
    composite = (await manager.execute(history, execution_config, credentials)).to_dict()

    model, provider = _answer_source(composite, execution_config)
    store.persist(thread_id, "assistant", composite["final_response"], model=model, provider=provider)

    return {"thread_id": thread_id, **composite}


@app.post("/trinity/stream")
async def stream_trinity(
    request: TrinityRequest,
    manager: ExecutionManager = Depends(get_execution_manager),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    store: MessageSink = Depends(get_message_store),
):
    """
    Stream agent and orchestrator events as Server-Sent Events.

    Each event is a JSON-encoded StreamEvent. A failure after the stream
    has started is sent as a final ``error`` event.
    """
    execution_config = _build_config(request)
    credentials = resolve_credentials(resolver, request.user_id or "anonymous", execution_config)
    thread_id = request.thread_id or str(uuid.uuid4())

    question = _last_user_content(request.messages)
    if question is not None:
        store.persist(thread_id, "user", question)

    history = [m.model_dump() for m in request.messages]

    async def event_stream() -> AsyncIterator[str]:
        try:
            async for event in manager.stream_execute(
                history, execution_config, credentials, interleave=request.interleave
            ):
                if event.type == StreamEventType.TRINITY_COMPLETE:
                    model, provider = _answer_source(event.metadata, execution_config)
                    store.persist(thread_id, "assistant", event.content, model=model, provider=provider)
                yield f"data: {json.dumps(event.to_dict())}\n\n"
        except TrinityError as e:
            logger.warning("Stream failed", thread_id=thread_id, error=str(e))
            payload = {"type": "error", "error": type(e).__name__, "detail": str(e)}
            yield f"event: error\ndata: {json.dumps(payload)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Thread-Id": thread_id},
    )


@app.get("/trinity/config/default")
async def get_default_config():
    """Default execution configuration."""
    return default_config().model_dump(mode="json")


@app.post("/trinity/config/validate")
async def validate_execution_config(body: Dict[str, Any]):
    """Validate a full execution configuration without running it."""
    try:
        parse_config(body)
    except InvalidConfig as e:
        return {"valid": False, "errors": json.loads(json.dumps(e.errors, default=str))}
    return {"valid": True, "errors": []}


@app.get("/trinity/presets")
async def list_presets():
    """List the available presets."""
    return {"presets": TRINITY_PRESETS}


@app.get("/threads/{thread_id}/messages")
async def get_thread_messages(thread_id: str, store: MessageStore = Depends(get_message_store)):
    """Messages persisted for a thread."""
    if not store.has_thread(thread_id):
        raise HTTPException(status_code=404, detail="Thread not found")
    return {
        "thread_id": thread_id,
        "messages": [m.to_dict() for m in store.get_messages(thread_id)],
    }


# Run with: uvicorn api.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.api_host, port=config.api_port)
