import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Generator, Optional

import structlog
from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError
from starlette.concurrency import iterate_in_threadpool

from vaultproxy.errors import ChatValidationError
from vaultproxy.llm.anthropic_stream import AnthropicStreamClient
from vaultproxy.llm.engine import ModelStream, TurnEngine
from vaultproxy.logging_setup import configure_logging
from vaultproxy.schemas import ChatRequest, DoneEvent, encode_event
from vaultproxy.settings import Settings, load_settings
from vaultproxy.tools.executor import ToolExecutor
from vaultproxy.tools.registry import ToolRegistry
from vaultproxy.vault.client import VaultClient, VaultContext
from vaultproxy.vault.pool import SessionPool

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Disable proxy buffering (nginx) so text events arrive as they are produced
    "X-Accel-Buffering": "no",
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def ndjson_stream(
    events: Generator[BaseModel, None, None],
    is_disconnected: Callable[[], Awaitable[bool]],
    log: Any,
) -> AsyncIterator[str]:
    """
    Encode engine events as NDJSON lines.

    The engine runs in the threadpool one event at a time; between events the
    client connection is checked, and a gone client closes the engine.
    """
    finished = False
    try:
        async for event in iterate_in_threadpool(events):
            yield encode_event(event)
            if isinstance(event, DoneEvent):
                finished = True
            elif await is_disconnected():
                break
    finally:
        if finished:
            log.info("chat.request_completed")
        else:
            log.info("chat.stream_abandoned")
            # A step still running in the threadpool finishes on its own
            if not events.gi_running:
                events.close()


def parse_chat_request(data: Any) -> ChatRequest:
    """Validate the inbound body. Raises ChatValidationError."""
    if not isinstance(data, dict):
        raise ChatValidationError("Request body must be a JSON object")
    message = data.get("message")
    if not isinstance(message, str) or message == "":
        raise ChatValidationError("Missing message in request body")
    try:
        return ChatRequest.model_validate(data)
    except ValidationError as ex:
        first = ex.errors()[0] if ex.errors() else {}
        loc = ".".join(str(x) for x in first.get("loc", ()))
        raise ChatValidationError(f"Invalid request body at {loc or 'body'}: {first.get('msg', 'invalid')}") from ex


def create_app(
    settings: Optional[Settings] = None,
    model: Optional[ModelStream] = None,
    pool: Optional[SessionPool] = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings()
    if pool is None:
        pool = SessionPool(max_size=settings.pool_max_size, idle_ttl_s=settings.pool_idle_ttl_s)
    if model is None:
        model = AnthropicStreamClient(settings)
    registry = ToolRegistry()
    engine = TurnEngine(
        model=model,
        registry=registry,
        max_rounds=settings.max_rounds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_format)
        structlog.get_logger().info(
            "proxy.started",
            vault_addr=settings.vault_addr,
            frontend_origin=settings.frontend_origin,
            model=settings.model,
        )
        yield
        pool.close()

    app = FastAPI(title="Vault Chat Proxy", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.pool = pool
    app.state.registry = registry
    app.state.engine = engine

    # ---------------------------------------------------------
    # Health
    # ---------------------------------------------------------
    @app.get("/health")
    def health():
        return {"status": "ok", "vault_addr": settings.vault_addr}

    # ---------------------------------------------------------
    # Chat (route + stream tool-calling agent output)
    # ---------------------------------------------------------
    @app.post("/chat")
    @app.post("/mcp/chat")
    async def chat(request: Request, x_vault_token: Optional[str] = Header(default=None)):
        log = structlog.get_logger().bind(request_id=uuid.uuid4().hex[:12])

        if not x_vault_token:
            log.info("chat.rejected", status=401)
            return _error(401, "Missing X-Vault-Token header")

        try:
            data = await request.json()
        except ValueError:
            data = None
        try:
            body = parse_chat_request(data)
        except ChatValidationError as ex:
            log.info("chat.rejected", status=400, reason=ex.reason)
            return _error(400, ex.reason)

        ctx = VaultContext(vault_addr=settings.vault_addr, vault_token=x_vault_token)
        executor = ToolExecutor(VaultClient(pool, ctx, timeout_s=settings.vault_timeout_s))
        events: Generator[BaseModel, None, None] = engine.chat(body.message, body.history, executor)

        log.info("chat.request_started", history=len(body.history), session_id=body.session_id)

        stream = ndjson_stream(events, request.is_disconnected, log)
        return StreamingResponse(stream, media_type="application/x-ndjson", headers=STREAM_HEADERS)

    return app


app = create_app()
