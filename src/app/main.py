from __future__ import annotations

"""FastAPI application entrypoint for the chat orchestration gateway."""

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from src.app.chat import ChatPipeline
from src.app.dependencies import (
    get_chat_pipeline,
    get_knowledge_base,
    get_metrics,
    get_supervisor,
    get_tool_catalog,
)
from src.app.metrics import metrics_middleware, metrics_response
from src.app.schemas import (
    ChatParams,
    DeleteResponse,
    KnowledgeItem,
    KnowledgeQueryRequest,
    KnowledgeQueryResponse,
    SyncChatResponse,
    UploadRequest,
    UploadResponse,
)
from src.app.settings import settings
from src.app.supervisor import EXIT_TOOL_PROVIDER_FAILURE
from src.app.tasks import PeriodicTask
from src.rag.errors import EmptyResultError, ToolError, ValidationError
from src.rag.knowledge import KnowledgeBase

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_ERROR = "Empty response"


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _build_background_tasks() -> list[PeriodicTask]:
    metrics = get_metrics()
    supervisor = get_supervisor()
    catalog = get_tool_catalog()
    tasks = [
        PeriodicTask(
            name="request-metrics",
            interval=settings.chat_metrics_interval_seconds,
            action=metrics.on_interval_tick,
        )
    ]
    if catalog.configured:

        async def ping_tools() -> None:
            try:
                await catalog.ping()
            except ToolError as exc:
                supervisor.fail("Tool server unreachable", EXIT_TOOL_PROVIDER_FAILURE, exc)

        tasks.append(
            PeriodicTask(
                name="tool-server-ping",
                interval=settings.chat_tools_ping_seconds,
                action=ping_tools,
                run_immediately=True,
            )
        )
    return tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    tasks = _build_background_tasks()
    supervisor = get_supervisor()
    for task in tasks:
        task.start()
        supervisor.add_shutdown_hook(task.cancel)
    logger.info("gateway_started", extra={"model": settings.ollama_model})
    try:
        yield
    finally:
        for task in tasks:
            await task.stop()
        logger.info("gateway_stopped")


app = FastAPI(title="Chat Orchestration Gateway", version="0.1.0", lifespan=lifespan)


def _client_ip(request: Request) -> str:
    """Resolve the caller address, preferring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


@app.middleware("http")
async def reject_when_shutting_down(request: Request, call_next):
    """Refuse new work once the process has started shutting down."""
    if not get_supervisor().accepting_requests and request.url.path not in {"/health", "/metrics"}:
        return JSONResponse(status_code=503, content={"error": "Service is shutting down"})
    return await call_next(request)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Simple health probe for uptime checks."""
    return {"status": "ok"}


@app.post("/asyncChat")
async def async_chat(
    request: Request,
    params: ChatParams | None = Body(default=None),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> StreamingResponse:
    """Stream the answer as server-sent events, one character per message event."""
    chat_request = params.to_chat_request() if params is not None else None
    events = pipeline.stream_chat(chat_request, _client_ip(request))
    return StreamingResponse(
        (event.encode() async for event in events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.post("/syncChat", response_model=SyncChatResponse)
async def sync_chat(
    request: Request,
    params: ChatParams,
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
):
    """Return the complete answer with its usage metadata."""
    try:
        result = await pipeline.chat(params.to_chat_request(), _client_ip(request))
    except EmptyResultError:
        return JSONResponse(status_code=200, content={"error": EMPTY_RESPONSE_ERROR})
    except ValidationError as exc:
        return JSONResponse(status_code=422, content={"error": str(exc)})
    except Exception as exc:
        return JSONResponse(status_code=500, content={"error": str(exc) or type(exc).__name__})
    return SyncChatResponse(content=result.text, metadata=result.metadata or {})


@app.post("/knowledge/upload", response_model=UploadResponse)
async def upload_knowledge(
    payload: UploadRequest,
    knowledge: KnowledgeBase = Depends(get_knowledge_base),
):
    """Replace an assistant's documents with the files at the given URLs."""
    try:
        added = await knowledge.upload(payload.assistant_id, payload.file_url)
    except Exception as exc:
        logger.exception("knowledge_upload_failed", extra={"assistant_id": payload.assistant_id})
        return JSONResponse(
            status_code=500, content={"error": f"Failed to upload document: {exc}"}
        )
    return UploadResponse(assistant_id=payload.assistant_id, chunks=added)


@app.post("/knowledge/delete", response_model=DeleteResponse)
async def delete_knowledge(
    assistant_id: str = Query(alias="assistantId", min_length=1),
    knowledge: KnowledgeBase = Depends(get_knowledge_base),
):
    """Delete every document owned by an assistant."""
    try:
        removed = await knowledge.delete(assistant_id)
    except Exception as exc:
        logger.exception("knowledge_delete_failed", extra={"assistant_id": assistant_id})
        return JSONResponse(
            status_code=500, content={"error": f"Failed to delete document: {exc}"}
        )
    return DeleteResponse(deleted=removed)


@app.post("/knowledge/query", response_model=KnowledgeQueryResponse)
async def query_knowledge(
    payload: KnowledgeQueryRequest,
    knowledge: KnowledgeBase = Depends(get_knowledge_base),
):
    """Search an assistant's documents, or list them when the query is blank."""
    try:
        documents = await knowledge.query(payload.query, payload.assistant_id, payload.top_k)
    except Exception as exc:
        logger.exception("knowledge_query_failed", extra={"assistant_id": payload.assistant_id})
        return JSONResponse(
            status_code=500, content={"error": f"Failed to query documents: {exc}"}
        )
    return KnowledgeQueryResponse(
        results=[KnowledgeItem.from_document(document) for document in documents]
    )


def run() -> None:
    """Serve the gateway with uvicorn on the configured host and port."""
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
