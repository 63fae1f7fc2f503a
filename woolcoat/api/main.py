"""
HTTP API for the agent core.

Module: woolcoat/api/main.py

Endpoints:
- POST /agent/core/tool-call: pick and run one tool for an instruction
- POST /agent/core/tool-execute: run a known tool with self-correction
- POST /agent/core/task-submit: plan and run a multi-step task
- GET  /agent/core/tools: list registered tools
- POST /agent/basic/chat: conversation with session history
- POST /agent/basic/chat/stream: the same, streamed as server-sent events
- POST /agent/basic/upload-document: add an md or txt file to the knowledge base
- GET  /agent/basic/documents, GET /agent/basic/documents/{doc_id}/chunks,
  DELETE /agent/basic/documents/{doc_id}: manage knowledge base documents
- POST, GET /agent/basic/memory, DELETE /agent/basic/memory/{memory_id}:
  long-term user memory
- GET  /health
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional

import anyio
from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from woolcoat import __version__
from woolcoat.agent import AgentCore, AgentError, TaskSubmissionError, create_agent_core
from woolcoat.config import AgentSettings, settings as default_settings
from woolcoat.memory import DEFAULT_MEMORY_TYPE, UserMemory

from .models import (
    ChatReply,
    ChatRequest,
    CommonResponse,
    DocumentChunkItem,
    DocumentSummary,
    HealthCheckResponse,
    MemoryCreateRequest,
    TaskSubmitRequest,
    ToolCallRequest,
    ToolExecuteRequest,
)

logger = logging.getLogger(__name__)


def get_core(request: Request) -> AgentCore:
    return request.app.state.core


async def verify_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> None:
    """Accept ``X-API-Key: <key>`` or ``Authorization: Bearer <key>`` when keys are configured."""
    api_keys: List[str] = request.app.state.settings.api_keys
    if not api_keys:
        return

    token = x_api_key
    if not token and authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()

    if token not in api_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed, provide a valid X-API-Key or Bearer token",
        )


def format_sse(data: str, event: Optional[str] = None) -> str:
    """Format one server-sent event; multi-line data becomes several data lines."""
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


core_router = APIRouter(prefix="/agent/core", dependencies=[Depends(verify_api_key)])
basic_router = APIRouter(prefix="/agent/basic", dependencies=[Depends(verify_api_key)])


@core_router.post("/tool-call", response_model=CommonResponse[str])
async def tool_call(
    body: ToolCallRequest, core: AgentCore = Depends(get_core)
) -> CommonResponse[str]:
    """Pick and run one tool for a natural-language instruction."""
    result = await core.invoke(body.user_query, body.session_id)
    return CommonResponse[str].success(result)


@core_router.post("/tool-execute", response_model=CommonResponse[str])
async def tool_execute(
    body: ToolExecuteRequest, core: AgentCore = Depends(get_core)
) -> CommonResponse[str]:
    """Run a known tool; failures go through reflection."""
    result = await core.invoke_known(
        body.tool_code, body.param_map, body.user_query, body.session_id
    )
    return CommonResponse[str].success(result)


@core_router.post("/task-submit")
async def task_submit(body: TaskSubmitRequest, core: AgentCore = Depends(get_core)) -> Dict[str, Any]:
    """Plan and execute a compound instruction."""
    task = await core.submit_task(body.user_query, body.session_id, body.user_id)
    return CommonResponse[Any].success(task.model_dump(mode="json")).model_dump(mode="json")


@core_router.get("/tools")
async def list_tools(core: AgentCore = Depends(get_core)) -> Dict[str, Any]:
    """List registered tool descriptors."""
    descriptors = [d.model_dump(mode="json") for d in core.list_tools()]
    return CommonResponse[Any].success(descriptors).model_dump(mode="json")


@basic_router.post("/chat", response_model=CommonResponse[ChatReply])
async def chat(body: ChatRequest, core: AgentCore = Depends(get_core)) -> CommonResponse[ChatReply]:
    """Conversation turn using the session's history and the user's long-term memory."""
    result = await core.chat(body.question, body.session_id, body.temperature, body.user_id)
    reply = ChatReply(
        session_id=result.session_id,
        content=result.response.content,
        model=result.response.model,
        cost_time_ms=result.response.cost_time_ms,
    )
    return CommonResponse[ChatReply].success(reply)


@basic_router.post("/chat/stream")
async def chat_stream(
    body: ChatRequest, request: Request, core: AgentCore = Depends(get_core)
) -> StreamingResponse:
    """Stream a conversation turn as server-sent events, ending with a ``done`` or ``error`` event."""
    limiter: anyio.CapacityLimiter = request.app.state.stream_limiter

    async def event_stream() -> AsyncIterator[str]:
        send, receive = anyio.create_memory_object_stream(max_buffer_size=64)

        async def produce() -> None:
            async with send, limiter:

                async def on_chunk(chunk: str) -> None:
                    if chunk:
                        await send.send(format_sse(chunk))

                try:
                    result = await core.chat_stream(
                        body.question, on_chunk, body.session_id, body.temperature, body.user_id
                    )
                except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                    logger.info("Streaming chat client disconnected")
                    return
                except AgentError as e:
                    logger.error(f"Streaming chat failed: {e.message}")
                    await send.send(format_sse(e.message, event="error"))
                    return
                except Exception as e:
                    logger.error(f"Streaming chat failed: {e}", exc_info=True)
                    await send.send(format_sse(f"Internal server error: {e}", event="error"))
                    return
                await send.send(format_sse(json.dumps({"session_id": result.session_id}), event="done"))

        async with anyio.create_task_group() as tg:
            tg.start_soon(produce)
            async with receive:
                async for event in receive:
                    yield event

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@basic_router.post("/upload-document", response_model=CommonResponse[DocumentSummary])
async def upload_document(
    file: UploadFile = File(..., description="Text document (md or txt)"),
    user_id: Optional[str] = Form(default=None),
    doc_id: Optional[str] = Form(default=None),
    core: AgentCore = Depends(get_core),
) -> CommonResponse[DocumentSummary]:
    """Upload a text file into the knowledge base."""
    data = await file.read()
    info = await core.upload_document(file.filename or "", data, user_id, doc_id)
    return CommonResponse[DocumentSummary].success(
        DocumentSummary.model_validate(info, from_attributes=True)
    )


@basic_router.get("/documents", response_model=CommonResponse[List[DocumentSummary]])
async def list_documents(
    user_id: Optional[str] = None, core: AgentCore = Depends(get_core)
) -> CommonResponse[List[DocumentSummary]]:
    """List the user's knowledge base documents, newest first."""
    documents = await core.list_documents(user_id)
    return CommonResponse[List[DocumentSummary]].success(
        [DocumentSummary.model_validate(d, from_attributes=True) for d in documents]
    )


@basic_router.get(
    "/documents/{doc_id}/chunks", response_model=CommonResponse[List[DocumentChunkItem]]
)
async def list_document_chunks(
    doc_id: str, user_id: Optional[str] = None, core: AgentCore = Depends(get_core)
) -> CommonResponse[List[DocumentChunkItem]]:
    """List a document's chunks in order."""
    chunks = await core.list_document_chunks(doc_id, user_id)
    return CommonResponse[List[DocumentChunkItem]].success(
        [DocumentChunkItem.model_validate(c, from_attributes=True) for c in chunks]
    )


@basic_router.delete("/documents/{doc_id}")
async def delete_document(
    doc_id: str, user_id: Optional[str] = None, core: AgentCore = Depends(get_core)
) -> Dict[str, Any]:
    """Delete a document and its chunks."""
    removed = await core.delete_document(doc_id, user_id)
    data = {"doc_id": doc_id, "removed_chunks": removed}
    return CommonResponse[Any].success(data).model_dump(mode="json")


@basic_router.post("/memory", response_model=CommonResponse[UserMemory])
async def create_memory(
    body: MemoryCreateRequest, core: AgentCore = Depends(get_core)
) -> CommonResponse[UserMemory]:
    """Store a long-term memory entry for a user."""
    memory = await core.remember(body.user_id, body.content, body.memory_type, body.weight)
    return CommonResponse[UserMemory].success(memory)


@basic_router.get("/memory", response_model=CommonResponse[List[UserMemory]])
async def list_memory(
    user_id: Optional[str] = None,
    memory_type: str = DEFAULT_MEMORY_TYPE,
    core: AgentCore = Depends(get_core),
) -> CommonResponse[List[UserMemory]]:
    """List a user's memories of one type, highest weight first."""
    return CommonResponse[List[UserMemory]].success(await core.recall(user_id, memory_type))


@basic_router.delete("/memory/{memory_id}")
async def delete_memory(
    memory_id: str,
    user_id: Optional[str] = None,
    memory_type: str = DEFAULT_MEMORY_TYPE,
    core: AgentCore = Depends(get_core),
) -> Dict[str, Any]:
    """Delete one memory entry."""
    if not await core.forget(memory_id, user_id, memory_type):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Memory not found: {memory_id}"
        )
    return CommonResponse[Any].success({"memory_id": memory_id}).model_dump(mode="json")


def create_app(
    app_settings: Optional[AgentSettings] = None, core: Optional[AgentCore] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        app_settings: Settings (process settings when None)
        core: Pre-built agent core; built from settings at startup when None

    Returns:
        Configured application
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting woolcoat agent service...")
        logger.info(f"Configuration: LLM provider={app_settings.llm_provider}, model={app_settings.llm_model}")

        owns_core = core is None
        app.state.core = core or await create_agent_core(app_settings)
        app.state.stream_limiter = anyio.CapacityLimiter(app_settings.stream_max_concurrency)

        logger.info("Agent service started successfully")
        yield

        logger.info("Shutting down agent service...")
        if owns_core:
            await app.state.core.aclose()
        logger.info("Agent service shutdown complete")

    app = FastAPI(
        title="Woolcoat Agent Core",
        description="Tool calling, self-correcting retries and multi-step task planning",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    app.include_router(core_router)
    app.include_router(basic_router)

    @app.exception_handler(TaskSubmissionError)
    async def task_error_handler(request: Request, exc: TaskSubmissionError) -> JSONResponse:
        """Failed tasks return the task itself as data."""
        logger.warning(f"Task submission failed: {exc.message}")
        task = exc.task.model_dump(mode="json") if exc.task is not None else None
        return JSONResponse(
            status_code=exc.status_code,
            content=CommonResponse.fail(exc.message, code=exc.status_code, data=task).model_dump(mode="json"),
        )

    @app.exception_handler(AgentError)
    async def agent_error_handler(request: Request, exc: AgentError) -> JSONResponse:
        logger.warning(f"{type(exc).__name__}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=CommonResponse.fail(exc.message, code=exc.status_code).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors."""
        errors = [f"{err['loc']}: {err['msg']}" for err in exc.errors()]
        logger.warning(f"Validation error: {errors}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=CommonResponse.fail(
                "Invalid request data", code=422, data={"errors": errors}
            ).model_dump(mode="json"),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Handle HTTP exceptions."""
        logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=CommonResponse.fail(str(exc.detail), code=exc.status_code).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle all other exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=CommonResponse.fail(f"Internal server error: {exc}").model_dump(mode="json"),
        )

    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check(request: Request) -> HealthCheckResponse:
        """Liveness check with the number of registered tools."""
        return HealthCheckResponse(
            status="healthy", version=__version__, tools=len(request.app.state.core.catalog)
        )

    return app
