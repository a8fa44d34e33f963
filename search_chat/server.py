"""FastAPI application for the search chat service."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from search_chat import __version__
from search_chat.config import Settings, get_settings
from search_chat.events import CONNECTED_FRAME, DONE_FRAME, KEEPALIVE_FRAME, SSEEvent
from search_chat.exceptions import InvalidChatRequestError, ProviderError
from search_chat.llm import LLMClient
from search_chat.models import ChatRequest, ErrorResponse, HealthResponse, SearchRequest, SearchResponse
from search_chat.orchestrator import SearchOrchestrator
from search_chat.search import TavilySearchClient
from search_chat.workflow import run_chat_workflow, validate_messages

log = structlog.get_logger("search_chat.server")

# SSE Configuration
HEARTBEAT_INTERVAL = 30  # seconds
MAX_DURATION = 600  # 10 minutes
MAX_QUEUE_SIZE = 100

HTTP_CONNECT_TIMEOUT = 10.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",  # Disable proxy buffering
    "Connection": "keep-alive",
}


# --- Exception handlers ---


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


async def _handle_invalid_request(request: Request, exc: InvalidChatRequestError) -> JSONResponse:
    log.warning("request.invalid", path=request.url.path, reason=exc.reason)
    return _error(status.HTTP_400_BAD_REQUEST, exc.reason)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request body")
    log.warning("request.validation_error", path=request.url.path, detail=str(errors))
    return _error(status.HTTP_400_BAD_REQUEST, f"{location}: {message}" if location else message)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unexpected_error", error=str(exc))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred.")


# --- App factory ---


def get_app(settings: Settings | None = None, http_client: httpx.AsyncClient | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Provider clients share one ``httpx.AsyncClient``; pass ``http_client`` to
    route upstream calls elsewhere (tests use ``httpx.MockTransport``).
    """
    settings = settings or get_settings()
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(None, connect=HTTP_CONNECT_TIMEOUT))

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        log.info(
            "app.started",
            llm_enabled=settings.llm_enabled,
            search_enabled=settings.search_enabled,
            orchestrator_model=settings.orchestrator_model,
            response_model=settings.response_model,
        )
        yield
        if owns_client:
            await client.aclose()

    application = FastAPI(
        title="Search Chat Service",
        description="""
Chat backend that decides per turn whether to search the web, runs up to two
search rounds and streams the answer with a live thinking narration over SSE.

## Pipeline

1. **Plan** - heuristic + LLM planner decide whether and what to search
2. **Search** - queries of a round run concurrently; failures are isolated
3. **Analyze** - completeness check may request one refined follow-up round
4. **Answer** - evidence goes into the system prompt; the answer is streamed
5. **Follow-ups** - three suggested next questions close the turn
        """,
        version=__version__,
        lifespan=lifespan,
    )

    llm = LLMClient(settings, client)
    search = TavilySearchClient(settings, client)
    application.state.settings = settings
    application.state.http_client = client
    application.state.llm = llm
    application.state.search = search
    application.state.orchestrator = SearchOrchestrator(llm, search)

    application.add_exception_handler(InvalidChatRequestError, _handle_invalid_request)  # type: ignore[arg-type]
    application.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    application.add_exception_handler(Exception, _handle_unexpected_error)

    @application.post(
        "/api/chat",
        response_class=StreamingResponse,
        responses={
            200: {
                "description": "Server-Sent Events stream of the chat turn",
                "content": {
                    "text/event-stream": {"example": 'data: {"type":"status","data":"analyze_intent"}\n\n'}
                },
            },
            400: {"model": ErrorResponse},
        },
        summary="Run one chat turn with streaming narration",
        description="""
Runs the search-orchestrated chat pipeline for the last user message.

**Frames:** `data: {"type": T, "data": payload}` where T is one of `status`,
`thinking_intro`, `search_plan`, `search_decision`, `search`, `search_error`,
`thinking_text`, `content`, `follow_ups`. The stream opens with `: connected`,
sends `: keepalive` every 30s and ends with `data: [DONE]`.
        """,
        tags=["Chat"],
    )
    async def chat(request: Request, body: ChatRequest) -> StreamingResponse:
        validate_messages(body.messages)
        orchestrator: SearchOrchestrator = request.app.state.orchestrator

        async def event_generator() -> AsyncIterator[str]:
            """Generate SSE frames from the chat workflow."""
            event_queue: asyncio.Queue[SSEEvent] = asyncio.Queue(maxsize=MAX_QUEUE_SIZE)
            workflow_complete = asyncio.Event()
            workflow_error: Exception | None = None

            async def event_callback(event: SSEEvent) -> None:
                """Callback for the workflow to emit events.

                Blocks while the queue is full; a reader that goes away is
                handled by cancelling the workflow task.
                """
                await event_queue.put(event)

            async def run_workflow_task() -> None:
                """Background task executing the chat workflow."""
                nonlocal workflow_error
                try:
                    await run_chat_workflow(
                        body.messages,
                        orchestrator=orchestrator,
                        event_callback=event_callback,
                    )
                except Exception as e:
                    log.error("workflow_error", error=str(e), exc_info=True)
                    workflow_error = e
                finally:
                    workflow_complete.set()

            workflow_task = asyncio.create_task(run_workflow_task())

            loop = asyncio.get_running_loop()
            start_time = loop.time()
            next_heartbeat = start_time + HEARTBEAT_INTERVAL

            yield CONNECTED_FRAME
            try:
                while not workflow_complete.is_set() or not event_queue.empty():
                    current_time = loop.time()
                    elapsed = current_time - start_time

                    if elapsed > MAX_DURATION:
                        log.warning("stream_timeout", elapsed=elapsed, max=MAX_DURATION)
                        workflow_task.cancel()
                        break

                    if await request.is_disconnected():
                        log.info("client_disconnected", elapsed=elapsed)
                        workflow_task.cancel()
                        return

                    if current_time >= next_heartbeat:
                        yield KEEPALIVE_FRAME
                        next_heartbeat += HEARTBEAT_INTERVAL

                    try:
                        event = await asyncio.wait_for(event_queue.get(), timeout=0.1)
                        yield event.format()
                    except asyncio.TimeoutError:
                        continue

                if workflow_error is None:
                    yield DONE_FRAME

            finally:
                workflow_task.cancel()
                try:
                    await asyncio.wait_for(workflow_task, timeout=10.0)
                except asyncio.CancelledError:
                    log.info("workflow_cancelled")
                except asyncio.TimeoutError:
                    log.error("workflow_cancellation_timeout")
                except Exception as e:
                    log.exception("workflow_failed_during_cleanup", error=str(e))

        return StreamingResponse(event_generator(), media_type="text/event-stream", headers=SSE_HEADERS)

    @application.post(
        "/api/search",
        response_model=SearchResponse,
        status_code=status.HTTP_200_OK,
        summary="Run a single web search",
        tags=["Search"],
        responses={
            400: {"model": ErrorResponse, "description": "Blank query"},
            500: {"model": ErrorResponse, "description": "Search provider key is not configured"},
            502: {"model": ErrorResponse, "description": "Search provider request failed"},
        },
    )
    async def search_endpoint(request: Request, body: SearchRequest) -> SearchResponse | JSONResponse:
        search_client: TavilySearchClient = request.app.state.search
        if not body.query.strip():
            raise InvalidChatRequestError("query is required")
        if not search_client.enabled:
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "TAVILY_API_KEY is missing")

        kwargs = {} if body.max_results is None else {"max_results": body.max_results}
        try:
            return await search_client.search(body.query, **kwargs)
        except ProviderError as e:
            log.warning("search.endpoint.failed", query=body.query, error=str(e))
            return _error(status.HTTP_502_BAD_GATEWAY, "Search provider request failed")

    @application.get(
        "/health",
        response_model=HealthResponse,
        status_code=status.HTTP_200_OK,
        summary="Health Check",
        tags=["Health"],
    )
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @application.get(
        "/health/liveness",
        response_model=HealthResponse,
        status_code=status.HTTP_200_OK,
        summary="Liveness Probe",
        tags=["Health"],
    )
    async def liveness() -> HealthResponse:
        return HealthResponse(status="alive")

    @application.get(
        "/health/readiness",
        response_model=HealthResponse,
        status_code=status.HTTP_200_OK,
        summary="Readiness Probe",
        tags=["Health"],
    )
    async def readiness() -> HealthResponse:
        return HealthResponse(status="ready")

    return application


app = get_app()
