"""API endpoints for the DynamoDB agent service."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dynamo_agent import __version__
from dynamo_agent.models.api import ErrorResponse, HealthResponse, QueryResponse, ToolInfo, ToolListResponse
from dynamo_agent.models.llm import TurnMode
from dynamo_agent.services.runtime import AgentRuntime
from dynamo_agent.tools.registry import sanitize_tool_name
from dynamo_agent.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

NOT_READY_MESSAGE = "MCP client not ready."
INVALID_QUERY_MESSAGE = "Missing or invalid 'query' field in request body."


def get_runtime(request: Request) -> AgentRuntime | None:
    """Return the runtime started by the application lifespan, if any."""
    return getattr(request.app.state, "runtime", None)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.post(
    "/query",
    response_model=QueryResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Query"],
)
async def handle_query(request: Request) -> QueryResponse | JSONResponse:
    """Run one stateless turn for the query in the request body.

    Every request gets its own orchestrator, so no history leaks between requests.
    """
    runtime = get_runtime(request)
    if runtime is None or not runtime.ready:
        logger.warning("Query received before the MCP client was ready")
        return error_response(503, NOT_READY_MESSAGE)

    try:
        body = await request.json()
    except ValueError:
        body = None

    query = body.get("query") if isinstance(body, dict) else None
    if not isinstance(query, str) or not query:
        return error_response(400, INVALID_QUERY_MESSAGE)

    orchestrator = runtime.new_orchestrator()
    orchestrator.reset()

    try:
        logger.info(f"Processing query: {query[:50]}...")
        result = await orchestrator.run_turn(query, TurnMode.STATELESS)
        logger.info(f"Generated result: {result[:50]}...")
        return QueryResponse(result=result)
    except Exception as e:
        logger.error(f"Query processing error: {e}", exc_info=True)
        return error_response(500, str(e))


@router.get(
    "/tools",
    response_model=ToolListResponse,
    responses={503: {"model": ErrorResponse}},
    tags=["Query"],
)
async def list_tools(request: Request) -> ToolListResponse | JSONResponse:
    """List the tools fetched from the backend."""
    runtime = get_runtime(request)
    if runtime is None or not runtime.ready:
        return error_response(503, NOT_READY_MESSAGE)

    tools = [
        ToolInfo(name=tool.name, sanitized_name=sanitize_tool_name(tool.name), description=tool.description)
        for tool in runtime.registry.descriptors
    ]
    return ToolListResponse(tools=tools, count=len(tools))


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    runtime = get_runtime(request)
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        ready=bool(runtime and runtime.ready),
    )
