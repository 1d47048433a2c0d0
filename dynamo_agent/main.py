"""Main FastAPI application."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dynamo_agent import __version__
from dynamo_agent.api.endpoints import router
from dynamo_agent.services.runtime import AgentRuntime
from dynamo_agent.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the agent runtime once; the service answers 503 until it is ready."""
    setup_logging()
    runtime = AgentRuntime()
    app.state.runtime = runtime

    try:
        await runtime.start()
        logger.info("MCP client initialized.")
    except Exception as e:
        logger.error(f"Failed to initialize MCP client: {e}", exc_info=True)

    try:
        yield
    finally:
        await runtime.stop()


app = FastAPI(
    title="DynamoDB Agent",
    description=(
        "Natural-language access to DynamoDB: Claude on Bedrock plans the calls, "
        "an MCP tool server executes them."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Query",
            "description": "Stateless natural-language queries against the tool catalog.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dynamo_agent.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "3000")), log_level="info")
