"""HTTP request and response models."""

from datetime import datetime

from pydantic import BaseModel


class QueryResponse(BaseModel):
    """Response model for the query endpoint."""

    result: str


class ErrorResponse(BaseModel):
    """Error body returned by the API."""

    error: str


class ToolInfo(BaseModel):
    """A catalog entry as exposed over HTTP."""

    name: str
    sanitized_name: str
    description: str


class ToolListResponse(BaseModel):
    """Response model for the tool catalog endpoint."""

    tools: list[ToolInfo]
    count: int


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    ready: bool
