"""
NoteKeep Backend — Shared Response Schemas
==========================================

What:  Error envelope, health check and instance description models used
       across routers.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.
    Why:   Clients need a consistent structure to parse errors programmatically.

    Fields:
        error: Machine-readable error code (e.g., "invitation_already_pending")
        message: Human-readable description for display to users
        details: Optional extra context (e.g., which quota was hit)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "quota_exceeded",
            "message": "Instance limit reached for notes_per_user (200/200)",
            "details": {"resource": "notes_per_user", "limit": 200, "current": 200},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer health checks.
    """
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")


class InstanceResponse(BaseModel):
    """Plan name, limits and feature flags of this deployment."""

    instance_id: str
    instance_name: str
    plan: str
    limits: Dict[str, int] = Field(description="-1 means unlimited")
    features: Dict[str, bool]
