"""
Data Models Module

This module defines Pydantic models for the decoded capability claims and
the JSON bodies the proxy produces itself.

Models are organized by functional area:
- Capability models (claims carried by a verified token)
- Response models (error bodies, health check)
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Capability Models
# ============================================================================

class CapabilityClaims(BaseModel):
    """Scope granted by a verified capability token."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    exp: int = Field(..., description="Expiry as seconds since the epoch")
    verb: str = Field(..., description="The single HTTP method allowed", min_length=1)
    path: str = Field(..., description="Path pattern with {name} placeholders")
    servers: List[str] = Field(
        ...,
        description="Allowed target URL prefixes, most specific first",
        min_length=1,
    )


# ============================================================================
# Response Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Body of every error the proxy generates itself."""
    error: str = Field(..., description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(default="ok", description="Service status")
    service: str = Field(default="capproxy", description="Service name")
    version: str = Field(..., description="Service version")
