"""
Schemas for the API metadata and liveness endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class RouteInfo(BaseModel):
    method: str
    path: str
    description: str


class WelcomeResponse(BaseModel):
    title: str
    description: str
    version: str
    routes: list[RouteInfo] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "ok"
