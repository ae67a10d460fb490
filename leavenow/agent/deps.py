"""FastAPI dependency injection for the running orchestrator.

Usage in route handlers::

    @router.get("/status")
    async def status(orchestrator: AgentOrchestrator) -> StatusResponse:
        ...

The dependency raises HTTP 503 if the orchestrator was not started
(LEAVENOW_REDIS_URL unset).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from leavenow.agent.orchestrator import Orchestrator


async def get_orchestrator(request: Request) -> Orchestrator:
    orchestrator: Orchestrator | None = request.app.state.orchestrator
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Agent not running (LEAVENOW_REDIS_URL is unset).",
        )
    return orchestrator


# -- Annotated type aliases for concise route signatures ---------------------

AgentOrchestrator = Annotated[Orchestrator, Depends(get_orchestrator)]
"""Annotated dependency: the orchestrator driven by the app's background task."""
