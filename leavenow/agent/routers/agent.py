"""Operator endpoints (RPC-style).

Thin HTTP adapter -- delegates to the orchestrator.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from leavenow.agent.deps import AgentOrchestrator
from leavenow.agent.models.api import ActionResponse, StatusResponse
from leavenow.agent.models.enums import AppStage

router = APIRouter(prefix="/agent", tags=["agent"])


@router.get("/status", response_model=StatusResponse)
async def handle_status(orchestrator: AgentOrchestrator) -> StatusResponse:
    return orchestrator.snapshot()


@router.post("/trigger", response_model=ActionResponse)
async def handle_trigger(orchestrator: AgentOrchestrator) -> ActionResponse:
    if orchestrator.stage == AppStage.FAILED:
        raise HTTPException(
            status.HTTP_409_CONFLICT,
            detail=f"Agent failed ({orchestrator.error}); reset it first.",
        )
    if not orchestrator.trigger():
        raise HTTPException(status.HTTP_409_CONFLICT, detail="A cycle is already running.")
    return ActionResponse(status="started")


@router.post("/reset", response_model=ActionResponse)
async def handle_reset(orchestrator: AgentOrchestrator) -> ActionResponse:
    previous = orchestrator.error
    await orchestrator.reset()
    return ActionResponse(status="reset", detail=previous)


@router.post("/token/erase", response_model=ActionResponse)
async def handle_erase_token(orchestrator: AgentOrchestrator) -> ActionResponse:
    await orchestrator.oauth2.reauthorize()
    return ActionResponse(status="erased", detail="Device authorization required on the next cycle.")
