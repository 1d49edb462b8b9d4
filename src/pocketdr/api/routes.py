"""API route handlers for PocketDr."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from pocketdr import __version__
from pocketdr.api.engine import ChatEngine
from pocketdr.api.schemas import ChatRequest, ChatResponse, HealthResponse, ModelInfo
from pocketdr.exceptions import ModelError

router = APIRouter()


def _get_engine(request: Request) -> ChatEngine:
    """Get the engine from the app state."""
    return request.app.state.engine


@router.post("/chat", response_model=ChatResponse)
async def chat(request: Request, body: ChatRequest):
    """Answer one chat message using the configured model fallback chain."""
    engine = _get_engine(request)
    history = [turn.to_turn() for turn in body.history]
    profile = body.profile.to_profile() if body.profile else None

    try:
        reply = await engine.reply(body.message, history, profile, guest=body.guest)
    except ModelError as e:
        raise HTTPException(status_code=400, detail=str(e))

    payload = ChatResponse(text=reply.text, model=reply.model, error=reply.error)
    if reply.ok:
        return payload
    return JSONResponse(
        status_code=reply.status_code,
        content=payload.model_dump(exclude_none=True),
    )


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", version=__version__)


@router.get("/models", response_model=list[ModelInfo])
async def list_models(request: Request):
    """List configured models in priority order."""
    engine = _get_engine(request)
    return [
        ModelInfo(
            name=model.name,
            system_instruction=model.supports_system_instruction,
            priority=index,
        )
        for index, model in enumerate(engine.models)
    ]
