"""
Chat endpoint:
- POST /api/chat — validated, rate limited, cached; answered by Gemini with model fallback
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.config import Settings, get_settings
from app.core.security import client_address
from app.schemas.chat import ChatErrorResponse, ChatRequest, ChatResponse
from app.services.orchestrator import ChatOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


def get_orchestrator(request: Request) -> ChatOrchestrator:
    """Orchestrator built in the app lifespan; one per process."""
    return request.app.state.orchestrator


@router.post(
    "/chat",
    response_model=ChatResponse,
    openapi_extra={"requestBody": {"content": {"application/json": {"schema": ChatRequest.model_json_schema(by_alias=True)}}}},
    responses={
        400: {"model": ChatErrorResponse},
        408: {"model": ChatErrorResponse},
        429: {"model": ChatErrorResponse},
        500: {"model": ChatErrorResponse},
        503: {"model": ChatErrorResponse},
    },
)
async def chat(
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """
    Answer a chat message. Body is read raw so malformed JSON and invalid fields
    get the same structured 400 as every other failure.
    """
    address = client_address(request, settings.trust_proxy_headers)
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        outcome = orchestrator.reject_malformed_body(address)
    else:
        outcome = await orchestrator.handle(body, address)
    return JSONResponse(outcome.body, status_code=outcome.status_code, headers=outcome.headers)
