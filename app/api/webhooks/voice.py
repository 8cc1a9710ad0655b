"""Telephony voice webhook endpoints."""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from app.core.config import settings
from app.core.dependencies import (
    get_orchestrator,
    get_provider_adapter,
    get_session_store,
)
from app.core.errors import CallAgentError, MalformedWebhook, SessionNotFound
from app.services.call_session.models import CallSession
from app.services.call_session.orchestrator import TurnOrchestrator
from app.services.call_session.store import CallSessionStore
from app.services.telephony.base import ProviderAdapter
from app.services.telephony.models import ProviderPayload, RenderContext, VoiceAction

router = APIRouter()
logger = logging.getLogger(__name__)

PROCESS_RESPONSE_PATH = "/voice/process-response"


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set (e.g. behind a tunnel or proxy),
    otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


async def read_webhook_body(request: Request) -> Dict[str, Any]:
    """Read a webhook body sent as JSON or as a form.

    Unreadable bodies become an empty dict so the adapter can default fields.
    """
    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            body = await request.json()
            if not isinstance(body, dict):
                raise MalformedWebhook("JSON body is not an object")
            return body
        form = await request.form()
        return dict(form)
    except (ValueError, MalformedWebhook) as e:
        logger.warning(f"[WEBHOOK] Unreadable webhook body, using defaults: {e}")
        return {}


def body_business_id(body: Dict[str, Any]) -> Optional[str]:
    """Business id sent in the webhook body, if it is usable as one."""
    value = body.get("businessId")
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        if value is not None:
            logger.warning(f"[WEBHOOK] Ignoring businessId of type {type(value).__name__}")
        return None
    return str(value).strip() or None


def render_response(
    adapter: ProviderAdapter, action: VoiceAction, base_url: str
) -> Response:
    """Render a voice action as the provider's HTTP response."""
    context = RenderContext(
        next_webhook_url=f"{base_url}{PROCESS_RESPONSE_PATH}",
        language=settings.say_language,
        default_voice=settings.say_voice,
    )
    payload: ProviderPayload = adapter.render(action, context)
    if isinstance(payload.body, dict):
        return JSONResponse(content=payload.body, media_type=payload.media_type)
    return Response(content=payload.body, media_type=payload.media_type)


@router.post("/voice/webhook")
async def handle_incoming_call(
    request: Request,
    business_id: Optional[str] = Query(None),
    adapter: ProviderAdapter = Depends(get_provider_adapter),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
):
    """
    Handle an incoming call.

    This endpoint is called by the telephony provider when a call comes in.
    """
    body = await read_webhook_body(request)
    event = adapter.parse_call_event(body)
    base_url = get_base_url(request)
    logger.info(
        f"[INCOMING CALL] Received call webhook - CallId: {event.call_id}, "
        f"Provider: {adapter.name}, From: {event.from_number}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        action = await orchestrator.handle_call_started(
            event, base_url=base_url, business_id=business_id or body_business_id(body)
        )
    except Exception as e:
        logger.error(
            f"[INCOMING CALL] Error processing incoming call - CallId: {event.call_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        action = await orchestrator.error_action(base_url)

    return render_response(adapter, action, base_url)


@router.post(PROCESS_RESPONSE_PATH)
async def handle_recording(
    request: Request,
    adapter: ProviderAdapter = Depends(get_provider_adapter),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
):
    """
    Handle a finished recording.

    This endpoint is called after the provider recorded the caller's answer.
    """
    body = await read_webhook_body(request)
    event = adapter.parse_recording_event(body)
    base_url = get_base_url(request)
    logger.info(
        f"[RECORDING] Received recording webhook - CallId: {event.call_id}, "
        f"Duration: {event.duration}, Digits: {event.digits or 'none'}"
    )

    try:
        action = await orchestrator.handle_recording(event, base_url=base_url)
    except SessionNotFound as e:
        logger.warning(f"[RECORDING] {e.detail}, hanging up")
        action = await orchestrator.error_action(base_url)
    except CallAgentError as e:
        logger.error(f"[RECORDING] Call agent error - CallId: {event.call_id}: {e.detail}")
        action = await orchestrator.error_action(base_url)
    except Exception as e:
        logger.error(
            f"[RECORDING] Error processing recording - CallId: {event.call_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        action = await orchestrator.error_action(base_url)

    return render_response(adapter, action, base_url)


@router.post("/voice/status")
async def handle_call_status(
    request: Request,
    adapter: ProviderAdapter = Depends(get_provider_adapter),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
):
    """
    Handle call status updates.

    This endpoint is called when call status changes (completed, failed, etc.).
    """
    body = await read_webhook_body(request)
    event = adapter.parse_call_event(body)
    logger.info(
        f"[CALL STATUS] Received status update - CallId: {event.call_id}, "
        f"CallStatus: {event.call_status}"
    )

    try:
        ended = await orchestrator.handle_call_status(event.call_id, event.call_status)
    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - CallId: {event.call_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        ended = False

    # Always acknowledge so the provider does not retry
    return {"status": "ok", "session_ended": ended}


@router.get("/voice/conversation/{call_id}", response_model=CallSession)
async def get_conversation(
    call_id: str,
    store: CallSessionStore = Depends(get_session_store),
):
    """Read-only snapshot of an active conversation."""
    try:
        return store.snapshot(call_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.detail)
