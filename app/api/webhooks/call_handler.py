"""Twilio call-handler webhook endpoints."""
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict

from app.core.config import Settings
from app.core.dependencies import get_session_manager, get_settings
from app.core.errors import CallHandlerError
from app.api.webhooks.security import verify_twilio_signature
from app.services.call_session.forms import (
    AnalyzeForm,
    IncomingCallForm,
    StatusForm,
    VoicemailForm,
    parse_form,
)
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.transitions import WEBHOOK_PREFIX
from app.services.speech.normalizer import normalize_speech_event

router = APIRouter()
logger = logging.getLogger(__name__)

XML_MEDIA_TYPE = "application/xml"


class TranscriptResponse(BaseModel):
    """Transcript response model."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    text: str
    confidence: float
    is_final: bool
    track: str
    timestamp: int
    created_at: datetime


class ResponseLogResponse(BaseModel):
    """Response log response model."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    input_text: str
    response_text: str
    recording_url: Optional[str] = None
    model_used: Optional[str] = None
    created_at: datetime


class CallSessionResponse(BaseModel):
    """Call session response model."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    status: str
    phase: str
    start_time: datetime
    end_time: Optional[datetime] = None
    transcripts: List[TranscriptResponse] = []
    responses: List[ResponseLogResponse] = []


def _ack() -> JSONResponse:
    return JSONResponse({"success": True})


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def handle_incoming(manager: CallSessionManager, fields: Dict[str, str]) -> Response:
    form = parse_form(IncomingCallForm, fields)
    twiml = await manager.handle_incoming_call(form)
    return Response(content=twiml, media_type=XML_MEDIA_TYPE)


async def handle_speech(manager: CallSessionManager, fields: Dict[str, str]) -> Response:
    record = normalize_speech_event(fields)
    await manager.handle_speech_result(record)
    return _ack()


async def handle_analyze(manager: CallSessionManager, fields: Dict[str, str]) -> Response:
    form = parse_form(AnalyzeForm, fields)
    twiml = await manager.handle_analyze(form)
    return Response(content=twiml, media_type=XML_MEDIA_TYPE)


async def handle_voicemail(manager: CallSessionManager, fields: Dict[str, str]) -> Response:
    form = parse_form(VoicemailForm, fields)
    await manager.handle_voicemail(form)
    return _ack()


async def handle_status(manager: CallSessionManager, fields: Dict[str, str]) -> Response:
    form = parse_form(StatusForm, fields)
    await manager.handle_status(form)
    return _ack()


WebhookHandler = Callable[[CallSessionManager, Dict[str, str]], Awaitable[Response]]

WEBHOOK_HANDLERS: Dict[str, WebhookHandler] = {
    "incoming": handle_incoming,
    "speech": handle_speech,
    "analyze": handle_analyze,
    "voicemail": handle_voicemail,
    "status": handle_status,
}


async def decode_form(request: Request) -> Dict[str, str]:
    """Decode a form-encoded webhook body into plain string fields."""
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post(WEBHOOK_PREFIX + "/{event}")
async def dispatch_webhook(
    event: str,
    request: Request,
    app_settings: Settings = Depends(get_settings),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Route a Twilio call webhook to its handler.

    Handler errors are logged here and answered with a generic message;
    internal details never reach Twilio.
    """
    handler = WEBHOOK_HANDLERS.get(event)
    if handler is None:
        logger.warning(f"[CALL HANDLER] Unknown webhook endpoint: {event}")
        return _error("Unknown endpoint", 404)

    call_sid = "unknown"
    try:
        fields = await decode_form(request)
        call_sid = fields.get("CallSid") or "unknown"
        logger.info(
            f"[CALL HANDLER] Received {event} webhook - CallSid: {call_sid}, "
            f"Client: {request.client.host if request.client else 'unknown'}"
        )
        verify_twilio_signature(request, fields, app_settings)
        return await handler(session_manager, fields)

    except CallHandlerError as e:
        if e.status_code >= 500:
            logger.error(
                f"[CALL HANDLER] Error handling {event} webhook - CallSid: {call_sid}, "
                f"Error: {type(e).__name__}: {e}",
                exc_info=True,
            )
        else:
            logger.warning(
                f"[CALL HANDLER] Rejected {event} webhook - CallSid: {call_sid}, "
                f"Reason: {type(e).__name__}: {e}"
            )
        return _error(e.public_message, e.status_code)

    except Exception as e:
        logger.error(
            f"[CALL HANDLER] Unexpected error handling {event} webhook - CallSid: {call_sid}, "
            f"Error: {type(e).__name__}: {e}",
            exc_info=True,
        )
        return _error("Internal server error", 500)


@router.get(WEBHOOK_PREFIX, response_model=CallSessionResponse)
async def get_call_session(
    sessionId: Optional[str] = Query(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """Get a call session with its transcripts and responses."""
    if not sessionId:
        return _error("Session ID required", 400)

    try:
        session = await session_manager.get_session_details(sessionId)
    except CallHandlerError as e:
        logger.info(f"[CALL HANDLER] Session lookup failed - CallSid: {sessionId}, Reason: {e}")
        return _error(e.public_message, e.status_code)
    except Exception as e:
        logger.error(
            f"[CALL HANDLER] Error getting call session - CallSid: {sessionId}, "
            f"Error: {type(e).__name__}: {e}",
            exc_info=True,
        )
        return _error("Internal server error", 500)

    return CallSessionResponse.model_validate(session)
