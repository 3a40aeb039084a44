"""FastAPI dependencies."""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, settings
from app.db.database import get_db, get_session_factory
from app.services.agent.generator import OpenAIResponseGenerator, ResponseGenerator
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.transitions import CallFlowConfig
from app.services.persistence.activity import ActivityLogger
from app.services.persistence.calls import CallSessionStore
from app.services.speech.twiml import TwimlEncoder


def get_settings() -> Settings:
    """Get application settings."""
    return settings


def get_base_url(request: Request, app_settings: Settings = Depends(get_settings)) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL if set (the public URL Twilio calls), otherwise
    constructs it from the request.
    """
    if app_settings.base_url:
        return app_settings.base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


def get_response_generator(app_settings: Settings = Depends(get_settings)) -> ResponseGenerator:
    """Get the reply generator."""
    return OpenAIResponseGenerator(app_settings)


def get_activity_logger(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> ActivityLogger:
    """Get the best-effort activity logger."""
    return ActivityLogger(session_factory)


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    base_url: str = Depends(get_base_url),
    generator: ResponseGenerator = Depends(get_response_generator),
    activity_logger: ActivityLogger = Depends(get_activity_logger),
) -> CallSessionManager:
    """Get call session manager."""
    return CallSessionManager(
        store=CallSessionStore(db),
        generator=generator,
        encoder=TwimlEncoder(base_url=base_url, voice=app_settings.tts_voice),
        config=CallFlowConfig.from_settings(app_settings),
        activity_logger=activity_logger,
    )
