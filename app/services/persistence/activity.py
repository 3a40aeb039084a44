"""Best-effort activity logging."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.db.models import ActivityLog

logger = logging.getLogger(__name__)

CALL_STARTED = "CALL_STARTED"
CALL_RESPONSE = "CALL_RESPONSE"
CALL_STATUS = "CALL_STATUS"
VOICEMAIL_RECEIVED = "VOICEMAIL_RECEIVED"


class ActivityLogger:
    """Writes activity entries in their own session and never raises.

    Activity logging must not break the call flow, so failures are logged
    and dropped here instead of reaching the caller.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def log(
        self,
        activity_type: str,
        description: str,
        call_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record an activity entry."""
        try:
            async with self.session_factory() as db:
                db.add(
                    ActivityLog(
                        call_id=call_id,
                        type=activity_type,
                        description=description,
                        details=details or {},
                    )
                )
                await db.commit()
        except Exception as e:
            logger.warning(
                f"[ACTIVITY] Failed to log activity {activity_type} - CallSid: {call_id}, "
                f"Error: {type(e).__name__}: {e}"
            )
