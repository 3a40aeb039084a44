"""Call session persistence service."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, List, Optional, Tuple, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import CallHandlerError, NotFoundError, StorageError
from app.db.models import CallSession, ResponseLog, Transcript
from app.services.call_session.models import TranscriptRecord
from app.services.call_session.phases import CallPhase, CallStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Maps the locked row's current phase to the phase to store
PhaseStep = Callable[[CallPhase], CallPhase]


class CallSessionStore:
    """Service for persisting call sessions, transcripts and responses.

    Every mutation locks the session row first (SELECT ... FOR UPDATE), so
    concurrent webhooks for one call are applied one at a time. The session's
    version column catches writers that slip past the lock.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _write(self, operation: str):
        """Commit on success, roll back and raise StorageError on database failure."""
        try:
            yield
            await self.db.commit()
        except CallHandlerError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[SESSION STORE] {operation} failed: {type(e).__name__}: {e}")
            raise StorageError(f"{operation} failed") from e

    async def _lock_session(self, call_id: str) -> CallSession:
        """Load a session row for update, raising NotFoundError if it is absent."""
        result = await self.db.execute(
            select(CallSession)
            .where(CallSession.id == call_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if session is None:
            raise NotFoundError(f"Call session {call_id} not found")
        return session

    async def get_session(self, call_id: str) -> Optional[CallSession]:
        """Get call session by provider call SID."""
        result = await self.db.execute(
            select(CallSession).where(CallSession.id == call_id)
        )
        return result.scalar_one_or_none()

    async def get_session_with_history(self, call_id: str) -> Optional[CallSession]:
        """Get call session with transcripts and responses in insertion order."""
        result = await self.db.execute(
            select(CallSession)
            .where(CallSession.id == call_id)
            .options(
                selectinload(CallSession.transcripts),
                selectinload(CallSession.responses),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_session(
        self,
        call_id: str,
        from_number: Optional[str] = None,
        to_number: Optional[str] = None,
    ) -> Tuple[CallSession, bool]:
        """
        Create a call session or return the existing one.

        Returns:
            (session, created) where created is False if the session existed
        """
        existing = await self.get_session(call_id)
        if existing:
            return existing, False

        session = CallSession(
            id=call_id,
            from_number=from_number,
            to_number=to_number,
            status=CallStatus.RINGING.value,
            phase=CallPhase.RINGING.value,
            start_time=datetime.utcnow(),
        )
        self.db.add(session)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same incoming call won the insert
            await self.db.rollback()
            existing = await self.get_session(call_id)
            if existing is None:
                raise StorageError(f"Creating call session {call_id} failed")
            return existing, False
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(f"Creating call session {call_id} failed") from e

        await self.db.refresh(session)
        return session, True

    async def apply(self, call_id: str, change: Callable[[CallSession], T]) -> T:
        """Run change against the locked session row and commit what it modified."""
        async with self._write(f"Updating call session {call_id}"):
            session = await self._lock_session(call_id)
            result = change(session)
        return result

    @staticmethod
    def _advance(session: CallSession, advance: Optional[PhaseStep]) -> None:
        if advance is not None:
            session.phase = advance(CallPhase(session.phase)).value

    async def append_transcript(
        self, record: TranscriptRecord, advance: Optional[PhaseStep] = None
    ) -> Optional[Transcript]:
        """
        Append a transcript to a call session.

        advance is called with the phase read under the row lock, so the
        phase it returns can't overwrite a concurrent transition.

        Returns:
            The new transcript, or None if an identical one was already stored
        """
        async with self._write(f"Appending transcript to {record.call_id}"):
            session = await self._lock_session(record.call_id)

            duplicate = await self.db.execute(
                select(Transcript.id).where(
                    Transcript.call_id == record.call_id,
                    Transcript.text == record.text,
                    Transcript.timestamp == record.timestamp,
                    Transcript.track == record.track,
                    Transcript.is_final == record.is_final,
                )
            )
            if duplicate.first() is not None:
                logger.info(
                    f"[SESSION STORE] Duplicate transcript ignored - CallSid: {record.call_id}"
                )
                transcript = None
            else:
                transcript = Transcript(
                    call_id=record.call_id,
                    text=record.text,
                    confidence=record.confidence,
                    is_final=record.is_final,
                    track=record.track,
                    timestamp=record.timestamp,
                )
                self.db.add(transcript)

            self._advance(session, advance)
        return transcript

    async def append_response(
        self,
        call_id: str,
        input_text: str,
        response_text: str,
        recording_url: Optional[str] = None,
        model_used: Optional[str] = None,
        advance: Optional[PhaseStep] = None,
    ) -> Tuple[ResponseLog, bool]:
        """
        Append a response log entry unless an equivalent one is stored.

        A voicemail matches an earlier one with the same recording URL, a
        reply matches an earlier reply to the same input. The lookup, the
        insert and the phase change happen under one row lock, so concurrent
        redeliveries store a single entry. advance only runs for a new entry.

        Returns:
            (response, created) where created is False if the existing
            entry was returned
        """
        async with self._write(f"Appending response to {call_id}"):
            session = await self._lock_session(call_id)
            if recording_url is not None:
                existing = await self.find_voicemail(call_id, recording_url)
            else:
                existing = await self.find_reply(call_id, input_text)

            if existing is not None:
                response, created = existing, False
            else:
                response = ResponseLog(
                    call_id=call_id,
                    input_text=input_text,
                    response_text=response_text,
                    recording_url=recording_url,
                    model_used=model_used,
                )
                self.db.add(response)
                self._advance(session, advance)
                created = True
        return response, created

    async def find_reply(self, call_id: str, input_text: str) -> Optional[ResponseLog]:
        """Find the latest generated reply to the given caller input."""
        result = await self.db.execute(
            select(ResponseLog)
            .where(
                ResponseLog.call_id == call_id,
                ResponseLog.input_text == input_text,
                ResponseLog.recording_url.is_(None),
            )
            .order_by(ResponseLog.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_voicemail(self, call_id: str, recording_url: str) -> Optional[ResponseLog]:
        """Find a stored voicemail record by its recording URL."""
        result = await self.db.execute(
            select(ResponseLog).where(
                ResponseLog.call_id == call_id,
                ResponseLog.recording_url == recording_url,
            )
        )
        return result.scalars().first()

    async def get_conversation_history(self, call_id: str) -> List[dict]:
        """Get caller turns and replies as chat messages, oldest first."""
        transcripts = await self.db.execute(
            select(Transcript)
            .where(Transcript.call_id == call_id, Transcript.is_final.is_(True))
            .order_by(Transcript.id)
        )
        responses = await self.db.execute(
            select(ResponseLog)
            .where(ResponseLog.call_id == call_id, ResponseLog.recording_url.is_(None))
            .order_by(ResponseLog.id)
        )

        turns = [
            (transcript.created_at, 0, transcript.id, "user", transcript.text)
            for transcript in transcripts.scalars().all()
        ]
        turns.extend(
            (response.created_at, 1, response.id, "assistant", response.response_text)
            for response in responses.scalars().all()
        )
        turns.sort(key=lambda turn: turn[:3])

        return [{"role": role, "content": content} for *_, role, content in turns if content]
