"""Call session manager."""
import logging
from datetime import datetime
from typing import Optional

from app.core.errors import GeneratorError, NotFoundError
from app.db.models import CallSession, Transcript
from app.services.agent.generator import ResponseGenerator
from app.services.agent.sanitizer import sanitize_input
from app.services.call_session import transitions
from app.services.call_session.forms import AnalyzeForm, IncomingCallForm, StatusForm, VoicemailForm
from app.services.call_session.models import SessionContext, TranscriptRecord
from app.services.call_session.phases import CallPhase, CallStatus
from app.services.call_session.transitions import CallFlowConfig, StatusTransition, Transition
from app.services.persistence import activity
from app.services.persistence.activity import ActivityLogger
from app.services.persistence.calls import CallSessionStore
from app.services.speech.twiml import TwimlEncoder

logger = logging.getLogger(__name__)


class CallSessionManager:
    """Applies call webhooks to stored sessions and decides the TwiML reply.

    Each method handles one webhook delivery and is safe to run again for a
    redelivered event: sessions are created once, duplicate transcripts and
    voicemails are skipped, and a replayed analyze for a finished call
    repeats the stored reply instead of generating a new one.
    """

    def __init__(
        self,
        store: CallSessionStore,
        generator: ResponseGenerator,
        encoder: TwimlEncoder,
        config: CallFlowConfig,
        activity_logger: ActivityLogger,
    ):
        self.store = store
        self.generator = generator
        self.encoder = encoder
        self.config = config
        self.activity_logger = activity_logger

    async def handle_incoming_call(
        self, form: IncomingCallForm, now: Optional[datetime] = None
    ) -> str:
        """Create the session if needed and greet the caller."""
        call_sid = form.call_sid
        session, created = await self.store.create_session(
            call_sid, from_number=form.from_number, to_number=form.to_number
        )
        if created:
            logger.info(f"[SESSION MANAGER] Session created - CallSid: {call_sid}")
            await self.activity_logger.log(
                activity.CALL_STARTED,
                f"Incoming call from {form.from_number or 'unknown'}",
                call_id=call_sid,
                details={"from": form.from_number, "to": form.to_number},
            )
        else:
            logger.info(f"[SESSION MANAGER] Session already exists, reusing - CallSid: {call_sid}")

        within_hours = self.config.is_business_hours(now)

        def greet(session: CallSession) -> Transition:
            transition = transitions.on_incoming(
                CallPhase(session.phase), self.config, within_hours
            )
            self._move(session, transition)
            return transition

        transition = await self.store.apply(call_sid, greet)
        return self.encoder.render(transition.action)

    async def handle_speech_result(self, record: TranscriptRecord) -> Optional[Transcript]:
        """
        Store a speech result; a final one moves the call to analysis.

        Raises:
            NotFoundError: If the call session doesn't exist
        """
        def advance(phase: CallPhase) -> CallPhase:
            transition = transitions.on_speech(phase, record.is_final)
            self._log_move(record.call_id, phase, transition)
            return transition.phase

        transcript = await self.store.append_transcript(record, advance=advance)
        logger.info(
            f"[SESSION MANAGER] Speech result stored - CallSid: {record.call_id}, "
            f"Final: {record.is_final}, Confidence: {record.confidence:.2f}"
        )
        return transcript

    async def handle_analyze(self, form: AnalyzeForm) -> str:
        """
        Answer the caller's input.

        Empty input gets a re-prompt that sends the next turn back here.
        Otherwise the generator is asked for a reply, which is stored and
        spoken before hanging up. A redelivery that arrives while the first
        reply is being generated speaks whichever reply was stored first.

        Raises:
            NotFoundError: If input arrives for an unknown call
            GeneratorError: If the reply can't be generated; the call stays
                in the analyzing phase and no response is stored
        """
        call_sid = form.call_sid
        user_input = sanitize_input(form.speech_result).strip()

        if not user_input:
            return await self._reprompt(call_sid)

        def enter_analysis(session: CallSession) -> Transition:
            phase = CallPhase(session.phase)
            if phase.is_terminal:
                return transitions.on_terminal_input(phase, self.config)
            transition = transitions.on_analyze_start(phase)
            self._move(session, transition)
            return transition

        transition = await self.store.apply(call_sid, enter_analysis)
        if transition.phase.is_terminal:
            return await self._answer_ended_call(call_sid, transition, user_input)

        session = await self.store.get_session(call_sid)
        context = SessionContext(
            call_id=call_sid,
            from_number=session.from_number,
            to_number=session.to_number,
            history=await self.store.get_conversation_history(call_sid),
        )
        try:
            reply = await self.generator.generate(context, user_input)
        except GeneratorError:
            raise
        except Exception as e:
            raise GeneratorError(f"Reply generation failed for {call_sid}: {e}") from e

        def complete(phase: CallPhase) -> CallPhase:
            transition = transitions.on_reply(phase, reply.text, self.config)
            self._log_move(call_sid, phase, transition)
            return transition.phase

        response, created = await self.store.append_response(
            call_sid,
            input_text=user_input,
            response_text=reply.text,
            model_used=reply.model,
            advance=complete,
        )
        if not created:
            logger.info(
                f"[SESSION MANAGER] Reply already stored by a redelivery, replaying - CallSid: {call_sid}"
            )
            return self.encoder.render(
                transitions.reply_action(response.response_text, self.config)
            )

        logger.info(
            f"[SESSION MANAGER] Reply stored, call completed - CallSid: {call_sid}, "
            f"Reply length: {len(reply.text)}"
        )
        await self.activity_logger.log(
            activity.CALL_RESPONSE,
            "AI reply delivered to caller",
            call_id=call_sid,
            details={"model": reply.model},
        )
        return self.encoder.render(transitions.reply_action(reply.text, self.config))

    async def _reprompt(self, call_sid: str) -> str:
        """Ask the caller to repeat; works for calls with no stored session."""
        if await self.store.get_session(call_sid) is None:
            transition = transitions.on_empty_input(None, self.config)
        else:
            def reprompt(session: CallSession) -> Transition:
                transition = transitions.on_empty_input(CallPhase(session.phase), self.config)
                self._move(session, transition)
                return transition

            transition = await self.store.apply(call_sid, reprompt)

        logger.info(f"[SESSION MANAGER] No speech detected, re-prompting - CallSid: {call_sid}")
        return self.encoder.render(transition.action)

    async def _answer_ended_call(
        self, call_sid: str, transition: Transition, user_input: str
    ) -> str:
        """Replay the stored reply to a redelivered input, or say goodbye."""
        if transition.phase is CallPhase.COMPLETED:
            stored = await self.store.find_reply(call_sid, user_input)
            if stored is not None:
                logger.info(f"[SESSION MANAGER] Replaying stored reply - CallSid: {call_sid}")
                return self.encoder.render(
                    transitions.reply_action(stored.response_text, self.config)
                )

        logger.warning(
            f"[SESSION MANAGER] Input after call ended ({transition.phase.value}) - CallSid: {call_sid}"
        )
        return self.encoder.render(transition.action)

    async def handle_voicemail(self, form: VoicemailForm) -> None:
        """
        Store a voicemail and end the call flow.

        Raises:
            NotFoundError: If a CallSid is given but the session doesn't exist
        """
        transcription = sanitize_input(form.transcription_text)

        if not form.call_sid:
            logger.info("[SESSION MANAGER] Voicemail without CallSid, recording as activity only")
            await self.activity_logger.log(
                activity.VOICEMAIL_RECEIVED,
                f"Voicemail: {transcription}",
                details={"recording_url": form.recording_url},
            )
            return

        call_sid = form.call_sid

        def advance(phase: CallPhase) -> CallPhase:
            transition = transitions.on_voicemail(phase)
            self._log_move(call_sid, phase, transition)
            return transition.phase

        _, created = await self.store.append_response(
            call_sid,
            input_text=transcription,
            response_text="",
            recording_url=form.recording_url,
            advance=advance,
        )
        if not created:
            logger.info(f"[SESSION MANAGER] Voicemail already stored - CallSid: {call_sid}")
            return

        logger.info(f"[SESSION MANAGER] Voicemail stored - CallSid: {call_sid}")
        await self.activity_logger.log(
            activity.VOICEMAIL_RECEIVED,
            f"Voicemail: {transcription}",
            call_id=call_sid,
            details={"recording_url": form.recording_url},
        )

    async def handle_status(self, form: StatusForm) -> StatusTransition:
        """
        Apply a provider status update.

        Raises:
            NotFoundError: If the call session doesn't exist
        """
        call_sid = form.call_sid

        def update(session: CallSession) -> StatusTransition:
            transition = transitions.on_status(
                CallPhase(session.phase),
                CallStatus(session.status),
                form.call_status,
                enforce_monotonic=self.config.enforce_monotonic_status,
            )
            if transition.apply:
                session.status = transition.status.value
                session.phase = transition.phase.value
                if transition.set_end_time:
                    session.end_time = datetime.utcnow()
            return transition

        transition = await self.store.apply(call_sid, update)
        if transition.apply:
            logger.info(
                f"[SESSION MANAGER] Status updated - CallSid: {call_sid}, "
                f"Status: {transition.status.value}, Phase: {transition.phase.value}"
            )
            await self.activity_logger.log(
                activity.CALL_STATUS,
                f"Call status changed to {transition.status.value}",
                call_id=call_sid,
            )
        else:
            logger.warning(
                f"[SESSION MANAGER] Ignoring out-of-order status {form.call_status.value} "
                f"(current: {transition.status.value}) - CallSid: {call_sid}"
            )
        return transition

    async def get_session_details(self, call_sid: str) -> CallSession:
        """Get a session with its transcripts and responses."""
        session = await self.store.get_session_with_history(call_sid)
        if session is None:
            raise NotFoundError(f"Call session {call_sid} not found")
        return session

    @classmethod
    def _move(cls, session: CallSession, transition: Transition) -> None:
        """Record the transition's phase on the locked session row."""
        previous = CallPhase(session.phase)
        session.phase = transition.phase.value
        cls._log_move(session.id, previous, transition)

    @staticmethod
    def _log_move(call_sid: str, previous: CallPhase, transition: Transition) -> None:
        if previous is not transition.phase:
            path = " -> ".join(p.value for p in (previous, *transition.via, transition.phase))
            logger.info(f"[STAGE TRANSITION] {call_sid}: {path}")
