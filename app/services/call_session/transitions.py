"""Call flow transitions.

Each function maps the current phase and an incoming event to the next
phase and the voice action to answer with. They do no I/O; the session
manager loads state, applies the transition under the row lock and renders
the action.
"""
import logging
from datetime import datetime, time
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from app.core.config import Settings
from app.services.call_session.phases import CallPhase, CallStatus
from app.services.speech.actions import Record, SayThenHangup, SayThenRedirect, VoiceAction

logger = logging.getLogger(__name__)

WEBHOOK_PREFIX = "/api/call-handler"
ANALYZE_PATH = f"{WEBHOOK_PREFIX}/analyze"
VOICEMAIL_PATH = f"{WEBHOOK_PREFIX}/voicemail"

# Phases in which caller input may still be answered
ANSWERABLE_PHASES = frozenset(
    {
        CallPhase.RINGING,
        CallPhase.GREETED,
        CallPhase.AWAITING_SPEECH,
        CallPhase.ANALYZING,
        CallPhase.RESPONDING,
    }
)


class CallFlowConfig(BaseModel):
    """Call flow settings handed to the session manager at construction."""

    welcome_message: str
    gather_prompt: str = "Please tell me how I can help you."
    reprompt_message: str = "I didn't catch that. Please repeat your request."
    closing_message: str = "Thank you for calling. Goodbye!"
    after_hours_voicemail_message: str = (
        "We're currently outside of business hours. "
        "Please leave a message and we'll get back to you."
    )
    after_hours_unavailable_message: str = (
        "We're currently unavailable. Please call back during business hours."
    )
    business_hours_enabled: bool = False
    business_hours_start: time = time(9, 0)
    business_hours_end: time = time(17, 0)
    business_timezone: str = "America/New_York"
    voicemail_enabled: bool = True
    voicemail_max_length: int = 120
    enforce_monotonic_status: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "CallFlowConfig":
        """Build the call flow config from application settings."""
        welcome = settings.welcome_message or (
            f"Hello! Thank you for calling {settings.company_name}. "
            "I'm an AI assistant here to help you."
        )
        return cls(
            welcome_message=welcome,
            reprompt_message=settings.reprompt_message,
            closing_message=settings.closing_message,
            business_hours_enabled=settings.business_hours_enabled,
            business_hours_start=time.fromisoformat(settings.business_hours_start),
            business_hours_end=time.fromisoformat(settings.business_hours_end),
            business_timezone=settings.business_timezone,
            voicemail_enabled=settings.voicemail_enabled,
            voicemail_max_length=settings.voicemail_max_length,
            enforce_monotonic_status=settings.enforce_monotonic_status,
        )

    def is_business_hours(self, now: Optional[datetime] = None) -> bool:
        """Check whether calls are answered live at the given moment."""
        if not self.business_hours_enabled:
            return True
        local_now = (now or datetime.now(ZoneInfo("UTC"))).astimezone(
            ZoneInfo(self.business_timezone)
        )
        return self.business_hours_start <= local_now.time() <= self.business_hours_end


class Transition(BaseModel):
    """Result of applying an event to a call."""

    phase: CallPhase
    action: Optional[VoiceAction] = None
    via: Tuple[CallPhase, ...] = ()  # intermediate phases passed through


class StatusTransition(BaseModel):
    """Result of applying a provider status update."""

    apply: bool
    status: CallStatus
    phase: CallPhase
    set_end_time: bool = False


def on_incoming(
    phase: CallPhase, config: CallFlowConfig, within_business_hours: bool
) -> Transition:
    """Greet the caller, or offer voicemail outside business hours."""
    if not within_business_hours:
        if config.voicemail_enabled:
            action = Record(
                prompt=config.after_hours_voicemail_message,
                callback_path=VOICEMAIL_PATH,
                max_length=config.voicemail_max_length,
            )
        else:
            action = SayThenHangup(text=config.after_hours_unavailable_message)
        next_phase = phase if phase.is_terminal else CallPhase.GREETED
        return Transition(phase=next_phase, action=action)

    action = SayThenRedirect(
        text=f"{config.welcome_message} {config.gather_prompt}",
        next_path=ANALYZE_PATH,
    )
    if phase.is_terminal:
        return Transition(phase=phase, action=action)
    return Transition(
        phase=CallPhase.AWAITING_SPEECH, action=action, via=(CallPhase.GREETED,)
    )


def on_speech(phase: CallPhase, is_final: bool) -> Transition:
    """Final speech moves a waiting call to analysis; partial results are only logged."""
    if is_final and phase in (CallPhase.RINGING, CallPhase.GREETED, CallPhase.AWAITING_SPEECH):
        return Transition(phase=CallPhase.ANALYZING)
    return Transition(phase=phase)


def on_empty_input(phase: Optional[CallPhase], config: CallFlowConfig) -> Transition:
    """Ask the caller to repeat and send the next turn back to analysis."""
    action = SayThenRedirect(text=config.reprompt_message, next_path=ANALYZE_PATH)
    if phase is not None and phase.is_terminal:
        return Transition(phase=phase, action=action)
    return Transition(phase=CallPhase.AWAITING_SPEECH, action=action)


def on_analyze_start(phase: CallPhase) -> Transition:
    """Enter analysis before calling the generator."""
    if phase in ANSWERABLE_PHASES:
        return Transition(phase=CallPhase.ANALYZING)
    return Transition(phase=phase)


def on_terminal_input(phase: CallPhase, config: CallFlowConfig) -> Transition:
    """Input for a call that already ended gets a goodbye, not a new reply."""
    return Transition(phase=phase, action=reply_action("", config))


def reply_action(reply_text: str, config: CallFlowConfig) -> SayThenHangup:
    """Speak a reply (or the closing message if it is empty) and hang up."""
    return SayThenHangup(text=reply_text or config.closing_message)


def on_reply(phase: CallPhase, reply_text: str, config: CallFlowConfig) -> Transition:
    """Speak the generated reply and hang up.

    A call that ended while the reply was generated (voicemail, failed
    status) keeps its terminal phase.
    """
    action = reply_action(reply_text, config)
    if phase.is_terminal:
        return Transition(phase=phase, action=action)
    return Transition(phase=CallPhase.COMPLETED, action=action, via=(CallPhase.RESPONDING,))


def on_voicemail(phase: CallPhase) -> Transition:
    """A voicemail ends the call flow from any phase."""
    return Transition(phase=CallPhase.VOICEMAIL)


def on_status(
    phase: CallPhase,
    current: CallStatus,
    reported: CallStatus,
    enforce_monotonic: bool = True,
) -> StatusTransition:
    """
    Decide how a provider status update changes the session.

    With enforce_monotonic, a status ranked below the stored one (a late
    "ringing" after "completed") is ignored.
    """
    if enforce_monotonic and reported.rank < current.rank:
        return StatusTransition(apply=False, status=current, phase=phase)

    next_phase = phase
    if reported.is_failure and not phase.is_terminal:
        next_phase = CallPhase.FAILED

    return StatusTransition(
        apply=True,
        status=reported,
        phase=next_phase,
        set_end_time=reported is CallStatus.COMPLETED,
    )
