"""Call phase and provider status enumerations."""
from enum import Enum


class CallPhase(str, Enum):
    """Phases of the inbound call flow."""

    RINGING = "ringing"  # Session created, nothing said yet
    GREETED = "greeted"  # Initial prompt emitted
    AWAITING_SPEECH = "awaiting_speech"  # Waiting for the caller to speak
    ANALYZING = "analyzing"  # Final speech received, reply being generated
    RESPONDING = "responding"  # Reply generated, being spoken
    COMPLETED = "completed"  # Reply spoken, call hung up
    VOICEMAIL = "voicemail"  # Caller left a voicemail
    FAILED = "failed"  # Provider reported the call failed

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are expected."""
        return self in TERMINAL_PHASES

    def __str__(self) -> str:
        """Return the string value of the phase."""
        return self.value


TERMINAL_PHASES = frozenset({CallPhase.COMPLETED, CallPhase.VOICEMAIL, CallPhase.FAILED})


class CallStatus(str, Enum):
    """Call status values reported by the telephony provider."""

    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    NO_ANSWER = "no-answer"
    BUSY = "busy"

    @property
    def rank(self) -> int:
        """Ordering used by the monotonic status guard."""
        if self is CallStatus.RINGING:
            return 0
        if self is CallStatus.IN_PROGRESS:
            return 1
        return 2

    @property
    def is_failure(self) -> bool:
        """Whether the call ended without being answered normally."""
        return self in (CallStatus.FAILED, CallStatus.NO_ANSWER, CallStatus.BUSY)

    def __str__(self) -> str:
        return self.value
