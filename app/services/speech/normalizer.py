"""Normalization of Twilio speech recognition callbacks."""
import math
from typing import Mapping, Optional

from app.core.errors import ValidationError
from app.services.call_session.models import TranscriptRecord


def parse_confidence(value: Optional[str]) -> float:
    """Parse a confidence score; anything unusable becomes 0.0."""
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
        return 0.0
    return confidence


def parse_timestamp(value: Optional[str]) -> int:
    """Parse an integer timestamp; anything unusable becomes 0."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_final(value: Optional[str]) -> bool:
    """Only the exact string "true" marks a final result."""
    return value == "true"


def normalize_speech_event(fields: Mapping[str, str]) -> TranscriptRecord:
    """
    Convert raw speech webhook fields into a transcript record.

    Args:
        fields: Decoded form fields of the speech callback

    Returns:
        TranscriptRecord

    Raises:
        ValidationError: If CallSid or SpeechResult is missing
    """
    call_id = (fields.get("CallSid") or "").strip()
    if not call_id:
        raise ValidationError("Speech callback missing CallSid")

    text = fields.get("SpeechResult")
    if text is None:
        raise ValidationError(f"Speech callback missing SpeechResult for {call_id}")

    # Unknown tracks are kept as-is rather than rejected
    track = fields.get("Track") or "inbound"

    return TranscriptRecord(
        call_id=call_id,
        text=text,
        confidence=parse_confidence(fields.get("Confidence")),
        is_final=parse_final(fields.get("Final")),
        track=track,
        timestamp=parse_timestamp(fields.get("Timestamp")),
        account_sid=fields.get("AccountSid") or None,
    )
