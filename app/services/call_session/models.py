"""Call session value types."""
from typing import Dict, List, Optional

from pydantic import BaseModel


class TranscriptRecord(BaseModel):
    """Normalized speech recognition result, ready for storage."""

    call_id: str
    text: str
    confidence: float = 0.0
    is_final: bool = False
    track: str = "inbound"
    timestamp: int = 0
    account_sid: Optional[str] = None


class SessionContext(BaseModel):
    """What the response generator knows about a call."""

    call_id: str
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    history: List[Dict[str, str]] = []  # chat-style {"role", "content"} turns
