"""Voice actions decided by the call flow and rendered as TwiML."""
from typing import Union

from pydantic import BaseModel, ConfigDict


class Say(BaseModel):
    """Speak text and let the call continue."""

    model_config = ConfigDict(frozen=True)

    text: str


class SayThenRedirect(BaseModel):
    """Speak text, then send the next turn to another webhook path.

    With gather_speech the prompt is spoken inside a speech Gather so the
    caller's answer is posted to next_path; the trailing redirect covers
    silence.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    next_path: str
    gather_speech: bool = True


class SayThenHangup(BaseModel):
    """Speak text and end the call."""

    model_config = ConfigDict(frozen=True)

    text: str


class Record(BaseModel):
    """Speak a prompt and record a transcribed voicemail."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    callback_path: str
    max_length: int = 120


VoiceAction = Union[Say, SayThenRedirect, SayThenHangup, Record]
