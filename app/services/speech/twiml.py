"""TwiML rendering for voice actions."""
import logging
from typing import Optional

from twilio.twiml.voice_response import VoiceResponse

from app.services.speech.actions import (
    Record,
    Say,
    SayThenHangup,
    SayThenRedirect,
    VoiceAction,
)

logger = logging.getLogger(__name__)

FALLBACK_TWIML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    "<Response>"
    "<Say>We are experiencing technical difficulties. Goodbye.</Say>"
    "<Hangup />"
    "</Response>"
)


class TwimlEncoder:
    """Render voice actions into TwiML documents.

    Text is escaped by the TwiML builder, so system prompts and generated
    replies can never inject markup. A document is either rendered completely
    or replaced by FALLBACK_TWIML.
    """

    def __init__(self, base_url: Optional[str] = None, voice: Optional[str] = None):
        self.base_url = base_url.rstrip("/") if base_url else ""
        self.voice = voice

    def absolute_url(self, path: str) -> str:
        """Prefix a webhook path with the public base URL when one is configured."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path}"

    def render(self, action: VoiceAction) -> str:
        """Render an action, falling back to a goodbye document on failure."""
        try:
            return self._render(action)
        except Exception as e:
            logger.error(
                f"[TWIML] Failed to render {type(action).__name__}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return FALLBACK_TWIML

    def _render(self, action: VoiceAction) -> str:
        response = VoiceResponse()

        if isinstance(action, Say):
            response.say(action.text, voice=self.voice)

        elif isinstance(action, SayThenRedirect):
            next_url = self.absolute_url(action.next_path)
            if action.gather_speech:
                gather = response.gather(
                    input="speech",
                    action=next_url,
                    method="POST",
                    speech_timeout="auto",
                )
                gather.say(action.text, voice=self.voice)
            else:
                response.say(action.text, voice=self.voice)
            response.redirect(next_url, method="POST")

        elif isinstance(action, SayThenHangup):
            response.say(action.text, voice=self.voice)
            response.hangup()

        elif isinstance(action, Record):
            response.say(action.prompt, voice=self.voice)
            response.record(
                transcribe="true",
                transcribe_callback=self.absolute_url(action.callback_path),
                max_length=action.max_length,
            )
            response.hangup()

        else:
            raise TypeError(f"Unsupported voice action: {type(action).__name__}")

        return str(response)
