"""Typed schemas for Twilio call webhook form bodies."""
from typing import Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ValidationError
from app.services.call_session.phases import CallStatus


class WebhookForm(BaseModel):
    """Base for webhook bodies; unknown Twilio fields are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class IncomingCallForm(WebhookForm):
    call_sid: str = Field(alias="CallSid", min_length=1)
    from_number: Optional[str] = Field(default=None, alias="From")
    to_number: Optional[str] = Field(default=None, alias="To")
    account_sid: Optional[str] = Field(default=None, alias="AccountSid")


class AnalyzeForm(WebhookForm):
    call_sid: str = Field(alias="CallSid", min_length=1)
    speech_result: Optional[str] = Field(default=None, alias="SpeechResult")


class VoicemailForm(WebhookForm):
    recording_url: str = Field(alias="RecordingUrl", min_length=1)
    transcription_text: str = Field(alias="TranscriptionText")
    call_sid: Optional[str] = Field(default=None, alias="CallSid")


class StatusForm(WebhookForm):
    call_sid: str = Field(alias="CallSid", min_length=1)
    call_status: CallStatus = Field(alias="CallStatus")

    @field_validator("call_status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


FormT = TypeVar("FormT", bound=WebhookForm)


def parse_form(form_class: Type[FormT], fields: Mapping[str, str]) -> FormT:
    """Validate decoded form fields, raising ValidationError before any mutation."""
    try:
        return form_class.model_validate(dict(fields))
    except PydanticValidationError as e:
        missing = ", ".join(
            ".".join(str(part) for part in error["loc"]) for error in e.errors()
        )
        raise ValidationError(f"{form_class.__name__} invalid fields: {missing}") from e
